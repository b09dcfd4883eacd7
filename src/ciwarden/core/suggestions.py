"""Suggestion engine: human-facing remediation hints for failures.

Commands come from an ordered rule table keyed by error type and
language. The first rule whose conditions hold wins; every error type
ends with a language-independent rule, so a suggestion always exists.
"""

import shlex
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from ..constants import DEPENDENCY_KEYWORDS
from ..models import ErrorType, ExecutionStrategy, Suggestion
from .languages import Language, infer_language

NODE = frozenset({Language.TYPESCRIPT, Language.JAVASCRIPT})
LOCKFILES = frozenset({"package-lock.json", "yarn.lock", "pnpm-lock.yaml", "poetry.lock", "uv.lock"})

DETERMINISTIC_CONFIDENCE = 0.95
LOCKFILE_CONFIDENCE = 0.85
DEFAULT_CONFIDENCE = 0.5


@dataclass(frozen=True)
class CommandRule:
    """One row of the suggestion table.

    ``languages`` empty means any language; ``keywords`` empty means any
    summary. Templates containing ``{files}`` only apply when files are known.
    """

    error_type: ErrorType
    template: str
    languages: frozenset[Language] = frozenset()
    keywords: tuple[str, ...] = ()

    @property
    def needs_files(self) -> bool:
        return "{files}" in self.template

    def applies(self, language: Language, summary: str, files: Sequence[str]) -> bool:
        if self.languages and language not in self.languages:
            return False
        if self.keywords and not any(kw in summary for kw in self.keywords):
            return False
        return not (self.needs_files and not files)

    def render(self, files: Sequence[str]) -> str:
        return self.template.format(files=" ".join(shlex.quote(f) for f in files))


def _rules(error_type: ErrorType, *rows: tuple) -> list[CommandRule]:
    rules = []
    for row in rows:
        template, languages, *rest = row
        keywords = rest[0] if rest else ()
        rules.append(CommandRule(error_type, template, frozenset(languages), tuple(keywords)))
    return rules


DEFAULT_COMMAND_RULES: tuple[CommandRule, ...] = (
    *_rules(
        ErrorType.TEST_FAILURE,
        ("pytest {files} -v", {Language.PYTHON}),
        ("npm test -- {files}", NODE),
        ("go test ./...", {Language.GO}),
        ("cargo test", {Language.RUST}),
        ("npm test -- --verbose", ()),
    ),
    *_rules(
        ErrorType.LINTING_ERROR,
        ("ruff check --fix {files}", {Language.PYTHON}),
        ("npx eslint --fix {files}", NODE),
        ("golangci-lint run --fix", {Language.GO}),
        ("cargo clippy --fix --allow-dirty", {Language.RUST}),
        ("npm run lint -- --fix", ()),
    ),
    *_rules(
        ErrorType.FORMAT_ERROR,
        ("black {files}", {Language.PYTHON}),
        ("npx prettier --write {files}", NODE),
        ("gofmt -w {files}", {Language.GO}),
        ("cargo fmt", {Language.RUST}),
        ("npm run format", ()),
    ),
    *_rules(
        ErrorType.TYPE_ERROR,
        ("mypy {files}", {Language.PYTHON}),
        ("npx tsc --noEmit", NODE),
        ("go vet ./...", {Language.GO}),
        ("cargo check", {Language.RUST}),
        ("npm run typecheck", ()),
    ),
    *_rules(
        ErrorType.BUILD_ERROR,
        ("python -m build", {Language.PYTHON}),
        ("go build ./...", {Language.GO}),
        ("cargo build", {Language.RUST}),
        ("npm run build", ()),
    ),
    *_rules(
        ErrorType.SECURITY_ISSUE,
        ("Review and remove secrets from code", (), ("secret",)),
        ("pip-audit --fix", {Language.PYTHON}, DEPENDENCY_KEYWORDS),
        ("npm audit fix", (), DEPENDENCY_KEYWORDS),
        ("Review CodeQL findings at check details URL", (), ("codeql",)),
        ("Review security scan findings", ()),
    ),
    *_rules(ErrorType.UNKNOWN, ("No specific suggestion available", ())),
)

STRATEGIES: dict[ErrorType, ExecutionStrategy] = {
    ErrorType.LINTING_ERROR: ExecutionStrategy.DETERMINISTIC,
    ErrorType.FORMAT_ERROR: ExecutionStrategy.DETERMINISTIC,
    ErrorType.TEST_FAILURE: ExecutionStrategy.AI,
    ErrorType.TYPE_ERROR: ExecutionStrategy.AI,
    ErrorType.BUILD_ERROR: ExecutionStrategy.AI,
    ErrorType.SECURITY_ISSUE: ExecutionStrategy.MANUAL,
    ErrorType.UNKNOWN: ExecutionStrategy.MANUAL,
}


def touches_lockfile(files: Sequence[str]) -> bool:
    return any(PurePosixPath(f).name in LOCKFILES for f in files)


@dataclass
class SuggestionEngine:
    """Builds a ``Suggestion`` for an (error type, files, summary) triple."""

    rules: Sequence[CommandRule] = field(default_factory=lambda: DEFAULT_COMMAND_RULES)

    def command_for(self, summary: str, error_type: ErrorType, files: Sequence[str]) -> str:
        language = infer_language(files)
        text = summary.lower()
        for rule in self.rules:
            if rule.error_type == error_type and rule.applies(language, text, files):
                return rule.render(files)
        return "No specific suggestion available"

    def get_suggestion(
        self, summary: str, error_type: ErrorType, affected_files: Sequence[str]
    ) -> Suggestion:
        """Suggest a remediation.

        Only linting and formatting are auto-fixable here. Security issues
        stay ``manual`` even though the remediation engine will run a
        dependency audit fix for them.
        """
        strategy = STRATEGIES.get(error_type, ExecutionStrategy.MANUAL)
        deterministic = strategy is ExecutionStrategy.DETERMINISTIC

        if deterministic:
            confidence = DETERMINISTIC_CONFIDENCE
        elif error_type is ErrorType.SECURITY_ISSUE and touches_lockfile(affected_files):
            confidence = LOCKFILE_CONFIDENCE
        else:
            confidence = DEFAULT_CONFIDENCE

        return Suggestion(
            command=self.command_for(summary, error_type, affected_files),
            auto_fixable=deterministic,
            execution_strategy=strategy,
            confidence=confidence,
        )


_default = SuggestionEngine()


def get_suggestion(summary: str, error_type: ErrorType, affected_files: Sequence[str]) -> Suggestion:
    """Suggest a remediation with the default rule table."""
    return _default.get_suggestion(summary, error_type, affected_files)
