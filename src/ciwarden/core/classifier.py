"""Failure classification for CI checks.

Rules are evaluated in order and the first match wins, so a check
called "security-lint" is a security issue, not a linting error.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from ..models import CheckRun, CommitStatus, ErrorType

SOURCE_EXTENSIONS = r"(?:py|tsx|ts|jsx|js|go|rs)"


@dataclass(frozen=True)
class ClassificationRule:
    """Keyword family mapped to an error type."""

    error_type: ErrorType
    keywords: tuple[str, ...]

    def matches(self, haystacks: Iterable[str]) -> bool:
        return any(kw in text for text in haystacks for kw in self.keywords)


DEFAULT_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        ErrorType.SECURITY_ISSUE,
        (
            "security",
            "codeql",
            "audit",
            "vuln",
            "secret",
            "dependabot",
            "dependency",
        ),
    ),
    ClassificationRule(
        ErrorType.BUILD_ERROR,
        ("build", "compile", "webpack", "babel", "rollup"),
    ),
    ClassificationRule(
        ErrorType.TEST_FAILURE,
        ("test", "spec", "pytest", "jest", "mocha", "unittest", "vitest"),
    ),
    ClassificationRule(
        ErrorType.TYPE_ERROR,
        ("type", "typecheck", "mypy", "pyright", "tsc"),
    ),
    ClassificationRule(
        ErrorType.LINTING_ERROR,
        ("lint", "eslint", "pylint", "flake8", "ruff", "clippy"),
    ),
    ClassificationRule(
        ErrorType.FORMAT_ERROR,
        ("format", "prettier", "black", "gofmt", "rustfmt", "autopep8"),
    ),
)

# Each pattern captures the path in group 1
FILE_PATTERNS: tuple[re.Pattern[str], ...] = (
    # pytest: tests/test_auth.py::test_login FAILED
    re.compile(rf"([\w\-./]+\.{SOURCE_EXTENSIONS})::"),
    # tsc: src/components/Button.tsx(45,12): error TS2322
    re.compile(rf"([\w\-./]+\.{SOURCE_EXTENSIONS})\(\d+,\d+\)"),
    # Python traceback: File "app/models/user.py", line 123
    re.compile(rf'File "([^"\n]+\.{SOURCE_EXTENSIONS})"'),
    # Any absolute or relative path with a directory part
    re.compile(rf"(?<![\w\-./])((?:\.{{1,2}}/|/)?(?:[\w\-.]+/)+[\w\-.]+\.{SOURCE_EXTENSIONS})(?!\w)"),
)


class FailureClassifier:
    """Maps check results to the error taxonomy using ordered rules."""

    def __init__(
        self,
        rules: Sequence[ClassificationRule] = DEFAULT_RULES,
        file_patterns: Sequence[re.Pattern[str]] = FILE_PATTERNS,
    ) -> None:
        self.rules = tuple(rules)
        self.file_patterns = tuple(file_patterns)

    def classify_text(self, *texts: str | None) -> ErrorType:
        """Classify arbitrary text fragments; UNKNOWN when nothing matches."""
        haystacks = [t.lower() for t in texts if t]
        for rule in self.rules:
            if rule.matches(haystacks):
                return rule.error_type
        return ErrorType.UNKNOWN

    def classify(self, check: CheckRun | CommitStatus) -> ErrorType:
        """Classify a check run by name and output, or a status by context."""
        if isinstance(check, CommitStatus):
            return self.classify_text(check.context, check.description)
        return self.classify_text(check.name, check.output.title, check.output.summary)

    def extract_affected_files(self, output: str | None) -> list[str]:
        """Collect source paths mentioned in output, deduplicated in first-seen order."""
        if not output:
            return []
        files: dict[str, None] = {}
        for pattern in self.file_patterns:
            for match in pattern.finditer(output):
                files.setdefault(match.group(1), None)
        return list(files)


_default = FailureClassifier()


def classify(check: CheckRun | CommitStatus) -> ErrorType:
    """Classify a check with the default rules."""
    return _default.classify(check)


def extract_affected_files(output: str | None) -> list[str]:
    """Extract affected files with the default patterns."""
    return _default.extract_affected_files(output)
