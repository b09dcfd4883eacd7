"""Fixer tool detection.

Each (error type, language) pair has an ordered list of fixers: a
dedicated tool first, then a package-script fallback where one exists.
Dry runs and real runs resolve through the same table, so a dry run
reports exactly the command a real run would execute.
"""

import json
import logging
import shlex
import shutil
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from ..models import ErrorType, RemediationReason
from .languages import Language

logger = logging.getLogger(__name__)

FILES = "{files}"


@dataclass(frozen=True)
class FixerOption:
    """A candidate fixer and how to detect it."""

    name: str
    argv: tuple[str, ...]
    kind: Literal["command", "script"] = "command"
    stage_paths: tuple[str, ...] = ()

    def expand(self, files: Sequence[str]) -> list[str]:
        args: list[str] = []
        for part in self.argv:
            if part == FILES:
                args.extend(files or ["."])
            else:
                args.append(part)
        return args


@dataclass(frozen=True)
class FixPlan:
    """A resolved fix command."""

    tool: str
    args: tuple[str, ...]
    stage_paths: tuple[str, ...] = ()

    @property
    def command(self) -> str:
        return shlex.join(self.args)


def _cmd(name: str, *argv: str, stage: tuple[str, ...] = ()) -> FixerOption:
    return FixerOption(name=name, argv=argv, stage_paths=stage)


def _script(name: str) -> FixerOption:
    return FixerOption(name=name, argv=("npm", "run", name), kind="script")


_NODE_LINT = (_cmd("eslint", "npx", "eslint", "--fix", FILES), _script("lint:fix"))
_NODE_FORMAT = (_cmd("prettier", "npx", "prettier", "--write", FILES), _script("format"))
_NODE_AUDIT = (_cmd("npm", "npm", "audit", "fix", stage=("package-lock.json",)),)

FIXERS: dict[tuple[ErrorType, Language], tuple[FixerOption, ...]] = {
    (ErrorType.LINTING_ERROR, Language.PYTHON): (_cmd("ruff", "ruff", "check", "--fix", FILES),),
    (ErrorType.LINTING_ERROR, Language.TYPESCRIPT): _NODE_LINT,
    (ErrorType.LINTING_ERROR, Language.JAVASCRIPT): _NODE_LINT,
    (ErrorType.LINTING_ERROR, Language.GO): (
        _cmd("golangci-lint", "golangci-lint", "run", "--fix"),
    ),
    (ErrorType.LINTING_ERROR, Language.RUST): (
        _cmd("cargo", "cargo", "clippy", "--fix", "--allow-dirty", "--allow-staged"),
    ),
    (ErrorType.FORMAT_ERROR, Language.PYTHON): (
        _cmd("black", "black", FILES),
        _cmd("ruff", "ruff", "format", FILES),
    ),
    (ErrorType.FORMAT_ERROR, Language.TYPESCRIPT): _NODE_FORMAT,
    (ErrorType.FORMAT_ERROR, Language.JAVASCRIPT): _NODE_FORMAT,
    (ErrorType.FORMAT_ERROR, Language.GO): (
        _cmd("gofmt", "gofmt", "-w", FILES),
        _cmd("go", "go", "fmt", "./..."),
    ),
    (ErrorType.FORMAT_ERROR, Language.RUST): (_cmd("cargo", "cargo", "fmt"),),
    (ErrorType.SECURITY_ISSUE, Language.TYPESCRIPT): _NODE_AUDIT,
    (ErrorType.SECURITY_ISSUE, Language.JAVASCRIPT): _NODE_AUDIT,
}

MISSING_TOOL_REASONS = {
    ErrorType.LINTING_ERROR: RemediationReason.NO_LINT_TOOL,
    ErrorType.FORMAT_ERROR: RemediationReason.NO_FORMAT_TOOL,
}


class ToolDetector:
    """Resolves the preferred available fixer in a project directory."""

    def __init__(
        self,
        cwd: Path,
        which: Callable[[str], str | None] = shutil.which,
        fixers: dict[tuple[ErrorType, Language], tuple[FixerOption, ...]] | None = None,
    ) -> None:
        self.cwd = cwd
        self.which = which
        self.fixers = FIXERS if fixers is None else fixers

    def has_command(self, name: str) -> bool:
        """True if the tool is on PATH or installed in node_modules/.bin."""
        if self.which(name):
            return True
        return (self.cwd / "node_modules" / ".bin" / name).exists()

    def package_scripts(self) -> dict[str, str]:
        manifest = self.cwd / "package.json"
        if not manifest.exists():
            return {}
        try:
            scripts = json.loads(manifest.read_text()).get("scripts", {})
        except (OSError, ValueError, AttributeError) as e:
            logger.debug(f"Ignoring unreadable package.json: {e}")
            return {}
        return scripts if isinstance(scripts, dict) else {}

    def has_package_script(self, name: str) -> bool:
        return name in self.package_scripts() and self.has_command("npm")

    def is_available(self, option: FixerOption) -> bool:
        if option.kind == "script":
            return self.has_package_script(option.name)
        return self.has_command(option.name)

    def plan_fix(
        self, error_type: ErrorType, language: Language, files: Sequence[str]
    ) -> FixPlan | RemediationReason:
        """Pick the first available fixer, or the reason none can run."""
        options = self.fixers.get((error_type, language))
        if not options:
            if error_type is ErrorType.SECURITY_ISSUE:
                return RemediationReason.LIMITED_AUTO_FIX_CAPABILITY
            return RemediationReason.UNSUPPORTED_LANGUAGE

        for option in options:
            if self.is_available(option):
                logger.debug(f"Using {option.name} for {error_type.value} ({language.value})")
                return FixPlan(
                    tool=option.name,
                    args=tuple(option.expand(files)),
                    stage_paths=option.stage_paths,
                )
            logger.debug(f"{option.name} not available")

        return MISSING_TOOL_REASONS.get(error_type, RemediationReason.LIMITED_AUTO_FIX_CAPABILITY)
