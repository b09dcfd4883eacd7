"""Local checks runner used to verify fixes before they are published."""

import logging
import shlex
import time
from pathlib import Path

from ..config import ChecksConfig
from ..constants import VERIFY_TIMEOUT
from ..errors import CommandError
from ..models import CategoryResult, VerificationResult
from .process import run_command

logger = logging.getLogger(__name__)


class ChecksError(CommandError):
    """Error running checks."""


async def run_single_check(
    command: str,
    cwd: Path,
    timeout: float | None = None,
) -> tuple[str, int]:
    """Run a single check command and return (output, exit_code).

    Args:
        command: Shell-style command line (parsed with shlex, no shell)
        cwd: Working directory
        timeout: Optional timeout in seconds (default: VERIFY_TIMEOUT)

    Returns:
        Tuple of (formatted output with stdout/stderr, exit code)

    Raises:
        ChecksError: If the command cannot be parsed, is missing, or times out
    """
    timeout = timeout or VERIFY_TIMEOUT

    try:
        args = shlex.split(command)
    except ValueError as e:
        raise ChecksError(f"Invalid command syntax: {e}") from e
    if not args:
        raise ChecksError("Empty check command")

    try:
        result = await run_command(args, cwd=cwd, timeout=timeout)
    except CommandError as e:
        raise ChecksError(str(e)) from e
    return result.format(), result.exit_code


class ChecksVerifier:
    """Verifier that runs the configured check categories in order.

    Every category runs (no fail-fast) so the error list names all
    failures; the whole run shares one deadline.
    """

    def __init__(self, config: ChecksConfig, cwd: Path) -> None:
        self.config = config
        self.cwd = cwd

    async def run(self, timeout: float) -> VerificationResult:
        categories = self.config.get_categories()
        if not categories:
            logger.debug("No verification commands configured")
            return VerificationResult(success=True)

        deadline = time.monotonic() + timeout
        results: dict[str, CategoryResult] = {}
        errors: list[str] = []

        for name, command in categories.items():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                errors.append(f"{name}: verification budget of {timeout}s exhausted")
                break
            try:
                output, exit_code = await run_single_check(command, self.cwd, remaining)
            except ChecksError as e:
                output, exit_code = str(e), 1
            passed = exit_code == 0
            results[name] = CategoryResult(
                category=name, exit_code=exit_code, passed=passed, output=output
            )
            if not passed:
                errors.append(f"{name} failed ({command}) with exit code {exit_code}")

        return VerificationResult(success=not errors, errors=errors, categories=results)
