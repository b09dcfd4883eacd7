"""Async subprocess execution with timeout and output cap."""

import asyncio
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path

from ..constants import MAX_OUTPUT_BYTES
from ..errors import CommandError, CommandTimeoutError

logger = logging.getLogger(__name__)

# Graceful shutdown timeout before SIGKILL
GRACEFUL_SHUTDOWN_TIMEOUT = 5.0
READ_CHUNK = 4096


@dataclass
class CommandResult:
    """Captured result of an external command."""

    args: list[str]
    exit_code: int
    stdout: str
    stderr: str
    truncated: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def format(self) -> str:
        """Render as the exit_code/stdout/stderr block used in reports."""
        output = f"exit_code: {self.exit_code}\n\n"
        output += "=== stdout ===\n"
        output += self.stdout
        output += "\n=== stderr ===\n"
        output += self.stderr
        return output


async def _read_capped(stream: asyncio.StreamReader | None, limit: int) -> tuple[bytes, bool]:
    """Drain a stream, keeping at most ``limit`` bytes."""
    if stream is None:
        return b"", False
    kept = bytearray()
    truncated = False
    while True:
        chunk = await stream.read(READ_CHUNK)
        if not chunk:
            break
        room = limit - len(kept)
        if room > 0:
            kept.extend(chunk[:room])
        if len(chunk) > room:
            truncated = True
    return bytes(kept), truncated


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Send SIGTERM, then SIGKILL if the process does not exit in time."""
    if proc.returncode is not None:
        return
    proc.terminate()
    try:
        await asyncio.wait_for(proc.wait(), timeout=GRACEFUL_SHUTDOWN_TIMEOUT)
    except TimeoutError:
        logger.warning(f"Process {proc.pid} did not terminate, killing")
        proc.kill()
        await proc.wait()


async def run_command(
    args: list[str],
    cwd: Path | None = None,
    timeout: float = 60.0,
    max_output_bytes: int = MAX_OUTPUT_BYTES,
    check: bool = False,
) -> CommandResult:
    """Run a command without a shell and capture its output.

    Args:
        args: Program and arguments
        cwd: Working directory
        timeout: Seconds before the process is killed
        max_output_bytes: Bytes kept per stream; the rest is discarded
        check: Raise CommandError on a non-zero exit code

    Returns:
        CommandResult with decoded stdout/stderr

    Raises:
        CommandError: If the program is missing, or exits non-zero with check=True
        CommandTimeoutError: If the command exceeds its timeout
    """
    display = shlex.join(args)
    logger.debug(f"Running: {display} in {cwd or 'current dir'}")

    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        raise CommandError(f"Command not found: {args[0]}") from None
    except PermissionError as e:
        raise CommandError(f"Cannot execute {args[0]}: {e}") from e

    try:
        (stdout, out_truncated), (stderr, err_truncated), exit_code = await asyncio.wait_for(
            asyncio.gather(
                _read_capped(proc.stdout, max_output_bytes),
                _read_capped(proc.stderr, max_output_bytes),
                proc.wait(),
            ),
            timeout=timeout,
        )
    except TimeoutError:
        await _terminate(proc)
        raise CommandTimeoutError(f"Command timed out after {timeout} seconds: {display}") from None
    except asyncio.CancelledError:
        await _terminate(proc)
        raise

    result = CommandResult(
        args=list(args),
        exit_code=exit_code,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        truncated=out_truncated or err_truncated,
    )
    if result.truncated:
        logger.debug(f"Output of {display} truncated to {max_output_bytes} bytes per stream")
    if check and not result.ok:
        detail = result.stderr.strip() or result.stdout.strip()
        raise CommandError(f"{display} exited with {exit_code}: {detail[:500]}")
    return result
