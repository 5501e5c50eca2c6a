"""Run external tools (container runtimes, compressors) as asyncio subprocesses."""

import asyncio
from pathlib import Path

import logfire

from airgap.domain.shared.error import BundleIOError, MissingDependency, RuntimeCommandError


async def run_command(
    argv: list[str],
    *,
    stdout_path: Path | None = None,
    capture: bool = False,
) -> str:
    """Run `argv` to completion.

    Args:
        argv: Program and arguments; never passed through a shell.
        stdout_path: Redirect stdout into this file instead of a pipe.
        capture: Return decoded stdout (ignored when `stdout_path` is set).

    Returns:
        Captured stdout, or "" when not capturing.

    Raises:
        RuntimeCommandError: on a non-zero exit status.
        MissingDependency: if the executable does not exist.
        BundleIOError: if `stdout_path` cannot be opened.

    Cancelling the awaiting task kills the child process.
    """
    sink = None
    if stdout_path is not None:
        try:
            sink = open(stdout_path, "wb")
        except OSError as e:
            raise BundleIOError(stdout_path, e.strerror or str(e)) from e
    try:
        stdout = sink if sink is not None else (
            asyncio.subprocess.PIPE if capture else asyncio.subprocess.DEVNULL
        )
        logfire.debug("Running {command}", command=" ".join(argv))
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=stdout,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            logfire.error("Executable not found: {tool}", tool=argv[0])
            raise MissingDependency(argv[0], " ".join(argv[:2])) from e
        try:
            out, err = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            logfire.warning("Cancelled {command}", command=argv[0])
            raise
    finally:
        if sink is not None:
            sink.close()

    stderr = (err or b"").decode(errors="replace")
    if proc.returncode != 0:
        logfire.error(
            "Command failed",
            command=" ".join(argv),
            returncode=proc.returncode,
            stderr=stderr[:1000],
        )
        raise RuntimeCommandError(argv, proc.returncode or -1, stderr)
    return (out or b"").decode(errors="replace") if capture and sink is None else ""
