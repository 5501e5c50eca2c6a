"""Checksum commands, usable on either side of the air gap."""

import sys
from pathlib import Path

import cyclopts

from airgap.cli.console import get_console
from airgap.cli.util import ExitCode, abort, bootstrap
from airgap.domain.checksum import ChecksumEngine, record_path
from airgap.domain.shared.error import AirgapError, IntegrityError

app = cyclopts.App(name="checksum", help="Write and verify SHA-256 checksum records")


@app.command
def verify(path: Path, /) -> None:
    """Verify a file against its .sha256 record.

    Exits 0 on a match, 1 on a mismatch and 2 when the record is missing.

    Args:
        path: File to verify; the record is read from PATH.sha256.
    """
    bootstrap()
    console = get_console()
    try:
        ok = ChecksumEngine().verify(path)
    except IntegrityError as e:
        # A corrupt record is reported like a mismatch.
        console.error(e.message)
        sys.exit(ExitCode.FAILURE)
    except AirgapError as e:
        abort(e)

    if not ok:
        console.error(f"{path.name}: checksum does NOT match {record_path(path).name}")
        sys.exit(ExitCode.FAILURE)
    console.success(f"{path.name}: OK")


@app.command
def write(path: Path, /) -> None:
    """Compute the SHA-256 of a file and write PATH.sha256 next to it.

    Args:
        path: File to checksum.
    """
    bootstrap()
    try:
        record = ChecksumEngine().write_checksum_record(path)
    except AirgapError as e:
        abort(e)
    get_console().success(f"{record_path(path).name}: {record.value}")
