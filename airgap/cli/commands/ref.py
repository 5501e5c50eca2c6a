"""Image reference commands."""

import sys
from pathlib import Path

import cyclopts

from airgap.cli.console import get_console
from airgap.cli.util import ExitCode, abort, bootstrap
from airgap.domain.reference import load_versions_file, validate_reference
from airgap.domain.shared.error import AirgapError, InvalidReference

app = cyclopts.App(name="ref", help="Validate image references and version pin files")


@app.command
def check(*references: str) -> None:
    """Validate image references without contacting any registry.

    Every reference is checked; the exit code is 3 if any is malformed.

    Args:
        references: Image references (repo[:tag][@sha256:...]).
    """
    bootstrap()
    console = get_console()
    if not references:
        console.error("No references given")
        sys.exit(ExitCode.INVALID_REFERENCE)

    failed = False
    for raw in references:
        try:
            ref = validate_reference(raw)
        except InvalidReference as e:
            console.error(e.message)
            failed = True
            continue
        if ref.is_reproducible:
            console.success(str(ref))
        else:
            console.warning(f"{ref} (tag only, not reproducible)")
    if failed:
        sys.exit(ExitCode.INVALID_REFERENCE)


@app.command
def versions(path: Path, /) -> None:
    """Validate a version pin file and list the images it pins.

    Args:
        path: KEY=VALUE pin file such as versions.env.
    """
    bootstrap()
    console = get_console()
    try:
        pins = load_versions_file(path)
    except AirgapError as e:
        abort(e)

    digests = sum(1 for key in pins.values if key.endswith("_DIGEST"))
    console.success(f"{path.name}: {digests} digest(s) valid")
    if pins.images:
        console.table(
            [{"image": str(ref), "pinned": "yes" if ref.is_reproducible else "no"} for ref in pins.images],
            [("image", "Image"), ("pinned", "Digest")],
        )
    else:
        console.info("No *_IMAGE entries")
