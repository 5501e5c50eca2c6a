"""Version pin files (``versions.env``).

A pin file is a shell-style ``KEY=VALUE`` list. Keys ending in ``_IMAGE``
name images to bundle; keys ending in ``_DIGEST`` must hold valid content
digests; ``_VERSION`` values that look like ``X.Y.Z`` must be well formed.
The file is only parsed, never sourced.
"""

import logging
import re
import shlex
from pathlib import Path

from pydantic import Field

from airgap.domain.reference.model import ImageReference
from airgap.domain.reference.service import dedupe, is_valid_digest, validate_reference
from airgap.domain.shared.error import BundleIOError, InvalidReference
from airgap.domain.shared.model.value import ValueObject

logger = logging.getLogger(__name__)

# Shell keywords that may precede an assignment.
_ASSIGNMENT_PREFIXES = ("export ", "readonly ")

_SEMVER_LIKE_RE = re.compile(r"^v?\d+\.\d+\.\d+$")
_SEMVER_RE = re.compile(r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)$")


class VersionPins(ValueObject):
    """Parsed contents of a version pin file."""

    source: Path
    values: dict[str, str] = Field(default_factory=dict)
    images: list[ImageReference] = Field(default_factory=list)


def _strip_prefixes(line: str) -> str:
    stripped = True
    while stripped:
        stripped = False
        for prefix in _ASSIGNMENT_PREFIXES:
            if line.startswith(prefix):
                line = line[len(prefix) :].lstrip()
                stripped = True
    return line


def parse_env_lines(text: str, source: str = "versions file") -> dict[str, str]:
    """Parse KEY=VALUE lines; comments, blanks, `export`/`readonly` and quotes are tolerated.

    Raises:
        InvalidReference: on any other line that is not a single assignment.
    """
    values: dict[str, str] = {}
    for lineno, line in enumerate(text.replace("\r\n", "\n").splitlines(), 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        line = _strip_prefixes(line)
        key, sep, raw = line.partition("=")
        key = key.strip()
        if not sep or not key.isidentifier():
            raise InvalidReference(line, f"unparseable line {lineno} in {source}")
        try:
            parts = shlex.split(raw, comments=True)
        except ValueError as e:
            raise InvalidReference(line, f"unparseable line {lineno} in {source}: {e}") from e
        if len(parts) > 1:
            raise InvalidReference(line, f"unquoted spaces on line {lineno} in {source}")
        values[key] = parts[0] if parts else ""
    return values


def is_valid_version(value: str) -> bool:
    """True for ``X.Y.Z`` with an optional leading ``v`` and no leading zeros."""
    return bool(_SEMVER_RE.match(value.removeprefix("v")))


def load_versions_file(path: Path) -> VersionPins:
    """Read and validate a pin file.

    Raises:
        BundleIOError: if the file cannot be read.
        InvalidReference: if a line does not parse, or any *_DIGEST value,
            semver-looking *_VERSION value or *_IMAGE reference is malformed.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise BundleIOError(path, e.strerror or str(e)) from e

    values = parse_env_lines(text, source=path.name)

    bad = [k for k, v in sorted(values.items()) if k.endswith("_DIGEST") and not is_valid_digest(v)]
    if bad:
        raise InvalidReference(
            values[bad[0]], f"bad digest in {path.name}: {', '.join(bad)}"
        )

    bad = [
        k
        for k, v in sorted(values.items())
        if k.endswith("_VERSION") and _SEMVER_LIKE_RE.match(v) and not is_valid_version(v)
    ]
    if bad:
        raise InvalidReference(
            values[bad[0]], f"invalid semver in {path.name}: {', '.join(bad)}"
        )

    images = dedupe(
        validate_reference(v) for k, v in sorted(values.items()) if k.endswith("_IMAGE") and v
    )
    logger.debug("Loaded %d image pin(s) from %s", len(images), path)
    return VersionPins(source=path, values=values, images=images)


def gather_images(
    explicit: list[ImageReference], pins: VersionPins | None = None
) -> list[ImageReference]:
    """Pinned images first, then explicit ones, without duplicates."""
    pinned = pins.images if pins else []
    return dedupe([*pinned, *explicit])
