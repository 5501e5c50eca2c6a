"""Syntactic validation of image reference strings.

Nothing here touches the network: a reference is judged by its shape only.
"""

import logging
from collections.abc import Iterable

from airgap.domain.reference.model import DIGEST_RE, ImageReference
from airgap.domain.shared.error import InvalidReference

logger = logging.getLogger(__name__)


def is_valid_digest(value: str | None) -> bool:
    """True for `sha256:` followed by exactly 64 lowercase hex characters."""
    return bool(value) and DIGEST_RE.match(value) is not None


def validate_reference(raw: str) -> ImageReference:
    """Validate and normalize one image reference string.

    Tag-only references are accepted but logged as non-reproducible.

    Raises:
        InvalidReference: if the repository, tag or digest segment is malformed.
    """
    ref = ImageReference.parse(raw)
    if not ref.is_reproducible:
        logger.warning("Image %s has no content digest; bundle will not be reproducible", ref)
    return ref


def validate_references(raws: Iterable[str]) -> list[ImageReference]:
    """Validate every reference, failing on the first bad one."""
    return [validate_reference(raw) for raw in raws]


def image_ref(repository: str, digest: str | None = None, tag: str | None = None) -> ImageReference:
    """Build a reference, preferring the digest over a mutable tag.

    Returns `repository@digest` when the digest is valid, otherwise
    `repository:tag` (with a warning).

    Raises:
        InvalidReference: when neither a valid digest nor a tag is available.
    """
    if digest and is_valid_digest(digest):
        return ImageReference.parse(f"{repository}@{digest}")
    if tag:
        logger.warning("Using mutable tag for %s: %s (no valid digest provided)", repository, tag)
        return ImageReference.parse(f"{repository}:{tag}")
    raise InvalidReference(repository, "need a valid digest or a tag")


def dedupe(references: Iterable[ImageReference]) -> list[ImageReference]:
    """Drop repeated references, keeping first-seen order."""
    seen: set[ImageReference] = set()
    out: list[ImageReference] = []
    for ref in references:
        if ref not in seen:
            seen.add(ref)
            out.append(ref)
    return out
