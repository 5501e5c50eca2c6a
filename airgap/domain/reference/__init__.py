from airgap.domain.reference.model import ImageReference
from airgap.domain.reference.service import (
    dedupe,
    image_ref,
    is_valid_digest,
    validate_reference,
    validate_references,
)
from airgap.domain.reference.versions import VersionPins, gather_images, load_versions_file

__all__ = [
    "ImageReference",
    "VersionPins",
    "dedupe",
    "gather_images",
    "image_ref",
    "is_valid_digest",
    "load_versions_file",
    "validate_reference",
    "validate_references",
]
