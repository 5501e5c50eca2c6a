from airgap.domain.bundle.model.manifest import MANIFEST_NAME, SCHEMA_VERSION, BundleManifest
from airgap.domain.bundle.model.value import (
    ARCHIVE_BASENAME,
    ARCHIVE_NAMES,
    TRANSITIONS,
    BundleSettings,
    BundleState,
    Compression,
)

__all__ = [
    "ARCHIVE_BASENAME",
    "ARCHIVE_NAMES",
    "MANIFEST_NAME",
    "SCHEMA_VERSION",
    "TRANSITIONS",
    "BundleManifest",
    "BundleSettings",
    "BundleState",
    "Compression",
]
