from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import Field

from airgap.domain.shared.model.value import ValueObject
from airgap.domain.shared.retry import RetryPolicy

ARCHIVE_BASENAME = "images.tar"


class Compression(StrEnum):
    NONE = "none"
    GZIP = "gzip"
    ZSTD = "zstd"

    @property
    def suffix(self) -> str:
        return _SUFFIXES[self]

    @property
    def archive_name(self) -> str:
        return ARCHIVE_BASENAME + self.suffix

    @classmethod
    def from_filename(cls, name: str | Path) -> Compression:
        """Infer the compression of an archive from its file name alone."""
        name = Path(name).name
        if name.endswith(".gz") or name.endswith(".tgz"):
            return cls.GZIP
        if name.endswith(".zst"):
            return cls.ZSTD
        return cls.NONE


_SUFFIXES = {
    Compression.NONE: "",
    Compression.GZIP: ".gz",
    Compression.ZSTD: ".zst",
}

ARCHIVE_NAMES = tuple(c.archive_name for c in Compression)


class BundleState(StrEnum):
    COMPOSING = "composing"
    COMPOSED = "composed"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    REJECTED = "rejected"
    LOADED = "loaded"


# Allowed lifecycle moves; transport between COMPOSED and VERIFYING happens out of band.
TRANSITIONS: dict[BundleState, frozenset[BundleState]] = {
    BundleState.COMPOSING: frozenset({BundleState.COMPOSED}),
    BundleState.COMPOSED: frozenset({BundleState.VERIFYING}),
    BundleState.VERIFYING: frozenset({BundleState.VERIFIED, BundleState.REJECTED}),
    BundleState.VERIFIED: frozenset({BundleState.LOADED}),
    BundleState.REJECTED: frozenset(),
    BundleState.LOADED: frozenset(),
}


class BundleSettings(ValueObject):
    """Per-call tunables for building and loading bundles.

    Passed explicitly into every operation; nothing is read from ambient state.
    """

    compression: Compression = Compression.GZIP
    retry: RetryPolicy = RetryPolicy()
    pull_concurrency: int = Field(default=1, ge=1)
    verify_after_load: bool = False
    require_checksum: bool = False
    overwrite: bool = False
    package: bool = False
    versions_file: Path | None = None
