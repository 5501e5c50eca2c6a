"""Verify a bundle (or bare archive) and restore its images into the local runtime."""

import asyncio
import logging
import tempfile
from pathlib import Path

from pydantic import Field

from airgap.domain.bundle.model.manifest import BundleManifest
from airgap.domain.bundle.model.value import (
    ARCHIVE_BASENAME,
    ARCHIVE_NAMES,
    TRANSITIONS,
    BundleSettings,
    BundleState,
    Compression,
)
from airgap.domain.bundle.port.compressor import Compressor
from airgap.domain.bundle.port.runtime import ContainerRuntime
from airgap.domain.checksum.service import ChecksumEngine, record_path
from airgap.domain.shared.error import (
    BundleIOError,
    IntegrityError,
    ManifestError,
    ManifestMismatch,
    MissingRecord,
    UnsupportedSchema,
)
from airgap.domain.shared.model.value import ValueObject

logger = logging.getLogger(__name__)


class LoadResult(ValueObject):
    """Outcome of a successful load."""

    archive: Path
    compression: Compression
    manifest: BundleManifest | None = None
    checksum_verified: bool
    state: BundleState
    # Filled only when post-load listing is enabled.
    images: list[str] = Field(default_factory=list)


class _Lifecycle:
    """Tracks one load through verifying -> verified|rejected -> loaded."""

    def __init__(self) -> None:
        self.state = BundleState.VERIFYING

    def move(self, to: BundleState) -> None:
        if to not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal bundle state transition {self.state} -> {to}")
        logger.debug("Bundle state %s -> %s", self.state, to)
        self.state = to


class BundleLoader:
    """Reads bundles; never modifies them."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        compressor: Compressor,
        checksums: ChecksumEngine | None = None,
    ) -> None:
        self._runtime = runtime
        self._compressor = compressor
        self._checksums = checksums or ChecksumEngine()

    async def load(self, path: Path, settings: BundleSettings) -> LoadResult:
        """Verify and load a bundle directory or a bare archive file.

        Raises:
            IntegrityError: checksum mismatch; the runtime is never called.
            MissingRecord: no checksum record and `require_checksum` is set.
            MissingDependency: a `.zst` archive on a host without zstd.
            UnsupportedSchema, ManifestMismatch, ManifestError: bad bundle layout.
            BundleIOError: `path` does not exist.
        """
        lifecycle = _Lifecycle()
        manifest: BundleManifest | None = None
        if path.is_dir():
            archive, compression, manifest = self._resolve_bundle(path)
        elif path.is_file():
            archive, compression = path, Compression.from_filename(path)
            logger.info("Loading bare archive %s (compression %s)", archive, compression)
        else:
            raise BundleIOError(path, "no such file or directory")

        if compression is Compression.ZSTD:
            self._compressor.require(compression, f"decompressing {archive.name}")

        verified = await self._verify(archive, settings, lifecycle)
        lifecycle.move(BundleState.VERIFIED)

        await self._restore(archive, compression)
        lifecycle.move(BundleState.LOADED)
        logger.info("Images from %s loaded into %s", archive.name, self._runtime.name)

        images: list[str] = []
        if settings.verify_after_load:
            images = await self._runtime.list_images()
            logger.info("Runtime %s now lists %d image(s)", self._runtime.name, len(images))
            for image in images:
                logger.info("  %s", image)

        return LoadResult(
            archive=archive,
            compression=compression,
            manifest=manifest,
            checksum_verified=verified,
            state=lifecycle.state,
            images=images,
        )

    def _resolve_bundle(self, bundle_dir: Path) -> tuple[Path, Compression, BundleManifest | None]:
        """Locate the archive, trusting the manifest over file names."""
        try:
            manifest = BundleManifest.read(bundle_dir)
        except UnsupportedSchema:
            raise
        except (ManifestError, BundleIOError) as e:
            logger.warning("%s; falling back to archive file name detection", e.message)
            return (*self._find_archive(bundle_dir), None)

        archive = bundle_dir / manifest.archive
        if not archive.is_file():
            present = [n for n in ARCHIVE_NAMES if (bundle_dir / n).is_file()]
            raise ManifestMismatch(
                f"Manifest names archive {manifest.archive!r} but it is missing from "
                f"{bundle_dir}" + (f" (found: {', '.join(present)})" if present else "")
            )
        by_name = Compression.from_filename(archive)
        if by_name is not manifest.compression:
            raise ManifestMismatch(
                f"Manifest says compression {manifest.compression!s} but archive "
                f"{manifest.archive!r} looks like {by_name!s}"
            )
        logger.info(
            "Bundle manifest: %d image(s), %s, runtime %s",
            len(manifest.images),
            manifest.compression,
            manifest.runtime,
        )
        return archive, manifest.compression, manifest

    def _find_archive(self, bundle_dir: Path) -> tuple[Path, Compression]:
        found = [bundle_dir / n for n in ARCHIVE_NAMES if (bundle_dir / n).is_file()]
        if not found:
            raise ManifestError(
                f"No manifest and no archive ({', '.join(ARCHIVE_NAMES)}) in {bundle_dir}"
            )
        if len(found) > 1:
            raise ManifestMismatch(
                f"No manifest and several archives in {bundle_dir}: "
                + ", ".join(p.name for p in found)
            )
        return found[0], Compression.from_filename(found[0])

    async def _verify(self, archive: Path, settings: BundleSettings, lifecycle: _Lifecycle) -> bool:
        if not record_path(archive).exists():
            if settings.require_checksum:
                lifecycle.move(BundleState.REJECTED)
                raise MissingRecord(record_path(archive))
            logger.warning(
                "No checksum record for %s; loading WITHOUT integrity verification "
                "(reduced-trust path)",
                archive.name,
            )
            return False

        logger.info("Verifying integrity of %s", archive.name)
        if not await asyncio.to_thread(self._checksums.verify, archive):
            lifecycle.move(BundleState.REJECTED)
            raise IntegrityError(
                f"Integrity check failed for {archive}; the archive may be corrupt or "
                "tampered with and was not loaded",
                path=archive,
            )
        logger.info("Integrity of %s verified", archive.name)
        return True

    async def _restore(self, archive: Path, compression: Compression) -> None:
        if compression is not Compression.ZSTD:
            # docker and podman read raw and gzip archives directly.
            await self._runtime.load_archive(archive)
            return

        with tempfile.TemporaryDirectory(prefix="airgap-load-") as tmp:
            raw = Path(tmp) / ARCHIVE_BASENAME
            logger.info("Decompressing %s", archive.name)
            await self._compressor.decompress(archive, raw, compression)
            await self._runtime.load_archive(raw)
