"""Assemble a self-describing bundle directory."""

import asyncio
import logging
import os
import shutil
import tarfile
from pathlib import Path

from airgap import __version__
from airgap.domain.bundle.model.manifest import MANIFEST_NAME, BundleManifest
from airgap.domain.bundle.model.value import (
    ARCHIVE_NAMES,
    BundleSettings,
    Compression,
)
from airgap.domain.bundle.port.runtime import ContainerRuntime
from airgap.domain.bundle.service.archive import ArchiveBuilder
from airgap.domain.checksum.model import RECORD_SUFFIX, ChecksumRecord
from airgap.domain.checksum.service import ChecksumEngine, record_path
from airgap.domain.reference.model import ImageReference
from airgap.domain.shared.error import BundleExists, BundleIOError, NoImages
from airgap.domain.shared.fs import atomic_write_text, remove_quietly, temp_sibling

logger = logging.getLogger(__name__)

README_NAME = "README"
VERSIONS_SNAPSHOT_NAME = "versions.env"

# Files a previous compose may have left; only these are replaced on overwrite.
KNOWN_BUNDLE_FILES = (
    *ARCHIVE_NAMES,
    *(name + RECORD_SUFFIX for name in ARCHIVE_NAMES),
    MANIFEST_NAME,
    README_NAME,
    VERSIONS_SNAPSHOT_NAME,
)

README_TEMPLATE = """\
Air-gapped image bundle
=======================

Created:      {created_at}
Runtime:      {runtime}
Compression:  {compression}
Archive:      {archive}
Checksum:     {record} (sha256 {digest})

Images ({count}):
{image_lines}

1. Copy this whole directory to the target host.

2. Verify the archive before loading it:

     airgap checksum verify {archive}

   or, without airgap installed:

     sha256sum -c {record}

   Do not continue if verification fails. The archive is corrupt or was altered.

3. Load the images:

     airgap bundle load .

   or directly with the container runtime:

{load_hint}

4. Confirm the images are present:

     {runtime} images
"""


def _load_hint(runtime: str, compression: Compression, archive: str) -> str:
    if compression is Compression.ZSTD:
        return (
            f"     zstd -d {archive} -o images.tar\n"
            f"     {runtime} load -i images.tar\n\n"
            "   (zstd must be installed on the target host)"
        )
    return f"     {runtime} load -i {archive}"


class BundleComposer:
    """Creates a bundle directory: archive, checksum record, manifest, README.

    Once `compose` returns, the directory holds everything a loader needs
    besides a working container runtime.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        builder: ArchiveBuilder,
        checksums: ChecksumEngine | None = None,
    ) -> None:
        self._runtime = runtime
        self._builder = builder
        self._checksums = checksums or ChecksumEngine()

    async def compose(
        self,
        bundle_dir: Path,
        images: list[ImageReference],
        settings: BundleSettings,
    ) -> BundleManifest:
        """Build a complete bundle in `bundle_dir`.

        Raises:
            NoImages: if `images` is empty.
            BundleExists: if `bundle_dir` holds files and overwrite is off.
            PullFailed, MissingDependency, BundleIOError: from the archive build.
        """
        if not images:
            raise NoImages()
        created_dir = self._prepare_dir(bundle_dir, overwrite=settings.overwrite)
        written: list[Path] = []
        try:
            archive = await self._builder.build(bundle_dir, images, settings)
            written += [archive, record_path(archive)]
            record = await asyncio.to_thread(self._checksums.read_checksum_record, archive)

            manifest = BundleManifest(
                runtime=self._runtime.name,
                compression=settings.compression,
                archive=archive.name,
                images=[str(ref) for ref in images],
                tool_version=__version__,
            )

            snapshot = self._copy_versions_snapshot(bundle_dir, settings.versions_file)
            if snapshot:
                written.append(snapshot)

            written.append(self._write_readme(bundle_dir, manifest, record))

            files = await asyncio.to_thread(self._hash_files, written, record)
            manifest = manifest.model_copy(update={"files": files})
            written.append(manifest.write(bundle_dir))
        except BaseException:
            logger.warning("Compose of %s failed; cleaning up", bundle_dir)
            remove_quietly(*written)
            if created_dir:
                shutil.rmtree(bundle_dir, ignore_errors=True)
            raise

        logger.info(
            "Bundle composed at %s (%d image(s), %s)",
            bundle_dir,
            len(images),
            settings.compression,
        )
        return manifest

    def _prepare_dir(self, bundle_dir: Path, *, overwrite: bool) -> bool:
        """Create `bundle_dir` if needed; returns True when this call created it."""
        if bundle_dir.exists():
            if not bundle_dir.is_dir():
                raise BundleIOError(bundle_dir, "exists and is not a directory")
            entries = list(bundle_dir.iterdir())
            if entries:
                if not overwrite:
                    raise BundleExists(bundle_dir)
                unknown = [p.name for p in entries if p.name not in KNOWN_BUNDLE_FILES]
                if unknown:
                    raise BundleIOError(
                        bundle_dir,
                        f"refusing to overwrite unrecognized files: {', '.join(sorted(unknown))}",
                    )
                logger.warning("Replacing existing bundle in %s", bundle_dir)
                remove_quietly(*entries)
            return False
        try:
            bundle_dir.mkdir(parents=True)
        except OSError as e:
            raise BundleIOError(bundle_dir, e.strerror or str(e)) from e
        return True

    def _copy_versions_snapshot(self, bundle_dir: Path, versions_file: Path | None) -> Path | None:
        if versions_file is None:
            return None
        if not versions_file.is_file():
            logger.info("No version pin file at %s; skipping snapshot", versions_file)
            return None
        target = bundle_dir / VERSIONS_SNAPSHOT_NAME
        try:
            text = versions_file.read_text(encoding="utf-8")
        except OSError as e:
            raise BundleIOError(versions_file, e.strerror or str(e)) from e
        atomic_write_text(target, text)
        return target

    def _write_readme(
        self, bundle_dir: Path, manifest: BundleManifest, record: ChecksumRecord
    ) -> Path:
        target = bundle_dir / README_NAME
        atomic_write_text(
            target,
            README_TEMPLATE.format(
                created_at=manifest.created_at.isoformat(),
                runtime=manifest.runtime,
                compression=manifest.compression,
                archive=manifest.archive,
                record=manifest.archive + RECORD_SUFFIX,
                digest=record.value,
                count=len(manifest.images),
                image_lines="\n".join(f"  - {image}" for image in manifest.images),
                load_hint=_load_hint(manifest.runtime, manifest.compression, manifest.archive),
            ),
        )
        return target

    def _hash_files(self, paths: list[Path], record: ChecksumRecord) -> dict[str, str]:
        """Digest of every file written so far; the archive's comes from its record."""
        return {
            p.name: record.value
            if p.name == record.subject_filename
            else self._checksums.compute_digest(p)
            for p in sorted(paths)
        }

    async def package(
        self, bundle_dir: Path, *, dest_dir: Path | None = None, overwrite: bool = False
    ) -> Path:
        """Pack `bundle_dir` into a single ``<name>.tar.gz`` for transfer, plus its record.

        The tarball lands in `dest_dir` (default: next to the bundle directory)
        with owner and group reset to root.

        Raises:
            BundleIOError: if the tarball exists and overwrite is off, if
                `dest_dir` is inside the bundle, or on any write failure.
        """
        bundle_dir = bundle_dir.resolve()
        dest_dir = (dest_dir or bundle_dir.parent).resolve()
        if dest_dir == bundle_dir or bundle_dir in dest_dir.parents:
            raise BundleIOError(dest_dir, "package destination must be outside the bundle")
        target = dest_dir / f"{bundle_dir.name}.tar.gz"
        if target.exists() and not overwrite:
            raise BundleIOError(target, "already exists")
        remove_quietly(record_path(target))

        await asyncio.to_thread(self._write_tarball, bundle_dir, target)
        await asyncio.to_thread(self._checksums.write_checksum_record, target)
        logger.info("Bundle %s packed into %s", bundle_dir, target)
        return target

    def _write_tarball(self, bundle_dir: Path, target: Path) -> None:
        def as_root(info: tarfile.TarInfo) -> tarfile.TarInfo:
            info.uid = info.gid = 0
            info.uname = info.gname = "root"
            return info

        part = temp_sibling(target)
        try:
            with tarfile.open(part, "w:gz") as tar:
                tar.add(bundle_dir, arcname=bundle_dir.name, filter=as_root)
            os.replace(part, target)
        except OSError as e:
            remove_quietly(part)
            raise BundleIOError(target, e.strerror or str(e)) from e
        except BaseException:
            remove_quietly(part)
            raise
