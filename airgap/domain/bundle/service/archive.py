"""Pull a set of images and serialize them into one (optionally compressed) archive."""

import asyncio
import logging
from pathlib import Path

from airgap.domain.bundle.model.value import ARCHIVE_BASENAME, BundleSettings, Compression
from airgap.domain.bundle.port.compressor import Compressor
from airgap.domain.bundle.port.runtime import ContainerRuntime
from airgap.domain.checksum.service import ChecksumEngine, record_path
from airgap.domain.reference.model import ImageReference
from airgap.domain.shared.error import (
    BundleExists,
    BundleIOError,
    NoImages,
    PullFailed,
    RetryExhausted,
)
from airgap.domain.shared.fs import remove_quietly, temp_sibling
from airgap.domain.shared.retry import Retrier, Sleep

logger = logging.getLogger(__name__)


class ArchiveBuilder:
    """Builds `images.tar[.gz|.zst]` plus its checksum record.

    Nothing appears under the final archive name until the archive is
    complete; any failure or cancellation removes every partial file.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        compressor: Compressor,
        checksums: ChecksumEngine | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self._runtime = runtime
        self._compressor = compressor
        self._checksums = checksums or ChecksumEngine()
        self._sleep = sleep

    async def build(
        self,
        output_dir: Path,
        images: list[ImageReference],
        settings: BundleSettings,
    ) -> Path:
        """Pull `images`, export them together, compress, and checksum.

        Args:
            output_dir: Existing directory that receives the archive.
            images: References to bundle, in pull order.
            settings: Compression, retry and concurrency tunables.

        Returns:
            Path of the final archive.

        Raises:
            NoImages: if `images` is empty.
            MissingDependency: if the requested compressor is absent (checked before any pull).
            PullFailed: if any image exhausts its retries; nothing is exported.
        """
        if not images:
            raise NoImages()
        compression = settings.compression
        if compression is not Compression.NONE:
            self._compressor.require(compression, f"{compression} compression")

        final = output_dir / compression.archive_name
        if final.exists() and not settings.overwrite:
            raise BundleExists(final)

        await self._pull_all(images, settings)

        created: list[Path] = []
        try:
            raw = temp_sibling(output_dir / ARCHIVE_BASENAME)
            created.append(raw)
            logger.info("Exporting %d image(s) from %s", len(images), self._runtime.name)
            await self._runtime.save_multi(images, raw)

            if compression is Compression.NONE:
                payload = raw
            else:
                payload = temp_sibling(final)
                created.append(payload)
                logger.info("Compressing archive with %s", compression)
                await self._compressor.compress(raw, payload, compression)
                raw.unlink()

            try:
                payload.replace(final)
            except OSError as e:
                raise BundleIOError(final, e.strerror or str(e)) from e
            created.append(final)

            await asyncio.to_thread(self._checksums.write_checksum_record, final)
            created.append(record_path(final))
        except BaseException:
            logger.warning("Archive build aborted; removing partial files in %s", output_dir)
            remove_quietly(*created)
            raise

        logger.info("Archive ready: %s", final)
        return final

    async def _pull_all(self, images: list[ImageReference], settings: BundleSettings) -> None:
        retrier = Retrier(settings.retry, sleep=self._sleep)
        if settings.pull_concurrency == 1:
            for ref in images:
                await self._pull_one(retrier, ref, None)
            return

        # The semaphore guards each attempt, not the backoff sleep between attempts.
        sem = asyncio.Semaphore(settings.pull_concurrency)
        tasks = [asyncio.create_task(self._pull_one(retrier, ref, sem)) for ref in images]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _pull_one(
        self, retrier: Retrier, ref: ImageReference, sem: asyncio.Semaphore | None
    ) -> None:
        async def attempt() -> None:
            if sem is None:
                await self._runtime.pull(ref)
                return
            async with sem:
                await self._runtime.pull(ref)

        logger.info("Pulling %s", ref)
        try:
            await retrier.execute(attempt, describe=f"Pull of {ref}")
        except RetryExhausted as e:
            raise PullFailed(str(ref), e.attempts, e.last_error) from e.last_error
