"""Checksum records: the only trust anchor for a bundle's payload."""

import hashlib
import hmac
import logging
from pathlib import Path

from pydantic import ValidationError

from airgap.domain.checksum.model import RECORD_SUFFIX, ChecksumRecord
from airgap.domain.shared.error import BundleIOError, IntegrityError, MissingRecord
from airgap.domain.shared.fs import atomic_write_text

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def record_path(path: Path) -> Path:
    """Record file for `path`: same directory, `.sha256` appended."""
    return path.with_name(path.name + RECORD_SUFFIX)


class ChecksumEngine:
    """Computes, persists and verifies SHA-256 checksums of files.

    Files are streamed in fixed-size chunks and never loaded whole.
    """

    def __init__(self, chunk_size: int = CHUNK_SIZE) -> None:
        self._chunk_size = chunk_size

    def compute_digest(self, path: Path) -> str:
        """Hex SHA-256 of the file at `path`.

        Raises:
            BundleIOError: if the file cannot be read.
        """
        h = hashlib.sha256()
        try:
            with open(path, "rb") as f:
                while chunk := f.read(self._chunk_size):
                    h.update(chunk)
        except OSError as e:
            raise BundleIOError(path, e.strerror or str(e)) from e
        return h.hexdigest()

    def write_checksum_record(self, path: Path) -> ChecksumRecord:
        """Hash `path` and atomically write its record next to it."""
        record = ChecksumRecord(value=self.compute_digest(path), subject_filename=path.name)
        atomic_write_text(record_path(path), record.render())
        logger.info("Checksum record written for %s", path.name)
        return record

    def read_checksum_record(self, path: Path) -> ChecksumRecord:
        """Load the persisted record for `path`.

        Raises:
            MissingRecord: if no record file exists.
            IntegrityError: if the record file is malformed.
        """
        rec_path = record_path(path)
        try:
            text = rec_path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise MissingRecord(rec_path) from e
        except OSError as e:
            raise BundleIOError(rec_path, e.strerror or str(e)) from e

        lines = [ln for ln in text.splitlines() if ln.strip()]
        if not lines:
            raise IntegrityError(f"Checksum record is empty: {rec_path}", path=rec_path)
        try:
            return ChecksumRecord.parse(lines[0])
        except ValidationError as e:
            raise IntegrityError(f"Malformed checksum record: {rec_path}", path=rec_path) from e

    def verify(self, path: Path) -> bool:
        """Recompute the digest of `path` and compare it to the stored record.

        Returns False on mismatch (including a record naming another file);
        the caller decides what a mismatch means.

        Raises:
            MissingRecord: if no record file exists.
        """
        record = self.read_checksum_record(path)
        if record.subject_filename != path.name:
            logger.error(
                "Checksum record for %s names a different file: %s",
                path.name,
                record.subject_filename,
            )
            return False
        actual = self.compute_digest(path)
        if not hmac.compare_digest(actual, record.value):
            logger.error("Checksum mismatch for %s", path)
            return False
        logger.debug("Checksum verified for %s", path)
        return True
