from airgap.domain.checksum.model import RECORD_SUFFIX, ChecksumRecord
from airgap.domain.checksum.service import ChecksumEngine, record_path

__all__ = ["RECORD_SUFFIX", "ChecksumEngine", "ChecksumRecord", "record_path"]
