"""Port for archive compression backends."""

from abc import abstractmethod
from pathlib import Path
from typing import Protocol, runtime_checkable

from airgap.domain.bundle.model.value import Compression
from airgap.domain.shared.port import Port


@runtime_checkable
class Compressor(Port, Protocol):
    """Compresses and decompresses whole files for a given algorithm."""

    @abstractmethod
    def available(self, compression: Compression) -> bool:
        """Whether the encoder/decoder for `compression` is installed."""
        ...

    @abstractmethod
    def require(self, compression: Compression, purpose: str) -> None:
        """Raise MissingDependency if `compression` cannot be handled."""
        ...

    @abstractmethod
    async def compress(self, src: Path, dest: Path, compression: Compression) -> None:
        """Write the compressed form of `src` to `dest`; `src` is left in place."""
        ...

    @abstractmethod
    async def decompress(self, src: Path, dest: Path, compression: Compression) -> None:
        """Write the decompressed form of `src` to `dest`."""
        ...
