"""Port for the local container runtime (docker, podman, ...)."""

from abc import abstractmethod
from pathlib import Path
from typing import Protocol, runtime_checkable

from airgap.domain.reference.model import ImageReference
from airgap.domain.shared.port import Port


@runtime_checkable
class ContainerRuntime(Port, Protocol):
    """The four runtime capabilities the bundle pipeline relies on."""

    @property
    def name(self) -> str:
        """Opaque identifier of the engine, recorded in manifests."""
        ...

    @abstractmethod
    async def pull(self, image: ImageReference) -> None:
        """Fetch one image into the local image store."""
        ...

    @abstractmethod
    async def save_multi(self, images: list[ImageReference], dest: Path) -> None:
        """Export all `images` together into one uncompressed archive at `dest`.

        Exporting together lets shared layers be stored once.
        """
        ...

    @abstractmethod
    async def load_archive(self, archive: Path) -> None:
        """Restore images from a raw or gzip-compressed archive."""
        ...

    @abstractmethod
    async def list_images(self) -> list[str]:
        """References of images currently in the local store."""
        ...
