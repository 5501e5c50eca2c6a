"""Container runtime adapter driving the docker or podman command line."""

import shutil
from pathlib import Path
from typing import Literal

import logfire

from airgap.domain.bundle.port.runtime import ContainerRuntime
from airgap.domain.reference.model import ImageReference
from airgap.domain.shared.error import MissingDependency
from airgap.infrastructure.shared.process import run_command

RuntimeChoice = Literal["auto", "docker", "podman"]

# podman is preferred when both are installed.
DETECTION_ORDER = ("podman", "docker")

_LIST_FORMAT = "{{.Repository}}:{{.Tag}}@{{.Digest}}"


class CliContainerRuntime(ContainerRuntime):
    """Executes pulls, exports and loads through the runtime's CLI."""

    def __init__(self, binary: str, executable: str | None = None):
        self._binary = binary
        self._executable = executable or binary

    @property
    def name(self) -> str:
        return self._binary

    async def pull(self, image: ImageReference) -> None:
        with logfire.span("Pulling image {image}", image=str(image), runtime=self._binary):
            await run_command([self._executable, "pull", str(image)])

    async def save_multi(self, images: list[ImageReference], dest: Path) -> None:
        with logfire.span(
            "Exporting {count} image(s)", count=len(images), dest=str(dest), runtime=self._binary
        ):
            await run_command(
                [self._executable, "save", "-o", str(dest), *(str(ref) for ref in images)]
            )

    async def load_archive(self, archive: Path) -> None:
        with logfire.span("Loading archive {archive}", archive=str(archive), runtime=self._binary):
            await run_command([self._executable, "load", "-i", str(archive)])

    async def list_images(self) -> list[str]:
        out = await run_command(
            [self._executable, "images", "--format", _LIST_FORMAT], capture=True
        )
        return [_tidy(line) for line in out.splitlines() if line.strip()]


def _tidy(line: str) -> str:
    """Drop placeholder tag/digest columns the runtime prints for untagged images."""
    repo_tag, _, digest = line.strip().partition("@")
    repo_tag = repo_tag.removesuffix(":<none>")
    if digest and digest != "<none>":
        return f"{repo_tag}@{digest}"
    return repo_tag


def detect_runtime(preferred: RuntimeChoice = "auto") -> CliContainerRuntime:
    """Pick an installed container runtime.

    Raises:
        MissingDependency: if the requested (or, for "auto", any) runtime is absent.
    """
    candidates = DETECTION_ORDER if preferred == "auto" else (preferred,)
    for binary in candidates:
        path = shutil.which(binary)
        if path:
            logfire.info("Using container runtime {runtime}", runtime=binary, path=path)
            return CliContainerRuntime(binary, path)
    raise MissingDependency(" or ".join(candidates), "pulling, exporting and loading images")
