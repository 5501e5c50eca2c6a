"""Compressor adapter shelling out to pigz/gzip and zstd."""

import shutil
from collections.abc import Callable
from pathlib import Path

import logfire

from airgap.domain.bundle.model.value import Compression
from airgap.domain.bundle.port.compressor import Compressor
from airgap.domain.shared.error import MissingDependency
from airgap.infrastructure.shared.process import run_command

# Tried in order; pigz compresses in parallel and emits gzip-compatible output.
TOOLS: dict[Compression, tuple[str, ...]] = {
    Compression.GZIP: ("pigz", "gzip"),
    Compression.ZSTD: ("zstd",),
}


class ToolCompressor(Compressor):
    """Compresses whole files with the host's command line tools."""

    def __init__(self, which: Callable[[str], str | None] = shutil.which):
        self._which = which

    def _tool(self, compression: Compression) -> tuple[str, str] | None:
        for tool in TOOLS.get(compression, ()):
            path = self._which(tool)
            if path:
                return tool, path
        return None

    def available(self, compression: Compression) -> bool:
        return compression is Compression.NONE or self._tool(compression) is not None

    def require(self, compression: Compression, purpose: str) -> None:
        if not self.available(compression):
            raise MissingDependency(" or ".join(TOOLS[compression]), purpose)

    def _resolve(self, compression: Compression, purpose: str) -> tuple[str, str]:
        if compression is Compression.NONE:
            raise ValueError("no tool is involved for compression 'none'")
        found = self._tool(compression)
        if found is None:
            raise MissingDependency(" or ".join(TOOLS[compression]), purpose)
        return found

    async def compress(self, src: Path, dest: Path, compression: Compression) -> None:
        tool, path = self._resolve(compression, f"{compression} compression")
        with logfire.span("Compressing {src} with {tool}", src=str(src), tool=tool):
            if compression is Compression.ZSTD:
                await run_command([path, "-q", "-f", "-T0", str(src), "-o", str(dest)])
            else:
                await run_command([path, "-c", str(src)], stdout_path=dest)

    async def decompress(self, src: Path, dest: Path, compression: Compression) -> None:
        tool, path = self._resolve(compression, f"{compression} decompression")
        with logfire.span("Decompressing {src} with {tool}", src=str(src), tool=tool):
            if compression is Compression.ZSTD:
                await run_command([path, "-q", "-f", "-d", str(src), "-o", str(dest)])
            else:
                await run_command([path, "-d", "-c", str(src)], stdout_path=dest)
