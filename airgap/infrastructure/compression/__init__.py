from airgap.infrastructure.compression.tools import ToolCompressor

__all__ = ["ToolCompressor"]
