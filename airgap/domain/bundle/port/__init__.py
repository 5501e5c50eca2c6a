from airgap.domain.bundle.port.compressor import Compressor
from airgap.domain.bundle.port.runtime import ContainerRuntime

__all__ = ["Compressor", "ContainerRuntime"]
