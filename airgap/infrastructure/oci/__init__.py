from airgap.infrastructure.oci.runtime import CliContainerRuntime, detect_runtime

__all__ = ["CliContainerRuntime", "detect_runtime"]
