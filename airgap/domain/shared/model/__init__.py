from airgap.domain.shared.model.value import ValueObject

__all__ = ["ValueObject"]
