from airgap.domain.bundle.service.archive import ArchiveBuilder
from airgap.domain.bundle.service.composer import BundleComposer
from airgap.domain.bundle.service.inspector import BundleInspector, InspectionReport
from airgap.domain.bundle.service.loader import BundleLoader, LoadResult

__all__ = [
    "ArchiveBuilder",
    "BundleComposer",
    "BundleInspector",
    "BundleLoader",
    "InspectionReport",
    "LoadResult",
]
