"""Business services for the Testfachdienst."""

from testfachdienst.src.services.erezept_service import ErezeptService
from testfachdienst.src.services.hello_service import HelloZetaService
from testfachdienst.src.services.self_disclosure_export_service import (
    SelfDisclosureExportConfig,
    SelfDisclosureExportService,
)
from testfachdienst.src.services.self_disclosure_service import SelfDisclosureService

__all__ = [
    "ErezeptService",
    "HelloZetaService",
    "SelfDisclosureExportConfig",
    "SelfDisclosureExportService",
    "SelfDisclosureService",
]
