# Services module
from buildline.services.assembly_audit_service import AssemblyAuditService
from buildline.services.assembly_bin_service import AssemblyBinService
from buildline.services.assembly_bin_allocator import BinAllocator
from buildline.services.assembly_service import AssemblyService
from buildline.services.assembly_report_service import AssemblyReportService
from buildline.services.directory_service import DirectoryService

__all__ = [
    "AssemblyAuditService",
    "AssemblyBinService",
    "BinAllocator",
    "AssemblyService",
    "AssemblyReportService",
    "DirectoryService",
]
