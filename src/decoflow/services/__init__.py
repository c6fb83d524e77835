from .archive_service import ArchiveService
from .export_service import ExportService
from .import_service import ImportService
from .gc_service import GarbageCollector
from .catalog_service import CatalogService
from .canvas_service import CanvasService
from .finance_service import FinanceService
from .notes_service import NotesService
from .reset_service import ResetService
from .reporting_service import ReportingService
from .operations_service import OperationsService

__all__ = [
    "ArchiveService",
    "ExportService",
    "ImportService",
    "GarbageCollector",
    "CatalogService",
    "CanvasService",
    "FinanceService",
    "NotesService",
    "ResetService",
    "ReportingService",
    "OperationsService",
]
