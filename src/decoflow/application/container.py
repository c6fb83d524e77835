from __future__ import annotations

from dataclasses import dataclass

from decoflow.config import AppPaths
from decoflow.repositories.blob_store import FileBlobStore
from decoflow.repositories.sqlite_repo import SqliteRepository
from decoflow.services.archive_service import ArchiveService
from decoflow.services.canvas_service import CanvasService
from decoflow.services.catalog_service import CatalogService
from decoflow.services.export_service import ExportService
from decoflow.services.finance_service import FinanceService
from decoflow.services.gc_service import GarbageCollector
from decoflow.services.import_service import ImportService
from decoflow.services.notes_service import NotesService
from decoflow.services.operations_service import OperationsService
from decoflow.services.reporting_service import ReportingService
from decoflow.services.reset_service import ResetService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    blobs: FileBlobStore
    catalog: CatalogService
    canvases: CanvasService
    finance: FinanceService
    notes: NotesService
    reporting: ReportingService
    exporter: ExportService
    importer: ImportService
    gc: GarbageCollector
    reset: ResetService
    operations: OperationsService

    def close(self) -> None:
        self.repo.close()


def build_container(paths: AppPaths, picker=None, share=None) -> AppContainer:
    repo = SqliteRepository(paths.db_path)
    repo.init_db()

    blobs = FileBlobStore(paths.images_dir)
    blobs.ensure_root()
    archive = ArchiveService()

    catalog = CatalogService(repo, blobs)
    canvases = CanvasService(repo, blobs)
    finance = FinanceService(repo, blobs)
    notes = NotesService(repo)
    reporting = ReportingService(repo, finance)
    exporter = ExportService(repo, blobs, archive, paths.cache_dir, share=share)
    importer = ImportService(repo, blobs, archive, paths.cache_dir, picker=picker)
    gc = GarbageCollector(repo, blobs)
    reset = ResetService(repo, blobs, paths.cache_dir)
    operations = OperationsService(repo, blobs, db_path=paths.db_path, logs_dir=paths.logs_dir)

    return AppContainer(
        repo=repo,
        blobs=blobs,
        catalog=catalog,
        canvases=canvases,
        finance=finance,
        notes=notes,
        reporting=reporting,
        exporter=exporter,
        importer=importer,
        gc=gc,
        reset=reset,
        operations=operations,
    )
