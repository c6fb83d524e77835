from .models import (
    Section,
    SectionSummary,
    Product,
    Canvas,
    Transaction,
    Rental,
    Decoration,
    Expense,
    Quotation,
    Client,
    SavedReport,
    Note,
)
from .payloads import CanvasPayload, CanvasSettings, PlacedImage, LineItem, ClientData
from .errors import (
    AppError,
    ValidationError,
    NotFoundError,
    SchemaInitError,
    BlobStoreError,
    InvalidArchiveError,
    PartialRestoreError,
    ExportError,
)

__all__ = [
    "Section",
    "SectionSummary",
    "Product",
    "Canvas",
    "Transaction",
    "Rental",
    "Decoration",
    "Expense",
    "Quotation",
    "Client",
    "SavedReport",
    "Note",
    "CanvasPayload",
    "CanvasSettings",
    "PlacedImage",
    "LineItem",
    "ClientData",
    "AppError",
    "ValidationError",
    "NotFoundError",
    "SchemaInitError",
    "BlobStoreError",
    "InvalidArchiveError",
    "PartialRestoreError",
    "ExportError",
]
