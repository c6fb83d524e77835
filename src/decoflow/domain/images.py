"""Where image references live inside records."""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Iterator, Optional

from decoflow.domain.models import Canvas, Expense, Product, Section

# archive subfolder per record type
IMAGE_SUBFOLDERS: dict[type, str] = {
    Section: "sections",
    Product: "products",
    Canvas: "canvases",
    Expense: "expenses",
}
CANVAS_CONTENT_SUBFOLDER = "canvases_content"

RewriteFn = Callable[[str, str], Optional[str]]


def record_image_refs(record: Any) -> Iterator[str]:
    for name in getattr(record, "IMAGE_FIELDS", ()):
        ref = getattr(record, name)
        if ref:
            yield ref
    if isinstance(record, Canvas):
        yield from record.data.image_sources()


def rewrite_record_images(record: Any, fn: RewriteFn) -> Any:
    """Returns a copy of `record` with every image reference passed through fn(ref, subfolder)."""
    subfolder = IMAGE_SUBFOLDERS.get(type(record))
    if subfolder is None:
        return record

    changes: dict[str, Any] = {}
    for name in record.IMAGE_FIELDS:
        ref = getattr(record, name)
        changes[name] = fn(ref, subfolder) if ref else None
    if isinstance(record, Canvas):
        changes["data"] = record.data.rewrite_sources(lambda ref: fn(ref, CANVAS_CONTENT_SUBFOLDER))
    return replace(record, **changes)
