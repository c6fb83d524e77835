"""Record <-> JSON manifest mapping used by backups.

Manifests keep the camelCase keys the mobile app has always written, so older
archives stay readable and new archives stay readable by older builds.
"""
from __future__ import annotations

import dataclasses
from typing import Any, TypeVar

from decoflow.domain.errors import ValidationError
from decoflow.domain.models import (
    Canvas,
    Client,
    Decoration,
    Expense,
    Note,
    Product,
    Quotation,
    Rental,
    SavedReport,
    Section,
    Transaction,
)
from decoflow.domain.payloads import (
    CanvasPayload,
    ClientData,
    dump_canvas_payload,
    dump_client_data,
    dump_line_items,
    parse_canvas_payload,
    parse_client_data,
    parse_line_items,
)

T = TypeVar("T")

KIND_TYPES: dict[str, type] = {
    "sections": Section,
    "products": Product,
    "canvases": Canvas,
    "transactions": Transaction,
    "rentals": Rental,
    "decorations": Decoration,
    "expenses": Expense,
    "saved_reports": SavedReport,
    "clients": Client,
    "quotations": Quotation,
    "notes": Note,
}

_BOOL_FIELDS = {"is_installment", "is_active"}
_COMPUTED_KEYS = {"productCount"}


def camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


def to_manifest(record: Any) -> dict:
    out: dict[str, Any] = {}
    for f in dataclasses.fields(record):
        value = getattr(record, f.name)
        if isinstance(value, CanvasPayload):
            value = dump_canvas_payload(value)
        elif isinstance(value, ClientData):
            value = dump_client_data(value)
        elif f.name == "items":
            value = dump_line_items(value)
        out[camel(f.name)] = value
    return out


def normalize_legacy_fields(kind: str, raw: dict) -> dict:
    """Renames fields written by older app versions to the current names."""
    data = {k: v for k, v in raw.items() if k not in _COMPUTED_KEYS}
    if kind == "products" and "folderId" in data:
        folder_id = data.pop("folderId")
        if not data.get("sectionId"):
            data["sectionId"] = folder_id
    return data


def from_manifest(kind: str, raw: Any) -> Any:
    cls = KIND_TYPES[kind]
    if not isinstance(raw, dict):
        raise ValidationError(f"{kind}: every entry must be an object.")
    data = normalize_legacy_fields(kind, raw)

    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        key = camel(f.name)
        if key not in data or data[key] is None:
            if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:  # type: ignore[misc]
                raise ValidationError(f"{kind}: entry {data.get('id')!r} is missing '{key}'.")
            continue
        value = data[key]
        if f.name == "data" and cls is Canvas:
            value = parse_canvas_payload(value)
        elif f.name == "client_data":
            value = parse_client_data(value)
        elif f.name == "items":
            value = parse_line_items(value)
        elif f.name in _BOOL_FIELDS:
            value = bool(value)
        elif f.name == "id" or f.name.endswith("_id"):
            value = str(value)
        kwargs[f.name] = value
    return cls(**kwargs)


def records_from_manifest(kind: str, entries: Any) -> list:
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ValidationError(f"{kind}: manifest must contain a list.")
    return [from_manifest(kind, e) for e in entries]
