"""Typed versions of the JSON blobs stored inside records.

Canvas designs, transaction line items and client contact data used to travel
as opaque JSON strings. They are parsed here at the store boundary so that the
rest of the code works with dataclasses, and so that an unknown shape fails
loudly instead of being half understood.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterator, Optional

from decoflow.domain.errors import ValidationError

PLACED_KINDS = ("image", "group")

_PLACED_KEYS = {"id", "type", "source", "x", "y", "width", "height", "rotation", "scale", "flipH", "flipV", "children"}
_NUMERIC_KEYS = ("x", "y", "width", "height", "rotation", "scale")


def _load_json(raw: Any, what: str) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"{what} is not valid JSON: {exc.msg}") from exc
    return raw


def _number(value: Any, key: str, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Placed image field '{key}' must be a number, got {value!r}.")
    return float(value)


@dataclass(frozen=True)
class PlacedImage:
    id: str
    kind: str = "image"
    source_uri: Optional[str] = None
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    rotation: float = 0.0
    scale: float = 1.0
    flip_h: bool = False
    flip_v: bool = False
    children: tuple["PlacedImage", ...] = ()
    source_extra: dict = field(default_factory=dict)
    extra: dict = field(default_factory=dict)

    def iter_sources(self) -> Iterator[str]:
        if self.source_uri:
            yield self.source_uri
        for child in self.children:
            yield from child.iter_sources()

    def rewrite_sources(self, fn: Callable[[str], Optional[str]]) -> "PlacedImage":
        source = fn(self.source_uri) if self.source_uri else self.source_uri
        children = tuple(c.rewrite_sources(fn) for c in self.children)
        return replace(self, source_uri=source, children=children)


@dataclass(frozen=True)
class CanvasSettings:
    width: int = 1080
    height: int = 1080
    background_color: str = "#FFFFFF"
    show_grid: bool = False
    snap_to_grid: bool = False
    grid_size: int = 20


@dataclass(frozen=True)
class CanvasPayload:
    images: tuple[PlacedImage, ...] = ()
    settings: CanvasSettings = field(default_factory=CanvasSettings)
    extra: dict = field(default_factory=dict)

    def image_sources(self) -> list[str]:
        out: list[str] = []
        for img in self.images:
            out.extend(img.iter_sources())
        return out

    def rewrite_sources(self, fn: Callable[[str], Optional[str]]) -> "CanvasPayload":
        return replace(self, images=tuple(img.rewrite_sources(fn) for img in self.images))


def parse_placed_image(raw: Any) -> PlacedImage:
    if not isinstance(raw, dict):
        raise ValidationError(f"Placed image must be an object, got {type(raw).__name__}.")

    # items saved before groups existed carry no type at all
    kind = raw.get("type") or "image"
    if kind not in PLACED_KINDS:
        raise ValidationError(f"Unknown placed item type: {kind!r}.")

    source = raw.get("source")
    if source is None:
        source = {}
    elif isinstance(source, str):
        source = {"uri": source}
    elif not isinstance(source, dict):
        raise ValidationError("Placed image 'source' must be an object.")
    source = dict(source)
    uri = source.pop("uri", None)
    if uri is not None and not isinstance(uri, str):
        raise ValidationError("Placed image source uri must be a string.")

    children_raw = raw.get("children") or []
    if not isinstance(children_raw, list):
        raise ValidationError("Group 'children' must be a list.")
    if kind == "image" and children_raw:
        raise ValidationError("Only group items can have children.")

    nums = {k: _number(raw.get(k), k, 1.0 if k == "scale" else 0.0) for k in _NUMERIC_KEYS}
    return PlacedImage(
        id=str(raw.get("id") or ""),
        kind=kind,
        source_uri=uri or None,
        flip_h=bool(raw.get("flipH", False)),
        flip_v=bool(raw.get("flipV", False)),
        children=tuple(parse_placed_image(c) for c in children_raw),
        source_extra=source,
        extra={k: v for k, v in raw.items() if k not in _PLACED_KEYS},
        **nums,
    )


def dump_placed_image(img: PlacedImage) -> dict:
    out: dict[str, Any] = dict(img.extra)
    out.update(
        {
            "id": img.id,
            "type": img.kind,
            "x": img.x,
            "y": img.y,
            "width": img.width,
            "height": img.height,
            "rotation": img.rotation,
            "scale": img.scale,
            "flipH": img.flip_h,
            "flipV": img.flip_v,
        }
    )
    if img.source_uri is not None or img.source_extra:
        out["source"] = {**img.source_extra, "uri": img.source_uri}
    if img.kind == "group":
        out["children"] = [dump_placed_image(c) for c in img.children]
    return out


def parse_canvas_settings(raw: Any) -> CanvasSettings:
    if raw is None:
        return CanvasSettings()
    if not isinstance(raw, dict):
        raise ValidationError("canvasSettings must be an object.")
    d = CanvasSettings()
    return CanvasSettings(
        width=int(raw.get("width", d.width)),
        height=int(raw.get("height", d.height)),
        background_color=str(raw.get("backgroundColor", d.background_color)),
        show_grid=bool(raw.get("showGrid", d.show_grid)),
        snap_to_grid=bool(raw.get("snapToGrid", d.snap_to_grid)),
        grid_size=int(raw.get("gridSize", d.grid_size)),
    )


def parse_canvas_payload(raw: Any) -> CanvasPayload:
    """Accepts the JSON text stored in the db, an already decoded dict, or nothing."""
    data = _load_json(raw, "Canvas data")
    if data is None:
        return CanvasPayload()
    if not isinstance(data, dict):
        raise ValidationError("Canvas data must be a JSON object.")

    images = data.get("images") or []
    if not isinstance(images, list):
        raise ValidationError("Canvas 'images' must be a list.")

    return CanvasPayload(
        images=tuple(parse_placed_image(i) for i in images),
        settings=parse_canvas_settings(data.get("canvasSettings")),
        extra={k: v for k, v in data.items() if k not in ("images", "canvasSettings")},
    )


def dump_canvas_payload(payload: CanvasPayload) -> dict:
    s = payload.settings
    out = dict(payload.extra)
    out["images"] = [dump_placed_image(i) for i in payload.images]
    out["canvasSettings"] = {
        "width": s.width,
        "height": s.height,
        "backgroundColor": s.background_color,
        "showGrid": s.show_grid,
        "snapToGrid": s.snap_to_grid,
        "gridSize": s.grid_size,
    }
    return out


@dataclass(frozen=True)
class LineItem:
    id: str
    product_name: str
    quantity: int = 1
    unit_price: float = 0.0
    total: float = 0.0
    source: Optional[str] = None
    product_id: Optional[str] = None
    extra: dict = field(default_factory=dict)


_LINE_KEYS = {"id", "productName", "quantity", "unitPrice", "total", "source", "productId"}


def parse_line_items(raw: Any) -> tuple[LineItem, ...]:
    data = _load_json(raw, "Line items")
    if data is None:
        return ()
    if not isinstance(data, list):
        raise ValidationError("Line items must be a list.")

    items: list[LineItem] = []
    for idx, it in enumerate(data):
        if not isinstance(it, dict):
            raise ValidationError(f"Line item #{idx + 1} must be an object.")
        try:
            qty = int(it.get("quantity") or 1)
            unit = float(it.get("unitPrice") or 0)
            total = float(it["total"]) if it.get("total") is not None else qty * unit
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Line item #{idx + 1} has a non numeric amount.") from exc
        items.append(
            LineItem(
                id=str(it.get("id") or idx + 1),
                product_name=str(it.get("productName") or ""),
                quantity=qty,
                unit_price=unit,
                total=total,
                source=it.get("source"),
                product_id=(str(it["productId"]) if it.get("productId") is not None else None),
                extra={k: v for k, v in it.items() if k not in _LINE_KEYS},
            )
        )
    return tuple(items)


def dump_line_items(items: tuple[LineItem, ...]) -> list[dict]:
    out = []
    for it in items:
        d = dict(it.extra)
        d.update(
            {
                "id": it.id,
                "productName": it.product_name,
                "quantity": it.quantity,
                "unitPrice": it.unit_price,
                "total": it.total,
                "source": it.source,
                "productId": it.product_id,
            }
        )
        out.append(d)
    return out


@dataclass(frozen=True)
class ClientData:
    name: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    document_id: Optional[str] = None


def parse_client_data(raw: Any) -> Optional[ClientData]:
    data = _load_json(raw, "Client data")
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValidationError("Client data must be an object.")

    def opt(key: str) -> Optional[str]:
        v = data.get(key)
        v = str(v).strip() if v is not None else ""
        return v or None

    return ClientData(
        name=str(data.get("name") or "").strip(),
        phone=opt("phone"),
        email=opt("email"),
        address=opt("address"),
        document_id=opt("documentId"),
    )


def dump_client_data(client: Optional[ClientData]) -> Optional[dict]:
    if client is None:
        return None
    return {
        "name": client.name,
        "phone": client.phone,
        "email": client.email,
        "address": client.address,
        "documentId": client.document_id,
    }
