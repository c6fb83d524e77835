import json
from pathlib import Path

import pytest
from conftest import build_app, make_image

from decoflow.domain.errors import ValidationError
from decoflow.domain.manifest import from_manifest, to_manifest
from decoflow.domain.payloads import (
    dump_canvas_payload,
    parse_canvas_payload,
    parse_client_data,
    parse_line_items,
)


def test_unknown_placed_item_type_is_rejected():
    with pytest.raises(ValidationError, match="sticker"):
        parse_canvas_payload({"images": [{"id": "1", "type": "sticker"}]})


def test_untyped_items_default_to_image():
    payload = parse_canvas_payload(json.dumps({"images": [{"id": "1", "source": {"uri": "/x/a.jpg"}, "x": 10}]}))
    img = payload.images[0]
    assert img.kind == "image"
    assert img.source_uri == "/x/a.jpg"
    assert img.x == 10.0
    assert payload.settings.width == 1080
    assert payload.settings.grid_size == 20


def test_group_children_sources_are_visible_and_survive_dump():
    raw = {
        "images": [
            {"id": "a", "type": "image", "source": {"uri": "/x/a.jpg"}},
            {
                "id": "g",
                "type": "group",
                "children": [
                    {"id": "b", "source": {"uri": "/x/b.jpg"}},
                    {"id": "c", "source": {"uri": "/x/c.jpg"}, "opacity": 0.5},
                ],
            },
        ],
        "canvasSettings": {"width": 800, "height": 600, "backgroundColor": "#000000"},
        "zoom": 1.5,
    }
    payload = parse_canvas_payload(raw)
    assert payload.image_sources() == ["/x/a.jpg", "/x/b.jpg", "/x/c.jpg"]

    again = parse_canvas_payload(dump_canvas_payload(payload))
    assert again == payload
    assert dump_canvas_payload(payload)["zoom"] == 1.5


def test_invalid_json_and_bad_numbers_raise():
    with pytest.raises(ValidationError):
        parse_canvas_payload("{not json")
    with pytest.raises(ValidationError):
        parse_canvas_payload({"images": [{"id": "1", "x": "left"}]})
    with pytest.raises(ValidationError):
        parse_line_items([{"productName": "Silla", "quantity": "muchas"}])


def test_line_items_and_client_data():
    items = parse_line_items('[{"id": 1, "productName": "Silla", "quantity": 4, "unitPrice": 2.5}]')
    assert items[0].id == "1"
    assert items[0].total == 10.0

    client = parse_client_data({"name": " Ana ", "documentId": "", "phone": "555"})
    assert client.name == "Ana"
    assert client.document_id is None
    assert client.phone == "555"
    assert parse_client_data(None) is None


def test_manifest_legacy_fields_are_normalized():
    product = from_manifest("products", {"id": 7, "folderId": 3, "name": "Silla", "productCount": 9})
    assert product.id == "7"
    assert product.section_id == "3"
    assert "folderId" not in to_manifest(product)

    with pytest.raises(ValidationError):
        from_manifest("products", {"id": "p", "name": "Sin sección"})


def test_canvas_service_rejects_unknown_items_before_storing(tmp_path: Path):
    app = build_app(tmp_path)
    with pytest.raises(ValidationError):
        app.canvases.save_canvas("Boda", {"images": [{"id": "1", "type": "text"}]})
    assert app.canvases.list_canvases() == []

    photo = make_image(tmp_path / "photo.png")
    canvas = app.canvases.save_canvas("Boda", {"images": [{"id": "1", "source": {"uri": str(photo)}}]})
    stored = app.canvases.get_canvas(canvas.id)
    assert stored.data.images[0].kind == "image"
    assert app.blobs.check_exists(stored.data.images[0].source_uri)
