import json
import shutil
import zipfile
from datetime import date
from pathlib import Path

import pytest
from conftest import build_app, make_image, normalized_records

from decoflow.domain.images import record_image_refs
from decoflow.domain.errors import ExportError, InvalidArchiveError, PartialRestoreError
from decoflow.services.collaborators import StaticFilePicker


def _seed(app, tmp_path: Path) -> dict:
    cam = tmp_path / "camera"
    section = app.catalog.create_section("Mobiliario", color="#AA0000", icon="chair", image=str(make_image(cam / "s.png", b"section")))
    chair = app.catalog.create_product(
        section.id,
        "Silla Tiffany",
        price=25.0,
        rent_price=5.0,
        image=str(make_image(cam / "chair.png", b"chair-bytes")),
        image_secondary1=str(make_image(cam / "chair-2.png", b"chair-2")),
    )
    canvas = app.canvases.save_canvas(
        "Boda Ana",
        {
            "images": [
                {"id": "1", "source": {"uri": str(make_image(cam / "bg.png", b"bg"))}, "x": 1, "y": 2},
                {
                    "id": "2",
                    "type": "group",
                    "children": [{"id": "3", "type": "image", "source": {"uri": str(make_image(cam / "g.png", b"g"))}}],
                },
            ],
            "canvasSettings": {"width": 1080, "height": 1350, "backgroundColor": "#FFEEDD"},
        },
        thumbnail=str(make_image(cam / "thumb.png", b"thumb")),
    )
    sale = app.finance.record_sale(
        "Silla Tiffany", 25.0, quantity=2, product_id=chair.id, date="2026-03-01",
        client_data={"name": "Ana", "documentId": "30111222"},
    )
    rental = app.finance.record_rental("Mesa", 40.0, date="2026-03-02", end_date="2026-03-05", deposit=10.0)
    deco = app.finance.record_decoration(
        "", 120.0, date="2026-03-03",
        items=[{"id": "1", "productName": "Arco de globos", "quantity": 1, "unitPrice": 120}],
    )
    app.finance.add_expense("Insumos", "Helio", 30.0, date="2026-03-01", receipt_image=str(make_image(cam / "r.png", b"receipt")))
    app.finance.create_quotation("rental", "Carpa", 300.0, date="2026-03-04", start_date="2026-04-01")
    app.finance.save_report("2026-03-01", "2026-03-31", name="Marzo")
    app.notes.create_note("Proveedor", "Llamar el lunes", date="2026-03-01")
    app.notes.save_setting("currency", "ARS")
    return {"section": section, "chair": chair, "canvas": canvas, "sale": sale, "rental": rental, "deco": deco}


def _unzip_manifests(archive: Path) -> dict:
    with zipfile.ZipFile(archive) as zf:
        out = {n: json.loads(zf.read(n)) for n in zf.namelist() if n.endswith(".json")}
    out["meta.json"].pop("exportDate")
    return out


def test_export_import_round_trip(tmp_path: Path):
    source = build_app(tmp_path, "source")
    _seed(source, tmp_path)
    expected = normalized_records(source)
    expected_settings = source.repo.get_settings()

    archive = source.exporter.export_backup()
    assert archive.name == f"DecoFlow_backup_{date.today().isoformat()}.zip"

    target = build_app(tmp_path, "target")
    target.catalog.create_section("Se pierde")
    assert target.importer.import_backup(archive) is True

    assert normalized_records(target) == expected
    assert target.repo.get_settings() == expected_settings

    for kind in ("sections", "products", "canvases", "expenses"):
        for record in target.exporter.load_records()[kind]:
            for ref in record_image_refs(record):
                assert target.blobs.check_exists(ref)
                assert Path(ref).parent == target.blobs.root

    report = target.importer.last_report
    assert report.counts["products"] == 1
    assert report.images_missing == 0
    assert report.images_restored == 7


def test_archive_layout_and_meta(tmp_path: Path):
    app = build_app(tmp_path)
    _seed(app, tmp_path)
    archive = app.exporter.export_backup()

    with zipfile.ZipFile(archive) as zf:
        names = set(zf.namelist())
        meta = json.loads(zf.read("meta.json"))
        canvases = json.loads(zf.read("data/canvases.json"))

    for kind in ("sections", "products", "canvases", "transactions", "rentals", "decorations",
                 "expenses", "saved_reports", "clients", "quotations", "notes"):
        assert f"data/{kind}.json" in names
    assert "settings.json" in names
    assert meta["appName"] == "DecoFlow"
    assert meta["counts"]["savedReports"] == 1
    assert meta["counts"]["transactions"] == 3

    group_child = canvases[0]["data"]["images"][1]["children"][0]
    assert group_child["source"]["uri"].startswith("images/canvases_content/")
    assert canvases[0]["thumbnail"].startswith("images/canvases/")
    assert any(n.startswith("images/expenses/") for n in names)


def test_export_is_stable_without_changes(tmp_path: Path):
    app = build_app(tmp_path)
    _seed(app, tmp_path)

    first = _unzip_manifests(app.exporter.export_backup())
    second = _unzip_manifests(app.exporter.export_backup())
    assert first == second


def test_missing_section_image_exports_as_null(tmp_path: Path):
    app = build_app(tmp_path)
    section = app.catalog.create_section("Globos", image=str(make_image(tmp_path / "s.png")))
    Path(section.image).unlink()

    archive = app.exporter.export_backup()
    with zipfile.ZipFile(archive) as zf:
        sections = json.loads(zf.read("data/sections.json"))
    assert sections[0]["image"] is None


def test_mobiliario_scenario_restores_identical_image(tmp_path: Path):
    photo_bytes = b"\xff\xd8\xff\xe0JFIF silla tiffany"
    app = build_app(tmp_path)
    section = app.catalog.create_section("Mobiliario")
    product = app.catalog.create_product(section.id, "Silla", image=str(make_image(tmp_path / "silla.jpg", photo_bytes)))

    archive = shutil.copy2(app.exporter.export_backup(), tmp_path / "kept.zip")
    app.reset.reset_all()
    assert app.catalog.list_sections() == []

    app.importer.import_backup(archive)

    restored = app.catalog.get_product(product.id)
    assert restored.section_id == section.id
    assert Path(restored.image).read_bytes() == photo_bytes
    assert [s.product_count for s in app.catalog.list_sections()] == [1]


def test_legacy_archive_with_folders_imports(tmp_path: Path):
    archive = tmp_path / "legacy.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("meta.json", json.dumps({"appName": "DecoFlow", "version": "1.0.0"}))
        zf.writestr("data/folders.json", json.dumps([{"id": "f1", "name": "Mobiliario", "productCount": 1}]))
        zf.writestr("data/products.json", json.dumps([{"id": "p1", "folderId": "f1", "name": "Silla", "image": "images/products/nope.jpg"}]))

    app = build_app(tmp_path)
    assert app.importer.import_backup(archive) is True

    product = app.catalog.get_product("p1")
    assert product.section_id == "f1"
    assert product.image is None
    assert app.importer.last_report.images_missing == 1


def test_archive_without_meta_leaves_live_data_untouched(tmp_path: Path):
    app = build_app(tmp_path)
    app.catalog.create_section("Globos")
    archive = tmp_path / "bad.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("data/sections.json", "[]")

    with pytest.raises(InvalidArchiveError):
        app.importer.import_backup(archive)
    assert [s.section.name for s in app.catalog.list_sections()] == ["Globos"]


def test_malformed_manifest_is_rejected_before_wipe(tmp_path: Path):
    app = build_app(tmp_path)
    app.catalog.create_section("Globos")
    archive = tmp_path / "bad.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("meta.json", "{}")
        zf.writestr("data/canvases.json", json.dumps([{"id": "c1", "data": {"images": [{"type": "video"}]}}]))

    with pytest.raises(InvalidArchiveError):
        app.importer.import_backup(archive)
    assert len(app.catalog.list_sections()) == 1


def test_failure_after_wipe_is_partial_restore(tmp_path: Path):
    app = build_app(tmp_path)
    archive = tmp_path / "orphan.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("meta.json", "{}")
        zf.writestr("data/rentals.json", json.dumps([{"id": "r1", "transactionId": "missing", "startDate": "2026-01-01"}]))

    with pytest.raises(PartialRestoreError) as info:
        app.importer.import_backup(archive)
    assert "restart" in info.value.user_message


def test_import_cancelled_by_picker(tmp_path: Path):
    app = build_app(tmp_path)
    app.importer.picker = StaticFilePicker(None)
    assert app.importer.import_backup() is False


def test_export_failure_raises_export_error_and_shares_nothing(tmp_path: Path):
    class FailingArchive:
        def pack(self, source_dir, archive_path):
            raise OSError("disk full")

    shared = []

    class Share:
        def share(self, path):
            shared.append(path)

    app = build_app(tmp_path)
    app.exporter.archive = FailingArchive()
    app.exporter.share = Share()

    with pytest.raises(ExportError):
        app.exporter.export_backup()
    assert shared == []


def test_missing_nested_canvas_image_exports_as_null_and_restores(tmp_path: Path):
    app = build_app(tmp_path)
    canvas = app.canvases.save_canvas(
        "Boda Ana",
        {
            "images": [
                {
                    "id": "g",
                    "type": "group",
                    "children": [
                        {"id": "gone", "source": {"uri": str(make_image(tmp_path / "gone.png", b"gone"))}},
                        {"id": "kept", "source": {"uri": str(make_image(tmp_path / "kept.png", b"kept"))}},
                        {"id": "lost", "source": {"uri": str(make_image(tmp_path / "lost.png", b"lost"))}},
                    ],
                }
            ]
        },
        thumbnail=str(make_image(tmp_path / "thumb.png", b"thumb")),
    )
    gone, kept, lost = canvas.data.images[0].children
    Path(gone.source_uri).unlink()

    exported = app.exporter.export_backup()
    with zipfile.ZipFile(exported) as zf:
        children = json.loads(zf.read("data/canvases.json"))[0]["data"]["images"][0]["children"]
        lost_entry = children[2]["source"]["uri"]
        # drop one staged file to simulate an archive with a hole in it
        archive = tmp_path / "holed.zip"
        with zipfile.ZipFile(archive, "w") as out:
            for item in zf.infolist():
                if item.filename != lost_entry:
                    out.writestr(item, zf.read(item.filename))
    assert children[0].get("source", {}).get("uri") is None
    assert children[1]["source"]["uri"].startswith("images/canvases_content/")

    assert app.importer.import_backup(archive) is True

    restored = app.canvases.get_canvas(canvas.id)
    r_gone, r_kept, r_lost = restored.data.images[0].children
    assert [c.id for c in (r_gone, r_kept, r_lost)] == ["gone", "kept", "lost"]
    assert r_gone.source_uri is None
    assert r_lost.source_uri is None
    assert Path(r_kept.source_uri).read_bytes() == b"kept"
    assert Path(restored.thumbnail).read_bytes() == b"thumb"

    report = app.importer.last_report
    assert report.images_restored == 2
    assert report.images_missing == 1
