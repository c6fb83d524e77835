import json
import logging
import zipfile
from pathlib import Path

import pytest
from conftest import build_app, make_image
from openpyxl import load_workbook

from decoflow.domain.errors import ValidationError
from decoflow.logging_config import CHANNEL_FILES, JsonFormatter, setup_logging
from decoflow.main import main


def test_finance_report_excel_has_summary_and_detail_sheets(tmp_path: Path):
    app = build_app(tmp_path)
    app.finance.record_sale("Silla", 100.0, date="2026-03-01")
    app.finance.record_rental("Mesa", 40.0, date="2026-03-02")
    app.finance.add_expense("Insumos", "Helio", 30.0, date="2026-03-03")
    app.finance.record_sale("Fuera de rango", 999.0, date="2026-04-01")

    out = tmp_path / "report.xlsx"
    app.reporting.export_finance_report_excel(str(out), "2026-03-01", "2026-03-31")

    wb = load_workbook(out)
    assert wb.sheetnames == ["Summary", "Transactions", "Expenses"]

    summary = {row[0]: row[1] for row in wb["Summary"].iter_rows(min_row=5, max_row=13, values_only=True)}
    assert summary["Total income"] == 140.0
    assert summary["Balance"] == 110.0
    assert wb["Transactions"].max_row == 3
    assert wb["Expenses"]["C2"].value == "Helio"

    with pytest.raises(ValidationError):
        app.reporting.export_finance_report_excel(str(out), "2026-04-01", "2026-03-01")


def test_health_check_reports_dangling_images(tmp_path: Path):
    app = build_app(tmp_path)
    section = app.catalog.create_section("Mobiliario")
    product = app.catalog.create_product(section.id, "Silla", image=str(make_image(tmp_path / "s.png")))

    assert app.operations.run_health_check().ok

    Path(product.image).unlink()
    report = app.operations.run_health_check()
    assert report.sqlite_integrity == "ok"
    assert not report.ok
    assert [(d.kind, d.record_id) for d in report.dangling_images] == [("products", product.id)]


def test_export_diagnostics_bundles_db_and_report(tmp_path: Path):
    app = build_app(tmp_path)
    zip_path = app.operations.export_diagnostics(tmp_path / "diag")

    with zipfile.ZipFile(zip_path) as zf:
        names = zf.namelist()
        report = json.loads(zf.read("health_report.json"))
    assert "decoflow.db" in names
    assert report["sqlite_integrity"] == "ok"
    assert report["dangling_images"] == []


def test_cli_export_then_import_into_another_home(tmp_path: Path):
    source = build_app(tmp_path, "source")
    section = source.catalog.create_section("Globos", image=str(make_image(tmp_path / "g.png", b"g")))
    source.close()

    out = tmp_path / "shared"
    assert main(["--home", str(tmp_path / "source"), "export", "--out", str(out)]) == 0
    archives = list(out.glob("DecoFlow_backup_*.zip"))
    assert len(archives) == 1

    assert main(["--home", str(tmp_path / "target"), "import", str(archives[0])]) == 0
    assert main(["--home", str(tmp_path / "target"), "health"]) == 0

    target = build_app(tmp_path, "target")
    restored = target.catalog.get_section(section.id)
    assert Path(restored.image).read_bytes() == b"g"


def test_cli_reset_requires_confirmation(tmp_path: Path):
    home = tmp_path / "home"
    assert main(["--home", str(home), "reset"]) == 2
    assert main(["--home", str(home), "reset", "--yes"]) == 0
    assert main(["--home", str(home), "gc"]) == 0


def test_cli_import_of_bad_archive_fails_cleanly(tmp_path: Path, capsys):
    bogus = tmp_path / "bogus.zip"
    bogus.write_text("nope", encoding="utf-8")

    assert main(["--home", str(tmp_path / "home"), "import", str(bogus)]) == 1
    assert "Invalid or corrupted backup file." in capsys.readouterr().err


def test_json_formatter_marks_error_location():
    formatter = JsonFormatter()
    record = logging.LogRecord("decoflow.backup", logging.ERROR, __file__, 42, "backup_export_failed reason=%s", ("disk",), None)

    payload = json.loads(formatter.format(record))
    assert payload["logger"] == "decoflow.backup"
    assert payload["message"] == "backup_export_failed reason=disk"
    assert payload["where"].endswith(":42")


def test_setup_logging_writes_channel_files(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(logging.getLogger(), "handlers", [])
    for name in CHANNEL_FILES:
        monkeypatch.setattr(logging.getLogger(name), "handlers", [])

    setup_logging(tmp_path / "logs")
    logging.getLogger("decoflow.blobs").info("blob_copied target=a.jpg")
    for handler in logging.getLogger("decoflow.blobs").handlers + logging.getLogger().handlers:
        handler.flush()

    line = (tmp_path / "logs" / "blobs.log").read_text(encoding="utf-8").strip()
    assert json.loads(line)["message"] == "blob_copied target=a.jpg"
    assert "blob_copied" in (tmp_path / "logs" / "app.log").read_text(encoding="utf-8")

    for handler in logging.getLogger("decoflow.blobs").handlers + logging.getLogger("decoflow.backup").handlers + logging.getLogger().handlers:
        handler.close()
