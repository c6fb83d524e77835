from __future__ import annotations

import json
import logging
import shutil
from datetime import date
from pathlib import Path
from typing import Callable

from decoflow.config import APP_NAME, APP_VERSION
from decoflow.domain.errors import ExportError
from decoflow.domain.ids import now_iso
from decoflow.domain.images import rewrite_record_images
from decoflow.domain.manifest import KIND_TYPES, camel, to_manifest

log = logging.getLogger("decoflow.backup")


def _write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


class ExportService:
    def __init__(
        self,
        repo,
        blobs,
        archive,
        cache_dir: Path | str,
        share=None,
        app_name: str = APP_NAME,
        app_version: str = APP_VERSION,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.blobs = blobs
        self.archive = archive
        self.cache_dir = Path(cache_dir)
        self.share = share
        self.app_name = app_name
        self.app_version = app_version
        self.today = today

    def load_records(self) -> dict[str, list]:
        return {
            "sections": [s.section for s in self.repo.list_sections()],
            "products": self.repo.list_products(),
            "canvases": self.repo.list_canvases(),
            "transactions": self.repo.list_transactions(),
            "rentals": self.repo.list_rentals(),
            "decorations": self.repo.list_decorations(),
            "expenses": self.repo.list_expenses(),
            "saved_reports": self.repo.list_saved_reports(),
            "clients": self.repo.list_clients(active_only=False),
            "quotations": self.repo.list_quotations(),
            "notes": self.repo.list_notes(),
        }

    def write_backup_folder(self, scratch: Path) -> dict[str, int]:
        """Writes manifests and images into `scratch`; returns the per-kind counts."""
        records = self.load_records()

        def stage(ref: str, subfolder: str):
            return self.blobs.prepare_for_export(ref, scratch, subfolder)

        counts: dict[str, int] = {}
        for kind in KIND_TYPES:
            staged = [rewrite_record_images(r, stage) for r in records[kind]]
            _write_json(scratch / "data" / f"{kind}.json", [to_manifest(r) for r in staged])
            counts[camel(kind)] = len(staged)

        _write_json(scratch / "settings.json", self.repo.get_settings())
        _write_json(
            scratch / "meta.json",
            {
                "appName": self.app_name,
                "version": self.app_version,
                "exportDate": now_iso(),
                "counts": counts,
            },
        )
        return counts

    def archive_name(self) -> str:
        return f"{self.app_name}_backup_{self.today().isoformat()}.zip"

    def export_backup(self) -> Path:
        scratch = self.cache_dir / "export"
        try:
            if scratch.exists():
                shutil.rmtree(scratch)
            scratch.mkdir(parents=True)

            counts = self.write_backup_folder(scratch)
            archive_path = self.archive.pack(scratch, self.cache_dir / self.archive_name())
            if self.share is not None:
                self.share.share(archive_path)
        except Exception as exc:
            log.exception("backup_export_failed")
            raise ExportError(f"Backup export failed: {exc}") from exc
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        log.info("backup_exported archive=%s counts=%s", archive_path.name, counts)
        return archive_path
