from __future__ import annotations

import json
import logging
import zipfile
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path

from decoflow.domain.images import record_image_refs
from decoflow.repositories.blob_store import is_remote

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DanglingReference:
    kind: str
    record_id: str
    reference: str


@dataclass(frozen=True)
class HealthReport:
    sqlite_integrity: str
    db_size_bytes: int
    logs_count: int
    images_count: int
    generated_at: str
    dangling_images: list[DanglingReference] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.sqlite_integrity == "ok" and not self.dangling_images


class OperationsService:
    def __init__(self, repo, blobs, db_path: Path | str, logs_dir: Path | str):
        self.repo = repo
        self.blobs = blobs
        self.db_path = Path(db_path)
        self.logs_dir = Path(logs_dir)

    def find_dangling_images(self) -> list[DanglingReference]:
        records = [("sections", s.section) for s in self.repo.list_sections()]
        records += [("products", p) for p in self.repo.list_products()]
        records += [("canvases", c) for c in self.repo.list_canvases()]
        records += [("expenses", e) for e in self.repo.list_expenses()]

        out = []
        for kind, record in records:
            for ref in record_image_refs(record):
                if not is_remote(ref) and not self.blobs.check_exists(ref):
                    out.append(DanglingReference(kind=kind, record_id=record.id, reference=ref))
        return out

    def run_health_check(self) -> HealthReport:
        integrity = self.repo.integrity_check()
        logs_count = len(list(self.logs_dir.glob("*.log"))) if self.logs_dir.exists() else 0
        size = self.db_path.stat().st_size if self.db_path.exists() else 0
        dangling = self.find_dangling_images()
        if dangling:
            log.warning("health_dangling_images count=%s", len(dangling))
        return HealthReport(
            sqlite_integrity=integrity,
            db_size_bytes=size,
            logs_count=logs_count,
            images_count=len(self.blobs.list_files()),
            generated_at=datetime.now().isoformat(timespec="seconds"),
            dangling_images=dangling,
        )

    def export_diagnostics(self, target_dir: Path | str | None = None) -> Path:
        out_dir = Path(target_dir) if target_dir else self.db_path.parent
        out_dir.mkdir(parents=True, exist_ok=True)

        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        zip_path = out_dir / f"diagnostics_{ts}.zip"
        report = self.run_health_check()

        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            if self.db_path.exists():
                zf.write(self.db_path, arcname=self.db_path.name)

            if self.logs_dir.exists():
                for f in sorted(self.logs_dir.glob("*.log")):
                    zf.write(f, arcname=f"logs/{f.name}")

            zf.writestr("health_report.json", json.dumps(asdict(report), ensure_ascii=False, indent=2))

        log.info("diagnostics_exported path=%s", zip_path)
        return zip_path
