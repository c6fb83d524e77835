from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from decoflow.domain.errors import InvalidArchiveError, PartialRestoreError, ValidationError
from decoflow.domain.images import rewrite_record_images
from decoflow.domain.manifest import KIND_TYPES, records_from_manifest

log = logging.getLogger("decoflow.backup")

# older app versions called sections "folders"
LEGACY_MANIFESTS = {"sections": "folders"}


@dataclass(frozen=True)
class BackupBundle:
    meta: dict
    settings: dict
    records: dict[str, list]


@dataclass
class ImportReport:
    archive: Path
    counts: dict[str, int] = field(default_factory=dict)
    images_restored: int = 0
    images_missing: int = 0


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidArchiveError(f"{path.name} is not valid JSON.") from exc


class ImportService:
    def __init__(self, repo, blobs, archive, cache_dir: Path | str, picker=None):
        self.repo = repo
        self.blobs = blobs
        self.archive = archive
        self.cache_dir = Path(cache_dir)
        self.picker = picker
        self.last_report: Optional[ImportReport] = None

    def read_bundle(self, folder: Path) -> BackupBundle:
        meta_path = folder / "meta.json"
        if not meta_path.is_file():
            raise InvalidArchiveError("meta.json is missing from the backup.")
        meta = _read_json(meta_path)
        if not isinstance(meta, dict):
            raise InvalidArchiveError("meta.json must contain an object.")

        settings_path = folder / "settings.json"
        settings = _read_json(settings_path) if settings_path.is_file() else {}
        if not isinstance(settings, dict):
            raise InvalidArchiveError("settings.json must contain an object.")

        records: dict[str, list] = {}
        for kind in KIND_TYPES:
            path = folder / "data" / f"{kind}.json"
            if not path.is_file() and kind in LEGACY_MANIFESTS:
                path = folder / "data" / f"{LEGACY_MANIFESTS[kind]}.json"
            entries = _read_json(path) if path.is_file() else []
            try:
                records[kind] = records_from_manifest(kind, entries)
            except ValidationError as exc:
                raise InvalidArchiveError(f"{path.name}: {exc}") from exc

        return BackupBundle(meta=meta, settings=settings, records=records)

    def import_backup(self, archive_path: Path | str | None = None) -> bool:
        if archive_path is None:
            archive_path = self.picker.pick_archive() if self.picker is not None else None
            if archive_path is None:
                log.info("backup_import_cancelled")
                return False
        archive_path = Path(archive_path)

        scratch = self.cache_dir / "import"
        if scratch.exists():
            shutil.rmtree(scratch)
        try:
            self.archive.unpack(archive_path, scratch)
            bundle = self.read_bundle(scratch)
            log.info(
                "backup_import_started archive=%s app=%s version=%s",
                archive_path.name,
                bundle.meta.get("appName"),
                bundle.meta.get("version"),
            )
            self.last_report = self._restore(bundle, scratch, archive_path)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        log.info(
            "backup_imported archive=%s counts=%s images_restored=%s images_missing=%s",
            archive_path.name,
            self.last_report.counts,
            self.last_report.images_restored,
            self.last_report.images_missing,
        )
        return True

    def _restore(self, bundle: BackupBundle, scratch: Path, archive_path: Path) -> ImportReport:
        report = ImportReport(archive=archive_path)

        def restore(ref: str, _subfolder: str) -> Optional[str]:
            restored = self.blobs.restore_from_import(ref, scratch)
            if restored:
                report.images_restored += 1
            else:
                report.images_missing += 1
            return restored

        try:
            self.repo.wipe_all()
            self.blobs.delete_all()

            for key, value in bundle.settings.items():
                self.repo.save_setting(str(key), value)

            for kind in KIND_TYPES:
                restored = [rewrite_record_images(r, restore) for r in bundle.records[kind]]
                self.repo.insert_many(restored)
                report.counts[kind] = len(restored)
        except Exception as exc:
            log.exception("backup_import_failed_after_wipe archive=%s", archive_path.name)
            raise PartialRestoreError(f"Restore failed after the live data was cleared: {exc}") from exc
        return report
