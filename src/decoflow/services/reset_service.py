from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

log = logging.getLogger("decoflow.backup")


@dataclass(frozen=True)
class ResetReport:
    rows_deleted: int
    images_deleted: int


class ResetService:
    def __init__(self, repo, blobs, cache_dir: Path | str):
        self.repo = repo
        self.blobs = blobs
        self.cache_dir = Path(cache_dir)

    def reset_all(self) -> ResetReport:
        rows = sum(self.repo.table_counts().values())
        self.repo.wipe_all()
        images = self.blobs.delete_all()

        if self.cache_dir.exists():
            for child in self.cache_dir.iterdir():
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink()

        log.warning("app_reset rows=%s images=%s", rows, images)
        return ResetReport(rows_deleted=rows, images_deleted=images)
