from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

from decoflow.domain.images import record_image_refs

log = logging.getLogger("decoflow.blobs")


def iter_image_references(repo) -> Iterator[str]:
    """Every image reference held by any record, nested canvas content included."""
    for summary in repo.list_sections():
        yield from record_image_refs(summary.section)
    for product in repo.list_products():
        yield from record_image_refs(product)
    for canvas in repo.list_canvases():
        yield from record_image_refs(canvas)
    for expense in repo.list_expenses():
        yield from record_image_refs(expense)


@dataclass(frozen=True)
class GcReport:
    files_before: int
    referenced: int
    deleted: int
    failed: int


class GarbageCollector:
    def __init__(self, repo, blobs):
        self.repo = repo
        self.blobs = blobs

    def collect(self) -> GcReport:
        used = set(iter_image_references(self.repo))
        files_before = len(self.blobs.list_files())
        failed_before = self.blobs.stats.failed

        deleted = self.blobs.clean_orphaned(used)
        report = GcReport(
            files_before=files_before,
            referenced=len(used),
            deleted=deleted,
            failed=self.blobs.stats.failed - failed_before,
        )
        log.info(
            "gc_completed files_before=%s referenced=%s deleted=%s failed=%s",
            report.files_before,
            report.referenced,
            report.deleted,
            report.failed,
        )
        return report
