from __future__ import annotations

import logging
from typing import Optional

from decoflow.domain.errors import NotFoundError, ValidationError
from decoflow.domain.ids import new_id, now_iso
from decoflow.domain.images import record_image_refs
from decoflow.domain.models import Canvas
from decoflow.domain.payloads import CanvasPayload, parse_canvas_payload
from decoflow.repositories.blob_store import reference_key

log = logging.getLogger(__name__)


class CanvasService:
    def __init__(self, repo, blobs):
        self.repo = repo
        self.blobs = blobs

    def list_canvases(self) -> list[Canvas]:
        return self.repo.list_canvases()

    def get_canvas(self, canvas_id: str) -> Canvas:
        c = self.repo.get_canvas(canvas_id)
        if not c:
            raise NotFoundError("Canvas not found.")
        return c

    def save_canvas(
        self,
        name: str,
        data: CanvasPayload | dict | str | None = None,
        thumbnail: Optional[str] = None,
        canvas_id: Optional[str] = None,
    ) -> Canvas:
        """Inserts or replaces a canvas, copying every new image into the blob store.

        Images that were part of the previous version and are no longer used
        are deleted once the new version is stored.
        """
        payload = data if isinstance(data, CanvasPayload) else parse_canvas_payload(data)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Canvas name is required.")

        existing = self.repo.get_canvas(canvas_id) if canvas_id else None
        owned = list(record_image_refs(existing)) if existing else []
        now = now_iso()

        canvas = Canvas(
            id=canvas_id or new_id(),
            name=name,
            data=payload.rewrite_sources(lambda ref: self.blobs.adopt(ref, owned)),
            thumbnail=self.blobs.adopt(thumbnail, owned),
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self.repo.save_canvas(canvas)

        keep = {reference_key(r) for r in record_image_refs(canvas)}
        dropped = [r for r in owned if reference_key(r) not in keep]
        if dropped:
            self.blobs.delete_images(dropped)
            log.info("canvas_images_dropped id=%s count=%s", canvas.id, len(dropped))
        return canvas

    def rename_canvas(self, canvas_id: str, name: str) -> None:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Canvas name is required.")
        if not self.repo.rename_canvas(canvas_id, name, now_iso()):
            raise NotFoundError("Canvas not found.")

    def delete_canvas(self, canvas_id: str) -> None:
        canvas = self.get_canvas(canvas_id)
        self.blobs.delete_images(record_image_refs(canvas))
        self.repo.delete_canvas(canvas_id)
