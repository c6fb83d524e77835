from __future__ import annotations

import filecmp
import logging
import shutil
from dataclasses import dataclass, asdict
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

from decoflow.domain.errors import BlobStoreError, NotFoundError, ValidationError
from decoflow.domain.ids import new_filename

log = logging.getLogger("decoflow.blobs")

REMOTE_PREFIXES = ("http://", "https://", "data:")
FILE_SCHEME = "file://"


def is_remote(reference: Optional[str]) -> bool:
    return bool(reference) and reference.lower().startswith(REMOTE_PREFIXES)


def reference_key(reference: Optional[str]) -> Optional[str]:
    """Filename part of an image reference.

    Orphan detection compares files by name only, so a reference written with a
    different root (an older install path, a file:// uri) still protects its file.
    """
    if not reference or is_remote(reference):
        return None
    name = reference.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
    return name or None


@dataclass
class DeletionStats:
    attempted: int = 0
    deleted: int = 0
    missing: int = 0
    failed: int = 0
    skipped: int = 0

    def snapshot(self) -> dict[str, int]:
        return asdict(self)


class FileBlobStore:
    """Image files kept flat under one root directory."""

    def __init__(self, root: Path | str, stats: DeletionStats | None = None):
        self.root = Path(root)
        self.stats = stats or DeletionStats()

    def ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BlobStoreError(f"Cannot create image directory {self.root}: {exc}") from exc

    def _path(self, reference: str) -> Path:
        if reference.startswith(FILE_SCHEME):
            reference = reference[len(FILE_SCHEME):]
        return Path(reference)

    def is_internal(self, reference: Optional[str]) -> bool:
        if not reference or is_remote(reference):
            return False
        try:
            path = self._path(reference).resolve()
            return path.parent == self.root.resolve()
        except (OSError, ValueError):
            return False

    def check_exists(self, reference: Optional[str]) -> bool:
        if not reference or is_remote(reference):
            return False
        try:
            return self._path(reference).is_file()
        except (OSError, ValueError):
            return False

    def copy_to_internal(self, source: str) -> str:
        if not source:
            raise ValidationError("Image source is required.")
        if is_remote(source):
            return source

        path = self._path(source)
        if self.is_internal(source) and path.is_file():
            return str(path)
        if not path.is_file():
            raise NotFoundError(f"Image not found: {source}")

        self.ensure_root()
        target = self.root / new_filename(path.suffix or ".jpg")
        try:
            shutil.copy2(path, target)
        except OSError as exc:
            raise BlobStoreError(f"Could not copy image {source}: {exc}") from exc
        log.info("blob_copied source=%s target=%s", path.name, target.name)
        return str(target)

    def duplicate(self, reference: str) -> str:
        """Copies a file under a fresh name, even when it already lives in the root."""
        path = self._path(reference)
        if not path.is_file():
            raise NotFoundError(f"Image not found: {reference}")
        self.ensure_root()
        target = self.root / new_filename(path.suffix or ".jpg")
        try:
            shutil.copy2(path, target)
        except OSError as exc:
            raise BlobStoreError(f"Could not duplicate image {reference}: {exc}") from exc
        return str(target)

    def adopt(self, reference: Optional[str], owned: Iterable[Optional[str]] = ()) -> Optional[str]:
        """Returns a reference the calling record may own exclusively.

        `owned` holds the references the record already had; those are kept as
        they are. An internal file owned by some other record is duplicated so
        that deleting either record cannot leave the other one dangling.
        """
        if not reference:
            return None
        if is_remote(reference):
            return reference
        owned_keys = {reference_key(o) for o in owned if o}
        if self.is_internal(reference):
            if reference_key(reference) in owned_keys:
                return reference
            return self.duplicate(reference)
        return self.copy_to_internal(reference)

    def delete_image(self, reference: Optional[str]) -> bool:
        """Removes a file from the root. Errors are counted in `stats`, never raised."""
        self.stats.attempted += 1
        if not reference or is_remote(reference):
            self.stats.skipped += 1
            return False
        if not self.is_internal(reference):
            self.stats.skipped += 1
            log.warning("blob_delete_outside_root reference=%s", reference)
            return False

        try:
            self._path(reference).unlink()
        except FileNotFoundError:
            self.stats.missing += 1
            return False
        except OSError:
            self.stats.failed += 1
            log.exception("blob_delete_failed reference=%s", reference)
            return False
        self.stats.deleted += 1
        return True

    def delete_images(self, references: Iterable[Optional[str]]) -> int:
        return sum(1 for ref in references if ref and self.delete_image(ref))

    def list_files(self) -> list[Path]:
        if not self.root.exists():
            return []
        try:
            return sorted(p for p in self.root.iterdir() if p.is_file())
        except OSError as exc:
            raise BlobStoreError(f"Could not list images in {self.root}: {exc}") from exc

    def clean_orphaned(self, used: Iterable[Optional[str]]) -> int:
        keys = {reference_key(u) for u in used}
        keys.discard(None)
        deleted = 0
        for path in self.list_files():
            if path.name in keys:
                continue
            if self.delete_image(str(path)):
                deleted += 1
        log.info("blob_orphans_cleaned deleted=%s kept=%s", deleted, len(keys))
        return deleted

    def delete_all(self) -> int:
        deleted = 0
        for path in self.list_files():
            if self.delete_image(str(path)):
                deleted += 1
        log.warning("blob_store_emptied deleted=%s", deleted)
        return deleted

    # ---------- Backup helpers ----------
    def prepare_for_export(self, reference: Optional[str], scratch_dir: Path | str, subfolder: str) -> Optional[str]:
        """Copies an image into scratch/images/<subfolder>/ and returns its archive path.

        A missing file yields None so that one lost image never blocks a backup.
        """
        if not reference:
            return None
        if is_remote(reference):
            return reference

        path = self._path(reference)
        if not path.is_file():
            log.warning("export_image_missing reference=%s", reference)
            return None

        dest_dir = Path(scratch_dir) / "images" / subfolder
        dest_dir.mkdir(parents=True, exist_ok=True)

        name = path.name
        dest = dest_dir / name
        n = 1
        while dest.exists() and not filecmp.cmp(dest, path, shallow=False):
            name = f"{path.stem}_{n}{path.suffix}"
            dest = dest_dir / name
            n += 1
        if not dest.exists():
            try:
                shutil.copy2(path, dest)
            except OSError as exc:
                raise BlobStoreError(f"Could not stage image {reference}: {exc}") from exc
        return str(PurePosixPath("images", subfolder, name))

    def restore_from_import(self, relative: Optional[str], scratch_dir: Path | str) -> Optional[str]:
        if not relative:
            return None
        if is_remote(relative):
            return relative

        scratch = Path(scratch_dir).resolve()
        source = (scratch / relative.replace("\\", "/")).resolve()
        try:
            source.relative_to(scratch)
        except ValueError:
            log.warning("import_image_outside_archive reference=%s", relative)
            return None
        if not source.is_file():
            log.warning("import_image_missing reference=%s", relative)
            return None

        self.ensure_root()
        target = self.root / source.name
        if target.exists():
            # every restored reference gets its own file
            target = self.root / new_filename(source.suffix or ".jpg")
        try:
            shutil.copy2(source, target)
        except OSError as exc:
            raise BlobStoreError(f"Could not restore image {relative}: {exc}") from exc
        return str(target)
