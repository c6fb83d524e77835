from __future__ import annotations

import logging
import shutil
import zipfile
from pathlib import Path, PurePosixPath

from decoflow.domain.errors import InvalidArchiveError

log = logging.getLogger("decoflow.backup")


class ArchiveService:
    """Zip codec for backup folders."""

    def pack(self, source_dir: Path | str, archive_path: Path | str) -> Path:
        source = Path(source_dir)
        target = Path(archive_path)
        target.parent.mkdir(parents=True, exist_ok=True)

        with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path in sorted(source.rglob("*")):
                arcname = path.relative_to(source).as_posix()
                if path.is_dir():
                    zf.writestr(arcname + "/", b"")
                else:
                    zf.write(path, arcname=arcname)

        log.info("archive_packed path=%s bytes=%s", target.name, target.stat().st_size)
        return target

    def _safe_target(self, dest: Path, name: str) -> Path:
        clean = name.replace("\\", "/")
        parts = PurePosixPath(clean).parts
        if clean.startswith("/") or ".." in parts or (parts and parts[0].endswith(":")):
            raise InvalidArchiveError(f"Archive entry escapes the target folder: {name}")
        target = (dest / clean).resolve()
        try:
            target.relative_to(dest.resolve())
        except ValueError as exc:
            raise InvalidArchiveError(f"Archive entry escapes the target folder: {name}") from exc
        return target

    def unpack(self, archive_path: Path | str, dest_dir: Path | str) -> Path:
        dest = Path(dest_dir)
        dest.mkdir(parents=True, exist_ok=True)

        try:
            zf = zipfile.ZipFile(archive_path)
        except (zipfile.BadZipFile, FileNotFoundError, IsADirectoryError) as exc:
            raise InvalidArchiveError(f"Not a readable zip archive: {archive_path}") from exc

        with zf:
            for info in zf.infolist():
                target = self._safe_target(dest, info.filename)
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                try:
                    with zf.open(info) as src, open(target, "wb") as out:
                        shutil.copyfileobj(src, out)
                except zipfile.BadZipFile as exc:
                    raise InvalidArchiveError(f"Corrupted archive entry: {info.filename}") from exc

        log.info("archive_unpacked path=%s entries=%s", Path(archive_path).name, len(zf.infolist()))
        return dest
