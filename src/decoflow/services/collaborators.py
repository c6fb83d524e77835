"""Seams to the presentation layer: choosing an archive and sharing one."""
from __future__ import annotations

import shutil
from pathlib import Path
from typing import Optional, Protocol


class FilePicker(Protocol):
    def pick_archive(self) -> Optional[Path]:
        """Returns the chosen archive, or None when the user cancels."""
        ...


class ShareTarget(Protocol):
    def share(self, archive_path: Path) -> None:
        ...


class StaticFilePicker:
    def __init__(self, path: Path | str | None):
        self.path = Path(path) if path is not None else None

    def pick_archive(self) -> Optional[Path]:
        return self.path


class DirectoryShareTarget:
    """Shares an archive by copying it into a folder."""

    def __init__(self, target_dir: Path | str):
        self.target_dir = Path(target_dir)
        self.last_shared: Path | None = None

    def share(self, archive_path: Path) -> None:
        self.target_dir.mkdir(parents=True, exist_ok=True)
        dest = self.target_dir / Path(archive_path).name
        if Path(archive_path).resolve() != dest.resolve():
            shutil.copy2(archive_path, dest)
        self.last_shared = dest
