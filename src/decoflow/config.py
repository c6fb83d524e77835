from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import sys

APP_NAME = "DecoFlow"
APP_VERSION = "2.4.0"


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    images_dir: Path
    cache_dir: Path


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def _default_base(app_name: str) -> Path:
    override = os.environ.get("DECOFLOW_HOME", "").strip()
    if override:
        return Path(override)
    if sys.platform.startswith("win"):
        return _windows_appdata() / app_name
    if sys.platform == "darwin":
        return _mac_app_support() / app_name
    return Path.home() / f".{app_name.lower()}"


def get_app_paths(app_name: str = APP_NAME, base_dir: Path | str | None = None) -> AppPaths:
    base = Path(base_dir) if base_dir is not None else _default_base(app_name)

    logs = base / "logs"
    images = base / "images"
    cache = base / "cache"
    db = base / "decoflow.db"

    for d in (base, logs, images, cache):
        d.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs, images_dir=images, cache_dir=cache)
