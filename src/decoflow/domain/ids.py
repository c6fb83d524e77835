from __future__ import annotations

import secrets
import time
import uuid
from datetime import date, datetime, timezone


def new_id() -> str:
    """Record id: millisecond timestamp plus 32 random bits."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def new_filename(suffix: str = ".jpg") -> str:
    suffix = suffix if suffix.startswith(".") else f".{suffix}"
    return f"{uuid.uuid4().hex}{suffix.lower()}"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def today_iso() -> str:
    return date.today().isoformat()
