from __future__ import annotations

from dataclasses import replace
from typing import Optional

from decoflow.domain.errors import NotFoundError, ValidationError
from decoflow.domain.ids import new_id, now_iso, today_iso
from decoflow.domain.models import Note


class NotesService:
    def __init__(self, repo):
        self.repo = repo

    def list_notes(self) -> list[Note]:
        return self.repo.list_notes()

    def get_note(self, note_id: str) -> Note:
        n = self.repo.get_note(note_id)
        if not n:
            raise NotFoundError("Note not found.")
        return n

    def create_note(self, title: str, content: Optional[str] = None, date: Optional[str] = None) -> Note:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Note title is required.")
        now = now_iso()
        note = Note(id=new_id(), title=title, content=content, date=date or today_iso(), created_at=now, updated_at=now)
        return self.repo.create_note(note)

    def update_note(self, note_id: str, title: str, content: Optional[str] = None, date: Optional[str] = None) -> Note:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Note title is required.")
        current = self.get_note(note_id)
        updated = replace(current, title=title, content=content, date=date or current.date, updated_at=now_iso())
        self.repo.update_note(updated)
        return updated

    def delete_note(self, note_id: str) -> None:
        if not self.repo.delete_note(note_id):
            raise NotFoundError("Note not found.")

    def get_settings(self) -> dict[str, Optional[str]]:
        return self.repo.get_settings()

    def get_setting(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.repo.get_setting(key)
        return default if value is None else value

    def save_setting(self, key: str, value) -> None:
        key = (key or "").strip()
        if not key:
            raise ValidationError("Setting key is required.")
        self.repo.save_setting(key, value)
