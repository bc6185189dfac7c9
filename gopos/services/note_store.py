import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from gopos.services.errors import StoreError
from gopos.services.history_store import now_wib, parse_timestamp

COLLECTION_NAME = "notes"
DEFAULT_NOTE_TITLE = "Catatan"


def new_note_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Note:
    user_phone: str
    content: str
    id: str = field(default_factory=new_note_id)
    title: str = DEFAULT_NOTE_TITLE
    created_at: datetime = field(default_factory=now_wib)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_phone": self.user_phone,
            "title": self.title,
            "content": self.content,
            "created_at": self.created_at.isoformat(timespec="seconds"),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Note":
        return cls(
            id=str(raw.get("id") or raw.get("_id") or new_note_id()),
            user_phone=str(raw.get("user_phone") or ""),
            title=str(raw.get("title") or DEFAULT_NOTE_TITLE),
            content=str(raw.get("content") or ""),
            created_at=parse_timestamp(raw.get("created_at")),
        )


class NoteRepository:
    """Typed access to the notes collection."""

    def find_by_user(self, user_phone: str) -> List[Note]:
        """Notes owned by `user_phone`, in stable insertion order."""
        raise NotImplementedError

    def insert(self, note: Note) -> None:
        raise NotImplementedError

    def delete_by_id(self, note_id: str) -> bool:
        """Return True when a note was removed."""
        raise NotImplementedError


class JsonNoteRepository(NoteRepository):
    """Notes kept as a JSON array of documents in a single file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            logging.warning("Ignoring malformed note store at %s", self.path)
            return []
        return [item for item in raw if isinstance(item, dict)]

    def _save(self, documents: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(documents, indent=2, ensure_ascii=False)
        tmp_path = self.path.with_suffix(".json.tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(self.path)

    def find_by_user(self, user_phone: str) -> List[Note]:
        try:
            with self._lock:
                documents = self._load()
        except Exception as exc:
            raise StoreError(str(exc), exc) from exc
        return [
            Note.from_dict(doc) for doc in documents if doc.get("user_phone") == user_phone
        ]

    def insert(self, note: Note) -> None:
        try:
            with self._lock:
                documents = self._load()
                documents.append(note.to_dict())
                self._save(documents)
        except Exception as exc:
            raise StoreError(str(exc), exc) from exc

    def delete_by_id(self, note_id: str) -> bool:
        try:
            with self._lock:
                documents = self._load()
                remaining = [
                    doc for doc in documents if str(doc.get("id") or doc.get("_id")) != note_id
                ]
                if len(remaining) == len(documents):
                    return False
                self._save(remaining)
                return True
        except Exception as exc:
            raise StoreError(str(exc), exc) from exc
