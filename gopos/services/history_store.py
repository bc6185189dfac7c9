import logging
import shelve
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from gopos.services.errors import StoreError

WIB = timezone(timedelta(hours=7))

MAX_HISTORY_MESSAGES = 10
COLLECTION_NAME = "wa_chat_history"

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
VALID_ROLES = {ROLE_USER, ROLE_ASSISTANT}


def now_wib() -> datetime:
    return datetime.now(WIB)


def parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    try:
        return datetime.fromisoformat(str(raw))
    except (TypeError, ValueError):
        return now_wib()


@dataclass(frozen=True)
class ChatTurn:
    role: str
    content: str
    timestamp: datetime = field(default_factory=now_wib)

    def __post_init__(self):
        if self.role not in VALID_ROLES:
            raise ValueError(f"Unsupported chat role: {self.role!r}")

    def to_message(self) -> Dict[str, str]:
        """Shape used by chat-completion APIs."""
        return {"role": self.role, "content": self.content}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ChatTurn":
        role = str(raw.get("role") or "").strip().lower()
        # Older records written by Gemini-style clients use "model".
        if role == "model":
            role = ROLE_ASSISTANT
        return cls(
            role=role,
            content=str(raw.get("content") or ""),
            timestamp=parse_timestamp(raw.get("timestamp")),
        )


@dataclass
class ConversationHistory:
    phone_number: str
    turns: List[ChatTurn] = field(default_factory=list)
    updated_at: datetime = field(default_factory=now_wib)

    def append(
        self, new_turns: Iterable[ChatTurn], *, limit: int = MAX_HISTORY_MESSAGES
    ) -> None:
        """
        Append turns in order and keep only the `limit` most recent ones.
        The oldest turns are evicted first.
        """
        if limit < 1:
            raise ValueError(f"history limit must be at least 1, got {limit}")
        merged = list(self.turns) + list(new_turns)
        if len(merged) > limit:
            merged = merged[-limit:]
        self.turns = merged
        self.updated_at = now_wib()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phone_number": self.phone_number,
            "messages": [turn.to_dict() for turn in self.turns],
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }

    @classmethod
    def from_dict(cls, phone_number: str, raw: Dict[str, Any]) -> "ConversationHistory":
        turns = []
        messages = raw.get("messages")
        if not isinstance(messages, list):
            messages = []
        for item in messages:
            if not isinstance(item, dict):
                continue
            try:
                turns.append(ChatTurn.from_dict(item))
            except ValueError:
                logging.debug("Dropping history entry with unknown role for %s", phone_number)
        return cls(
            phone_number=phone_number,
            turns=turns,
            updated_at=parse_timestamp(raw.get("updated_at")),
        )


class HistoryRepository:
    """Persistence for one ConversationHistory document per phone number."""

    def get_history(self, phone_number: str) -> Optional[ConversationHistory]:
        raise NotImplementedError

    def upsert_history(self, history: ConversationHistory) -> None:
        raise NotImplementedError

    def delete_history(self, phone_number: str) -> None:
        raise NotImplementedError


class ShelveHistoryRepository(HistoryRepository):
    """
    History documents kept in a local shelf keyed by phone number.
    Every call opens the shelf, does a single read or write and closes it again.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()

    @contextmanager
    def _open(self, flag: str = "c"):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        db = shelve.open(str(self.db_path), flag=flag)
        try:
            yield db
        finally:
            db.close()

    def get_history(self, phone_number: str) -> Optional[ConversationHistory]:
        try:
            with self._lock, self._open() as db:
                raw = db.get(phone_number)
            if not isinstance(raw, dict):
                return None
            return ConversationHistory.from_dict(phone_number, raw)
        except Exception as exc:
            raise StoreError(f"failed to read history: {exc}", exc) from exc

    def upsert_history(self, history: ConversationHistory) -> None:
        try:
            with self._lock, self._open() as db:
                db[history.phone_number] = history.to_dict()
        except Exception as exc:
            raise StoreError(f"failed to save history: {exc}", exc) from exc

    def delete_history(self, phone_number: str) -> None:
        try:
            with self._lock, self._open() as db:
                if phone_number in db:
                    del db[phone_number]
        except Exception as exc:
            raise StoreError(f"failed to clear history: {exc}", exc) from exc
