from typing import Dict, List, Optional

from gopos.services.completion import CompletionService, persona_messages
from gopos.services.errors import RemoteServiceError, StoreError
from gopos.services.history_store import (
    MAX_HISTORY_MESSAGES,
    ROLE_ASSISTANT,
    ROLE_USER,
    ChatTurn,
    ConversationHistory,
    HistoryRepository,
    now_wib,
)
from gopos.services.observability import EventSink, LoggingEventSink


class AIResponder:
    """
    Answers free-form questions with the completion service and remembers the
    last few exchanges per phone number.

    History problems never stop a reply: a failed read means answering without
    context, a failed write means the exchange is not remembered. A failed
    completion raises RemoteServiceError and leaves history untouched.
    """

    def __init__(
        self,
        completion: CompletionService,
        history: HistoryRepository,
        *,
        events: EventSink | None = None,
        max_messages: int = MAX_HISTORY_MESSAGES,
    ):
        if max_messages < 1:
            raise ValueError(f"max_messages must be at least 1, got {max_messages}")
        self.completion = completion
        self.history = history
        self.events = events or LoggingEventSink()
        self.max_messages = max_messages

    def _load_turns(self, phone_number: str) -> Optional[ConversationHistory]:
        try:
            return self.history.get_history(phone_number)
        except StoreError as exc:
            self.events.emit("history_load_failed", phone=phone_number, error=str(exc))
            return None

    def build_messages(self, history: Optional[ConversationHistory], user_message: str) -> List[Dict[str, str]]:
        messages = persona_messages()
        if history is not None:
            messages.extend(turn.to_message() for turn in history.turns)
        messages.append({"role": ROLE_USER, "content": user_message})
        return messages

    def respond(self, phone_number: str, user_message: str) -> str:
        history = self._load_turns(phone_number)
        messages = self.build_messages(history, user_message)

        try:
            reply = self.completion.complete(messages)
        except RemoteServiceError:
            raise
        except Exception as exc:
            raise RemoteServiceError(f"completion error: {exc}", exc) from exc
        if not reply:
            raise RemoteServiceError("no response generated")

        self._remember(phone_number, history, user_message, reply)
        return reply

    def _remember(
        self,
        phone_number: str,
        history: Optional[ConversationHistory],
        user_message: str,
        reply: str,
    ) -> None:
        if history is None:
            history = ConversationHistory(phone_number=phone_number)
        now = now_wib()
        history.append(
            [
                ChatTurn(role=ROLE_USER, content=user_message, timestamp=now),
                ChatTurn(role=ROLE_ASSISTANT, content=reply, timestamp=now),
            ],
            limit=self.max_messages,
        )
        try:
            self.history.upsert_history(history)
        except StoreError as exc:
            self.events.emit("history_save_failed", phone=phone_number, error=str(exc))

    def get_history(self, phone_number: str) -> Optional[ConversationHistory]:
        return self.history.get_history(phone_number)

    def clear_history(self, phone_number: str) -> None:
        self.history.delete_history(phone_number)
