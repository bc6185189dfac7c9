import logging
import re
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from gopos.services.ai_responder import AIResponder
from gopos.services.commands import CommandDispatcher, NoteCommands
from gopos.services.completion import OllamaCompletionService
from gopos.services.errors import ConfigurationError, DeliveryError, RemoteServiceError
from gopos.services.history_store import (
    MAX_HISTORY_MESSAGES,
    HistoryRepository,
    ShelveHistoryRepository,
)
from gopos.services.note_store import JsonNoteRepository, NoteRepository
from gopos.services.observability import EventSink, LoggingEventSink
from gopos.services.outbound import OutboundChannel, build_outbound_channel

AI_FAILURE_MESSAGE = (
    "Mohon maaf, GOPOS AI sedang tidak dapat menjawab. Silakan coba beberapa saat lagi. 🙏"
)


def process_text_for_whatsapp(text: str) -> str:
    """Turn model markdown into WhatsApp formatting."""
    if not text:
        return ""

    text = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL)
    text = re.sub(r"`{3}.*?`{3}", "", text, flags=re.DOTALL)
    text = re.sub(r"^#+\s*", "", text.strip(), flags=re.MULTILINE)

    return re.sub(r"\*\*(.*?)\*\*", r"*\1*", text)


class Bot:
    """Routes one inbound message to the note commands or to GOPOS AI and sends the reply."""

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        responder: AIResponder,
        channel: OutboundChannel,
        *,
        events: EventSink | None = None,
    ):
        self.dispatcher = dispatcher
        self.responder = responder
        self.channel = channel
        self.events = events or LoggingEventSink()

    def reply_for(self, sender: str, message: str) -> str:
        """
        Command reply verbatim when the message is a command, otherwise the AI
        answer converted to WhatsApp formatting.
        Raises RemoteServiceError when the AI cannot answer.
        """
        reply = self.dispatcher.dispatch(sender, message)
        if reply is not None:
            return reply
        return process_text_for_whatsapp(self.responder.respond(sender, message))

    def handle(self, sender: str, message: str) -> Optional[str]:
        message = (message or "").strip()
        if not sender or not message:
            logging.info("Ignoring empty message from %s", sender or "<unknown>")
            return None

        try:
            reply = self.reply_for(sender, message)
        except RemoteServiceError as exc:
            self.events.emit("ai_response_failed", phone=sender, error=str(exc))
            reply = AI_FAILURE_MESSAGE

        try:
            self.channel.send_text(sender, reply)
        except DeliveryError as exc:
            self.events.emit(
                "reply_delivery_failed", phone=sender, channel=self.channel.name, error=str(exc)
            )
        return reply


def build_repositories(config: Mapping[str, Any]) -> Tuple[NoteRepository, HistoryRepository]:
    backend = str(config.get("STORE_BACKEND") or "file").strip().lower()
    if backend == "file":
        data_dir = Path(config.get("DATA_DIR") or ".data")
        return (
            JsonNoteRepository(data_dir / "notes.json"),
            ShelveHistoryRepository(data_dir / "wa_chat_history"),
        )
    if backend == "mongo":
        from gopos.services.mongo_store import (
            MongoHistoryRepository,
            MongoNoteRepository,
            connect_database,
        )

        db = connect_database(
            config.get("MONGO_URL") or "mongodb://localhost:27017",
            config.get("MONGO_DB") or "gopos",
        )
        return MongoNoteRepository.from_database(db), MongoHistoryRepository.from_database(db)
    raise ConfigurationError(f"unknown store backend: {backend}")


def build_bot(config: Mapping[str, Any], *, events: EventSink | None = None) -> Bot:
    events = events or LoggingEventSink()
    notes, history = build_repositories(config)
    completion = OllamaCompletionService(
        config.get("OLLAMA_MODEL") or "llama3.1:latest",
        host=config.get("OLLAMA_HOST"),
        temperature=config.get("OLLAMA_TEMPERATURE", 0.7),
        top_k=config.get("OLLAMA_TOP_K", 40),
        top_p=config.get("OLLAMA_TOP_P", 0.95),
        num_predict=config.get("OLLAMA_NUM_PREDICT", 1024),
    )
    responder = AIResponder(
        completion,
        history,
        events=events,
        max_messages=config.get("HISTORY_MAX_MESSAGES", MAX_HISTORY_MESSAGES),
    )
    dispatcher = CommandDispatcher(NoteCommands(notes, events=events))
    channel = build_outbound_channel(config)
    logging.info(
        "GOPOS bot ready (provider=%s, store=%s)",
        channel.name,
        config.get("STORE_BACKEND") or "file",
    )
    return Bot(dispatcher, responder, channel, events=events)
