import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Any, Dict

from flask import current_app

_SEEN_MESSAGE_IDS: "OrderedDict[str, float]" = OrderedDict()
_SEEN_MESSAGE_IDS_LOCK = Lock()
_MAX_SEEN_MESSAGE_IDS = 2000
_SEEN_MESSAGE_TTL_SECONDS = 300.0

WAHA_MESSAGE_EVENTS = {"message", "message.any"}
PERSONAL_CHAT_SUFFIXES = ("@c.us", "@s.whatsapp.net")


@dataclass(frozen=True)
class IncomingMessage:
    sender: str
    body: str
    message_id: str = ""
    from_me: bool = False
    has_media: bool = False


def _is_duplicate_message_id(message_id: str) -> bool:
    if not message_id:
        return False
    now = time.time()
    cutoff = now - _SEEN_MESSAGE_TTL_SECONDS
    with _SEEN_MESSAGE_IDS_LOCK:
        while _SEEN_MESSAGE_IDS:
            first_id, ts = next(iter(_SEEN_MESSAGE_IDS.items()))
            if ts >= cutoff:
                break
            _SEEN_MESSAGE_IDS.popitem(last=False)
        if message_id in _SEEN_MESSAGE_IDS:
            _SEEN_MESSAGE_IDS.move_to_end(message_id)
            _SEEN_MESSAGE_IDS[message_id] = now
            return True
        _SEEN_MESSAGE_IDS[message_id] = now
        if len(_SEEN_MESSAGE_IDS) > _MAX_SEEN_MESSAGE_IDS:
            _SEEN_MESSAGE_IDS.popitem(last=False)
    return False


def reset_seen_message_ids() -> None:
    with _SEEN_MESSAGE_IDS_LOCK:
        _SEEN_MESSAGE_IDS.clear()


def normalize_wa_id(raw: str) -> str:
    """
    Normalize WhatsApp id for storage (strip domain if present, keep digits/hyphen).
    """
    value = (raw or "").strip()
    if not value:
        return ""
    if "@" in value:
        return value.split("@", 1)[0]
    return value


def sender_key(raw: str) -> str:
    """
    Key used for notes and history. Personal chats drop the WAHA domain so the
    same number works across gateways; group ids keep theirs.
    """
    value = (raw or "").strip()
    if value.endswith(PERSONAL_CHAT_SUFFIXES):
        return normalize_wa_id(value)
    return value


def _is_waha_event(body: Dict[str, Any]) -> bool:
    return isinstance(body.get("payload"), dict)


def _is_fonnte_callback(body: Dict[str, Any]) -> bool:
    return "sender" in body and "message" in body


def extract_incoming_message(body: Dict[str, Any]) -> IncomingMessage | None:
    """
    Normalize a WAHA event or a Fonnte callback into an IncomingMessage.
    WAHA:   {"event": "message", "payload": {"from", "body", "id", "fromMe", "hasMedia"}}
    Fonnte: {"sender", "message", "id"?, ...} (JSON or form fields)
    """
    if not isinstance(body, dict):
        return None

    if _is_waha_event(body):
        payload = body["payload"]
        sender = sender_key(str(payload.get("from") or payload.get("author") or ""))
        if not sender:
            return None
        return IncomingMessage(
            sender=sender,
            body=str(payload.get("body") or "").strip(),
            message_id=str(payload.get("id") or "").strip(),
            from_me=bool(payload.get("fromMe")),
            has_media=bool(payload.get("hasMedia")),
        )

    if _is_fonnte_callback(body):
        sender = str(body.get("sender") or "").strip()
        if not sender:
            return None
        return IncomingMessage(
            sender=sender,
            body=str(body.get("message") or "").strip(),
            message_id=str(body.get("id") or body.get("inboxid") or "").strip(),
            has_media=bool(body.get("url")),
        )

    return None


def is_valid_whatsapp_message(body):
    """
    Check if the incoming webhook body is a WAHA message event or a Fonnte callback.
    """
    if not isinstance(body, dict):
        return False
    event = body.get("event")
    if event and event not in WAHA_MESSAGE_EVENTS:
        return False
    return extract_incoming_message(body) is not None


def process_whatsapp_message(body):
    if not is_valid_whatsapp_message(body):
        logging.warning("Invalid WhatsApp webhook payload; skipping processing.")
        return

    incoming = extract_incoming_message(body)
    sender = incoming.sender

    if incoming.from_me:
        logging.info("Skipping self message for %s", sender)
        return

    if _is_duplicate_message_id(incoming.message_id):
        logging.info("Skipping duplicate WhatsApp message %s for %s", incoming.message_id, sender)
        return

    if incoming.has_media and not incoming.body:
        logging.info(
            "Ignoring non-text WhatsApp message with media for %s; no automated reply sent.",
            sender,
        )
        return

    if not incoming.body:
        logging.info(
            "Ignoring unsupported/empty WhatsApp message type for %s; no automated reply sent.",
            sender,
        )
        return

    logging.info("Processing WhatsApp message from %s", sender)
    bot = current_app.extensions["gopos_bot"]
    bot.handle(sender, incoming.body)
