import logging

from flask import Blueprint, current_app, jsonify

from gopos.services.errors import StoreError
from gopos.utils.whatsapp_utils import sender_key

history_blueprint = Blueprint("conversation_history", __name__)


def _responder():
    return current_app.extensions["gopos_bot"].responder


@history_blueprint.route("/history/<phone>", methods=["GET"])
def history_feed(phone: str):
    phone = sender_key(phone)
    if not phone:
        return jsonify({"error": "WhatsApp number is required."}), 400
    try:
        history = _responder().get_history(phone)
    except StoreError as exc:
        logging.warning("Unable to load history for %s: %s", phone, exc)
        return jsonify({"error": "Unable to load history."}), 500

    messages = [turn.to_dict() for turn in history.turns] if history else []
    return jsonify(
        {
            "phone_number": phone,
            "messages": messages,
            "updated_at": history.updated_at.isoformat(timespec="seconds") if history else None,
            "message_count": len(messages),
        }
    )


@history_blueprint.route("/history/<phone>", methods=["DELETE"])
def clear_history(phone: str):
    phone = sender_key(phone)
    if not phone:
        return jsonify({"error": "WhatsApp number is required."}), 400
    try:
        _responder().clear_history(phone)
    except StoreError as exc:
        logging.warning("Failed to clear history for %s: %s", phone, exc)
        return jsonify({"status": "error", "message": "Failed to clear history."}), 500
    logging.info("Conversation history cleared for %s", phone)
    return jsonify({"status": "ok", "phone_number": phone})
