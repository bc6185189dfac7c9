import logging

from flask import Blueprint, current_app, request, jsonify
from werkzeug.exceptions import BadRequest, UnsupportedMediaType

from .utils.whatsapp_utils import (
    process_whatsapp_message,
    is_valid_whatsapp_message,
)

webhook_blueprint = Blueprint("webhook", __name__)


def _read_webhook_body():
    # Fonnte can post form fields; WAHA always posts JSON.
    if request.form:
        return request.form.to_dict()
    return request.get_json()


def handle_message():
    """
    Handle incoming WAHA events or Fonnte callbacks and enqueue them for processing.
    """
    try:
        body = _read_webhook_body()
    except (BadRequest, UnsupportedMediaType):
        logging.error("Failed to parse JSON payload", exc_info=True)
        return jsonify({"status": "error", "message": "Invalid JSON provided"}), 400

    if not isinstance(body, dict):
        logging.error("Invalid JSON payload: expected JSON object")
        return jsonify({"status": "error", "message": "Invalid JSON provided"}), 400

    if not is_valid_whatsapp_message(body):
        return (
            jsonify({"status": "error", "message": "Not a WhatsApp API event"}),
            404,
        )

    _enqueue_whatsapp_processing(body)
    return jsonify({"status": "ok"}), 200


def _enqueue_whatsapp_processing(body):
    workers = current_app.extensions["gopos_workers"]
    try:
        workers.submit(body)
    except Exception:
        logging.exception("Failed to enqueue WhatsApp payload; processing immediately.")
        process_whatsapp_message(body)


@webhook_blueprint.route("/webhook", methods=["POST"])
def webhook_post():
    return handle_message()
