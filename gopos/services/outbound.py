import logging
import re
from typing import Any, Dict

import requests

from gopos.services.errors import ConfigurationError, DeliveryError

DEFAULT_FONNTE_API_URL = "https://api.fonnte.com/send"
DEFAULT_WAHA_BASE_URL = "http://localhost:3000"
REQUEST_TIMEOUT_SECONDS = 10


def log_http_response(response):
    logging.info(
        "Status: %s | Content-type: %s",
        response.status_code,
        response.headers.get("content-type"),
    )
    logging.debug("Body: %s", response.text)


def normalize_chat_id(raw: str) -> str:
    """
    Convert user-provided ids/numbers to WAHA chatId format.
    - Keep existing ids with '@' untouched.
    - Numbers become '<number>@c.us'.
    - Strings containing '-' (typical group id) become '<id>@g.us'.
    """
    chat_id = (raw or "").strip()
    if not chat_id:
        return ""
    if "@" in chat_id:
        return chat_id
    if "-" in chat_id:
        return f"{chat_id}@g.us"
    digits = re.sub(r"\D", "", chat_id)
    return f"{digits or chat_id}@c.us"


class OutboundChannel:
    """Delivers a text reply to a WhatsApp user or group."""

    name = "base"

    def send_text(self, recipient: str, text: str) -> None:
        raise NotImplementedError


class WahaChannel(OutboundChannel):
    """WAHA (WhatsApp HTTP API) sendText endpoint."""

    name = "waha"

    def __init__(
        self,
        base_url: str = DEFAULT_WAHA_BASE_URL,
        *,
        api_key: str | None = None,
        session: str = "default",
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.base_url = (base_url or DEFAULT_WAHA_BASE_URL).rstrip("/")
        self.api_key = api_key
        self.session = session or "default"
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-type": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        return headers

    def text_payload(self, recipient: str, text: str) -> Dict[str, Any]:
        return {
            "session": self.session,
            "chatId": normalize_chat_id(recipient),
            "text": text or "",
        }

    def send_text(self, recipient: str, text: str) -> None:
        url = f"{self.base_url}/api/sendText"
        try:
            response = requests.post(
                url,
                json=self.text_payload(recipient, text),
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.Timeout as exc:
            logging.error("Timeout occurred while sending message")
            raise DeliveryError("WAHA request timed out", exc) from exc
        except requests.HTTPError as http_err:
            status_code = (
                http_err.response.status_code if http_err.response is not None else 500
            )
            error_body = http_err.response.text if http_err.response is not None else ""
            logging.error(
                "WAHA request failed with status %s. Response body: %s",
                status_code,
                error_body,
            )
            raise DeliveryError(
                f"WAHA request failed with status {status_code}", http_err
            ) from http_err
        except requests.RequestException as exc:
            logging.error("Request failed due to: %s", exc)
            raise DeliveryError(f"WAHA request failed: {exc}", exc) from exc
        log_http_response(response)


class FonnteChannel(OutboundChannel):
    """
    Fonnte gateway. The API takes form-urlencoded fields, not JSON.
    See https://docs.fonnte.com/mengirim-pesan-api/
    """

    name = "fonnte"

    def __init__(
        self,
        token: str | None,
        *,
        api_url: str = DEFAULT_FONNTE_API_URL,
        country_code: str = "62",
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.token = token
        self.api_url = api_url or DEFAULT_FONNTE_API_URL
        self.country_code = country_code
        self.timeout = timeout

    def send_text(self, recipient: str, text: str) -> None:
        if not self.token:
            raise DeliveryError("FONNTE_TOKEN not set")

        if "@g.us" in recipient:
            logging.info("Sending to group %s", recipient)

        form_data = {
            "target": recipient,
            "message": text,
            "countryCode": self.country_code,
        }
        try:
            response = requests.post(
                self.api_url,
                data=form_data,
                headers={"Authorization": self.token},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.HTTPError as http_err:
            status_code = (
                http_err.response.status_code if http_err.response is not None else 500
            )
            raise DeliveryError(
                f"Fonnte request failed with status {status_code}", http_err
            ) from http_err
        except requests.RequestException as exc:
            logging.error("Request failed due to: %s", exc)
            raise DeliveryError(f"Fonnte request failed: {exc}", exc) from exc

        logging.debug("Fonnte response (status=%s): %s", response.status_code, response.text)
        try:
            body = response.json()
        except ValueError:
            # Fonnte sometimes answers with plain text even when the message went out.
            logging.warning("Fonnte response is not JSON: %s", response.text)
            return

        if isinstance(body, dict) and not body.get("status", False):
            detail = body.get("detail") or ""
            reason = body.get("reason") or ""
            raise DeliveryError(f"fonnte error: {detail} (reason: {reason})")

        logging.info("Fonnte sent to %s: %s", recipient, (text or "")[:50])


def build_outbound_channel(config) -> OutboundChannel:
    """Pick the gateway named by WA_PROVIDER."""
    provider = str(config.get("WA_PROVIDER") or "waha").strip().lower()
    if provider == "waha":
        return WahaChannel(
            config.get("WAHA_BASE_URL") or DEFAULT_WAHA_BASE_URL,
            api_key=config.get("WAHA_API_KEY"),
            session=config.get("WAHA_SESSION") or "default",
        )
    if provider == "fonnte":
        return FonnteChannel(
            config.get("FONNTE_TOKEN"),
            api_url=config.get("FONNTE_API_URL") or DEFAULT_FONNTE_API_URL,
        )
    raise ConfigurationError(f"unknown WA provider: {provider}")
