import sys
import os
from pathlib import Path

from dotenv import load_dotenv
import logging

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name, "").strip()
    try:
        value = int(raw)
    except ValueError:
        value = default
    return max(minimum, value)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw)
    except ValueError:
        return default


def load_configurations(app):
    load_dotenv()

    # Outbound gateway
    app.config["WA_PROVIDER"] = (os.getenv("WA_PROVIDER") or "waha").strip().lower()
    app.config["WAHA_BASE_URL"] = (os.getenv("WAHA_BASE_URL") or "http://localhost:3000/").rstrip(
        "/"
    )
    app.config["WAHA_API_KEY"] = os.getenv("WAHA_API_KEY")
    app.config["WAHA_SESSION"] = os.getenv("WAHA_SESSION") or "default"
    app.config["FONNTE_TOKEN"] = os.getenv("FONNTE_TOKEN") or os.getenv("FONNTETOKEN")
    app.config["FONNTE_API_URL"] = os.getenv("FONNTE_API_URL") or "https://api.fonnte.com/send"

    # Completion service
    app.config["OLLAMA_HOST"] = os.getenv("OLLAMA_HOST") or None
    app.config["OLLAMA_MODEL"] = os.getenv("OLLAMA_MODEL") or "llama3.1:latest"
    app.config["OLLAMA_TEMPERATURE"] = _float_env("OLLAMA_TEMPERATURE", 0.7)
    app.config["OLLAMA_TOP_K"] = _int_env("OLLAMA_TOP_K", 40, minimum=1)
    app.config["OLLAMA_TOP_P"] = _float_env("OLLAMA_TOP_P", 0.95)
    app.config["OLLAMA_NUM_PREDICT"] = _int_env("OLLAMA_NUM_PREDICT", 1024, minimum=1)

    # Persistence
    app.config["STORE_BACKEND"] = (os.getenv("STORE_BACKEND") or "file").strip().lower()
    app.config["DATA_DIR"] = os.getenv("DATA_DIR") or str(PROJECT_ROOT / ".data")
    app.config["MONGO_URL"] = os.getenv("MONGO_URL") or "mongodb://localhost:27017"
    app.config["MONGO_DB"] = os.getenv("MONGO_DB") or "gopos"
    app.config["HISTORY_MAX_MESSAGES"] = _int_env("HISTORY_MAX_MESSAGES", 10, minimum=1)

    app.config["WHATSAPP_WORKERS"] = _int_env("WHATSAPP_WORKERS", 1, minimum=1)
    app.config["WHATSAPP_INLINE"] = os.getenv("WHATSAPP_INLINE", "").strip().lower() in {
        "1",
        "true",
        "yes",
    }


def configure_logging():
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        force=True,
    )
