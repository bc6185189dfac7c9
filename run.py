import logging
import os

from gopos import create_app

if __name__ == "__main__":
    app = create_app()
    logging.info("GOPOS WhatsApp bot started")
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    app.run(host=host, port=port)
