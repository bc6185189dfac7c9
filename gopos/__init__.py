from flask import Flask

from gopos.config import configure_logging, load_configurations
from gopos.services.bot import Bot, build_bot
from gopos.services.whatsapp_queue import WhatsAppWorkerPool


def create_app(url_prefix: str = "", bot: Bot | None = None, config: dict | None = None):
    app = Flask(__name__)

    load_configurations(app)
    if config:
        app.config.update(config)
    configure_logging()

    from .views import webhook_blueprint
    from gopos.services.history_admin import history_blueprint
    from gopos.utils.whatsapp_utils import process_whatsapp_message

    app.register_blueprint(webhook_blueprint)
    app.register_blueprint(history_blueprint, url_prefix=url_prefix)

    app.extensions["gopos_bot"] = bot or build_bot(app.config)

    workers = WhatsAppWorkerPool(
        app,
        process_whatsapp_message,
        inline=bool(app.config.get("WHATSAPP_INLINE")),
    )
    workers.start(app.config.get("WHATSAPP_WORKERS", 1))
    app.extensions["gopos_workers"] = workers

    return app
