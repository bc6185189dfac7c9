import logging
from queue import Queue
from threading import Thread
from typing import Any, Callable, Dict, List

Job = Dict[str, Any]


class WhatsAppWorkerPool:
    """
    Daemon threads draining a shared queue of webhook payloads.
    Each job runs inside the Flask app context so handlers can reach the bot
    through `current_app`. With `inline=True` jobs run on the caller's thread.
    """

    def __init__(self, app, handler: Callable[[Job], None], *, inline: bool = False):
        self.app = app
        self.handler = handler
        self.inline = inline
        self._queue: "Queue[Job]" = Queue()
        self._threads: List[Thread] = []

    @property
    def started(self) -> bool:
        return bool(self._threads)

    def start(self, num_workers: int = 1) -> None:
        if self.inline or self.started:
            return

        worker_count = max(1, int(num_workers or 1))
        for idx in range(worker_count):
            thread = Thread(
                target=self._worker_loop,
                daemon=True,
                name=f"whatsapp-worker-{idx + 1}",
            )
            thread.start()
            self._threads.append(thread)
        logging.info("Started %s WhatsApp worker(s).", worker_count)

    def submit(self, payload: Job) -> None:
        if self.inline:
            try:
                self._run(payload)
            except Exception:
                logging.exception("Failed to process WhatsApp message inline")
            return
        self._queue.put(payload)

    def join(self) -> None:
        """Block until every queued job has been processed."""
        self._queue.join()

    def _run(self, payload: Job) -> None:
        with self.app.app_context():
            self.handler(payload)

    def _worker_loop(self) -> None:
        while True:
            payload = self._queue.get()
            try:
                self._run(payload)
            except Exception:
                logging.exception("Failed to process WhatsApp message from queue")
            finally:
                self._queue.task_done()
