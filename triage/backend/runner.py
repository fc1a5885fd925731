"""Background runner that moves the processing engine's clock forward."""

import logging
import threading

import schedule

from . import config
from .queue_engine import ProcessingScheduler

logger = logging.getLogger(__name__)


class QueueRunner:
    """Pumps ``engine.advance()`` every ``poll_seconds`` on a daemon thread."""

    def __init__(self, engine: ProcessingScheduler, poll_seconds: float = config.RUNNER_POLL_SECONDS):
        self.engine = engine
        self.poll_seconds = poll_seconds
        self.jobs = schedule.Scheduler()
        self.jobs.every(poll_seconds).seconds.do(self.pump)
        self.running = False
        self.thread = None
        self._stop_event = threading.Event()

    def start(self):
        """Start the runner in a background thread."""
        if self.running:
            logger.warning("Queue runner is already running")
            return

        self.running = True
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._run, name="queue-runner", daemon=True)
        self.thread.start()
        logger.info("Queue runner started (poll: %ss)", self.poll_seconds)

    def stop(self):
        """Stop the runner."""
        if not self.running:
            return

        self.running = False
        self._stop_event.set()
        if self.thread:
            self.thread.join(timeout=10)
        logger.info("Queue runner stopped")

    def pump(self) -> int:
        """Fire whatever engine events are due right now."""
        try:
            return self.engine.advance()
        except Exception:
            logger.exception("Queue runner pump failed")
            return 0

    def _run(self):
        """Main runner loop."""
        logger.info("Queue runner thread started")

        while not self._stop_event.is_set():
            self.jobs.run_pending()
            self._stop_event.wait(self.poll_seconds / 2)

        logger.info("Queue runner thread stopped")
