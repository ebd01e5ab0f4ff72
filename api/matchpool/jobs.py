import logging
import threading
from datetime import datetime, timezone

from .config import ROUND_TICK_SECONDS
from .services.rounds import RoundOutcome, RoundScheduler

logger = logging.getLogger(__name__)


class PoolMatcherJob:
    """Calls ``RoundScheduler.run_due_rounds`` on a fixed tick from a daemon thread."""

    def __init__(self, scheduler: RoundScheduler, interval_seconds: float = ROUND_TICK_SECONDS) -> None:
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds if interval_seconds > 0 else 3600
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, name="pool-matcher", daemon=True)
            self._thread.start()
        logger.info("[JOBS] pool matcher started (interval=%ss)", self.interval_seconds)

    def stop(self, timeout: float | None = 10.0) -> None:
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop.set()
            self._thread = None
        thread.join(timeout=timeout)
        logger.info("[JOBS] pool matcher stopped")

    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def run_once(self, now: datetime | None = None) -> list[RoundOutcome]:
        outcomes = self.scheduler.run_due_rounds(now or datetime.now(timezone.utc))
        for outcome in outcomes:
            logger.info(
                "[JOBS] pool_id=%s round=%s status=%s matches=%d skipped=%d",
                outcome.pool_id,
                outcome.round,
                outcome.status,
                outcome.match_count,
                len(outcome.skipped_members),
            )
        return outcomes

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                # the next tick is the retry
                logger.exception("[JOBS] pool matcher tick failed")
            self._stop.wait(self.interval_seconds)
