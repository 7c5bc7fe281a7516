"""
AutoFlushScheduler -- interval trigger for a DirtyCountBatcher.

Contract:
    ``tick()`` flushes once and never raises; ``start()`` / ``stop()`` run
    ticks on a background thread every ``interval_seconds``.  ``stop()``
    performs a final flush so nothing typed before shutdown is left only
    in the local store.
"""

from __future__ import annotations

import threading

from stock_kernel.logging_config import get_logger

from stock_batch.count_batcher import DirtyCountBatcher, FlushResult

logger = get_logger("batch.scheduler")

DEFAULT_FLUSH_INTERVAL_SECONDS = 10.0


class AutoFlushScheduler:

    def __init__(
        self,
        batcher: DirtyCountBatcher,
        interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._batcher = batcher
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def tick(self) -> FlushResult | None:
        """Flush once (public for testing).  Returns None if the flush failed."""
        try:
            return self._batcher.flush()
        except Exception:
            logger.exception(
                "auto_flush_failed",
                extra={"campaign_id": self._batcher.campaign_id},
            )
            return None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name=f"count-autoflush-{self._batcher.campaign_id}",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "auto_flush_started",
            extra={"campaign_id": self._batcher.campaign_id, "interval": self._interval},
        )

    def stop(self, timeout: float = 30.0, final_flush: bool = True) -> None:
        """Signal stop, wait for the loop to exit, then flush once more."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        if final_flush:
            self.tick()
        logger.info("auto_flush_stopped", extra={"campaign_id": self._batcher.campaign_id})

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        # wait first: edits made right after start() get a full interval to coalesce
        while not self._stop_event.wait(timeout=self._interval):
            self.tick()
