"""
DirtyCountBatcher -- write-ahead buffer for blind-count edits.

Contract:
    Operators edit counted quantities item by item.  Every edit lands in an
    in-memory dirty map and, synchronously, in a durable LocalCountStore.
    ``flush()`` persists the dirty map to the server in bounded chunks that
    run concurrently.  Delivery is at-least-once and last-write-wins per item.

Flush triggers:
    - a fixed interval (AutoFlushScheduler, default 10s);
    - ``on_visibility_hidden()``: the operator switched away;
    - ``before_transition()``: the operator is about to close, suspend or
      cancel the campaign.

Invariants enforced:
    - The raw string is buffered as typed: "" (explicitly cleared) and "0"
      are different edits.  Parsing to int | None happens at write time.
    - Edits to the same item coalesce; only the latest value is written.
    - No two writes for the same item are ever in flight.  A flush skips
      items an earlier, still running flush is writing.
    - An item leaves the dirty map only if the value just written is still
      its latest value (generation check).  A newer edit made while the
      write was in flight stays dirty and is written next cycle.
    - Failed writes, including PersistenceTimeoutError, stay dirty.
    - Constructing a batcher for a campaign resumes the stored dirty map.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from stock_kernel.domain.counts import parse_counted_qty
from stock_kernel.exceptions import StockKernelError
from stock_kernel.logging_config import get_logger

from stock_batch.local_store import LocalCountStore
from stock_batch.writers import CountWriter

logger = get_logger("batch.count_batcher")

DEFAULT_CHUNK_SIZE = 50
DEFAULT_MAX_WORKERS = 4


@dataclass
class FlushResult:
    """What one flush cycle did."""

    written: list[str] = field(default_factory=list)
    superseded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped_in_flight: list[str] = field(default_factory=list)
    remaining: int = 0

    @property
    def attempted(self) -> int:
        return len(self.written) + len(self.superseded) + len(self.failed)

    @property
    def is_clean(self) -> bool:
        return self.remaining == 0


@dataclass(frozen=True)
class _PendingWrite:
    item_id: str
    raw_value: str
    generation: int


class DirtyCountBatcher:
    """
    Client-side accumulator of count edits for one campaign.

    Thread-safe: edits may arrive while a flush is running.
    """

    def __init__(
        self,
        campaign_id: str,
        writer: CountWriter,
        store: LocalCountStore,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {max_workers}")

        self.campaign_id = str(campaign_id)
        self._writer = writer
        self._store = store
        self._chunk_size = chunk_size
        self._max_workers = max_workers
        self._lock = threading.Lock()
        self._in_flight: set[str] = set()
        self._generations: dict[str, int] = {}
        self._dirty: dict[str, str] = store.load(self.campaign_id)

        if self._dirty:
            logger.info(
                "count_batcher_resumed",
                extra={"campaign_id": self.campaign_id, "pending": len(self._dirty)},
            )

    # -------------------------------------------------------------------------
    # Edits
    # -------------------------------------------------------------------------

    def record_edit(self, item_id, raw_value: str | None) -> None:
        """Buffer the latest raw value typed for an item."""
        key = str(item_id)
        value = "" if raw_value is None else str(raw_value)
        with self._lock:
            self._dirty[key] = value
            self._generations[key] = self._generations.get(key, 0) + 1
            self._store.save(self.campaign_id, self._dirty)

    def dirty_items(self) -> dict[str, str]:
        with self._lock:
            return dict(self._dirty)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._dirty)

    def has_pending(self) -> bool:
        return self.pending_count > 0

    def discard(self) -> None:
        """Drop all local state, e.g. once the campaign has been validated."""
        with self._lock:
            self._dirty.clear()
            self._generations.clear()
            self._store.clear(self.campaign_id)
        logger.info("count_batcher_discarded", extra={"campaign_id": self.campaign_id})

    # -------------------------------------------------------------------------
    # Flush
    # -------------------------------------------------------------------------

    def _claim(self) -> tuple[list[_PendingWrite], list[str]]:
        with self._lock:
            claimed: list[_PendingWrite] = []
            skipped: list[str] = []
            for item_id, raw in self._dirty.items():
                if item_id in self._in_flight:
                    skipped.append(item_id)
                    continue
                claimed.append(
                    _PendingWrite(item_id, raw, self._generations.get(item_id, 0))
                )
            self._in_flight.update(p.item_id for p in claimed)
        return claimed, skipped

    def _settle(self, pending: _PendingWrite) -> bool:
        """Remove a written item unless a newer edit arrived meanwhile."""
        with self._lock:
            self._in_flight.discard(pending.item_id)
            if self._generations.get(pending.item_id, 0) != pending.generation:
                return False
            self._dirty.pop(pending.item_id, None)
            self._generations.pop(pending.item_id, None)
            self._store.save(self.campaign_id, self._dirty)
            return True

    def _release(self, item_id: str) -> None:
        with self._lock:
            self._in_flight.discard(item_id)

    def _persist_chunk(self, chunk: list[_PendingWrite]) -> FlushResult:
        result = FlushResult()
        settled = 0
        try:
            for pending in chunk:
                try:
                    self._writer.write(
                        self.campaign_id,
                        pending.item_id,
                        parse_counted_qty(pending.raw_value),
                    )
                except StockKernelError as exc:
                    self._release(pending.item_id)
                    settled += 1
                    result.failed[pending.item_id] = exc.code
                    logger.warning(
                        "count_write_failed",
                        extra={
                            "campaign_id": self.campaign_id,
                            "stock_item_id": pending.item_id,
                            "error_code": exc.code,
                        },
                    )
                    continue

                if self._settle(pending):
                    result.written.append(pending.item_id)
                else:
                    result.superseded.append(pending.item_id)
                settled += 1
        finally:
            # Items not reached stay dirty but must be claimable again
            for pending in chunk[settled:]:
                self._release(pending.item_id)
        return result

    def flush(self) -> FlushResult:
        """
        Persist every dirty item not already in flight.

        Chunks of ``chunk_size`` items run concurrently; items within a
        chunk are written in order.  Unexpected writer errors propagate;
        every item the failing chunk had not finished is released first and
        stays dirty for the next flush.
        """
        claimed, skipped = self._claim()
        result = FlushResult(skipped_in_flight=skipped)

        if claimed:
            chunks = [
                claimed[i:i + self._chunk_size]
                for i in range(0, len(claimed), self._chunk_size)
            ]
            workers = min(self._max_workers, len(chunks))
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="count-flush"
            ) as pool:
                futures = [pool.submit(self._persist_chunk, chunk) for chunk in chunks]
                for future in futures:
                    partial = future.result()
                    result.written.extend(partial.written)
                    result.superseded.extend(partial.superseded)
                    result.failed.update(partial.failed)

        result.remaining = self.pending_count
        if claimed:
            logger.info(
                "count_batch_flushed",
                extra={
                    "campaign_id": self.campaign_id,
                    "chunks": len(chunks),
                    "written": len(result.written),
                    "failed": len(result.failed),
                    "superseded": len(result.superseded),
                    "remaining": result.remaining,
                },
            )
        return result

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    def on_visibility_hidden(self) -> FlushResult:
        return self.flush()

    def before_transition(self) -> bool:
        """
        Flush ahead of a campaign transition.

        Returns True when something is still dirty, i.e. the caller should
        not close the campaign yet.
        """
        self.flush()
        return self.has_pending()
