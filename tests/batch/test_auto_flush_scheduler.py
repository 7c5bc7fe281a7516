"""
Tests for stock_batch.scheduler -- AutoFlushScheduler.

Validates tick() delegation and error containment, the start/stop
lifecycle, and the final flush on shutdown.
"""

import threading

import pytest

from stock_batch.count_batcher import DirtyCountBatcher
from stock_batch.local_store import InMemoryCountStore
from stock_batch.scheduler import AutoFlushScheduler
from stock_batch.writers import CountWriter


class CollectingWriter(CountWriter):

    def __init__(self):
        self.calls = []
        self.written = threading.Event()

    def write(self, campaign_id, item_id, counted_qty):
        self.calls.append((item_id, counted_qty))
        self.written.set()


class ExplodingWriter(CountWriter):
    def write(self, campaign_id, item_id, counted_qty):
        raise RuntimeError("boom")


@pytest.fixture
def writer():
    return CollectingWriter()


@pytest.fixture
def batcher(writer):
    return DirtyCountBatcher("c1", writer, InMemoryCountStore())


class TestTick:

    def test_tick_flushes(self, batcher, writer):
        batcher.record_edit("i1", "3")

        result = AutoFlushScheduler(batcher).tick()

        assert result.written == ["i1"]
        assert writer.calls == [("i1", 3)]

    def test_tick_contains_unexpected_errors(self, captured_logs):
        batcher = DirtyCountBatcher("c1", ExplodingWriter(), InMemoryCountStore())
        batcher.record_edit("i1", "3")

        assert AutoFlushScheduler(batcher).tick() is None

        failed = [r for r in captured_logs() if r["message"] == "auto_flush_failed"]
        assert failed[0]["exc_type"] == "RuntimeError"
        assert batcher.has_pending()


class TestLifecycle:

    def test_background_loop_flushes_on_interval(self, batcher, writer):
        scheduler = AutoFlushScheduler(batcher, interval_seconds=0.05)
        scheduler.start()
        try:
            assert scheduler.is_running
            batcher.record_edit("i1", "5")
            assert writer.written.wait(timeout=5)
        finally:
            scheduler.stop(timeout=5)

        assert not scheduler.is_running
        assert writer.calls == [("i1", 5)]

    def test_stop_performs_final_flush(self, batcher, writer):
        scheduler = AutoFlushScheduler(batcher, interval_seconds=3600)
        scheduler.start()
        batcher.record_edit("i1", "7")

        scheduler.stop(timeout=5)

        assert writer.calls == [("i1", 7)]
        assert not batcher.has_pending()

    def test_stop_without_final_flush(self, batcher, writer):
        scheduler = AutoFlushScheduler(batcher, interval_seconds=3600)
        scheduler.start()
        batcher.record_edit("i1", "7")

        scheduler.stop(timeout=5, final_flush=False)

        assert writer.calls == []
        assert batcher.has_pending()

    def test_start_is_idempotent(self, batcher):
        scheduler = AutoFlushScheduler(batcher, interval_seconds=3600)
        scheduler.start()
        first = scheduler._thread
        scheduler.start()

        assert scheduler._thread is first
        scheduler.stop(timeout=5)

    @pytest.mark.parametrize("interval", [0, -1])
    def test_interval_must_be_positive(self, batcher, interval):
        with pytest.raises(ValueError):
            AutoFlushScheduler(batcher, interval_seconds=interval)
