"""
Client-side count buffering: the dirty-count batcher, its durable local
store, the writers that persist counts, and the auto-flush scheduler.
"""

from stock_batch.count_batcher import DirtyCountBatcher, FlushResult
from stock_batch.local_store import InMemoryCountStore, JsonFileCountStore, LocalCountStore
from stock_batch.scheduler import AutoFlushScheduler
from stock_batch.writers import CountWriter, HttpCountWriter, ServiceCountWriter

__all__ = [
    "AutoFlushScheduler",
    "CountWriter",
    "DirtyCountBatcher",
    "FlushResult",
    "HttpCountWriter",
    "InMemoryCountStore",
    "JsonFileCountStore",
    "LocalCountStore",
    "ServiceCountWriter",
]
