"""
LocalCountStore -- durable client-side buffer for unsaved counts.

Contract:
    Holds the dirty map of one campaign (stock item id -> raw string as the
    operator typed it) so that a reload or crash resumes exactly where the
    operator left off.  The batcher saves the whole map after every change;
    a store never interprets the raw values.

Implementations:
    - InMemoryCountStore: process-local, for tests and embedded use.
    - JsonFileCountStore: one JSON file per campaign, written to a temporary
      file in the same directory and renamed over the target so a reader
      never sees a half-written map.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from stock_kernel.logging_config import get_logger

logger = get_logger("batch.local_store")


class LocalCountStore(ABC):
    """Durable dirty-map storage keyed by campaign id."""

    @abstractmethod
    def load(self, campaign_id: str) -> dict[str, str]:
        """Return the saved dirty map, or an empty dict."""

    @abstractmethod
    def save(self, campaign_id: str, entries: dict[str, str]) -> None:
        """Replace the saved dirty map."""

    @abstractmethod
    def clear(self, campaign_id: str) -> None:
        """Forget everything saved for the campaign."""


class InMemoryCountStore(LocalCountStore):

    def __init__(self) -> None:
        self._maps: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def load(self, campaign_id: str) -> dict[str, str]:
        with self._lock:
            return dict(self._maps.get(str(campaign_id), {}))

    def save(self, campaign_id: str, entries: dict[str, str]) -> None:
        with self._lock:
            if entries:
                self._maps[str(campaign_id)] = dict(entries)
            else:
                self._maps.pop(str(campaign_id), None)

    def clear(self, campaign_id: str) -> None:
        with self._lock:
            self._maps.pop(str(campaign_id), None)


class JsonFileCountStore(LocalCountStore):
    """
    One ``campaign_<id>_counts.json`` file per campaign under ``directory``.

    A file that cannot be decoded is treated as empty and logged; the
    server copy is then the only copy, which is the state a fresh device
    would start from anyway.
    """

    def __init__(self, directory: Path | str):
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def path_for(self, campaign_id: str) -> Path:
        return self._directory / f"campaign_{campaign_id}_counts.json"

    def load(self, campaign_id: str) -> dict[str, str]:
        path = self.path_for(campaign_id)
        with self._lock:
            if not path.exists():
                return {}
            try:
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
            except json.JSONDecodeError:
                logger.warning(
                    "local_count_store_corrupt",
                    extra={"campaign_id": str(campaign_id), "path": str(path)},
                )
                return {}

        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def save(self, campaign_id: str, entries: dict[str, str]) -> None:
        path = self.path_for(campaign_id)
        with self._lock:
            if not entries:
                path.unlink(missing_ok=True)
                return

            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=self._directory
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(entries, f, sort_keys=True)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

    def clear(self, campaign_id: str) -> None:
        with self._lock:
            self.path_for(campaign_id).unlink(missing_ok=True)
