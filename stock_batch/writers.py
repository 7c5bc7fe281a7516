"""
Count writers -- how the batcher persists one counted quantity.

Contract:
    ``write(campaign_id, item_id, counted_qty)`` stores the value on the
    server or raises.  ``counted_qty`` is an int >= 0 or None (unset).
    A writer never retries; a failed item stays dirty in the batcher and
    is retried on the next flush cycle.

Implementations:
    - ServiceCountWriter: in-process, one transaction per write through
      ``CampaignService.record_count``.
    - HttpCountWriter: ``PUT /stock/campaigns/{id}/items/{itemId}`` with
      body ``{"countedQty": int | null}`` and an explicit timeout.

Failure modes:
    - PersistenceTimeoutError: the write did not complete in time.
    - CountWriteError: the server rejected the write or was unreachable.
    - CampaignError subclasses propagate from ServiceCountWriter unchanged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable
from uuid import UUID

import requests
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from stock_kernel.db.engine import session_scope
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import CountWriteError, PersistenceTimeoutError
from stock_kernel.logging_config import get_logger
from stock_kernel.services.audit_ledger import AuditLedger
from stock_kernel.services.campaign_service import CampaignService
from stock_kernel.utils.keyring import SigningKeyProvider

logger = get_logger("batch.writers")


class CountWriter(ABC):
    @abstractmethod
    def write(self, campaign_id: str, item_id: str, counted_qty: int | None) -> None:
        """Persist one counted quantity or raise."""


class ServiceCountWriter(CountWriter):
    """Writes through the campaign service, one committed transaction per item."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        key_provider: SigningKeyProvider,
        actor_id: UUID,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._key_provider = key_provider
        self._actor_id = actor_id
        self._clock = clock or SystemClock()

    def write(self, campaign_id: str, item_id: str, counted_qty: int | None) -> None:
        try:
            with session_scope(self._session_factory) as session:
                auditor = AuditLedger(session, self._key_provider, self._clock)
                campaigns = CampaignService(session, auditor, self._clock)
                campaigns.record_count(
                    UUID(str(campaign_id)),
                    UUID(str(item_id)),
                    counted_qty,
                    self._actor_id,
                )
        except OperationalError as exc:
            # SQLite "database is locked" and dropped PostgreSQL connections
            raise CountWriteError(str(campaign_id), str(item_id), str(exc.orig)) from exc


class HttpCountWriter(CountWriter):
    """
    Writes through the stock REST API.

    A ``requests.Session`` is shared across threads for connection reuse;
    callers that need per-request auth pass ``headers``.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        headers: dict[str, str] | None = None,
        http: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if headers:
            self._headers.update(headers)
        self._http = http or requests.Session()

    def url_for(self, campaign_id: str, item_id: str) -> str:
        return f"{self.base_url}/stock/campaigns/{campaign_id}/items/{item_id}"

    def write(self, campaign_id: str, item_id: str, counted_qty: int | None) -> None:
        url = self.url_for(campaign_id, item_id)
        try:
            response = self._http.put(
                url,
                json={"countedQty": counted_qty},
                headers=self._headers,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as exc:
            raise PersistenceTimeoutError(
                str(campaign_id), str(item_id), self.timeout_seconds
            ) from exc
        except requests.exceptions.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            logger.warning(
                "count_write_rejected",
                extra={
                    "campaign_id": str(campaign_id),
                    "stock_item_id": str(item_id),
                    "status_code": status_code,
                },
            )
            raise CountWriteError(
                str(campaign_id), str(item_id), f"HTTP {status_code}", status_code
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise CountWriteError(str(campaign_id), str(item_id), str(exc)) from exc
