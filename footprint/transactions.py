# footprint/transactions.py
"""Transaction store on top of PocketBase.

Read side: :meth:`TransactionStore.fetch_transactions` – the month-scoped
query the analysis pipeline runs. Write side: the plain CRUD the HTTP API
exposes. Analysis never writes.
"""
from __future__ import annotations

import datetime as _dt
import logging
from enum import Enum
from typing import Any, List, Mapping, Optional

from footprint.config import get_settings
from footprint.exceptions import TransactionNotFound
from footprint.models import Transaction, month_range
from footprint.pocketbase import AsyncPocketBaseClient, format_pb_datetime, get_async_pb_client

__all__ = ["TransactionStore", "FETCH_LIMIT", "get_transaction_store"]

logger = logging.getLogger(__name__)

FETCH_LIMIT = 500
TIME_FIELD = "createDatetime"


def _utcnow() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


def _to_record(data: Mapping[str, Any]) -> dict[str, Any]:
    """JSON-ready copy of *data*: datetimes as PB literals, enums as values."""
    record: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, _dt.datetime):
            value = format_pb_datetime(value)
        elif isinstance(value, Enum):
            value = value.value
        record[key] = value
    return record


class TransactionStore:
    def __init__(self, client: AsyncPocketBaseClient, *, collection: str = "carbonTransactions") -> None:
        self._client = client
        self.collection = collection

    # ---------------------------------------------------------------- reads
    async def fetch_transactions(self, month: Optional[str] = None) -> List[Transaction]:
        """Newest-first transactions, capped at :data:`FETCH_LIMIT`.

        With *month* (``YYYY-MM``) only records whose ``createDatetime`` falls
        in ``[first day, first day of next month)`` UTC are returned.
        """
        flt = None
        if month:
            start, end = month_range(month)
            flt = (
                f"{TIME_FIELD} >= '{format_pb_datetime(start)}' "
                f"&& {TIME_FIELD} < '{format_pb_datetime(end)}'"
            )
        records = await self._client.list_records(
            self.collection, filter=flt, sort=f"-{TIME_FIELD}", per_page=FETCH_LIMIT
        )
        txns = [Transaction.model_validate(r) for r in records]
        logger.info("Fetched %d transactions for %s", len(txns), month or "all months")
        return txns

    async def list_transactions(self) -> List[Transaction]:
        return await self.fetch_transactions(None)

    async def get_transaction(self, txn_id: str) -> Optional[Transaction]:
        record = await self._client.get_record(self.collection, txn_id)
        return None if record is None else Transaction.model_validate(record)

    # --------------------------------------------------------------- writes
    async def create_transaction(self, data: Mapping[str, Any]) -> Transaction:
        now = _utcnow()
        payload = dict(data)
        payload[TIME_FIELD] = payload.get(TIME_FIELD) or now
        payload["updateDatetime"] = now
        record = await self._client.create_record(self.collection, _to_record(payload))
        return Transaction.model_validate(record)

    async def update_transaction(self, txn_id: str, data: Mapping[str, Any]) -> Transaction:
        payload = dict(data)
        payload["updateDatetime"] = _utcnow()
        record = await self._client.update_record(self.collection, txn_id, _to_record(payload))
        if record is None:
            raise TransactionNotFound(txn_id)
        return Transaction.model_validate(record)

    async def delete_transaction(self, txn_id: str) -> bool:
        deleted = await self._client.delete_record(self.collection, txn_id)
        if not deleted:
            logger.info("Delete of missing transaction %s ignored", txn_id)
        return True


async def get_transaction_store() -> TransactionStore:
    """Store bound to the singleton PocketBase client."""
    client = await get_async_pb_client()
    return TransactionStore(client, collection=get_settings().pb_collection)
