"""Durable per-product state kept in Redis."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from redis.asyncio import Redis

from bundlewatch.ingest.models import Product
from bundlewatch.logic.status import Status
from bundlewatch.logic.subscribers import SubscriberRecord, merge_subscribers, rearm

logger = logging.getLogger(__name__)

SUBSCRIBER_TTL_SECONDS = 90 * 24 * 60 * 60


@dataclass(slots=True)
class StatusRecord:
    previous: Status | None
    current: Status

    def to_dict(self) -> dict[str, str | None]:
        return {
            "previous": self.previous.value if self.previous else None,
            "current": self.current.value,
        }


def _decode(raw: Any) -> Any:
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode()
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return None


class StateStore:
    def __init__(self, redis: Redis) -> None:
        self.redis = redis

    async def get_status(self, product_id: int) -> StatusRecord | None:
        data = _decode(await self.redis.get(f"status:{product_id}"))
        if not isinstance(data, dict):
            return None
        current = Status.parse(data.get("current"))
        if current is None:
            return None
        return StatusRecord(previous=Status.parse(data.get("previous")), current=current)

    async def set_status(self, product_id: int, record: StatusRecord) -> None:
        await self.redis.set(f"status:{product_id}", json.dumps(record.to_dict()))

    async def get_total(self, product_id: int) -> int | None:
        data = _decode(await self.redis.get(f"inv_total:{product_id}"))
        if isinstance(data, bool) or not isinstance(data, (int, float)):
            return None
        return int(data)

    async def set_total(self, product_id: int, total: int) -> None:
        await self.redis.set(f"inv_total:{product_id}", json.dumps(total))

    async def get_subscriber_list(self, key: str) -> list[SubscriberRecord]:
        data = _decode(await self.redis.get(key))
        if not isinstance(data, list):
            return []
        return [SubscriberRecord.from_dict(item) for item in data if isinstance(item, dict)]

    async def set_subscriber_list(self, key: str, records: list[SubscriberRecord]) -> None:
        payload = json.dumps([record.to_dict() for record in records])
        await self.redis.set(key, payload, ex=SUBSCRIBER_TTL_SECONDS)


class SubscriberRepository:
    """One logical subscriber set per product, stored under its id and its handle."""

    def __init__(self, store: StateStore) -> None:
        self.store = store

    @staticmethod
    def keys_for(product: Product) -> tuple[str, str]:
        return f"subscribers:{product.id}", f"subscribers_handle:{product.handle or ''}"

    async def load(self, product: Product) -> list[SubscriberRecord]:
        by_id, by_handle = self.keys_for(product)
        first = await self.store.get_subscriber_list(by_id)
        second = await self.store.get_subscriber_list(by_handle)
        return merge_subscribers(first, second)

    async def save(self, product: Product, records: list[SubscriberRecord]) -> None:
        for key in self.keys_for(product):
            await self.store.set_subscriber_list(key, records)

    async def register(self, product: Product, record: SubscriberRecord) -> SubscriberRecord:
        records = await self.load(product)
        stored = rearm(records, record)
        await self.save(product, records)
        return stored
