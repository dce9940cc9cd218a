"""Subscriber records and the merge/re-arm rules."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from bundlewatch.utils.dates import timestamp_of, utc_now_iso
from bundlewatch.utils.phone import to_e164

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SubscriberRecord:
    email: str = ""
    phone: str = ""
    sms_consent: bool = False
    product_id: str = ""
    product_handle: str = ""
    product_title: str = ""
    product_url: str = ""
    notified: bool = False
    subscribed_at: str | None = None
    last_rearmed_at: str | None = None
    rearm_count: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SubscriberRecord":
        known = {f.name for f in fields(cls)} - {"extra"}
        values = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        record = cls(**values, extra=extra)
        record.email = str(record.email or "")
        record.phone = str(record.phone or "")
        record.product_id = str(record.product_id or "")
        record.sms_consent = bool(record.sms_consent)
        record.notified = bool(record.notified)
        record.rearm_count = int(record.rearm_count or 0)
        return record

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        for f in fields(self):
            if f.name != "extra":
                data[f.name] = getattr(self, f.name)
        return data

    @property
    def phone_e164(self) -> str | None:
        return to_e164(self.phone)

    @property
    def sms_eligible(self) -> bool:
        return self.sms_consent and self.phone_e164 is not None

    @property
    def identity(self) -> str | None:
        """Normalised phone, else lower-cased email."""
        phone = self.phone_e164
        if phone:
            return phone
        if self.email:
            return f"email:{self.email.strip().lower()}"
        return None

    @property
    def timestamp(self) -> float:
        return timestamp_of(self.last_rearmed_at or self.subscribed_at)


def merge_subscribers(*sources: Iterable[SubscriberRecord]) -> list[SubscriberRecord]:
    """Deduplicate by identity; newer timestamps win and ties keep the first seen."""
    merged: dict[str, SubscriberRecord] = {}
    for source in sources:
        for record in source:
            key = record.identity
            if key is None:
                logger.warning("Skipping subscriber without email or phone: %s", record.to_dict())
                continue
            current = merged.get(key)
            if current is None or record.timestamp > current.timestamp:
                merged[key] = record
    return list(merged.values())


def pending(records: Iterable[SubscriberRecord]) -> list[SubscriberRecord]:
    return [record for record in records if not record.notified]


def rearm(records: list[SubscriberRecord], incoming: SubscriberRecord, *, now: str | None = None) -> SubscriberRecord:
    """Insert ``incoming`` or re-arm the existing record with the same identity.

    Returns the record that now represents the subscriber in ``records``.
    """
    stamp = now or utc_now_iso()
    key = incoming.identity
    for record in records:
        if key is not None and record.identity == key:
            record.notified = False
            record.last_rearmed_at = stamp
            record.rearm_count += 1
            record.email = incoming.email or record.email
            record.phone = incoming.phone or record.phone
            record.sms_consent = incoming.sms_consent
            record.product_handle = incoming.product_handle or record.product_handle
            record.product_title = incoming.product_title or record.product_title
            record.product_url = incoming.product_url or record.product_url
            return record
    incoming.notified = False
    incoming.subscribed_at = incoming.subscribed_at or stamp
    records.append(incoming)
    return incoming
