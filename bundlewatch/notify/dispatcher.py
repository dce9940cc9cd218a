"""Back-in-stock fan-out for one product."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from bundlewatch.errors import SubscriberNotificationError
from bundlewatch.ingest.models import Product
from bundlewatch.logic.subscribers import SubscriberRecord, pending
from bundlewatch.notify.klaviyo import KlaviyoClient
from bundlewatch.utils.dates import utc_now_iso

logger = logging.getLogger(__name__)

METRIC_NAME = "Back in Stock"
PACE_EVERY = 5
PACE_SECONDS = 0.25

PROFILE_UPDATED = "updated"
PROFILE_SKIPPED = "skipped"
PROFILE_FAILED = "failed"


@dataclass(slots=True)
class NotificationOutcome:
    email: str
    subscribed: bool = False
    profile_update: str | None = None
    event_tracked: bool = False
    sms: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.subscribed and self.event_tracked


@dataclass(slots=True)
class DispatchResult:
    outcomes: list[NotificationOutcome] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def sms_sent(self) -> int:
        return sum(1 for o in self.outcomes if o.ok and o.sms)

    @property
    def profile_updates(self) -> int:
        return sum(1 for o in self.outcomes if o.profile_update == PROFILE_UPDATED)

    @property
    def errors(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)


@dataclass(slots=True)
class ProductContext:
    product_id: str
    title: str
    handle: str
    url: str
    source: str

    @property
    def related_section_url(self) -> str:
        return f"{self.url}#after-bis" if self.url else ""


class NotificationDispatcher:
    def __init__(
        self,
        klaviyo: KlaviyoClient,
        list_id: str,
        *,
        store_domain: str,
        pace_seconds: float = PACE_SECONDS,
    ) -> None:
        self.klaviyo = klaviyo
        self.list_id = list_id
        self.store_domain = store_domain
        self.pace_seconds = pace_seconds

    def _product_url(self, handle: str) -> str:
        return f"https://{self.store_domain}/products/{handle}" if handle else ""

    def context_for(self, product: Product, subscriber: SubscriberRecord) -> ProductContext:
        handle = subscriber.product_handle or product.handle or ""
        return ProductContext(
            product_id=str(product.id),
            title=subscriber.product_title or product.title or "Unknown Product",
            handle=handle,
            url=subscriber.product_url or self._product_url(handle) or self._product_url(product.handle),
            source="bundle audit (catalog sweep)" if product.is_bundle else "catalog sweep",
        )

    async def dispatch(self, product: Product, subscribers: list[SubscriberRecord]) -> DispatchResult:
        """Notify every pending subscriber, flipping ``notified`` on success."""
        result = DispatchResult()
        succeeded = 0
        for subscriber in pending(subscribers):
            outcome = await self.notify_one(product, subscriber)
            result.outcomes.append(outcome)
            if not outcome.ok:
                continue
            subscriber.notified = True
            succeeded += 1
            if succeeded % PACE_EVERY == 0:
                await asyncio.sleep(self.pace_seconds)
        return result

    async def notify_one(self, product: Product, subscriber: SubscriberRecord) -> NotificationOutcome:
        phone = subscriber.phone_e164
        sms = subscriber.sms_eligible
        outcome = NotificationOutcome(email=subscriber.email, sms=sms)
        context = self.context_for(product, subscriber)
        try:
            await self._step(
                "subscribe",
                subscriber,
                self.klaviyo.subscribe_profile(self.list_id, subscriber.email, phone=phone, sms=sms),
            )
            outcome.subscribed = True
            outcome.profile_update = await self._stamp_profile(subscriber, context)
            await self._step(
                "event",
                subscriber,
                self.klaviyo.track_event(
                    METRIC_NAME,
                    subscriber.email,
                    phone=phone,
                    properties={
                        "product_id": context.product_id,
                        "product_title": context.title,
                        "product_handle": context.handle,
                        "product_url": context.url,
                        "related_section_url": context.related_section_url,
                        "sms_consent": sms,
                        "source": context.source,
                    },
                ),
            )
            outcome.event_tracked = True
        except SubscriberNotificationError as exc:
            outcome.error = str(exc)
            logger.error("Notify failed for %s on product %s: %s", subscriber.email or "(unknown)", product.id, exc)
        return outcome

    @staticmethod
    async def _step(name: str, subscriber: SubscriberRecord, call) -> None:
        try:
            await call
        except Exception as exc:
            raise SubscriberNotificationError(name, subscriber.email, exc) from exc

    async def _stamp_profile(self, subscriber: SubscriberRecord, context: ProductContext) -> str:
        properties = {
            "last_back_in_stock_product_name": context.title,
            "last_back_in_stock_product_url": context.url,
            "last_back_in_stock_related_section_url": context.related_section_url,
            "last_back_in_stock_product_handle": context.handle,
            "last_back_in_stock_product_id": context.product_id,
            "last_back_in_stock_notified_at": utc_now_iso(),
        }
        try:
            result = await self.klaviyo.update_profile_properties(subscriber.email, properties)
        except Exception as exc:
            logger.warning("Profile props write failed for %s, continuing: %s", subscriber.email, exc)
            return PROFILE_FAILED
        if result.skipped:
            logger.info("No Klaviyo profile for %s; properties not stamped", subscriber.email)
            return PROFILE_SKIPPED
        return PROFILE_UPDATED
