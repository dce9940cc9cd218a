"""Catalog-wide audit: inventory deltas, bundle tagging and back-in-stock fan-out."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import AsyncExitStack
from dataclasses import asdict, dataclass, field

from redis.asyncio import Redis

from bundlewatch.config import Settings
from bundlewatch.db.session import create_redis_from_env
from bundlewatch.db.state import StateStore, StatusRecord, SubscriberRepository
from bundlewatch.errors import SweepTimeout
from bundlewatch.ingest.catalog import CatalogSnapshot, build_snapshot
from bundlewatch.ingest.models import Product
from bundlewatch.ingest.shopify import ShopifyClient
from bundlewatch.jobs.lock import RunLock, run_exclusive
from bundlewatch.logic.status import (
    Status,
    evaluate_bundle,
    rewrite_status_tags,
    should_notify,
    status_from_tags,
)
from bundlewatch.logic.subscribers import pending
from bundlewatch.notify.dispatcher import DispatchResult, NotificationDispatcher
from bundlewatch.notify.klaviyo import KlaviyoClient
from bundlewatch.utils.dates import utc_now_iso

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AuditSummary:
    products_processed: int = 0
    tags_updated: int = 0
    notifications_sent: int = 0
    sms_notifications_sent: int = 0
    profile_updates: int = 0
    notification_errors: int = 0
    product_errors: int = 0
    total_time_seconds: float = 0.0
    timestamp: str = field(default_factory=utc_now_iso)

    def record_dispatch(self, result: DispatchResult) -> None:
        self.notifications_sent += result.sent
        self.sms_notifications_sent += result.sms_sent
        self.profile_updates += result.profile_updates
        self.notification_errors += result.errors

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


class CatalogAuditor:
    def __init__(
        self,
        shopify: ShopifyClient,
        dispatcher: NotificationDispatcher,
        store: StateStore,
    ) -> None:
        self.shopify = shopify
        self.dispatcher = dispatcher
        self.store = store
        self.subscribers = SubscriberRepository(store)

    async def run(self) -> AuditSummary:
        logger.info("Starting full catalog sweep (inventory deltas + bundle tagging)")
        started = time.monotonic()
        snapshot = await build_snapshot(self.shopify)
        summary = AuditSummary()
        count = len(snapshot.products)
        for index, product in enumerate(snapshot.products, start=1):
            summary.products_processed += 1
            try:
                await self.audit_product(product, snapshot, summary, position=f"{index}/{count}")
            except Exception:
                summary.product_errors += 1
                logger.exception("Error on product %s (%s)", product.title or product.id, product.id)
        summary.total_time_seconds = round(time.monotonic() - started, 3)
        summary.timestamp = utc_now_iso()
        logger.info(
            "Catalog audit complete: %s products, %s tags, %s notified (%s sms), %s profile updates, "
            "%s notify errors, %s product errors in %.0fs",
            summary.products_processed,
            summary.tags_updated,
            summary.notifications_sent,
            summary.sms_notifications_sent,
            summary.profile_updates,
            summary.notification_errors,
            summary.product_errors,
            summary.total_time_seconds,
        )
        return summary

    async def audit_product(
        self,
        product: Product,
        snapshot: CatalogSnapshot,
        summary: AuditSummary,
        *,
        position: str = "",
    ) -> None:
        total = product.total
        previous_total = await self.store.get_total(product.id)
        increased = previous_total is not None and total > previous_total
        await self.store.set_total(product.id, total)

        final_status: Status | None = None
        previous_status: Status | None = None
        if product.is_bundle:
            structure = await self.shopify.fetch_bundle_structure(product.id)
            evaluation = await evaluate_bundle(structure, product.quantities, snapshot.quantity_for)
            final_status = evaluation.final
            record = await self.store.get_status(product.id)
            previous_status = record.current if record else status_from_tags(product.tags)
            await self.store.set_status(product.id, StatusRecord(previous=previous_status, current=final_status))
            await self.shopify.update_tags(product.id, rewrite_status_tags(product.tags, final_status))
            summary.tags_updated += 1
            logger.info(
                "[%s] %s bundle status: comp=%s own=%s final=%s; total=%s (prev=%s, increased=%s)",
                position,
                product.title,
                evaluation.components.value,
                evaluation.own.value,
                final_status.value,
                total,
                previous_total,
                increased,
            )
        else:
            logger.info(
                "[%s] %s non-bundle; total=%s (prev=%s, increased=%s)",
                position,
                product.title,
                total,
                previous_total,
                increased,
            )

        subscribers = await self.subscribers.load(product)
        waiting = pending(subscribers)
        if not should_notify(
            is_bundle=product.is_bundle,
            final_status=final_status,
            previous_status=previous_status,
            increased=increased,
            total=total,
            pending=len(waiting),
        ):
            return
        logger.info("Back in stock: %s, notifying %s pending subscribers", product.title, len(waiting))
        result = await self.dispatcher.dispatch(product, subscribers)
        summary.record_dispatch(result)
        await self.subscribers.save(product, subscribers)


async def run_audit(
    settings: Settings | None = None,
    *,
    redis: Redis | None = None,
    shopify: ShopifyClient | None = None,
    klaviyo: KlaviyoClient | None = None,
) -> AuditSummary:
    """Validate config, take the run lock and sweep the catalog once.

    Raises ConfigurationError before any work, LockContention when another
    sweep is active and SweepTimeout when the sweep exceeds its budget.
    """
    settings = settings or Settings.from_env()
    settings.require()
    async with AsyncExitStack() as stack:
        if redis is None:
            redis = create_redis_from_env(settings.redis_url)
            stack.push_async_callback(redis.aclose)
        if shopify is None:
            shopify = ShopifyClient(
                settings.shopify_store,
                settings.shopify_token,
                api_version=settings.shopify_api_version,
            )
            stack.push_async_callback(shopify.close)
        if klaviyo is None:
            klaviyo = KlaviyoClient(settings.klaviyo_api_key)
            stack.push_async_callback(klaviyo.close)

        dispatcher = NotificationDispatcher(
            klaviyo, settings.alert_list_id, store_domain=settings.public_store_domain
        )
        auditor = CatalogAuditor(shopify, dispatcher, StateStore(redis))
        async with run_exclusive(RunLock(redis)):
            try:
                return await asyncio.wait_for(auditor.run(), timeout=settings.max_sweep_seconds)
            except asyncio.TimeoutError as exc:
                raise SweepTimeout(f"audit exceeded {settings.max_sweep_seconds:.0f}s") from exc


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print(asyncio.run(run_audit()).to_dict())
