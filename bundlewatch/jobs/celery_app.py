"""Celery configuration for the scheduled audit."""

from __future__ import annotations

import logging
import os

from celery import Celery
from celery.schedules import crontab

from bundlewatch.config import DEFAULT_REDIS_URL

logger = logging.getLogger(__name__)

broker_url = os.environ.get("REDIS_URL", DEFAULT_REDIS_URL)
backend_url = os.environ.get("REDIS_URL", DEFAULT_REDIS_URL)

celery_app = Celery("bundlewatch", broker=broker_url, backend=backend_url)
celery_app.conf.timezone = os.environ.get("TIMEZONE", "UTC")
celery_app.conf.beat_schedule = {
    "audit-bundles": {
        "task": "bundlewatch.jobs.audit.run_audit",
        "schedule": crontab(minute=int(os.environ.get("AUDIT_CRON_MINUTE", "0"))),
    },
}


@celery_app.task(name="bundlewatch.jobs.audit.run_audit")
def run_audit_task() -> dict[str, object]:  # pragma: no cover - executed by worker
    import asyncio

    from bundlewatch.errors import LockContention
    from bundlewatch.jobs.audit import run_audit

    try:
        summary = asyncio.run(run_audit())
    except LockContention:
        logger.info("Audit already running; skipping this tick")
        return {"success": False, "error": "audit already running"}
    return {"success": True, **summary.to_dict()}
