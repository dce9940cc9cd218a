"""FastAPI trigger for the catalog audit."""

from __future__ import annotations

import logging
import secrets

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from bundlewatch.config import Settings
from bundlewatch.errors import ConfigurationError, LockContention
from bundlewatch.jobs.audit import run_audit

logger = logging.getLogger(__name__)

app = FastAPI(title="Bundlewatch")

SUCCESS_MESSAGE = "Catalog sweep complete: inventory deltas (all products) + bundle status tagging."


def get_settings() -> Settings:
    return Settings.from_env()


@app.exception_handler(ConfigurationError)
async def configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Audit misconfigured: %s", exc)
    return JSONResponse({"success": False, "error": str(exc)}, status_code=500)


def is_authorized(settings: Settings, authorization: str | None) -> bool:
    if not settings.cron_secret:
        return True
    return secrets.compare_digest(authorization or "", f"Bearer {settings.cron_secret}")


@app.get("/api/audit-bundles")
async def audit_bundles(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    if not is_authorized(settings, authorization):
        return JSONResponse({"success": False, "error": "unauthorized"}, status_code=401)
    try:
        summary = await run_audit(settings)
    except LockContention:
        return JSONResponse({"success": False, "error": "audit already running"}, status_code=423)
    except ConfigurationError as exc:
        logger.error("Audit misconfigured: %s", exc)
        return JSONResponse({"success": False, "error": str(exc)}, status_code=500)
    except Exception as exc:
        logger.exception("Audit failed")
        return JSONResponse({"success": False, "error": str(exc) or type(exc).__name__}, status_code=500)
    return JSONResponse({"success": True, "message": SUCCESS_MESSAGE, **summary.to_dict()})
