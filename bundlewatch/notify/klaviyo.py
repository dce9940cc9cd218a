"""Klaviyo profile and event API client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from bundlewatch.errors import raise_for_api_status
from bundlewatch.utils.dates import utc_now_iso

logger = logging.getLogger(__name__)

KLAVIYO_BASE_URL = "https://a.klaviyo.com/api/"
KLAVIYO_REVISION = "2023-10-15"


@dataclass(slots=True)
class ProfileUpdateResult:
    ok: bool
    status: int
    skipped: bool = False


class KlaviyoClient:
    def __init__(self, api_key: str, *, session: httpx.AsyncClient | None = None) -> None:
        self.api_key = api_key
        self.session = session or httpx.AsyncClient(timeout=15.0)

    async def close(self) -> None:
        await self.session.aclose()

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Klaviyo-API-Key {self.api_key}",
            "accept": "application/json",
            "content-type": "application/json",
            "revision": KLAVIYO_REVISION,
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self.session.request(method, KLAVIYO_BASE_URL + path, headers=self._headers, **kwargs)
        raise_for_api_status(response, service="klaviyo")
        return response

    async def subscribe_profile(self, list_id: str, email: str, *, phone: str | None = None, sms: bool = False) -> int:
        if not list_id:
            raise ValueError("list_id missing")
        if not email:
            raise ValueError("email missing")
        subscriptions: dict[str, Any] = {"email": {"marketing": {"consent": "SUBSCRIBED"}}}
        attributes: dict[str, Any] = {"email": email}
        if sms and phone:
            subscriptions["sms"] = {"marketing": {"consent": "SUBSCRIBED"}}
            attributes["phone_number"] = phone
        attributes["subscriptions"] = subscriptions
        payload = {
            "data": {
                "type": "profile-subscription-bulk-create-job",
                "attributes": {"profiles": {"data": [{"type": "profile", "attributes": attributes}]}},
                "relationships": {"list": {"data": {"type": "list", "id": list_id}}},
            }
        }
        response = await self._request("POST", "profile-subscription-bulk-create-jobs/", json=payload)
        return response.status_code

    async def find_profile_id(self, email: str) -> str | None:
        escaped = email.replace('"', '\\"')
        params = {"filter": f'equals(email,"{escaped}")', "page[size]": "1"}
        response = await self._request("GET", "profiles/", params=params)
        data = response.json().get("data") or []
        return data[0].get("id") if data else None

    async def update_profile_properties(self, email: str, properties: dict[str, Any]) -> ProfileUpdateResult:
        if not email:
            raise ValueError("email missing")
        profile_id = await self.find_profile_id(email)
        if not profile_id:
            return ProfileUpdateResult(ok=False, status=404, skipped=True)
        payload = {"data": {"type": "profile", "id": profile_id, "attributes": {"properties": properties}}}
        response = await self._request("PATCH", f"profiles/{profile_id}/", json=payload)
        return ProfileUpdateResult(ok=True, status=response.status_code)

    async def track_event(
        self,
        metric_name: str,
        email: str,
        *,
        phone: str | None = None,
        properties: dict[str, Any] | None = None,
    ) -> int:
        if not metric_name:
            raise ValueError("metric_name missing")
        profile: dict[str, Any] = {"email": email}
        if phone:
            profile["phone_number"] = phone
        payload = {
            "data": {
                "type": "event",
                "attributes": {
                    "time": utc_now_iso(),
                    "properties": properties or {},
                    "metric": {"data": {"type": "metric", "attributes": {"name": metric_name}}},
                    "profile": {"data": {"type": "profile", "attributes": profile}},
                },
            }
        }
        response = await self._request("POST", "events/", json=payload)
        return response.status_code
