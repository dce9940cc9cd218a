import json

import httpx
import pytest
import respx

from bundlewatch.errors import PermanentAPIError, TransientAPIError
from bundlewatch.notify.klaviyo import KLAVIYO_REVISION, KlaviyoClient

API = "https://a.klaviyo.com/api/"


@pytest.mark.asyncio
async def test_subscribe_profile_payload():
    async with respx.mock() as router:
        route = router.post(f"{API}profile-subscription-bulk-create-jobs/").mock(return_value=httpx.Response(202))
        client = KlaviyoClient("pk_test")
        await client.subscribe_profile("LIST123", "a@example.com", phone="+14155550100", sms=True)
        await client.subscribe_profile("LIST123", "b@example.com", phone="+14155550100", sms=False)
        await client.close()
    request = route.calls[0].request
    assert request.headers["Authorization"] == "Klaviyo-API-Key pk_test"
    assert request.headers["revision"] == KLAVIYO_REVISION
    body = json.loads(request.content)["data"]
    profile = body["attributes"]["profiles"]["data"][0]["attributes"]
    assert body["relationships"]["list"]["data"]["id"] == "LIST123"
    assert profile["phone_number"] == "+14155550100"
    assert profile["subscriptions"]["sms"] == {"marketing": {"consent": "SUBSCRIBED"}}
    email_only = json.loads(route.calls[1].request.content)["data"]["attributes"]["profiles"]["data"][0]["attributes"]
    assert "phone_number" not in email_only
    assert set(email_only["subscriptions"]) == {"email"}


@pytest.mark.asyncio
async def test_update_profile_properties_looks_up_then_patches():
    async with respx.mock() as router:
        lookup = router.get(f"{API}profiles/").mock(return_value=httpx.Response(200, json={"data": [{"id": "PROF1"}]}))
        patch = router.patch(f"{API}profiles/PROF1/").mock(return_value=httpx.Response(200, json={}))
        client = KlaviyoClient("pk_test")
        result = await client.update_profile_properties("a@example.com", {"x": 1})
        await client.close()
    assert result.ok and not result.skipped
    assert lookup.calls.last.request.url.params["filter"] == 'equals(email,"a@example.com")'
    assert json.loads(patch.calls.last.request.content)["data"]["attributes"]["properties"] == {"x": 1}


@pytest.mark.asyncio
async def test_update_profile_properties_skips_unknown_profile():
    async with respx.mock() as router:
        router.get(f"{API}profiles/").mock(return_value=httpx.Response(200, json={"data": []}))
        client = KlaviyoClient("pk_test")
        result = await client.update_profile_properties("ghost@example.com", {})
        await client.close()
    assert result.skipped
    assert result.status == 404


@pytest.mark.asyncio
async def test_track_event_and_errors():
    async with respx.mock() as router:
        route = router.post(f"{API}events/").mock(
            side_effect=[httpx.Response(202), httpx.Response(400, text="bad"), httpx.Response(503)]
        )
        client = KlaviyoClient("pk_test")
        await client.track_event("Back in Stock", "a@example.com", properties={"product_id": "1"})
        with pytest.raises(PermanentAPIError):
            await client.track_event("Back in Stock", "a@example.com")
        with pytest.raises(TransientAPIError):
            await client.track_event("Back in Stock", "a@example.com")
        await client.close()
    attributes = json.loads(route.calls[0].request.content)["data"]["attributes"]
    assert attributes["metric"]["data"]["attributes"]["name"] == "Back in Stock"
    assert attributes["profile"]["data"]["attributes"] == {"email": "a@example.com"}
    assert attributes["properties"] == {"product_id": "1"}
