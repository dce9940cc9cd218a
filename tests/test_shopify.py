import json

import httpx
import pytest
import respx

from bundlewatch.errors import PermanentAPIError, TransientAPIError
from bundlewatch.ingest.catalog import build_snapshot
from bundlewatch.ingest.shopify import ShopifyClient
from bundlewatch.utils.rate_limit import RateLimiter

BASE = "https://shop.myshopify.com/admin/api/2024-04/"


def make_client() -> ShopifyClient:
    return ShopifyClient(
        "shop.myshopify.com",
        "shpat_test",
        session=httpx.AsyncClient(),
        rate_limiter=RateLimiter(min_interval=0),
        backoff=0,
    )


@pytest.mark.asyncio
async def test_paginates_until_no_next_link():
    next_url = f"{BASE}products.json?limit=250&page_info=abc"
    first = httpx.Response(
        200,
        json={"products": [{"id": 1, "title": "One", "handle": "one", "tags": "", "variants": [{"id": 11, "inventory_quantity": 4}]}]},
        headers={"Link": f'<{next_url}>; rel="next"'},
    )
    second = httpx.Response(
        200,
        json={"products": [{"id": 2, "title": "Two", "handle": "two", "tags": "bundle", "variants": [{"id": 21, "inventory_quantity": -1}]}]},
        headers={"Link": f'<{BASE}products.json?page_info=zzz>; rel="previous"'},
    )
    async with respx.mock(assert_all_called=True) as router:
        route = router.get(path__regex=r"/products\.json$").mock(side_effect=[first, second])
        client = make_client()
        snapshot = await build_snapshot(client)
        await client.close()
    assert route.call_count == 2
    assert "page_info=abc" in str(route.calls.last.request.url)
    assert route.calls[0].request.headers["X-Shopify-Access-Token"] == "shpat_test"
    assert [p.id for p in snapshot.products] == [1, 2]
    assert snapshot.variant_quantities == {"11": 4, "21": -1}
    assert snapshot.products[1].is_bundle


@pytest.mark.asyncio
async def test_rate_limited_call_is_retried_once():
    async with respx.mock() as router:
        route = router.get(f"{BASE}variants/5.json").mock(
            side_effect=[httpx.Response(429), httpx.Response(200, json={"variant": {"inventory_quantity": 3}})]
        )
        client = make_client()
        assert await client.fetch_variant_quantity(5) == 3
        await client.close()
    assert route.call_count == 2


@pytest.mark.asyncio
async def test_second_rate_limit_is_fatal():
    async with respx.mock() as router:
        route = router.get(f"{BASE}variants/5.json").mock(return_value=httpx.Response(429, text="slow down"))
        client = make_client()
        with pytest.raises(TransientAPIError) as excinfo:
            await client.fetch_variant_quantity(5)
        await client.close()
    assert route.call_count == 2
    assert excinfo.value.status_code == 429
    assert excinfo.value.body == "slow down"


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    async with respx.mock() as router:
        route = router.get(f"{BASE}variants/5.json").mock(return_value=httpx.Response(404, text="Not Found"))
        client = make_client()
        with pytest.raises(PermanentAPIError) as excinfo:
            await client.fetch_variant_quantity(5)
        await client.close()
    assert route.call_count == 1
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_server_errors_are_transient_without_retry():
    async with respx.mock() as router:
        route = router.get(f"{BASE}variants/5.json").mock(return_value=httpx.Response(502))
        client = make_client()
        with pytest.raises(TransientAPIError):
            await client.fetch_variant_quantity(5)
        await client.close()
    assert route.call_count == 1


@pytest.mark.asyncio
async def test_fetch_bundle_structure_picks_namespaced_metafield():
    metafields = {
        "metafields": [
            {"namespace": "global", "key": "bundle_structure", "value": "[]"},
            {"namespace": "custom", "key": "bundle_structure", "value": '[{"variant_id": 9, "required_quantity": 2}]'},
        ]
    }
    async with respx.mock() as router:
        router.get(f"{BASE}products/7/metafields.json").mock(return_value=httpx.Response(200, json=metafields))
        router.get(f"{BASE}products/8/metafields.json").mock(return_value=httpx.Response(200, json={"metafields": []}))
        client = make_client()
        assert await client.fetch_bundle_structure(7) == '[{"variant_id": 9, "required_quantity": 2}]'
        assert await client.fetch_bundle_structure(8) is None
        await client.close()


@pytest.mark.asyncio
async def test_update_tags_replaces_tag_string():
    async with respx.mock() as router:
        route = router.put(f"{BASE}products/7.json").mock(return_value=httpx.Response(200, json={"product": {}}))
        client = make_client()
        await client.update_tags(7, ["bundle", "summer", "bundle-ok"])
        await client.close()
    body = json.loads(route.calls.last.request.content)
    assert body == {"product": {"id": 7, "tags": "bundle, summer, bundle-ok"}}


@pytest.mark.asyncio
async def test_rejects_empty_endpoint():
    client = make_client()
    with pytest.raises(ValueError):
        await client.call("")
    await client.close()
