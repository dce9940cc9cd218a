import pytest

from bundlewatch.config import Settings
from bundlewatch.db.state import StateStore
from bundlewatch.errors import PermanentAPIError
from bundlewatch.notify.klaviyo import ProfileUpdateResult


class FakeRedis:
    """In-memory stand-in for the async Redis commands the audit uses."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail_delete = False

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        if ex:
            self.ttls[key] = ex
        else:
            self.ttls.pop(key, None)
        return True

    async def delete(self, *keys):
        from redis.exceptions import ConnectionError

        if self.fail_delete:
            raise ConnectionError("redis down")
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def register_script(self, script):
        async def compare_and_delete(keys, args):
            key, token = keys[0], args[0]
            if self.data.get(key) != token:
                return 0
            return await self.delete(key)

        return compare_and_delete

    def expire_now(self, key):
        self.data.pop(key, None)
        self.ttls.pop(key, None)

    async def aclose(self):
        return None


class FakeShopify:
    def __init__(self) -> None:
        self.products: list[dict] = []
        self.metafields: dict[int, str] = {}
        self.direct_quantities: dict[str, int] = {}
        self.tag_updates: list[tuple[int, list[str]]] = []
        self.fetches = 0
        self.failing_products: set[int] = set()

    async def fetch_all_products(self):
        self.fetches += 1
        return [dict(p) for p in self.products]

    async def fetch_bundle_structure(self, product_id):
        if product_id in self.failing_products:
            raise PermanentAPIError(404, "gone", service="shopify")
        return self.metafields.get(product_id)

    async def update_tags(self, product_id, tags):
        self.tag_updates.append((product_id, list(tags)))

    async def fetch_variant_quantity(self, variant_id):
        return self.direct_quantities.get(str(variant_id), 0)

    async def close(self):
        return None


class FakeKlaviyo:
    def __init__(self) -> None:
        self.subscribed: list[dict] = []
        self.profile_updates: list[dict] = []
        self.events: list[dict] = []
        self.fail_subscribe: set[str] = set()
        self.fail_profile: set[str] = set()
        self.missing_profile: set[str] = set()
        self.fail_event: set[str] = set()

    async def subscribe_profile(self, list_id, email, *, phone=None, sms=False):
        if email in self.fail_subscribe:
            raise PermanentAPIError(400, "invalid profile", service="klaviyo")
        self.subscribed.append({"list_id": list_id, "email": email, "phone": phone, "sms": sms})
        return 202

    async def update_profile_properties(self, email, properties):
        if email in self.fail_profile:
            raise PermanentAPIError(500, "boom", service="klaviyo")
        if email in self.missing_profile:
            return ProfileUpdateResult(ok=False, status=404, skipped=True)
        self.profile_updates.append({"email": email, "properties": properties})
        return ProfileUpdateResult(ok=True, status=200)

    async def track_event(self, metric_name, email, *, phone=None, properties=None):
        if email in self.fail_event:
            raise PermanentAPIError(400, "bad event", service="klaviyo")
        self.events.append({"metric": metric_name, "email": email, "phone": phone, "properties": properties})
        return 202

    async def close(self):
        return None


@pytest.fixture()
def redis():
    return FakeRedis()


@pytest.fixture()
def store(redis):
    return StateStore(redis)


@pytest.fixture()
def shopify():
    return FakeShopify()


@pytest.fixture()
def klaviyo():
    return FakeKlaviyo()


@pytest.fixture()
def settings():
    return Settings(
        shopify_store="shop.myshopify.com",
        shopify_token="shpat_test",
        klaviyo_api_key="pk_test",
        alert_list_id="LIST123",
        public_store_domain="store.example.com",
        max_sweep_seconds=30,
    )


@pytest.fixture()
def make_product():
    def _make(product_id, *quantities, tags="", handle=None, title=None, variant_ids=None):
        ids = variant_ids or [product_id * 100 + idx for idx in range(len(quantities))]
        return {
            "id": product_id,
            "title": title or f"Product {product_id}",
            "handle": handle or f"product-{product_id}",
            "tags": tags,
            "variants": [{"id": vid, "inventory_quantity": qty} for vid, qty in zip(ids, quantities)],
        }

    return _make


@pytest.fixture()
def make_subscriber():
    def _make(email, product_id, **overrides):
        data = {
            "email": email,
            "phone": "",
            "sms_consent": False,
            "product_id": str(product_id),
            "product_handle": f"product-{product_id}",
            "product_title": f"Product {product_id}",
            "notified": False,
            "subscribed_at": "2024-05-01T10:00:00Z",
        }
        data.update(overrides)
        return data

    return _make
