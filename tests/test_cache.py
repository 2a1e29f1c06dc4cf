import pytest
import redis
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.models.order import OrderStatus
from storefront.schemas.order import OrderCreate
from storefront.services import cache_service
from storefront.services.order_lifecycle import OrderLifecycle
from storefront.services.order_service import OrderService


class InMemoryRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)


class BrokenRedis:
    def get(self, key):
        raise redis.ConnectionError("redis down")

    def setex(self, key, ttl, value):
        raise redis.ConnectionError("redis down")


@pytest.fixture()
def fake_redis(monkeypatch) -> InMemoryRedis:
    backend = InMemoryRedis()
    monkeypatch.setattr(settings, "CACHE_ENABLED", True)
    monkeypatch.setattr(cache_service, "get_client", lambda: backend)
    return backend


def test_product_detail_is_served_from_cache(client: TestClient, db_session: Session, make_variant, fake_redis):
    variant = make_variant("cached", stock=7)

    first = client.get(f"/api/v1/products/{variant.product_id}")
    assert first.status_code == 200
    assert first.json()["data"]["variants"][0]["stock_quantity"] == 7
    assert cache_service.product_key(variant.product_id) in fake_redis.store

    variant.product.name = "Renamed"
    db_session.commit()

    second = client.get(f"/api/v1/products/{variant.product_id}")
    assert second.json()["data"]["name"] == "Product cached"

    fake_redis.delete(cache_service.product_key(variant.product_id))
    third = client.get(f"/api/v1/products/{variant.product_id}")
    assert third.json()["data"]["name"] == "Renamed"


def test_redis_errors_fall_back_to_database(client: TestClient, make_variant, monkeypatch):
    monkeypatch.setattr(settings, "CACHE_ENABLED", True)
    monkeypatch.setattr(cache_service, "get_client", lambda: BrokenRedis())
    variant = make_variant("uncached", stock=2)

    response = client.get(f"/api/v1/products/{variant.product_id}")

    assert response.status_code == 200
    assert response.json()["data"]["rating"] == {"average": 0.0, "count": 0}


def test_unknown_product_detail(client: TestClient):
    assert client.get("/api/v1/products/9999").status_code == 404


def test_stock_change_schedules_product_invalidation(
    client: TestClient, make_variant, admin_headers, fake_redis, cache_invalidations
):
    variant = make_variant("invalidate", stock=1)

    client.post(f"/api/v1/stock/variants/{variant.id}/restock", json={"quantity": 3}, headers=admin_headers)

    assert cache_invalidations.calls == [([cache_service.product_key(variant.product_id)],)]


def test_status_change_schedules_order_invalidation(
    db_session: Session, make_variant, customer, fake_redis, cache_invalidations
):
    variant = make_variant("order-cache", stock=5)
    order = OrderService.create_order(
        db_session,
        customer.id,
        OrderCreate(
            items=[{"product_id": variant.product_id, "variant_id": variant.id, "quantity": 2, "price": 1000.0}],
            subtotal=2000.0,
            shipping_address={"street": "3 Fort Road", "city": "Multan", "country": "PK"},
            payment_method="cash_on_delivery",
        ),
    )
    cache_invalidations.calls.clear()

    OrderLifecycle.set_status(db_session, order.id, OrderStatus.CANCELLED)

    scheduled = [key for call in cache_invalidations.calls for key in call[0]]
    assert cache_service.order_key(order.id) in scheduled
    assert cache_service.product_key(variant.product_id) in scheduled


def test_invalidation_enqueue_failure_is_swallowed(monkeypatch):
    from storefront.tasks.cache_tasks import invalidate_cache_keys

    def broker_down(*args, **kwargs):
        raise ConnectionError("broker unavailable")

    monkeypatch.setattr(settings, "CACHE_ENABLED", True)
    monkeypatch.setattr(invalidate_cache_keys, "delay", broker_down)

    cache_service.schedule_invalidation(cache_service.product_key(1))


def test_invalidate_task_deletes_keys(fake_redis):
    from storefront.tasks.cache_tasks import invalidate_cache_keys

    fake_redis.setex("cache:product:5", 60, "{}")

    assert invalidate_cache_keys.run(["cache:product:5", "cache:product:6"]) == 1
    assert fake_redis.store == {}
