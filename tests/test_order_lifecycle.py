import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.exceptions import ConflictError, NotFoundError
from storefront.models.order import Order, OrderStatus, PaymentStatus
from storefront.schemas.order import OrderCreate
from storefront.services.order_lifecycle import OrderLifecycle, select_notification
from storefront.services.order_service import OrderService

ADDRESS = {"street": "7 Canal View", "city": "Karachi", "country": "PK"}


@pytest.fixture()
def placed_order(db_session: Session, make_variant, customer, notifications):
    variant = make_variant("lifecycle", stock=10, price=500.0)
    payload = OrderCreate(
        items=[{"product_id": variant.product_id, "variant_id": variant.id, "quantity": 4, "price": 500.0}],
        subtotal=2000.0,
        shipping_address=ADDRESS,
        payment_method="cash_on_delivery",
    )
    order = OrderService.create_order(db_session, customer.id, payload)
    notifications.calls.clear()
    return order


def _history(order: Order, field: str = "order_status"):
    return [(h.old_status, h.new_status) for h in order.status_history if h.field == field]


def test_shipping_stamps_once_and_notifies_once(db_session: Session, placed_order, notifications):
    order = OrderLifecycle.set_status(db_session, placed_order.id, OrderStatus.SHIPPED, tracking_number="TRK-1")

    shipped_at = order.shipped_date
    assert shipped_at is not None
    assert order.tracking_number == "TRK-1"
    assert notifications.kinds() == ["order_shipped"]

    order = OrderLifecycle.set_status(db_session, placed_order.id, OrderStatus.SHIPPED)

    assert order.shipped_date == shipped_at
    assert notifications.kinds() == ["order_shipped"]
    assert _history(order) == [(None, "pending"), ("pending", "shipped")]


def test_delivery_stamps_and_notifies(db_session: Session, placed_order, notifications):
    order = OrderLifecycle.set_status(db_session, placed_order.id, OrderStatus.DELIVERED)

    assert order.delivered_date is not None
    assert order.is_delivered is True
    assert notifications.kinds() == ["order_delivered"]
    kind, recipient, snapshot = notifications.calls[0]
    assert snapshot["order_status"] == "delivered"


def test_other_changes_send_status_update(db_session: Session, placed_order, notifications):
    OrderLifecycle.set_status(db_session, placed_order.id, OrderStatus.CONFIRMED, changed_by=None, notes="ok")
    OrderLifecycle.set_status(db_session, placed_order.id, OrderStatus.PROCESSING)

    assert notifications.kinds() == ["order_status_update", "order_status_update"]


def test_select_notification_table():
    assert select_notification(OrderStatus.PROCESSING, OrderStatus.SHIPPED).value == "order_shipped"
    assert select_notification(OrderStatus.SHIPPED, OrderStatus.DELIVERED).value == "order_delivered"
    assert select_notification(OrderStatus.SHIPPED, OrderStatus.CANCELLED).value == "order_status_update"
    assert select_notification(OrderStatus.DELIVERED, OrderStatus.DELIVERED) is None


def test_cancellation_releases_reserved_stock_once(db_session: Session, placed_order):
    variant = placed_order.items[0].variant
    db_session.refresh(variant)
    assert variant.stock_quantity == 6

    order = OrderLifecycle.set_status(db_session, placed_order.id, OrderStatus.CANCELLED)
    assert order.stock_deducted is False
    db_session.refresh(variant)
    assert variant.stock_quantity == 10

    OrderLifecycle.set_status(db_session, placed_order.id, OrderStatus.CANCELLED)
    OrderLifecycle.set_status(db_session, placed_order.id, OrderStatus.RETURNED)
    db_session.refresh(variant)
    assert variant.stock_quantity == 10


def test_transitions_are_permissive_by_default(db_session: Session, placed_order):
    order = OrderLifecycle.set_status(db_session, placed_order.id, OrderStatus.DELIVERED)
    order = OrderLifecycle.set_status(db_session, placed_order.id, OrderStatus.PENDING)

    assert order.order_status == OrderStatus.PENDING


def test_strict_transitions_reject_skips(db_session: Session, placed_order, monkeypatch, notifications):
    monkeypatch.setattr(settings, "STRICT_ORDER_TRANSITIONS", True)

    with pytest.raises(ConflictError):
        OrderLifecycle.set_status(db_session, placed_order.id, OrderStatus.DELIVERED)

    order = OrderLifecycle.set_status(db_session, placed_order.id, OrderStatus.CONFIRMED)
    assert order.order_status == OrderStatus.CONFIRMED
    assert notifications.kinds() == ["order_status_update"]


def test_unknown_order(db_session: Session):
    with pytest.raises(NotFoundError):
        OrderLifecycle.set_status(db_session, 9999, OrderStatus.SHIPPED)


def test_payment_completion_stamps_paid_at_without_email(db_session: Session, placed_order, notifications):
    order = OrderLifecycle.set_payment_status(db_session, placed_order.id, PaymentStatus.COMPLETED)

    assert order.payment_status == PaymentStatus.COMPLETED
    assert order.paid_at is not None
    assert order.order_status == OrderStatus.PENDING
    assert _history(order, "payment_status") == [("pending", "completed")]
    assert notifications.calls == []


def test_status_endpoint_is_admin_only(
    client: TestClient, placed_order, customer_headers, admin_headers, admin, notifications
):
    forbidden = client.put(
        f"/api/v1/orders/{placed_order.id}/status",
        json={"status": "shipped"},
        headers=customer_headers,
    )
    assert forbidden.status_code == 403

    invalid = client.put(
        f"/api/v1/orders/{placed_order.id}/status",
        json={"status": "teleported"},
        headers=admin_headers,
    )
    assert invalid.status_code == 422

    response = client.put(
        f"/api/v1/orders/{placed_order.id}/status",
        json={"status": "shipped", "tracking_number": "LHR-42"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["order_status"] == "shipped"
    assert data["tracking_number"] == "LHR-42"
    assert data["shipped_date"] is not None
    assert notifications.kinds() == ["order_shipped"]

    missing = client.put("/api/v1/orders/9999/status", json={"status": "shipped"}, headers=admin_headers)
    assert missing.status_code == 404


def test_payment_status_endpoint(client: TestClient, placed_order, admin_headers):
    response = client.put(
        f"/api/v1/orders/{placed_order.id}/payment-status",
        json={"status": "completed"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["data"]["payment_status"] == "completed"
    assert response.json()["data"]["paid_at"] is not None
