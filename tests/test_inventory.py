import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from storefront.core.exceptions import InsufficientStock, NotFoundError, ValidationError
from storefront.models.product import ProductVariant
from storefront.services.inventory_service import InventoryService


def test_apply_delta_never_drives_stock_negative(db_session: Session, make_variant):
    variant = make_variant("floor", stock=3)

    for delta in (-2, 5, -6, -1, 4, -9, -3):
        try:
            InventoryService.apply_delta(db_session, variant.id, delta)
            db_session.commit()
        except InsufficientStock:
            db_session.rollback()
        db_session.refresh(variant)
        assert variant.stock_quantity >= 0

    db_session.refresh(variant)
    assert variant.stock_quantity == 1


def test_apply_delta_reports_available_count(db_session: Session, make_variant):
    variant = make_variant("short", stock=2)

    with pytest.raises(InsufficientStock) as exc_info:
        InventoryService.apply_delta(db_session, variant.id, -3)

    assert exc_info.value.available == 2
    assert "Only 2 items available" in exc_info.value.message


def test_apply_delta_refreshes_loaded_instance(db_session: Session, make_variant):
    variant = make_variant("loaded", stock=10)
    assert variant.stock_quantity == 10

    new_stock = InventoryService.apply_delta(db_session, variant.id, -4)

    assert new_stock == 6
    assert variant.stock_quantity == 6


def test_restock_rejects_non_positive_quantity(db_session: Session, make_variant):
    variant = make_variant("restock-zero", stock=1)

    with pytest.raises(ValidationError):
        InventoryService.restock(db_session, variant.id, 0)
    with pytest.raises(ValidationError):
        InventoryService.restock(db_session, variant.id, -5)


def test_restock_then_two_reservations(db_session: Session, make_variant):
    variant = make_variant("ledger", stock=1000)

    InventoryService.restock(db_session, variant.id, 100)
    InventoryService.reserve(db_session, {variant.id: 50})
    InventoryService.reserve(db_session, {variant.id: 50})
    db_session.commit()

    db_session.refresh(variant)
    assert variant.stock_quantity == 1000


def test_reserve_is_all_or_nothing_after_rollback(db_session: Session, make_variant):
    plenty = make_variant("plenty", stock=10)
    scarce = make_variant("scarce", stock=1)

    with pytest.raises(InsufficientStock):
        InventoryService.reserve(db_session, {plenty.id: 5, scarce.id: 2})
    db_session.rollback()

    assert db_session.get(ProductVariant, plenty.id).stock_quantity == 10
    assert db_session.get(ProductVariant, scarce.id).stock_quantity == 1


def test_check_availability_unknown_variant(db_session: Session):
    with pytest.raises(NotFoundError):
        InventoryService.check_availability(db_session, 9999, 1)


def test_stock_check_endpoint(client: TestClient, make_variant):
    variant = make_variant("check", stock=2)

    ok_response = client.post(
        "/api/v1/stock/check",
        json={"items": [{"variant_id": variant.id, "quantity": 1}]},
    )
    assert ok_response.status_code == 200
    ok_payload = ok_response.json()
    assert ok_payload["success"] is True
    assert ok_payload["data"]["available"] is True

    short_response = client.post(
        "/api/v1/stock/check",
        json={"items": [{"variant_id": variant.id, "quantity": 2}, {"variant_id": variant.id, "quantity": 1}]},
    )
    short_payload = short_response.json()
    assert short_payload["data"]["available"] is False
    assert short_payload["data"]["items"][0]["current_stock"] == 2
    assert short_payload["data"]["items"][0]["requested_quantity"] == 3


def test_restock_endpoint_requires_admin(client: TestClient, make_variant, customer_headers):
    variant = make_variant("restock-auth", stock=0)

    response = client.post(
        f"/api/v1/stock/variants/{variant.id}/restock",
        json={"quantity": 5},
        headers=customer_headers,
    )
    assert response.status_code == 403
    assert response.json()["success"] is False


def test_restock_and_adjust_endpoints(client: TestClient, make_variant, admin_headers):
    variant = make_variant("restock-admin", stock=2)

    restock = client.post(
        f"/api/v1/stock/variants/{variant.id}/restock",
        json={"quantity": 8},
        headers=admin_headers,
    )
    assert restock.status_code == 200
    assert restock.json()["data"]["stock_quantity"] == 10

    invalid = client.post(
        f"/api/v1/stock/variants/{variant.id}/restock",
        json={"quantity": 0},
        headers=admin_headers,
    )
    assert invalid.status_code == 400
    assert invalid.json()["errors"] == [{"field": "quantity", "message": "InvalidQuantity"}]

    too_much = client.post(
        f"/api/v1/stock/variants/{variant.id}/adjust",
        json={"delta": -11, "reason": "damaged"},
        headers=admin_headers,
    )
    assert too_much.status_code == 400
    assert too_much.json()["message"] == "Insufficient stock. Only 10 items available"

    adjust = client.post(
        f"/api/v1/stock/variants/{variant.id}/adjust",
        json={"delta": -10, "reason": "damaged"},
        headers=admin_headers,
    )
    assert adjust.status_code == 200
    assert adjust.json()["data"]["stock_quantity"] == 0


def test_low_and_out_of_stock_listings(client: TestClient, make_variant, admin_headers):
    low = make_variant("low", stock=3)
    make_variant("healthy", stock=50)
    empty = make_variant("empty", stock=0)

    low_response = client.get("/api/v1/stock/low", headers=admin_headers)
    assert low_response.status_code == 200
    assert [row["variant_id"] for row in low_response.json()["data"]] == [low.id]

    out_response = client.get("/api/v1/stock/out-of-stock", headers=admin_headers)
    assert [row["variant_id"] for row in out_response.json()["data"]] == [empty.id]
