import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from storefront.core.exceptions import ConflictError, InsufficientStock, NotFoundError, ValidationError
from storefront.models.cart import Cart
from storefront.models.product import ProductVariant
from storefront.services.cart_service import CartService


def _add(client: TestClient, headers: dict, variant: ProductVariant, quantity: int, with_variant: bool = True):
    body = {"product_id": variant.product_id, "quantity": quantity}
    if with_variant:
        body["variant_id"] = variant.id
    return client.post("/api/v1/cart/items", json=body, headers=headers)


def test_get_cart_creates_empty_cart(client: TestClient, customer_headers):
    response = client.get("/api/v1/cart/", headers=customer_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["items"] == []
    assert data["item_count"] == 0
    assert data["total_amount"] == 0.0


def test_cart_requires_authentication(client: TestClient):
    response = client.get("/api/v1/cart/")
    assert response.status_code == 401


def test_second_add_exceeding_stock_is_rejected(client: TestClient, make_variant, customer_headers):
    variant = make_variant("five-left", stock=5)

    first = _add(client, customer_headers, variant, 3)
    assert first.status_code == 201
    assert first.json()["data"]["items"][0]["quantity"] == 3

    second = _add(client, customer_headers, variant, 3)
    assert second.status_code == 400
    assert second.json()["message"] == "Insufficient stock. Only 5 items available"

    cart = client.get("/api/v1/cart/", headers=customer_headers).json()["data"]
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 3


def test_adding_same_variant_merges_lines_and_keeps_price_snapshot(
    client: TestClient, db_session: Session, make_variant, customer_headers
):
    variant = make_variant("merge", stock=20, price=250.0)
    _add(client, customer_headers, variant, 2)

    variant.price = 400.0
    db_session.commit()

    response = _add(client, customer_headers, variant, 1)
    data = response.json()["data"]
    assert len(data["items"]) == 1
    assert data["items"][0]["quantity"] == 3
    assert data["items"][0]["price"] == 250.0
    assert data["total_amount"] == 750.0


def test_variant_omitted_uses_primary_variant(client: TestClient, make_variant, customer_headers):
    variant = make_variant("primary", stock=4, price=100.0, sale_price=80.0)

    response = _add(client, customer_headers, variant, 2, with_variant=False)

    assert response.status_code == 201
    item = response.json()["data"]["items"][0]
    assert item["variant_id"] == variant.id
    assert item["price"] == 80.0


def test_add_unknown_product_or_variant(client: TestClient, make_variant, customer_headers):
    variant = make_variant("known", stock=4)

    missing_product = client.post(
        "/api/v1/cart/items",
        json={"product_id": 9999, "quantity": 1},
        headers=customer_headers,
    )
    assert missing_product.status_code == 404
    assert missing_product.json()["message"] == "Product not found"

    missing_variant = client.post(
        "/api/v1/cart/items",
        json={"product_id": variant.product_id, "variant_id": 9999, "quantity": 1},
        headers=customer_headers,
    )
    assert missing_variant.status_code == 404
    assert missing_variant.json()["message"] == "Product variant not found"


def test_quantity_ceiling_is_independent_of_stock(client: TestClient, make_variant, customer_headers):
    variant = make_variant("deep-stock", stock=500)

    response = _add(client, customer_headers, variant, 100)
    assert response.status_code == 400
    assert response.json()["message"] == "Quantity cannot exceed 99"

    assert _add(client, customer_headers, variant, 99).status_code == 201


def test_totals_track_every_mutation(client: TestClient, make_variant, customer_headers):
    ring = make_variant("ring", stock=10, price=120.5)
    chain = make_variant("chain", stock=10, price=99.99)

    _add(client, customer_headers, ring, 2)
    data = _add(client, customer_headers, chain, 3).json()["data"]
    assert data["item_count"] == 5
    assert data["total_amount"] == round(2 * 120.5 + 3 * 99.99, 2)

    ring_item = next(item for item in data["items"] if item["variant_id"] == ring.id)
    updated = client.put(
        f"/api/v1/cart/items/{ring_item['id']}",
        json={"quantity": 4},
        headers=customer_headers,
    ).json()["data"]
    assert updated["total_amount"] == round(4 * 120.5 + 3 * 99.99, 2)
    assert updated["total_amount"] == round(sum(i["price"] * i["quantity"] for i in updated["items"]), 2)

    removed = client.delete(f"/api/v1/cart/items/{ring_item['id']}", headers=customer_headers).json()["data"]
    assert removed["item_count"] == 3
    assert removed["total_amount"] == round(3 * 99.99, 2)

    cleared = client.delete("/api/v1/cart/", headers=customer_headers)
    assert cleared.status_code == 200
    assert cleared.json()["data"]["items"] == []
    assert cleared.json()["data"]["total_amount"] == 0.0


def test_update_revalidates_against_current_stock(client: TestClient, make_variant, customer_headers):
    variant = make_variant("update-stock", stock=4)
    item = _add(client, customer_headers, variant, 1).json()["data"]["items"][0]

    response = client.put(
        f"/api/v1/cart/items/{item['id']}",
        json={"quantity": 5},
        headers=customer_headers,
    )
    assert response.status_code == 400

    missing = client.put("/api/v1/cart/items/9999", json={"quantity": 1}, headers=customer_headers)
    assert missing.status_code == 404


def test_remove_missing_item_is_not_found(client: TestClient, make_variant, customer_headers):
    variant = make_variant("remove-missing", stock=4)
    _add(client, customer_headers, variant, 1)

    response = client.delete("/api/v1/cart/items/9999", headers=customer_headers)

    assert response.status_code == 404
    assert response.json()["message"] == "Cart item not found"
    cart = client.get("/api/v1/cart/", headers=customer_headers).json()["data"]
    assert cart["item_count"] == 1


def test_item_changes_without_cart_are_not_found(client: TestClient, customer_headers):
    update = client.put("/api/v1/cart/items/1", json={"quantity": 1}, headers=customer_headers)
    remove = client.delete("/api/v1/cart/items/1", headers=customer_headers)

    for response in (update, remove):
        assert response.status_code == 404
        assert response.json()["message"] == "Cart not found"


def test_service_item_changes_without_cart(db_session: Session, customer):
    with pytest.raises(NotFoundError):
        CartService.update_item(db_session, customer.id, 1, 1)
    with pytest.raises(NotFoundError):
        CartService.remove_item(db_session, customer.id, 1)


def test_clear_without_cart_is_not_found(client: TestClient, customer_headers):
    response = client.delete("/api/v1/cart/", headers=customer_headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Cart not found"


def test_service_rejects_add_over_stock_without_touching_cart(db_session: Session, make_variant, customer):
    variant = make_variant("service-stock", stock=5)
    CartService.add_item(db_session, customer.id, variant.product_id, variant.id, 3)

    with pytest.raises(InsufficientStock) as exc_info:
        CartService.add_item(db_session, customer.id, variant.product_id, variant.id, 3)

    assert exc_info.value.available == 5
    cart = db_session.query(Cart).filter(Cart.user_id == customer.id).one()
    assert [item.quantity for item in cart.items] == [3]


@pytest.mark.parametrize("quantity", [0, -2, 100])
def test_service_rejects_out_of_range_quantity_before_merging(
    db_session: Session, make_variant, customer, quantity
):
    variant = make_variant(f"bounds-{quantity}", stock=200)
    CartService.add_item(db_session, customer.id, variant.product_id, variant.id, 3)

    with pytest.raises(ValidationError):
        CartService.add_item(db_session, customer.id, variant.product_id, variant.id, quantity)

    cart = db_session.query(Cart).filter(Cart.user_id == customer.id).one()
    assert [item.quantity for item in cart.items] == [3]
    assert cart.total_amount == round(cart.items[0].price * 3, 2)


def test_concurrent_cart_writer_gets_conflict(db_session: Session, session_factory, make_variant, customer):
    variant = make_variant("contended", stock=10)
    cart = CartService.add_item(db_session, customer.id, variant.product_id, variant.id, 1)
    item_id = cart.items[0].id

    other_session = session_factory()
    try:
        CartService.add_item(other_session, customer.id, variant.product_id, variant.id, 1)
    finally:
        other_session.close()

    # db_session still holds the revision it read before the other writer committed
    with pytest.raises(ConflictError):
        CartService.update_item(db_session, customer.id, item_id, 3)

    db_session.expire_all()
    cart = db_session.query(Cart).filter(Cart.user_id == customer.id).one()
    assert cart.items[0].quantity == 2
    assert cart.total_amount == 2 * variant.price
