"""Customer -> Orders routes."""

from bson import ObjectId


def _add(client, customer_id, token, bearer, title="Order"):
    res = client.post(
        f"/customers/{customer_id}/orders",
        json={"title": title, "date": "2024-01-01", "items": [{"sku": "X", "qty": 1}]},
        headers=bearer(token),
    )
    assert res.status_code == 201, res.text
    return res.json()["order"]


def test_add_then_list_orders(client, register, bearer):
    customer, token = register()
    first = _add(client, customer["id"], token, bearer, "First")
    second = _add(client, customer["id"], token, bearer, "Second")

    orders = client.get(f"/customers/{customer['id']}/orders").json()["orders"]

    assert [o["id"] for o in orders] == [first["id"], second["id"]]
    assert orders[0]["items"] == [{"sku": "X", "qty": 1}]
    assert client.get(f"/customers/{customer['id']}").json()["orders"] == [first["id"], second["id"]]


def test_order_items_default_to_empty(client, register, bearer):
    customer, token = register()
    res = client.post(f"/customers/{customer['id']}/orders", json={"title": "Bare"}, headers=bearer(token))
    assert res.json()["order"]["items"] == []


def test_add_order_for_missing_customer(client, register, bearer, store):
    _, token = register()
    res = client.post(f"/customers/{ObjectId()}/orders", json={"title": "X"}, headers=bearer(token))
    assert res.status_code == 404
    assert store.orders.find_many() == []


def test_list_orders_for_missing_customer(client):
    assert client.get(f"/customers/{ObjectId()}/orders").status_code == 404


def test_remove_order(client, register, bearer, store):
    customer, token = register()
    order = _add(client, customer["id"], token, bearer)

    res = client.delete(f"/customers/{customer['id']}/orders/{order['id']}", headers=bearer(token))

    assert res.status_code == 200
    assert client.get(f"/customers/{customer['id']}/orders").json()["orders"] == []
    assert store.orders.find_many() == []


def test_remove_order_not_on_customer(client, register, bearer, store):
    customer, token = register()
    other, other_token = register(email="c@d.com")
    order = _add(client, other["id"], other_token, bearer)

    res = client.delete(f"/customers/{customer['id']}/orders/{order['id']}", headers=bearer(token))

    assert res.status_code == 404
    assert res.json()["message"] == "Order not found for the customer"
    assert len(store.orders.find_many()) == 1
    assert client.get(f"/customers/{other['id']}").json()["orders"] == [order["id"]]


def test_remove_order_twice(client, register, bearer):
    customer, token = register()
    order = _add(client, customer["id"], token, bearer)
    path = f"/customers/{customer['id']}/orders/{order['id']}"
    assert client.delete(path, headers=bearer(token)).status_code == 200
    assert client.delete(path, headers=bearer(token)).status_code == 404
