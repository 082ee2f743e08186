"""Tests for checkout-session creation and the order listing."""

import pytest

from conftest import ADMIN_TOKEN

CHECKOUT_URL = "/api/checkout/create"
ORDERS_URL = "/api/admin/orders"


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


def test_checkout_default_paths(client, payments):
    resp = client.post(CHECKOUT_URL, json={"priceId": "price_123"})

    assert resp.status_code == 200
    assert resp.get_json()["url"]

    name, price_id, success_url, cancel_url, countries = payments.calls[-1]
    assert name == "create_checkout_session"
    assert price_id == "price_123"
    assert success_url == "https://shop.example.com/thanks?session_id={CHECKOUT_SESSION_ID}"
    assert cancel_url == "https://shop.example.com/tests"
    assert countries == ["IE", "GB", "FR", "DE", "ES", "NL", "BE"]


def test_checkout_custom_paths(client, payments):
    resp = client.post(
        CHECKOUT_URL,
        json={"priceId": "price_123", "successPath": "/done", "cancelPath": "/tests/thyroid-basic"},
    )

    assert resp.status_code == 200
    _, _, success_url, cancel_url, _ = payments.calls[-1]
    assert success_url == "https://shop.example.com/done?session_id={CHECKOUT_SESSION_ID}"
    assert cancel_url == "https://shop.example.com/tests/thyroid-basic"


@pytest.mark.parametrize(
    "field, value",
    [
        ("successPath", "@evil.com"),
        ("successPath", "https://evil.com/thanks"),
        ("cancelPath", "//evil.com"),
        ("cancelPath", 42),
    ],
)
def test_checkout_rejects_off_site_paths(client, payments, field, value):
    resp = client.post(CHECKOUT_URL, json={"priceId": "price_123", field: value})

    assert resp.status_code == 400
    assert field in resp.get_json()["error"]
    assert payments.calls == []

def test_checkout_requires_price_id(client, payments):
    resp = client.post(CHECKOUT_URL, json={})

    assert resp.status_code == 400
    assert "priceId" in resp.get_json()["error"]
    assert payments.calls == []


def test_checkout_invalid_json(client):
    resp = client.post(CHECKOUT_URL, data=b"nope", content_type="application/json")

    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Invalid JSON"}


def test_checkout_stripe_error(client, payments, monkeypatch):
    from flask_labshop.errors import UpstreamFailure

    def boom(price_id, **kwargs):
        raise UpstreamFailure("No such price: 'price_123'")

    monkeypatch.setattr(payments, "create_checkout_session", boom)

    resp = client.post(CHECKOUT_URL, json={"priceId": "price_123"})

    assert resp.status_code == 500
    assert resp.get_json() == {"error": "No such price: 'price_123'"}


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


def test_orders_requires_admin_token(client):
    assert client.get(ORDERS_URL).status_code == 401
    assert client.get(ORDERS_URL, headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_orders_lists_newest_first(client, ext):
    ext.save_order(session_id="cs_1", email="a@example.com", mode="payment", items=[])
    ext.save_order(session_id="cs_2", email="b@example.com", mode="payment", items=[])
    ext._orders["cs_1"]["createdAt"] = "2026-01-01T00:00:00+00:00"
    ext._orders["cs_2"]["createdAt"] = "2026-02-01T00:00:00+00:00"

    resp = client.get(ORDERS_URL, headers={"Authorization": f"Bearer {ADMIN_TOKEN}"})

    assert resp.status_code == 200
    assert [o["stripeSessionId"] for o in resp.get_json()["orders"]] == ["cs_2", "cs_1"]
