"""Shared pytest fixtures for flask-labshop tests."""

import itertools
from dataclasses import replace

import pytest
from flask import Flask

from flask_labshop import FlaskLabShop
from flask_labshop.catalog import PRICE_ID_FIELD, PRODUCT_ID_FIELD, CatalogItem
from flask_labshop.errors import PriceUnavailable, UpstreamFailure
from flask_labshop.payments import ProviderPrice, ProviderProduct, StripeGateway

PROVISION_SECRET = "test-provision-secret"
ADMIN_TOKEN = "test-admin-token"
WEBHOOK_SECRET = "whsec_test_secret"


class FakeCatalog:
    """In-memory stand-in for :class:`~flask_labshop.catalog.SanityClient`."""

    def __init__(self, items=(), *, can_write=True):
        self.items = {item.id: replace(item) for item in items}
        self.can_write = can_write
        self.patches = []
        self.lookups = 0

    def add(self, item):
        self.items[item.id] = replace(item)

    def get_by_id(self, item_id):
        self.lookups += 1
        item = self.items.get(item_id)
        return replace(item) if item else None

    def get_by_slug(self, slug):
        self.lookups += 1
        for item in self.items.values():
            if item.slug == slug:
                return replace(item)
        return None

    def list_items(self):
        return sorted((replace(i) for i in self.items.values()), key=lambda i: i.price_amount or 0)

    def list_unprovisioned(self):
        return [
            replace(i)
            for i in self.items.values()
            if not i.provider_product_id or not i.provider_price_id
        ]

    def patch(self, item_id, fields):
        self.patches.append((item_id, dict(fields)))
        item = self.items.get(item_id)
        if item is None:
            return
        if PRODUCT_ID_FIELD in fields:
            item.provider_product_id = fields[PRODUCT_ID_FIELD]
        if PRICE_ID_FIELD in fields:
            item.provider_price_id = fields[PRICE_ID_FIELD]


class FakePayments:
    """In-memory stand-in for :class:`~flask_labshop.payments.StripeGateway`."""

    construct_event = staticmethod(StripeGateway.construct_event)

    def __init__(self, *, is_live=False):
        self.is_live = is_live
        self.products = {}
        self.prices = {}
        self.calls = []
        self.unreachable_prices = set()
        self.checkout_sessions = {}
        self._ids = itertools.count(1)

    def create_product(self, name, metadata):
        self.calls.append(("create_product", name))
        product = ProviderProduct(id=f"prod_{next(self._ids)}", name=name, metadata=dict(metadata))
        self.products[product.id] = product
        return product

    def retrieve_product(self, product_id):
        self.calls.append(("retrieve_product", product_id))
        if product_id not in self.products:
            raise UpstreamFailure(f"No such product: {product_id}")
        return self.products[product_id]

    def create_price(self, product_id, unit_amount, *, currency="eur", nickname=None, metadata=None):
        self.calls.append(("create_price", product_id, unit_amount))
        price = ProviderPrice(
            id=f"price_{next(self._ids)}",
            product_id=product_id,
            currency=currency,
            unit_amount=unit_amount,
            metadata=dict(metadata or {}),
        )
        self.prices[price.id] = price
        return price

    def retrieve_price(self, price_id):
        self.calls.append(("retrieve_price", price_id))
        if price_id in self.unreachable_prices:
            raise PriceUnavailable("connection reset", missing=False)
        if price_id not in self.prices:
            raise PriceUnavailable(f"No such price: {price_id}", missing=True)
        return self.prices[price_id]

    def create_checkout_session(self, price_id, *, success_url, cancel_url, allowed_countries=()):
        self.calls.append(("create_checkout_session", price_id, success_url, cancel_url, list(allowed_countries)))
        return f"https://checkout.stripe.com/c/pay/cs_test_{price_id}"

    def retrieve_checkout_session(self, session_id):
        self.calls.append(("retrieve_checkout_session", session_id))
        return self.checkout_sessions[session_id]


def make_item(**overrides):
    fields = {
        "id": "prod-testosterone-check",
        "title": "Testosterone Check",
        "slug": "testosterone-check",
        "price_amount": 69,
    }
    fields.update(overrides)
    return CatalogItem(**fields)


@pytest.fixture
def catalog():
    return FakeCatalog([make_item()])


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def app(catalog, payments):
    """Flask app wired to fake catalog and payment clients."""
    application = Flask(__name__)
    application.config["TESTING"] = True
    application.config["SECRET_KEY"] = "test-secret"
    application.config["LABSHOP_PROVISION_SECRET"] = PROVISION_SECRET
    application.config["LABSHOP_ADMIN_TOKEN"] = ADMIN_TOKEN
    application.config["LABSHOP_STRIPE_WEBHOOK_SECRET"] = WEBHOOK_SECRET
    application.config["LABSHOP_SITE_URL"] = "https://shop.example.com"

    FlaskLabShop(application, catalog=catalog, payments=payments)

    yield application


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def ext(app):
    """The FlaskLabShop extension instance."""
    return app.extensions["labshop"]


@pytest.fixture
def provision_headers():
    return {"Authorization": f"Bearer {PROVISION_SECRET}"}
