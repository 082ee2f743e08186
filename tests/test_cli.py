"""Tests for the ``flask labshop`` commands."""

import pytest

from conftest import make_item
from flask_labshop.cli import looks_like_id


@pytest.mark.parametrize(
    "value, expected",
    [
        ("prod-testosterone-check", True),
        ("drafts.abc", True),
        ("3f2b1c4e-9d7a-4c1e-8f00-1a2b3c4d5e6f", True),
        ("testosterone-check", False),
        ("thyroid", False),
    ],
)
def test_looks_like_id(value, expected):
    assert looks_like_id(value) is expected


def test_provision_by_slug(app, payments):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["labshop", "provision", "testosterone-check"])

    assert result.exit_code == 0, result.output
    assert '"providerPriceId": "price_' in result.output
    assert len(payments.prices) == 1


def test_provision_by_id_option(app, catalog):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["labshop", "provision", "--id", "prod-testosterone-check"])

    assert result.exit_code == 0, result.output
    assert catalog.items["prod-testosterone-check"].provider_price_id is not None


def test_provision_not_found(app):
    result = app.test_cli_runner().invoke(args=["labshop", "provision", "nope"])

    assert result.exit_code == 1
    assert "Product not found" in result.output


def test_provision_requires_identifier(app):
    result = app.test_cli_runner().invoke(args=["labshop", "provision"])

    assert result.exit_code == 2


def test_sync_missing(app, catalog):
    catalog.add(make_item(id="prod-no-price", title="No Price", slug="no-price", price_amount=None))

    result = app.test_cli_runner().invoke(args=["labshop", "sync-missing"])

    assert result.exit_code == 1
    assert "prod-testosterone-check -> product=prod_" in result.output
    assert "prod-no-price failed: priceEUR missing on product" in result.output


def test_sync_missing_nothing_to_do(app, catalog):
    catalog.items.clear()

    result = app.test_cli_runner().invoke(args=["labshop", "sync-missing"])

    assert result.exit_code == 0
    assert "Nothing to do" in result.output
