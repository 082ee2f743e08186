"""Keep a catalog item's Stripe product and price ids in step with Stripe.

:class:`Reconciler` is constructed with a catalog client and a payment
gateway, so tests can pass fakes for either::

    reconciler = Reconciler(SanityClient(...), StripeGateway(key))
    result = reconciler.reconcile(slug="testosterone-check")
    result.provider_price_id  # "price_..."

Stripe products are created at most once per item.  Prices are immutable on
Stripe's side: when the catalog amount changes a new price is created and the
item is repointed at it; the old price is left in place.

There is no idempotency key and no locking.  A crash between creating a
product and writing its id back, or two reconciliations racing on the same
item, can leave a duplicate product or price on Stripe.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from flask_labshop.catalog import PRICE_ID_FIELD, PRODUCT_ID_FIELD, CatalogItem
from flask_labshop.errors import (
    InvalidInput,
    LabShopError,
    MissingPrice,
    NotFound,
    PriceUnavailable,
)
from flask_labshop.payments import to_minor_units

if TYPE_CHECKING:
    from flask_labshop.catalog import SanityClient
    from flask_labshop.payments import StripeGateway

logger = logging.getLogger(__name__)

NOT_PERSISTED_NOTE = "SANITY_WRITE_TOKEN missing, not persisted"


@dataclass
class ReconcileResult:
    """Outcome of a single reconciliation."""

    id: str
    slug: str | None
    provider_product_id: str
    provider_price_id: str
    persisted: bool = True
    note: str | None = None
    product_created: bool = False
    price_created: bool = False

    def to_response(self) -> dict[str, Any]:
        """Return the JSON body used by the provisioning endpoints."""
        body: dict[str, Any] = {
            "ok": True,
            "id": self.id,
            "slug": self.slug,
            "providerProductId": self.provider_product_id,
            "providerPriceId": self.provider_price_id,
        }
        if self.note:
            body["note"] = self.note
        return body


@dataclass
class BulkResult:
    """Outcome of :meth:`Reconciler.reconcile_missing`."""

    reconciled: list[ReconcileResult] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "reconciled": [asdict(r) for r in self.reconciled],
            "failed": dict(self.failed),
        }


class Reconciler:
    """Create or reuse the Stripe product and price for a catalog item.

    Args:
        catalog: A :class:`~flask_labshop.catalog.SanityClient` (or any object
            with ``get_by_id``, ``get_by_slug``, ``list_unprovisioned``,
            ``patch`` and ``can_write``).
        payments: A :class:`~flask_labshop.payments.StripeGateway` or
            compatible object.
        currency: Currency for created prices.
    """

    def __init__(self, catalog: "SanityClient", payments: "StripeGateway", *, currency: str = "eur") -> None:
        self.catalog = catalog
        self.payments = payments
        self.currency = currency.lower()

    def resolve(self, *, id: str | None = None, slug: str | None = None) -> CatalogItem:
        """Look the item up by *id* if given, otherwise by *slug*."""
        if not id and not slug:
            raise InvalidInput("Provide slug or id")
        item = self.catalog.get_by_id(id) if id else self.catalog.get_by_slug(slug)
        if item is None:
            raise NotFound("Product not found")
        return item

    def reconcile(self, *, id: str | None = None, slug: str | None = None) -> ReconcileResult:
        """Ensure the item has a Stripe product and a price matching its amount.

        Raises:
            InvalidInput: Neither *id* nor *slug* was given.
            NotFound: No catalog item matches.
            MissingPrice: The item has no positive ``priceEUR``.
            UpstreamFailure: Sanity or Stripe failed.
        """
        item = self.resolve(id=id, slug=slug)
        return self.reconcile_item(item)

    def reconcile_item(self, item: CatalogItem) -> ReconcileResult:
        # Checked before any Stripe call so a bad amount creates nothing.
        if not item.has_price:
            raise MissingPrice("priceEUR missing on product")
        target = to_minor_units(item.price_amount)
        metadata = {"sanityId": item.id, "slug": item.slug or ""}

        product_id = item.provider_product_id
        product_created = False
        if not product_id:
            product = self.payments.create_product(item.title, metadata)
            product_id = product.id
            product_created = True
            logger.info("Created Stripe product %s for %s", product_id, item.id)

        price_id = self._ensure_price(item, product_id, target, metadata)
        price_created = price_id != item.provider_price_id

        result = ReconcileResult(
            id=item.id,
            slug=item.slug,
            provider_product_id=product_id,
            provider_price_id=price_id,
            product_created=product_created,
            price_created=price_created,
        )

        if not self.catalog.can_write:
            logger.warning("Computed Stripe ids for %s but cannot persist them: %s", item.id, NOT_PERSISTED_NOTE)
            result.persisted = False
            result.note = NOT_PERSISTED_NOTE
            return result

        self.catalog.patch(item.id, {PRODUCT_ID_FIELD: product_id, PRICE_ID_FIELD: price_id})
        item.provider_product_id = product_id
        item.provider_price_id = price_id
        return result

    def _ensure_price(self, item: CatalogItem, product_id: str, target: int, metadata: dict[str, str]) -> str:
        current_id = item.provider_price_id
        if current_id:
            try:
                current = self.payments.retrieve_price(current_id)
            except PriceUnavailable as exc:
                if exc.missing:
                    logger.warning("Price %s for %s no longer exists on Stripe; replacing it", current_id, item.id)
                else:
                    logger.warning(
                        "Could not retrieve price %s for %s (%s); creating a replacement", current_id, item.id, exc
                    )
            else:
                if current.unit_amount == target:
                    return current_id
                logger.info(
                    "Price %s for %s is %s, catalog says %s; creating a replacement",
                    current_id,
                    item.id,
                    current.unit_amount,
                    target,
                )

        price = self.payments.create_price(
            product_id,
            target,
            currency=self.currency,
            nickname=f"{item.title} one-time",
            metadata=metadata,
        )
        logger.info("Created Stripe price %s (%s %s) for %s", price.id, target, self.currency, item.id)
        return price.id

    def reconcile_missing(self) -> BulkResult:
        """Reconcile every catalog item lacking a product or price id.

        One item failing does not stop the others; failures are collected
        by item id.
        """
        outcome = BulkResult()
        for item in self.catalog.list_unprovisioned():
            try:
                outcome.reconciled.append(self.reconcile_item(item))
            except LabShopError as exc:
                logger.error("Could not reconcile %s: %s", item.id, exc)
                outcome.failed[item.id] = exc.message
        return outcome
