"""Mirror Stripe-side product and price ids back onto catalog items."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from flask_labshop.catalog import PRICE_ID_FIELD, PRODUCT_ID_FIELD
from flask_labshop.errors import UpstreamFailure
from flask_labshop.events import CATALOG_REF_KEY, PriceChanged, ProductChanged, ProviderEvent

if TYPE_CHECKING:
    from flask_labshop.catalog import SanityClient
    from flask_labshop.payments import StripeGateway

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    applied: bool
    reason: str = ""


class ReverseSync:
    """Apply :class:`ProductChanged` / :class:`PriceChanged` events to the catalog.

    Events that cannot be applied (no back-reference, recurring or
    non-matching currency, no write token) are logged and reported as not
    applied.  They are never raised, so Stripe does not retry them.
    """

    def __init__(self, catalog: "SanityClient", payments: "StripeGateway", *, currency: str = "eur") -> None:
        self.catalog = catalog
        self.payments = payments
        self.currency = currency.lower()

    def handle(self, event: ProviderEvent) -> SyncOutcome:
        if isinstance(event, (ProductChanged, PriceChanged)) and not self.catalog.can_write:
            logger.warning("Ignoring Stripe %s event: SANITY_WRITE_TOKEN missing", type(event).__name__)
            return SyncOutcome(False, "SANITY_WRITE_TOKEN missing")
        if isinstance(event, ProductChanged):
            return self._apply(event.catalog_id, {PRODUCT_ID_FIELD: event.product_id}, event.product_id)
        if isinstance(event, PriceChanged):
            return self._handle_price(event)
        return SyncOutcome(False, "not a product or price event")

    def _handle_price(self, event: PriceChanged) -> SyncOutcome:
        if not event.is_one_time or event.currency != self.currency:
            logger.info("Ignoring price %s (%s, %s)", event.price_id, event.type, event.currency)
            return SyncOutcome(False, "not a one-time price in the shop currency")

        catalog_id = event.catalog_id
        if not catalog_id and event.product_id:
            product = self.payments.retrieve_product(event.product_id)
            catalog_id = product.metadata.get(CATALOG_REF_KEY) or None
        return self._apply(catalog_id, {PRICE_ID_FIELD: event.price_id}, event.price_id)

    def _apply(self, catalog_id: str | None, fields: dict[str, str], provider_id: str) -> SyncOutcome:
        if not catalog_id:
            logger.info("No catalog back-reference on %s; ignoring", provider_id)
            return SyncOutcome(False, "no catalog back-reference")
        try:
            self.catalog.patch(catalog_id, fields)
        except UpstreamFailure:
            logger.exception("Failed to write %s onto catalog item %s", provider_id, catalog_id)
            raise
        return SyncOutcome(True)
