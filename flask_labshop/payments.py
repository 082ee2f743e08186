"""Stripe gateway: products, one-time prices, checkout sessions and webhooks.

Wraps the official ``stripe`` library behind a small object that is built
once from configuration and handed to the reconciler, so nothing depends on
the module-global ``stripe.api_key``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe

from flask_labshop.errors import PriceUnavailable, Unconfigured, UpstreamFailure

logger = logging.getLogger(__name__)

#: Countries a checkout session accepts as shipping destinations.
DEFAULT_ALLOWED_COUNTRIES = ("IE", "GB", "FR", "DE", "ES", "NL", "BE")


def to_minor_units(amount: Any) -> int:
    """Convert a major-unit amount (``69``, ``19.99``) into integer cents.

    Rounds half up on the decimal representation, so binary floating point
    noise never shifts the result by a cent.
    """
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class ProviderProduct:
    id: str
    name: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, obj: stripe.Product) -> "ProviderProduct":
        data = obj.to_dict()
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class ProviderPrice:
    id: str
    product_id: str | None
    currency: str
    unit_amount: int | None
    type: str = "one_time"
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, obj: stripe.Price) -> "ProviderPrice":
        data = obj.to_dict()
        product = data.get("product")
        if isinstance(product, dict):
            product = product.get("id")
        return cls(
            id=data["id"],
            product_id=product,
            currency=(data.get("currency") or "").lower(),
            unit_amount=data.get("unit_amount"),
            type=data.get("type") or "one_time",
            metadata=dict(data.get("metadata") or {}),
        )


class StripeGateway:
    """Payment-provider client backed by the ``stripe`` library.

    Args:
        api_key: Stripe secret key (``sk_test_...`` / ``sk_live_...``).
            An empty key is accepted at construction time; every call then
            raises :class:`~flask_labshop.errors.Unconfigured`.
    """

    def __init__(self, api_key: str | None) -> None:
        self._api_key = api_key or ""

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    @property
    def is_live(self) -> bool:
        """``True`` for a live-mode secret key."""
        return self._api_key.startswith("sk_live")

    def _key(self) -> str:
        if not self._api_key:
            raise Unconfigured("STRIPE_SECRET_KEY missing")
        return self._api_key

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def create_product(self, name: str, metadata: dict[str, str]) -> ProviderProduct:
        api_key = self._key()
        try:
            obj = stripe.Product.create(api_key=api_key, name=name, metadata=metadata)
        except stripe.StripeError as exc:
            raise UpstreamFailure(f"Stripe product creation failed: {exc}") from exc
        return ProviderProduct.from_stripe(obj)

    def retrieve_product(self, product_id: str) -> ProviderProduct:
        api_key = self._key()
        try:
            obj = stripe.Product.retrieve(product_id, api_key=api_key)
        except stripe.StripeError as exc:
            raise UpstreamFailure(f"Stripe product {product_id} unavailable: {exc}") from exc
        return ProviderProduct.from_stripe(obj)

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    def create_price(
        self,
        product_id: str,
        unit_amount: int,
        *,
        currency: str = "eur",
        nickname: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> ProviderPrice:
        """Create a one-time price.  Stripe prices are immutable once created."""
        api_key = self._key()
        params: dict[str, Any] = {
            "product": product_id,
            "currency": currency,
            "unit_amount": unit_amount,
        }
        if nickname:
            params["nickname"] = nickname
        if metadata:
            params["metadata"] = metadata
        try:
            obj = stripe.Price.create(api_key=api_key, **params)
        except stripe.StripeError as exc:
            raise UpstreamFailure(f"Stripe price creation failed: {exc}") from exc
        return ProviderPrice.from_stripe(obj)

    def retrieve_price(self, price_id: str) -> ProviderPrice:
        """Fetch *price_id*.

        Raises:
            PriceUnavailable: ``missing`` is set when Stripe reports the
                price does not exist, cleared for any other failure.
        """
        api_key = self._key()
        try:
            obj = stripe.Price.retrieve(price_id, api_key=api_key)
        except stripe.InvalidRequestError as exc:
            missing = getattr(exc, "code", None) == "resource_missing" or exc.http_status == 404
            raise PriceUnavailable(str(exc), missing=missing) from exc
        except stripe.StripeError as exc:
            raise PriceUnavailable(str(exc), missing=False) from exc
        return ProviderPrice.from_stripe(obj)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def create_checkout_session(
        self,
        price_id: str,
        *,
        success_url: str,
        cancel_url: str,
        allowed_countries: tuple[str, ...] | list[str] = DEFAULT_ALLOWED_COUNTRIES,
    ) -> str:
        """Create a single-item payment session and return its redirect URL."""
        api_key = self._key()
        try:
            session = stripe.checkout.Session.create(
                api_key=api_key,
                mode="payment",
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                shipping_address_collection={"allowed_countries": list(allowed_countries)},
            )
        except stripe.StripeError as exc:
            raise UpstreamFailure(exc.user_message or str(exc) or "Stripe error") from exc
        return session.url

    def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        """Fetch a checkout session with its line items and their products expanded.

        The session is returned as a plain nested ``dict``.
        """
        api_key = self._key()
        try:
            session = stripe.checkout.Session.retrieve(
                session_id,
                api_key=api_key,
                expand=["line_items", "line_items.data.price.product"],
            )
        except stripe.StripeError as exc:
            raise UpstreamFailure(f"Stripe session {session_id} unavailable: {exc}") from exc
        return session.to_dict()

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    @staticmethod
    def construct_event(payload: bytes, sig_header: str, secret: str) -> Any:
        """Verify the ``Stripe-Signature`` header against the raw *payload*.

        Raises:
            stripe.SignatureVerificationError: Bad or stale signature.
            ValueError: *payload* is not valid JSON.
        """
        return stripe.Webhook.construct_event(payload, sig_header, secret)
