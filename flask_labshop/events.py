"""Decode untyped webhook bodies into strict internal event types.

Decoding never raises: anything that does not match a known shape becomes
an :class:`IgnoredEvent` carrying the reason, which the views log and
acknowledge.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

#: Sanity document type handled by the content webhook.
PRODUCT_DOC_TYPE = "product"

#: Back-reference key set on Stripe products and prices.
CATALOG_REF_KEY = "sanityId"


@dataclass(frozen=True)
class ProductChanged:
    product_id: str
    catalog_id: str | None


@dataclass(frozen=True)
class PriceChanged:
    price_id: str
    product_id: str | None
    currency: str
    type: str
    catalog_id: str | None

    @property
    def is_one_time(self) -> bool:
        return self.type == "one_time"


@dataclass(frozen=True)
class CheckoutCompleted:
    session_id: str
    email: str | None
    mode: str


@dataclass(frozen=True)
class IgnoredEvent:
    reason: str
    event_type: str | None = None


ProviderEvent = Union[ProductChanged, PriceChanged, CheckoutCompleted, IgnoredEvent]


@dataclass(frozen=True)
class ContentChange:
    doc_type: str | None
    doc_id: str | None
    action: str | None

    @property
    def is_delete(self) -> bool:
        return self.action == "delete"


def _mapping(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def decode_provider_event(event: Any) -> ProviderEvent:
    """Map a verified Stripe event body (the parsed JSON payload) onto an internal event type."""
    event = _mapping(event)
    event_type = _str_or_none(event.get("type"))
    obj = _mapping(_mapping(event.get("data")).get("object"))
    obj_id = _str_or_none(obj.get("id"))

    if event_type is None:
        return IgnoredEvent("missing event type")
    if obj_id is None:
        return IgnoredEvent("missing object id", event_type)

    if event_type in ("product.created", "product.updated"):
        metadata = _mapping(obj.get("metadata"))
        return ProductChanged(product_id=obj_id, catalog_id=_str_or_none(metadata.get(CATALOG_REF_KEY)))

    if event_type in ("price.created", "price.updated"):
        metadata = _mapping(obj.get("metadata"))
        product = obj.get("product")
        if isinstance(product, dict):
            product = product.get("id")
        return PriceChanged(
            price_id=obj_id,
            product_id=_str_or_none(product),
            currency=str(obj.get("currency") or "").lower(),
            type=str(obj.get("type") or ""),
            catalog_id=_str_or_none(metadata.get(CATALOG_REF_KEY)),
        )

    if event_type == "checkout.session.completed":
        details = _mapping(obj.get("customer_details"))
        email = _str_or_none(details.get("email")) or _str_or_none(obj.get("customer_email"))
        return CheckoutCompleted(session_id=obj_id, email=email, mode=obj.get("mode") or "payment")

    return IgnoredEvent("unhandled event type", event_type)


def decode_content_event(payload: Any) -> ContentChange:
    """Normalize a Sanity webhook body.

    The type and id are read from the top level, falling back to a nested
    ``document``; the action comes from ``transition`` or ``action``.
    """
    payload = _mapping(payload)
    document = _mapping(payload.get("document"))
    return ContentChange(
        doc_type=_str_or_none(payload.get("_type")) or _str_or_none(document.get("_type")),
        doc_id=_str_or_none(payload.get("_id")) or _str_or_none(document.get("_id")),
        action=_str_or_none(payload.get("transition")) or _str_or_none(payload.get("action")),
    )
