"""Blueprint with provisioning, webhook, checkout and order routes."""

from __future__ import annotations

import hmac
import json
import logging
from typing import TYPE_CHECKING

import stripe
from flask import Blueprint, current_app, jsonify, request

from flask_labshop.cli import register_commands
from flask_labshop.errors import InvalidInput, LabShopError, Unauthorized
from flask_labshop.events import (
    PRODUCT_DOC_TYPE,
    CheckoutCompleted,
    IgnoredEvent,
    decode_content_event,
    decode_provider_event,
)

if TYPE_CHECKING:
    from flask_labshop import FlaskLabShop

logger = logging.getLogger(__name__)

#: Maximum number of orders returned by the order listing.
ORDER_LIST_LIMIT = 50


def _require_bearer(config_key: str) -> None:
    """Raise :class:`Unauthorized` unless the request carries ``Bearer <secret>``."""
    secret: str | None = current_app.config.get(config_key)
    got = request.headers.get("Authorization", "")
    if not secret or not hmac.compare_digest(got.encode(), f"Bearer {secret}".encode()):
        raise Unauthorized("Unauthorized")


def _identifier(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidInput(f"{key} must be a string")
    return value


def _site_path(data: dict, key: str, default: str) -> str:
    """Return a same-site path from *data*, or *default* when absent."""
    value = data.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, str) or not value.startswith("/") or value.startswith("//"):
        raise InvalidInput(f"{key} must be a path starting with /")
    return value


def create_blueprint(ext: "FlaskLabShop") -> Blueprint:
    """Return a Blueprint pre-configured with the extension instance."""

    bp = Blueprint("labshop", __name__, cli_group="labshop")
    register_commands(bp, ext)

    @bp.errorhandler(LabShopError)
    def handle_labshop_error(exc: LabShopError):
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc)
        return jsonify({"error": exc.message}), exc.status_code

    # ------------------------------------------------------------------
    # Provisioning – reconcile one catalog item on demand
    # ------------------------------------------------------------------

    @bp.route("/admin/provision", methods=["POST"])
    def provision():
        """Create or refresh the Stripe product and price for a catalog item.

        Expects ``Authorization: Bearer <LABSHOP_PROVISION_SECRET>`` and a JSON
        body with ``slug`` or ``id``.
        """
        _require_bearer("LABSHOP_PROVISION_SECRET")

        if (current_app.debug or current_app.testing) and ext.payments.is_live:
            return jsonify({"error": "Refusing to use live Stripe key in dev."}), 400

        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            data = {}

        result = ext.reconcile(id=_identifier(data, "id"), slug=_identifier(data, "slug"))
        return jsonify(result.to_response())

    # ------------------------------------------------------------------
    # Sanity webhook – reconcile on content changes
    # ------------------------------------------------------------------

    @bp.route("/webhooks/sanity/product", methods=["POST"])
    def sanity_webhook():
        """Reconcile a product after it was created, updated or published in Sanity.

        Configure the Sanity webhook with the filter
        ``_type == "product" && defined(priceEUR)`` and the header
        ``Authorization: Bearer <LABSHOP_PROVISION_SECRET>``.
        """
        _require_bearer("LABSHOP_PROVISION_SECRET")

        try:
            payload = json.loads(request.get_data(as_text=True))
        except ValueError:
            return jsonify({"error": "Invalid JSON"}), 400

        change = decode_content_event(payload)
        if change.doc_type != PRODUCT_DOC_TYPE:
            return jsonify({"skipped": True, "reason": "Not product"})
        if not change.doc_id:
            return jsonify({"skipped": True, "reason": "Missing id"})
        if change.is_delete:
            return jsonify({"skipped": True, "reason": "Delete event"})

        result = ext.reconcile(id=change.doc_id)
        return jsonify({"provisioned": True, **result.to_response()})

    # ------------------------------------------------------------------
    # Stripe webhook – mirror Stripe ids back and record orders
    # ------------------------------------------------------------------

    @bp.route("/webhooks/stripe", methods=["POST"])
    def stripe_webhook():
        """Receive Stripe events.

        The ``Stripe-Signature`` header is verified against the raw body
        with ``LABSHOP_STRIPE_WEBHOOK_SECRET``.  A missing secret or header
        is acknowledged with 200 so Stripe does not retry during setup.
        """
        secret: str | None = current_app.config.get("LABSHOP_STRIPE_WEBHOOK_SECRET")
        signature = request.headers.get("Stripe-Signature")
        if not secret or not signature:
            logger.warning("Stripe webhook misconfigured: missing secret or signature")
            return jsonify({"ok": True})

        payload: bytes = request.get_data()
        try:
            ext.payments.construct_event(payload, signature, secret)
        except (stripe.SignatureVerificationError, ValueError) as exc:
            logger.error("Invalid Stripe signature: %s", exc)
            return jsonify({"error": "Invalid signature"}), 400

        event = decode_provider_event(json.loads(payload))
        try:
            if isinstance(event, IgnoredEvent):
                logger.info("Ignoring Stripe event %s: %s", event.event_type, event.reason)
            elif isinstance(event, CheckoutCompleted):
                try:
                    ext.record_checkout(event)
                except LabShopError:
                    logger.exception("Failed to save order for session %s", event.session_id)
            else:
                ext.reverse_sync.handle(event)
        except LabShopError:
            logger.exception("Stripe webhook handler error")
            return jsonify({"error": "Webhook handler error"}), 500

        return jsonify({"received": True})

    # ------------------------------------------------------------------
    # Checkout – hosted payment page for a single price
    # ------------------------------------------------------------------

    @bp.route("/checkout/create", methods=["POST"])
    def checkout_create():
        """Create a Stripe Checkout session for ``priceId`` and return its URL."""
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON"}), 400

        price_id = data.get("priceId")
        if not price_id or not isinstance(price_id, str):
            return jsonify({"error": "priceId is required"}), 400
        success_path = _site_path(data, "successPath", "/thanks")
        cancel_path = _site_path(data, "cancelPath", "/tests")

        site = current_app.config["LABSHOP_SITE_URL"].rstrip("/")
        url = ext.payments.create_checkout_session(
            price_id,
            success_url=f"{site}{success_path}?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{site}{cancel_path}",
            allowed_countries=current_app.config["LABSHOP_ALLOWED_COUNTRIES"],
        )
        return jsonify({"url": url})

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    @bp.route("/admin/orders")
    def orders():
        """Return the most recent orders (bearer ``LABSHOP_ADMIN_TOKEN``)."""
        _require_bearer("LABSHOP_ADMIN_TOKEN")
        return jsonify({"orders": ext.all_orders(limit=ORDER_LIST_LIMIT)})

    return bp
