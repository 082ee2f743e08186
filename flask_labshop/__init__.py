"""flask_labshop – Flask extension keeping a Sanity lab-test catalog in sync with Stripe."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from flask_labshop.catalog import SanityClient
from flask_labshop.events import CheckoutCompleted
from flask_labshop.payments import DEFAULT_ALLOWED_COUNTRIES, StripeGateway
from flask_labshop.reconcile import ReconcileResult, Reconciler
from flask_labshop.sync import ReverseSync
from flask_labshop.version import __version__
from flask_labshop.views import create_blueprint

__all__ = ["FlaskLabShop", "ReconcileResult", "__version__"]

logger = logging.getLogger(__name__)

UNKNOWN_EMAIL = "unknown@example.com"


class FlaskLabShop:
    """Flask extension wiring the Sanity catalog and Stripe into an application.

    Usage – application factory pattern::

        from flask import Flask
        from flask_labshop import FlaskLabShop

        labshop = FlaskLabShop()

        def create_app():
            app = Flask(__name__)
            app.config.from_prefixed_env()
            labshop.init_app(app)
            return app

    Usage – explicit clients (tests, scripts)::

        ext = FlaskLabShop(app, catalog=SanityClient("abc123"), payments=StripeGateway(key))

    Usage – with SQLAlchemy order storage (Flask-SQLAlchemy 3.x)::

        from flask_sqlalchemy import SQLAlchemy
        from flask_labshop.models import Base

        db = SQLAlchemy(model_class=Base)
        ext = FlaskLabShop(app, db=db)
        db.init_app(app)

    Configuration keys (set on ``app.config``):

    ``LABSHOP_URL_PREFIX``
        URL prefix for the blueprint (default: ``"/api"``).
    ``LABSHOP_PROVISION_SECRET``
        Bearer token expected by the provisioning endpoint and the Sanity
        webhook.  When unset both endpoints answer 401.
    ``LABSHOP_ADMIN_TOKEN``
        Bearer token for the order listing.
    ``LABSHOP_STRIPE_SECRET_KEY`` / ``LABSHOP_STRIPE_WEBHOOK_SECRET``
        Stripe API key and webhook signing secret.
    ``LABSHOP_SANITY_PROJECT_ID``, ``LABSHOP_SANITY_DATASET``,
    ``LABSHOP_SANITY_API_VERSION``, ``LABSHOP_SANITY_READ_TOKEN``,
    ``LABSHOP_SANITY_WRITE_TOKEN``
        Sanity connection.  Without a write token ids are computed but not
        saved.
    ``LABSHOP_SITE_URL``
        Public site origin used to build checkout redirect URLs.
    ``LABSHOP_CURRENCY``
        Currency of created prices (default ``"eur"``).
    ``LABSHOP_ALLOWED_COUNTRIES``
        Shipping destinations accepted at checkout.
    """

    def __init__(self, app=None, *, catalog=None, payments=None, db=None, order_model=None) -> None:
        self._catalog = catalog
        self._payments = payments
        self._db = db
        self._order_model = order_model
        self._reconciler: Reconciler | None = None
        self._reverse_sync: ReverseSync | None = None
        # Simple in-memory order store: {session_id: dict}
        # Used when no SQLAlchemy db is provided.
        self._orders: dict[str, dict[str, Any]] = {}

        if app is not None:
            self.init_app(app)

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def init_app(self, app) -> None:
        """Initialise the extension against *app*."""
        app.config.setdefault("LABSHOP_URL_PREFIX", "/api")
        app.config.setdefault("LABSHOP_PROVISION_SECRET", None)
        app.config.setdefault("LABSHOP_ADMIN_TOKEN", None)
        app.config.setdefault("LABSHOP_STRIPE_SECRET_KEY", None)
        app.config.setdefault("LABSHOP_STRIPE_WEBHOOK_SECRET", None)
        app.config.setdefault("LABSHOP_SANITY_PROJECT_ID", "")
        app.config.setdefault("LABSHOP_SANITY_DATASET", "production")
        app.config.setdefault("LABSHOP_SANITY_API_VERSION", "2024-07-01")
        app.config.setdefault("LABSHOP_SANITY_READ_TOKEN", None)
        app.config.setdefault("LABSHOP_SANITY_WRITE_TOKEN", None)
        app.config.setdefault("LABSHOP_SITE_URL", "http://localhost:5000")
        app.config.setdefault("LABSHOP_CURRENCY", "eur")
        app.config.setdefault("LABSHOP_ALLOWED_COUNTRIES", list(DEFAULT_ALLOWED_COUNTRIES))

        if self._catalog is None:
            self._catalog = SanityClient(
                app.config["LABSHOP_SANITY_PROJECT_ID"],
                app.config["LABSHOP_SANITY_DATASET"],
                api_version=app.config["LABSHOP_SANITY_API_VERSION"],
                read_token=app.config["LABSHOP_SANITY_READ_TOKEN"],
                write_token=app.config["LABSHOP_SANITY_WRITE_TOKEN"],
            )
        if self._payments is None:
            self._payments = StripeGateway(app.config["LABSHOP_STRIPE_SECRET_KEY"])

        currency = app.config["LABSHOP_CURRENCY"]
        self._reconciler = Reconciler(self._catalog, self._payments, currency=currency)
        self._reverse_sync = ReverseSync(self._catalog, self._payments, currency=currency)

        blueprint = create_blueprint(self)
        app.register_blueprint(blueprint, url_prefix=app.config["LABSHOP_URL_PREFIX"])

        app.extensions["labshop"] = self

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def _require(self, value, name: str):
        if value is None:
            raise RuntimeError(
                f"FlaskLabShop extension not initialised ({name}). Call init_app(app) first."
            )
        return value

    @property
    def catalog(self) -> SanityClient:
        """The content-store client."""
        return self._require(self._catalog, "catalog")

    @property
    def payments(self) -> StripeGateway:
        """The Stripe gateway."""
        return self._require(self._payments, "payments")

    @property
    def reconciler(self) -> Reconciler:
        return self._require(self._reconciler, "reconciler")

    @property
    def reverse_sync(self) -> ReverseSync:
        return self._require(self._reverse_sync, "reverse_sync")

    def reconcile(self, *, id: str | None = None, slug: str | None = None) -> ReconcileResult:
        """Shortcut for :meth:`Reconciler.reconcile`."""
        return self.reconciler.reconcile(id=id, slug=slug)

    @property
    def _model(self):
        if self._order_model is not None:
            return self._order_model
        from flask_labshop.models import Order

        return Order

    # ------------------------------------------------------------------
    # Order store helpers
    # ------------------------------------------------------------------

    def record_checkout(self, event: CheckoutCompleted) -> dict[str, Any]:
        """Fetch the completed session's line items from Stripe and store an order."""
        session = self.payments.retrieve_checkout_session(event.session_id)
        line_items = (session.get("line_items") or {}).get("data") or []

        items = []
        for line in line_items:
            price = line.get("price") or {}
            product = price.get("product")
            name = product.get("name") if isinstance(product, dict) else None
            unit_amount = price.get("unit_amount")
            items.append(
                {
                    "name": name or "Unknown Product",
                    "price": unit_amount / 100 if unit_amount is not None else 0,
                    "quantity": line.get("quantity") or 1,
                    "priceId": price.get("id"),
                }
            )

        return self.save_order(
            session_id=event.session_id,
            email=event.email or UNKNOWN_EMAIL,
            mode=event.mode,
            items=items,
        )

    def save_order(self, *, session_id: str, email: str, mode: str, items: list[dict]) -> dict[str, Any]:
        """Persist an order.

        When a SQLAlchemy *db* was provided the record is saved to the
        database; otherwise it is kept in the in-memory store.
        """
        if self._db is not None:
            record = self._model(
                stripe_session_id=session_id,
                email=email,
                mode=mode,
                items=items,
            )
            self._db.session.add(record)
            self._db.session.commit()
            data = record.to_dict()
        else:
            data = {
                "stripeSessionId": session_id,
                "email": email,
                "mode": mode,
                "items": items,
                "createdAt": datetime.now(timezone.utc).isoformat(),
            }
            self._orders[session_id] = data

        logger.info("Order saved for session %s", session_id)
        return data

    def get_order(self, session_id: str) -> dict[str, Any] | None:
        """Return the stored order for *session_id*, or ``None``."""
        if self._db is not None:
            record = (
                self._db.session.query(self._model)
                .filter_by(stripe_session_id=session_id)
                .first()
            )
            return record.to_dict() if record is not None else None
        return self._orders.get(session_id)

    def all_orders(self, *, limit: int | None = None) -> list[dict[str, Any]]:
        """Return stored orders, newest first."""
        if self._db is not None:
            model = self._model
            query = self._db.session.query(model).order_by(model.created_at.desc(), model.id.desc())
            if limit is not None:
                query = query.limit(limit)
            return [r.to_dict() for r in query.all()]

        orders = sorted(self._orders.values(), key=lambda o: o["createdAt"], reverse=True)
        return orders[:limit] if limit is not None else orders
