"""SQLAlchemy ORM model for orders recorded from completed checkouts.

Usage with Flask-SQLAlchemy 3.x::

    from flask import Flask
    from flask_sqlalchemy import SQLAlchemy
    from flask_labshop import FlaskLabShop
    from flask_labshop.models import Base

    db = SQLAlchemy(model_class=Base)

    app = Flask(__name__)
    app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///orders.db"
    ext = FlaskLabShop(app, db=db)
    db.init_app(app)

    with app.app_context():
        db.create_all()

Or bring your own table by mixing in :class:`OrderMixin`::

    class Pedido(OrderMixin, db.Model):
        __tablename__ = "pedidos"
        id: Mapped[int] = mapped_column(Integer, primary_key=True)

    ext = FlaskLabShop(app, db=db, order_model=Pedido)
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, JSON, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, validates


class OrderMixin:
    """Declarative mixin with every order column.

    ``items`` holds a list of ``{"name", "price", "quantity", "priceId"}``
    dicts, prices in major units.
    """

    stripe_session_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(320))
    mode: Mapped[str] = mapped_column(String(32), default="payment")
    items: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    VALID_MODES: frozenset[str] = frozenset(("payment", "subscription", "setup"))

    @validates("mode")
    def validate_mode(self, key: str, value: str) -> str:
        """Reject checkout modes Stripe does not have."""
        if value not in self.VALID_MODES:
            raise ValueError(
                f"Invalid checkout mode {value!r}. "
                f"Allowed values: {', '.join(sorted(self.VALID_MODES))}."
            )
        return value

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.stripe_session_id} email={self.email!r}>"

    def to_dict(self) -> dict:
        """Return a plain-dict representation (mirrors the in-memory store format)."""
        return {
            "stripeSessionId": self.stripe_session_id,
            "email": self.email,
            "mode": self.mode,
            "items": list(self.items or []),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class Base(DeclarativeBase):
    """Shared declarative base for flask-labshop models."""


class Order(OrderMixin, Base):
    """Built-in order record backed by the ``orders`` table."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
