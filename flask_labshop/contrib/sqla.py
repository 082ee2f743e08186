"""Flask-Admin ModelView for the SQLAlchemy-backed Order model.

Requires the ``db`` extra::

    pip install "flask-labshop[db]"

Example::

    from flask import Flask
    from flask_sqlalchemy import SQLAlchemy
    from flask_admin import Admin
    from flask_labshop import FlaskLabShop
    from flask_labshop.models import Base, Order
    from flask_labshop.contrib.sqla import OrderModelView

    db = SQLAlchemy(model_class=Base)

    app = Flask(__name__)
    app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///orders.db"
    app.config["SECRET_KEY"] = "change-me"

    ext = FlaskLabShop(app, db=db)
    db.init_app(app)

    admin = Admin(app, name="Lab Shop")
    admin.add_view(OrderModelView(Order, db.session, name="Orders"))
"""

from __future__ import annotations

try:
    from flask_admin.contrib.sqla import ModelView
except ImportError as exc:  # pragma: no cover
    raise ImportError(
        "flask-admin and flask-sqlalchemy are required for "
        "flask_labshop.contrib.sqla. "
        "Install them with: pip install 'flask-labshop[db]'"
    ) from exc


def _format_items(view, context, model, name) -> str:
    """Render the ``items`` JSON column as ``2 × Thyroid Basic, 1 × ...``."""
    items = getattr(model, name) or []
    return ", ".join(
        f"{item.get('quantity', 1)} × {item.get('name') or item.get('priceId') or '?'}"
        for item in items
        if isinstance(item, dict)
    ) or "—"


class OrderModelView(ModelView):
    """Read-only Flask-Admin view for :class:`~flask_labshop.models.Order`.

    Orders are written by the Stripe webhook only, so create, edit and
    delete are disabled.
    """

    can_create = False
    can_edit = False
    can_delete = False
    can_view_details = True

    column_list = ["created_at", "email", "mode", "items", "stripe_session_id"]
    column_searchable_list = ["email", "stripe_session_id"]
    column_filters = ["mode", "created_at"]
    column_default_sort = ("created_at", True)
    column_labels = {
        "created_at": "Created",
        "stripe_session_id": "Session",
    }
    column_formatters = {"items": _format_items}
