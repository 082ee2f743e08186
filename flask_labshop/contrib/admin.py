"""Flask-Admin views for the lab-shop catalog and its recorded orders.

Install the optional dependency before using this module::

    pip install "flask-labshop[admin]"

Example – manual registration::

    from flask import Flask
    from flask_admin import Admin
    from flask_labshop import FlaskLabShop
    from flask_labshop.contrib.admin import CatalogView, OrderView

    app = Flask(__name__)
    ext = FlaskLabShop(app)

    admin = Admin(app, name="Lab Shop")
    admin.add_view(CatalogView(ext, name="Catalog", endpoint="catalog"))
    admin.add_view(OrderView(ext, name="Orders", endpoint="orders"))

Example – both at once::

    register_admin_views(admin, ext)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

try:
    from flask_admin.actions import action
    from flask_admin.model import BaseModelView
except ImportError as exc:  # pragma: no cover
    raise ImportError(
        "flask-admin is required for flask_labshop.contrib.admin. "
        "Install it with: pip install 'flask-labshop[admin]'"
    ) from exc

from flask_labshop.errors import LabShopError

if TYPE_CHECKING:
    from flask_labshop import FlaskLabShop

logger = logging.getLogger(__name__)


def _sort_key(value: Any) -> tuple:
    """Order numbers numerically and before text; missing values last."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value, "")
    if value is None:
        return (2, 0, "")
    return (1, 0, str(value))


class _DictListView(BaseModelView):
    """Read-only :class:`BaseModelView` over a list of plain dicts.

    Subclasses set :attr:`pk_field`, :attr:`column_list` and implement
    :meth:`_rows`.
    """

    can_create = False
    can_edit = False
    can_delete = False

    pk_field = "id"

    def __init__(self, ext: "FlaskLabShop", model: type, **kwargs: Any) -> None:
        self._ext = ext
        super().__init__(model=model, **kwargs)

    def _rows(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Required BaseModelView abstract methods
    # ------------------------------------------------------------------

    def scaffold_list_columns(self) -> list[str]:
        return list(self.column_list)

    def scaffold_sortable_columns(self) -> dict[str, str]:
        return {c: c for c in self.column_sortable_list}

    def scaffold_form(self):
        from wtforms import Form as WTForm

        return WTForm

    def scaffold_list_form(self, widget=None, validators=None):
        from wtforms import Form as WTForm

        return WTForm

    def init_search(self) -> bool:
        return bool(self.column_searchable_list)

    def get_pk_value(self, model) -> str | None:
        if isinstance(model, dict):
            return model.get(self.pk_field)
        return getattr(model, self.pk_field, None)

    def _get_field_value(self, model, name):
        if isinstance(model, dict):
            return model.get(name)
        return super()._get_field_value(model, name)

    def get_list(self, page, sort_field, sort_desc, search, filters, page_size=None):
        rows = self._rows()

        if search:
            search_lower = search.lower()
            rows = [
                r
                for r in rows
                if any(search_lower in str(r.get(c) or "").lower() for c in self.column_searchable_list)
            ]

        if sort_field:
            rows = sorted(rows, key=lambda r: _sort_key(r.get(sort_field)), reverse=bool(sort_desc))

        count = len(rows)

        if page_size is None:
            page_size = self.page_size
        if page is not None and page_size:
            rows = rows[page * page_size : (page + 1) * page_size]

        return count, rows

    def get_one(self, id: str):
        return next((r for r in self._rows() if r.get(self.pk_field) == id), None)

    def create_model(self, form):
        return False

    def update_model(self, form, model):
        return False

    def delete_model(self, model):
        return False


class _OrderRecord:
    """Placeholder model class used as the ``model`` argument for :class:`OrderView`."""


class OrderView(_DictListView):
    """Lists orders recorded from completed Stripe checkouts, newest first."""

    pk_field = "stripeSessionId"
    can_view_details = True

    column_list = ["createdAt", "email", "mode", "itemSummary", "stripeSessionId"]
    column_searchable_list = ["email", "stripeSessionId"]
    column_sortable_list = ["createdAt", "email"]
    column_labels = {
        "createdAt": "Created",
        "email": "Email",
        "mode": "Mode",
        "itemSummary": "Items",
        "stripeSessionId": "Session",
    }

    def __init__(
        self,
        ext: "FlaskLabShop",
        name: str = "Orders",
        endpoint: str = "orders",
        category: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(ext, _OrderRecord, name=name, endpoint=endpoint, category=category, **kwargs)

    def _rows(self) -> list[dict[str, Any]]:
        rows = []
        for order in self._ext.all_orders():
            summary = ", ".join(
                f"{i.get('quantity', 1)} × {i.get('name') or i.get('priceId')}" for i in order.get("items") or []
            )
            rows.append({**order, "itemSummary": summary or "—"})
        return rows

    def get_empty_list_message(self) -> str:
        return "No orders recorded yet."


class _CatalogRecord:
    """Placeholder model class used as the ``model`` argument for :class:`CatalogView`."""


class CatalogView(_DictListView):
    """Lists Sanity catalog items with their Stripe ids.

    The **Reconcile with Stripe** bulk action runs the reconciler for every
    selected item.
    """

    pk_field = "id"

    column_list = ["title", "slug", "priceEUR", "stripeProductId", "stripePriceIdOneTime"]
    column_searchable_list = ["title", "slug"]
    column_sortable_list = ["title", "slug", "priceEUR"]
    column_labels = {
        "title": "Title",
        "slug": "Slug",
        "priceEUR": "Price (€)",
        "stripeProductId": "Stripe product",
        "stripePriceIdOneTime": "Stripe price",
    }

    def __init__(
        self,
        ext: "FlaskLabShop",
        name: str = "Catalog",
        endpoint: str = "catalog",
        category: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(ext, _CatalogRecord, name=name, endpoint=endpoint, category=category, **kwargs)

    def _rows(self) -> list[dict[str, Any]]:
        return [item.to_dict() for item in self._ext.catalog.list_items()]

    def get_empty_list_message(self) -> str:
        return "No products in the catalog."

    @action(
        "reconcile",
        "Reconcile with Stripe",
        "Create or refresh Stripe products and prices for the selected items?",
    )
    def action_reconcile(self, ids: list[str]) -> None:
        """Reconcile the selected catalog items."""
        from flask import flash

        count = 0
        for item_id in ids:
            try:
                self._ext.reconcile(id=item_id)
                count += 1
            except LabShopError as exc:
                logger.warning("Admin reconcile of %s failed: %s", item_id, exc)
                flash(f"{item_id}: {exc.message}", "danger")
        flash(f"{count} product(s) reconciled with Stripe.", "success")


def register_admin_views(admin, ext: "FlaskLabShop", *, category: str = "Lab Shop") -> None:
    """Register :class:`CatalogView` and :class:`OrderView` into *admin*."""
    admin.add_view(CatalogView(ext, name="Catalog", endpoint="labshop_catalog", category=category))
    admin.add_view(OrderView(ext, name="Orders", endpoint="labshop_orders", category=category))
