"""Tests for the SQLAlchemy order store and flask_labshop.contrib.sqla."""

import pytest
from flask import Flask
from flask_admin import Admin
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Integer
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from conftest import FakeCatalog, FakePayments, make_item
from flask_labshop import FlaskLabShop
from flask_labshop.contrib.sqla import OrderModelView
from flask_labshop.models import Base, Order, OrderMixin


@pytest.fixture
def sqla_app():
    """Flask app with in-memory SQLite, FlaskLabShop and OrderModelView."""
    application = Flask(__name__)
    application.config["TESTING"] = True
    application.config["SECRET_KEY"] = "test-secret"
    application.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"

    db = SQLAlchemy(model_class=Base)
    db.init_app(application)

    ext = FlaskLabShop(application, catalog=FakeCatalog([make_item()]), payments=FakePayments(), db=db)

    admin_inst = Admin(application, name="Test Admin")
    admin_inst.add_view(OrderModelView(Order, db.session, name="Orders", endpoint="orders"))

    application.extensions["test_db"] = db
    application.extensions["test_ext"] = ext

    with application.app_context():
        db.create_all()

    return application


@pytest.fixture
def sqla_client(sqla_app):
    return sqla_app.test_client()


@pytest.fixture
def sqla_db(sqla_app):
    return sqla_app.extensions["test_db"]


@pytest.fixture
def sqla_ext(sqla_app):
    return sqla_app.extensions["test_ext"]


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


def test_order_model_fields():
    cols = {c.key for c in Order.__table__.columns}
    assert {"id", "stripe_session_id", "email", "mode", "items", "created_at"} <= cols


def test_order_model_repr():
    o = Order(stripe_session_id="cs_1", email="pat@example.com", mode="payment")
    assert "cs_1" in repr(o)
    assert "pat@example.com" in repr(o)


def test_order_invalid_mode_rejected():
    with pytest.raises(ValueError, match="Invalid checkout mode"):
        Order(stripe_session_id="cs_1", email="pat@example.com", mode="bogus")


def test_order_to_dict():
    o = Order(
        stripe_session_id="cs_2",
        email="pat@example.com",
        mode="payment",
        items=[{"name": "Thyroid Basic", "price": 59.0, "quantity": 1, "priceId": "price_1"}],
    )
    d = o.to_dict()
    assert d["stripeSessionId"] == "cs_2"
    assert d["items"][0]["name"] == "Thyroid Basic"
    assert d["createdAt"] is None


# ---------------------------------------------------------------------------
# DB-backed store
# ---------------------------------------------------------------------------


def test_save_order_to_db(sqla_app, sqla_db, sqla_ext):
    with sqla_app.app_context():
        sqla_ext.save_order(session_id="cs_db_1", email="pat@example.com", mode="payment", items=[])

        record = sqla_db.session.query(Order).filter_by(stripe_session_id="cs_db_1").first()
        assert record is not None
        assert record.email == "pat@example.com"
        assert sqla_ext._orders == {}


def test_get_order_from_db(sqla_app, sqla_ext):
    with sqla_app.app_context():
        sqla_ext.save_order(session_id="cs_db_2", email="pat@example.com", mode="payment", items=[])

        assert sqla_ext.get_order("cs_db_2")["email"] == "pat@example.com"
        assert sqla_ext.get_order("missing") is None


def test_all_orders_limit(sqla_app, sqla_ext):
    with sqla_app.app_context():
        for n in range(3):
            sqla_ext.save_order(session_id=f"cs_{n}", email="pat@example.com", mode="payment", items=[])

        orders = sqla_ext.all_orders(limit=2)
        assert len(orders) == 2
        assert orders[0]["stripeSessionId"] == "cs_2"


def test_custom_order_model():
    """A model mixing in OrderMixin receives the orders."""

    class CustomBase(DeclarativeBase):
        pass

    db = SQLAlchemy(model_class=CustomBase)

    class Pedido(OrderMixin, db.Model):
        __tablename__ = "pedidos"
        id: Mapped[int] = mapped_column(Integer, primary_key=True)

    app = Flask(__name__)
    app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
    db.init_app(app)
    ext = FlaskLabShop(app, catalog=FakeCatalog(), payments=FakePayments(), db=db, order_model=Pedido)

    with app.app_context():
        db.create_all()
        ext.save_order(session_id="cs_p", email="pat@example.com", mode="payment", items=[])
        assert db.session.query(Pedido).count() == 1


# ---------------------------------------------------------------------------
# Admin view
# ---------------------------------------------------------------------------


def test_admin_order_list(sqla_app, sqla_client, sqla_ext):
    with sqla_app.app_context():
        sqla_ext.save_order(
            session_id="cs_admin_1",
            email="pat@example.com",
            mode="payment",
            items=[{"name": "Thyroid Basic", "price": 59.0, "quantity": 2, "priceId": "price_1"}],
        )

    resp = sqla_client.get("/admin/orders/")
    assert resp.status_code == 200
    assert b"cs_admin_1" in resp.data
    assert "2 × Thyroid Basic".encode() in resp.data


def test_admin_order_view_is_read_only(sqla_client):
    assert sqla_client.get("/admin/orders/new/").status_code in (302, 403, 404)
