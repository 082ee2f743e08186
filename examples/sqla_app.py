"""Flask app with SQLAlchemy-backed orders and Flask-Admin views.

Requires the db and admin extras::

    pip install "flask-labshop[db,admin]"

Run with::

    python examples/sqla_app.py

Then:
  - Catalog with a bulk "Reconcile with Stripe" action: http://localhost:5000/admin/labshop_catalog/
  - Orders recorded from completed checkouts: http://localhost:5000/admin/order/
"""

from flask import Flask
from flask_admin import Admin
from flask_sqlalchemy import SQLAlchemy

from flask_labshop import FlaskLabShop
from flask_labshop.contrib.admin import CatalogView
from flask_labshop.contrib.sqla import OrderModelView
from flask_labshop.models import Base, Order

db = SQLAlchemy(model_class=Base)

app = Flask(__name__)
app.config["SECRET_KEY"] = "change-me-in-production"
app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///orders.db"
app.config.from_prefixed_env()

ext = FlaskLabShop(app, db=db)
db.init_app(app)

admin = Admin(app, name="Lab Shop Admin")
admin.add_view(CatalogView(ext, name="Catalog", endpoint="labshop_catalog"))
admin.add_view(OrderModelView(Order, db.session, name="Orders"))

with app.app_context():
    db.create_all()

if __name__ == "__main__":
    app.run(debug=True)
