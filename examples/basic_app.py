"""Basic Flask app using flask-labshop.

Configuration is read from ``FLASK_``-prefixed environment variables::

    export FLASK_LABSHOP_PROVISION_SECRET=change-me
    export FLASK_LABSHOP_STRIPE_SECRET_KEY=sk_test_...
    export FLASK_LABSHOP_STRIPE_WEBHOOK_SECRET=whsec_...
    export FLASK_LABSHOP_SANITY_PROJECT_ID=abc123
    export FLASK_LABSHOP_SANITY_WRITE_TOKEN=sk...
    export FLASK_LABSHOP_SITE_URL=http://localhost:5000

Run with::

    python examples/basic_app.py

Then use curl:

    # Create or refresh the Stripe product/price for a lab test
    curl -X POST http://localhost:5000/api/admin/provision \\
         -H "Authorization: Bearer change-me" \\
         -H "Content-Type: application/json" \\
         -d '{"slug": "testosterone-check"}'

    # Start a checkout for a price
    curl -X POST http://localhost:5000/api/checkout/create \\
         -H "Content-Type: application/json" \\
         -d '{"priceId": "price_..."}'

    # Forward Stripe events with the Stripe CLI
    stripe listen --forward-to localhost:5000/api/webhooks/stripe

Or from the command line::

    flask --app examples/basic_app.py labshop provision testosterone-check
    flask --app examples/basic_app.py labshop sync-missing
"""

import logging

from flask import Flask

from flask_labshop import FlaskLabShop

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = Flask(__name__)
app.config.from_prefixed_env()

ext = FlaskLabShop(app)

if __name__ == "__main__":
    app.run(debug=True)
