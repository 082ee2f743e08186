"""``flask labshop`` commands.

::

    flask labshop provision testosterone-check
    flask labshop provision --id prod-thyroid-basic
    flask labshop sync-missing
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING

import click

from flask_labshop.errors import LabShopError

if TYPE_CHECKING:
    from flask import Blueprint

    from flask_labshop import FlaskLabShop

_ID_PATTERN = re.compile(r"^[a-z0-9]+-[a-z0-9-]+$", re.IGNORECASE)


def looks_like_id(value: str) -> bool:
    """Guess whether *value* is a Sanity document id rather than a slug.

    Ids with a ``prod-`` prefix, ``drafts.`` prefix or a UUID shape are ids;
    anything else is treated as a slug.
    """
    if value.startswith(("prod-", "drafts.")):
        return True
    return bool(_ID_PATTERN.match(value)) and value.count("-") == 4


def register_commands(bp: "Blueprint", ext: "FlaskLabShop") -> None:
    """Attach the CLI commands to *bp* (group ``labshop``)."""

    @bp.cli.command("provision")
    @click.argument("identifier", required=False)
    @click.option("--id", "item_id", help="Sanity document id.")
    @click.option("--slug", help="Product slug.")
    def provision_command(identifier: str | None, item_id: str | None, slug: str | None) -> None:
        """Reconcile one catalog item with Stripe."""
        if identifier and not (item_id or slug):
            if looks_like_id(identifier):
                item_id = identifier
            else:
                slug = identifier
        if not (item_id or slug):
            raise click.UsageError("Give a slug or id, e.g. `flask labshop provision <slug|id>`.")

        try:
            result = ext.reconcile(id=item_id, slug=slug)
        except LabShopError as exc:
            raise click.ClickException(exc.message) from exc
        click.echo(json.dumps(result.to_response()))

    @bp.cli.command("sync-missing")
    def sync_missing_command() -> None:
        """Reconcile every catalog item that lacks a Stripe product or price."""
        try:
            outcome = ext.reconciler.reconcile_missing()
        except LabShopError as exc:
            raise click.ClickException(exc.message) from exc

        if not outcome.reconciled and not outcome.failed:
            click.echo("Nothing to do; all products have Stripe ids.")
            return
        for result in outcome.reconciled:
            click.echo(f"{result.id} -> product={result.provider_product_id} price={result.provider_price_id}")
        for item_id, message in outcome.failed.items():
            click.echo(f"{item_id} failed: {message}", err=True)
        if outcome.failed:
            raise SystemExit(1)
