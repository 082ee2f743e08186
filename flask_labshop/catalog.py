"""Sanity content-store client for the lab-test catalog.

The catalog lives in Sanity as documents of type ``product``.  Only the
fields needed to keep Stripe in sync are projected::

    from flask_labshop.catalog import SanityClient

    catalog = SanityClient(
        project_id="abc123",
        dataset="production",
        write_token="sk...",
    )
    item = catalog.get_by_slug("testosterone-check")
    catalog.patch(item.id, {"stripeProductId": "prod_123"})
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import requests

from flask_labshop.errors import Unconfigured, UpstreamFailure

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = """
    _id,
    title,
    "slug": slug.current,
    priceEUR,
    stripeProductId,
    stripePriceIdOneTime
"""

PRODUCT_BY_ID_QUERY = f'*[_type == "product" && _id == $id][0]{{{PRODUCT_FIELDS}}}'
PRODUCT_BY_SLUG_QUERY = f'*[_type == "product" && slug.current == $slug][0]{{{PRODUCT_FIELDS}}}'
ALL_PRODUCTS_QUERY = (
    f'*[_type == "product" && defined(slug.current)] | order(priceEUR asc){{{PRODUCT_FIELDS}}}'
)
UNPROVISIONED_PRODUCTS_QUERY = (
    '*[_type == "product" && (!defined(stripeProductId) || !defined(stripePriceIdOneTime))]'
    f"{{{PRODUCT_FIELDS}}}"
)

#: Catalog attribute -> Sanity document field written back by the sync.
PRODUCT_ID_FIELD = "stripeProductId"
PRICE_ID_FIELD = "stripePriceIdOneTime"


@dataclass
class CatalogItem:
    """A sellable lab test as stored in Sanity."""

    id: str
    title: str
    slug: str | None = None
    price_amount: Any = None
    provider_product_id: str | None = None
    provider_price_id: str | None = None

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "CatalogItem":
        """Build an item from a GROQ projection using :data:`PRODUCT_FIELDS`."""
        return cls(
            id=doc["_id"],
            title=doc.get("title") or "",
            slug=doc.get("slug"),
            price_amount=doc.get("priceEUR"),
            provider_product_id=doc.get(PRODUCT_ID_FIELD) or None,
            provider_price_id=doc.get(PRICE_ID_FIELD) or None,
        )

    @property
    def has_price(self) -> bool:
        """``True`` when :attr:`price_amount` is a positive number."""
        value = self.price_amount
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            return False
        return value > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "priceEUR": self.price_amount,
            "stripeProductId": self.provider_product_id,
            "stripePriceIdOneTime": self.provider_price_id,
        }


class SanityClient:
    """Minimal Sanity HTTP API client: GROQ queries and ``set`` patches.

    Args:
        project_id: Sanity project id.
        dataset: Dataset name (default ``"production"``).
        api_version: Dated API version, with or without the leading ``v``.
        read_token: Optional token for private datasets.
        write_token: Token with write scope.  Without it :meth:`patch`
            raises :class:`~flask_labshop.errors.Unconfigured`.
        session: Optional :class:`requests.Session` (useful for tests).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        project_id: str,
        dataset: str = "production",
        *,
        api_version: str = "2024-07-01",
        read_token: str | None = None,
        write_token: str | None = None,
        session: requests.Session | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.project_id = project_id
        self.dataset = dataset
        self.api_version = api_version.lstrip("v")
        self._read_token = read_token or write_token
        self._write_token = write_token
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return f"https://{self.project_id}.api.sanity.io/v{self.api_version}/data"

    @property
    def can_write(self) -> bool:
        """``True`` when a write-scoped token is configured."""
        return bool(self._write_token)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(self, groq: str, params: dict[str, Any] | None = None) -> Any:
        """Run a GROQ query and return its ``result``."""
        if not self.project_id:
            raise Unconfigured("SANITY_PROJECT_ID missing")

        # Query parameters are JSON-encoded and prefixed with ``$``.
        request_params: dict[str, str] = {"query": groq}
        for key, value in (params or {}).items():
            request_params[f"${key}"] = json.dumps(value)

        headers = {}
        if self._read_token:
            headers["Authorization"] = f"Bearer {self._read_token}"

        url = f"{self.base_url}/query/{self.dataset}"
        data = self._request("GET", url, params=request_params, headers=headers)
        return data.get("result")

    def get_by_id(self, item_id: str) -> CatalogItem | None:
        doc = self.query(PRODUCT_BY_ID_QUERY, {"id": item_id})
        return CatalogItem.from_document(doc) if doc else None

    def get_by_slug(self, slug: str) -> CatalogItem | None:
        doc = self.query(PRODUCT_BY_SLUG_QUERY, {"slug": slug})
        return CatalogItem.from_document(doc) if doc else None

    def list_items(self) -> list[CatalogItem]:
        """Return every product with a slug, cheapest first."""
        return [CatalogItem.from_document(d) for d in self.query(ALL_PRODUCTS_QUERY) or []]

    def list_unprovisioned(self) -> list[CatalogItem]:
        """Return products missing a Stripe product id or price id."""
        docs = self.query(UNPROVISIONED_PRODUCTS_QUERY) or []
        return [CatalogItem.from_document(d) for d in docs]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def patch(self, item_id: str, fields: dict[str, Any]) -> None:
        """Commit a ``set`` patch of *fields* onto document *item_id*."""
        if not self.can_write:
            raise Unconfigured("SANITY_WRITE_TOKEN missing")

        body = {"mutations": [{"patch": {"id": item_id, "set": fields}}]}
        url = f"{self.base_url}/mutate/{self.dataset}"
        self._request(
            "POST",
            url,
            json=body,
            headers={"Authorization": f"Bearer {self._write_token}"},
        )
        logger.info("Patched catalog item %s with %s", item_id, sorted(fields))

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise UpstreamFailure(f"Sanity request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise UpstreamFailure(f"Sanity HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamFailure("Sanity returned a non-JSON response") from exc
