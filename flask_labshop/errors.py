"""Exception types raised by flask-labshop.

Every error carries the HTTP status the blueprint answers with, so views
can let them propagate to the registered error handler.
"""

from __future__ import annotations


class LabShopError(Exception):
    """Base class for all flask-labshop errors."""

    status_code: int = 500

    def __init__(self, message: str = "", *, status_code: int | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        if status_code is not None:
            self.status_code = status_code

    @property
    def message(self) -> str:
        return str(self.args[0])


class Unauthorized(LabShopError):
    """Missing or wrong shared secret."""

    status_code = 401


class InvalidInput(LabShopError):
    """Malformed request body, or neither ``id`` nor ``slug`` supplied."""

    status_code = 400


class NotFound(LabShopError):
    """No catalog item matches the given identifier."""

    status_code = 404


class MissingPrice(LabShopError):
    """The catalog item has no usable ``priceEUR`` amount."""

    status_code = 400


class UpstreamFailure(LabShopError):
    """A call to the content store or to Stripe failed."""

    status_code = 500


class PriceUnavailable(UpstreamFailure):
    """A stored price id could not be retrieved from Stripe.

    ``missing`` is ``True`` when Stripe answered that the price does not
    exist, ``False`` for transport or API failures.
    """

    def __init__(self, message: str = "", *, missing: bool = False) -> None:
        super().__init__(message)
        self.missing = missing


class Unconfigured(LabShopError):
    """A required credential is not configured."""

    status_code = 500
