# app/core/errors.py
"""
Error taxonomy for the catalog.

  - BackendRejected     : backend refused the request (constraint, RLS, bad id)
  - BackendUnavailable  : network failure or timeout, safe to retry
  - PartialFetchError   : windowed full fetch aborted after some windows
  - ProductNotFound     : no product with the given id
  - ClickTrackingError  : one or both click writes failed
  - IncompleteScanError : a full read was truncated, so a whole-table check is refused

Validation problems are reported by pydantic before anything reaches the
backend, so they have no class here.
"""

from typing import Any


class CatalogError(Exception):
    """Base class for catalog failures."""

    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BackendRejected(CatalogError):
    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class BackendUnavailable(CatalogError):
    retryable = True


class ProductNotFound(CatalogError):
    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class PartialFetchError(CatalogError):
    """
    Raised when a windowed fetch fails after at least one window succeeded.

    `rows` holds what was collected before the failure; `cause` is the
    failure that stopped the loop.
    """

    retryable = True

    def __init__(self, rows: list[dict[str, Any]], cause: CatalogError):
        super().__init__(
            f"Fetch aborted after {len(rows)} rows: {cause.message}"
        )
        self.rows = rows
        self.cause = cause


class ClickTrackingError(CatalogError):
    def __init__(self, event_id: str, failures: dict[str, BaseException]):
        names = ", ".join(sorted(failures))
        super().__init__(f"Click {event_id} failed to write: {names}")
        self.event_id = event_id
        self.failures = failures


class IncompleteScanError(CatalogError):
    def __init__(self, label: str, rows: int):
        super().__init__(
            f"{label} read stopped at {rows} rows; refusing to act on incomplete data"
        )
        self.label = label
        self.rows = rows


def describe_error(exc: BaseException) -> str:
    """Human readable message for per-item reporting."""
    detail = getattr(exc, "detail", None)
    if isinstance(detail, str) and detail:
        return detail
    if isinstance(exc, CatalogError):
        return exc.message
    return str(exc) or exc.__class__.__name__
