"""Domain exceptions shared by the data source, the engines and the API layer."""

from __future__ import annotations


class DataAccessError(RuntimeError):
    """A read against the historical data source failed.

    Raised for missing or unreadable tables and for tables that lack the
    columns a query needs. The engines never retry; the API layer maps this
    error to ``503 Service Unavailable``.
    """

    def __init__(self, operation: str, detail: str) -> None:
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail
