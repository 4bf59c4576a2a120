# Overview: Error taxonomy shared by services and routes.

"""
Every service failure is one of these classes. Routes translate them to JSON
bodies ({"error": message}) with the status code carried by the class.

Messages are user-facing and written in French.
"""
from __future__ import annotations


class StockError(Exception):
    """Base class for labstock domain failures."""

    status_code = 500

    def __init__(self, message: str, *, details: list | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(StockError, ValueError):
    """Invalid or missing input, rejected before any write."""

    status_code = 400


class InsufficientStockError(ValidationError):
    """A consumption or exit would drive stock below zero."""


class NotFoundError(StockError, LookupError):
    status_code = 404


class ConflictError(StockError):
    """Illegal state transition or duplicate entry."""

    status_code = 409


class RemoteFailure(StockError):
    """Store failure surfaced after zero or more partial writes."""

    status_code = 500
