"""Domain errors raised by the store, the payment gate and the services.

Each error carries a human readable message and the HTTP status it maps to;
``main.py`` translates them once at the boundary.
"""
from __future__ import annotations


class MarketplaceError(Exception):
    """Base class for recoverable, caller-facing failures."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(MarketplaceError):
    status_code = 404


class ValidationError(MarketplaceError):
    status_code = 422


class ConflictError(MarketplaceError):
    status_code = 409


class InsufficientFundsError(MarketplaceError):
    status_code = 402

    def __init__(self, required: int, balance: int) -> None:
        super().__init__("Insufficient wallet balance")
        self.required = required
        self.balance = balance


class AuthenticationError(MarketplaceError):
    status_code = 401
