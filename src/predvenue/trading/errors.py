"""Trade rejection taxonomy. Every error is local and recoverable."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    COOLDOWN = "COOLDOWN"
    AMOUNT_TOO_LARGE = "AMOUNT_TOO_LARGE"
    POSITION_LIMIT = "POSITION_LIMIT"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    FEE_TOO_LARGE = "FEE_TOO_LARGE"
    UNKNOWN_MARKET = "UNKNOWN_MARKET"
    UNKNOWN_POSITION = "UNKNOWN_POSITION"
    PRICING_FAILED = "PRICING_FAILED"
    NOT_SYNCED = "NOT_SYNCED"
    WRITE_FAILED = "WRITE_FAILED"
    CLOSE_FAILED = "CLOSE_FAILED"


class TradeError(Exception):
    """Rejected action. `message` is short and user-facing."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.value}, {self.message!r})"


class ValidationError(TradeError):
    """Rejected before any mutation."""


class PricingError(TradeError):
    """Bisection produced no positive, finite delta."""


class SyncError(TradeError):
    """Authoritative-store ordering problem: unsynced close, rejected write or rejected close."""
