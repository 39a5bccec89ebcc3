from __future__ import annotations


class MarketError(RuntimeError):
    """Base class for failures reported to the caller as ``{"error": message}``."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(MarketError):
    status_code = 400


class UnauthorizedError(MarketError):
    status_code = 401


class ForbiddenError(MarketError):
    status_code = 403


class NotFoundError(MarketError):
    status_code = 404
