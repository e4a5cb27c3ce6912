"""Custom exception hierarchy for deskdrop."""

from __future__ import annotations


class DeskdropError(Exception):
    """Base exception for all deskdrop errors."""


class DeskdropConfigError(DeskdropError):
    """Invalid or missing configuration."""


class DeskdropTransportError(DeskdropError):
    """HTTP-level failure talking to the record store (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class DeskdropApiError(DeskdropTransportError):
    """The record store rejected the request with an error body.

    ``code`` carries the store's own error code (e.g. a PostgREST
    ``PGRST`` code or a SQLSTATE) when one is present.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.code = code
        super().__init__(message, status_code=status_code, endpoint=endpoint)


class DeskdropFeedError(DeskdropError):
    """Change-feed subscription could not be established."""


class DeskdropNotificationError(DeskdropError):
    """A notifier could not display a notification."""


class DeskdropTransitionError(DeskdropError):
    """Requested status change would move an order backwards."""


class DeskdropOrderingClosedError(DeskdropError):
    """Orders may only be placed inside the configured ordering window."""
