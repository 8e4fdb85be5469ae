"""Error taxonomy shared by services and routes."""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that map onto an HTTP error payload."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    """Bad or missing input."""

    status_code = 400


class PaymentRequiredError(AppError):
    """Video generation was requested without a usable payment."""

    status_code = 402


class UpstreamError(AppError):
    """A remote provider (generation API or PayPal) failed."""

    def __init__(self, message: str, provider_status: int | None = None) -> None:
        super().__init__(message)
        self.provider_status = provider_status


class StorageError(AppError):
    """Downloading or writing a local artifact failed."""
