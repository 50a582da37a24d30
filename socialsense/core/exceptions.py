"""
Custom Exceptions - SocialSense Client Core
socialsense/core/exceptions.py

Normalized errors raised by the SocialSense API client.
"""

from typing import Any, Dict, Optional


class SocialSenseAPIException(Exception):
    """Base exception for backend API calls."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.body = body or {}
        super().__init__(message)


class NetworkException(SocialSenseAPIException):
    """No HTTP response was received (timeout or connection failure)."""

    def __init__(self, message: str = "Network error. Please check your connection."):
        super().__init__(message)


class UnauthorizedException(SocialSenseAPIException):
    """Backend rejected the access token."""

    def __init__(self, body: Optional[Dict[str, Any]] = None):
        super().__init__(
            (body or {}).get("error") or "Unauthorized",
            status_code=401,
            body=body,
        )


class PaymentNotSettledException(SocialSenseAPIException):
    """Checkout session exists but the backend has not marked it paid yet."""

    def __init__(self, payment_status: str, body: Optional[Dict[str, Any]] = None):
        self.payment_status = payment_status
        super().__init__(
            (body or {}).get("error") or "Payment not completed yet",
            status_code=400,
            body=body,
        )


class MalformedPayloadException(SocialSenseAPIException):
    """Response body could not be decoded into the expected shape."""

    def __init__(self, message: str = "Malformed response payload"):
        super().__init__(message)


def error_message(exc: BaseException, fallback: str) -> str:
    """Backend ``error`` field when present, otherwise the exception's own message or ``fallback``."""
    if isinstance(exc, SocialSenseAPIException):
        backend_error = exc.body.get("error")
        if isinstance(backend_error, str) and backend_error:
            return backend_error
        if isinstance(exc, NetworkException):
            return exc.message
    return fallback
