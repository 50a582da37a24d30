"""
Core Package - SocialSense Client Core
socialsense/core/__init__.py

Core infrastructure: dependencies, exceptions.
"""

from socialsense.core.exceptions import (
    MalformedPayloadException,
    NetworkException,
    PaymentNotSettledException,
    SocialSenseAPIException,
    UnauthorizedException,
    error_message,
)

__all__ = [
    # Exceptions
    "MalformedPayloadException",
    "NetworkException",
    "PaymentNotSettledException",
    "SocialSenseAPIException",
    "UnauthorizedException",
    "error_message",
]
