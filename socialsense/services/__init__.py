"""
Services module for the SocialSense client core.
"""

from socialsense.services.api_client import SocialSenseClient
from socialsense.services.balance_store import TokenBalanceStore
from socialsense.services.payment_verifier import PaymentVerifier, VerificationMachine
from socialsense.services.status_poller import StatusPoller

__all__ = [
    "SocialSenseClient",
    "TokenBalanceStore",
    "PaymentVerifier",
    "VerificationMachine",
    "StatusPoller",
]
