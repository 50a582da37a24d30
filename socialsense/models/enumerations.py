from enum import Enum

class ResourceStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"        # Backend still mutating, UI keeps polling
    COMPLETED = "completed"
    FAILED = "failed"

class VerificationOutcome(str, Enum):
    UNCONFIRMED = "unconfirmed"      # Webhook has not marked the session paid yet
    PAID = "paid"
    ALREADY_PROCESSED = "already_processed"
    ERROR = "error"

class VerifierState(str, Enum):
    IDLE = "idle"
    VERIFYING = "verifying"
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"
    ALREADY_PROCESSED = "already_processed"
    HARD_ERROR = "hard_error"

class HardErrorReason(str, Enum):
    MISSING_SESSION = "missing_session"
    RETRIES_EXHAUSTED = "retries_exhausted"
    REQUEST_FAILED = "request_failed"
    NETWORK_FAILURE = "network_failure"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset({
    VerifierState.CONFIRMED,
    VerifierState.ALREADY_PROCESSED,
    VerifierState.HARD_ERROR,
})
