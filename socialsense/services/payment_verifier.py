"""
Payment Verifier - SocialSense Client Core
socialsense/services/payment_verifier.py

Confirms that a checkout session has settled on the backend. The browser is
usually redirected back before the payment webhook has run, so the first
verify calls can legitimately report "not paid yet".

State machine:

    idle ──Start──▶ verifying ──ok──────────────▶ confirmed / already_processed
                      │   ▲
             not paid │   │ retry timer (2s)
                      ▼   │
                   unconfirmed ──attempts exhausted──▶ hard_error
    any non-terminal state ──safety timer (15s)──▶ hard_error (timed_out)
    hard_error / confirmed ──ManualRetry──▶ verifying (attempt 0, fresh safety timer)

VerificationMachine is pure: dispatch(event) mutates state and returns the
commands the driver must execute. PaymentVerifier is the asyncio driver; it
owns the timers and in-flight calls and tears them all down on dispose().
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Set

import structlog

from socialsense.config import settings
from socialsense.core.exceptions import (
    NetworkException,
    PaymentNotSettledException,
    error_message,
)
from socialsense.models.enumerations import (
    TERMINAL_STATES,
    HardErrorReason,
    VerificationOutcome,
    VerifierState,
)
from socialsense.models.tokens import VerifySessionResult
from socialsense.services.balance_store import TokenBalanceStore

logger = structlog.get_logger(__name__)

MISSING_SESSION_MESSAGE = "No session ID found. Please try purchasing tokens again."
TIMED_OUT_MESSAGE = (
    "Verification is taking longer than expected. "
    "Please refresh the page or check your balance in the dashboard."
)
GENERIC_FAILURE_MESSAGE = "Failed to verify payment"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Start:
    session_id: Optional[str]


@dataclass(frozen=True)
class ManualRetry:
    pass


@dataclass(frozen=True)
class VerifySucceeded:
    run: int
    attempt: int
    result: VerifySessionResult


@dataclass(frozen=True)
class VerifyFailed:
    run: int
    attempt: int
    error: BaseException


@dataclass(frozen=True)
class RetryTimerFired:
    run: int
    attempt: int


@dataclass(frozen=True)
class SafetyTimerFired:
    run: int


@dataclass(frozen=True)
class Dispose:
    pass


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CallVerify:
    run: int
    attempt: int
    session_id: str


@dataclass(frozen=True)
class ScheduleRetry:
    run: int
    attempt: int
    delay: float


@dataclass(frozen=True)
class ArmSafetyTimer:
    run: int
    delay: float


@dataclass(frozen=True)
class CancelSafetyTimer:
    pass


@dataclass(frozen=True)
class CancelRetryTimer:
    pass


@dataclass(frozen=True)
class AbortVerify:
    pass


@dataclass(frozen=True)
class RefreshBalance:
    pass


@dataclass(frozen=True)
class VerificationAttempt:
    """One verify call: 0-based index, outcome, seconds since the run began."""
    index: int
    outcome: VerificationOutcome
    elapsed: float


@dataclass(frozen=True)
class VerificationView:
    """Read-only snapshot of the verifier for rendering."""
    state: VerifierState
    session_id: Optional[str]
    attempt: int
    run: int
    result: Optional[VerifySessionResult] = None
    error: Optional[str] = None
    reason: Optional[HardErrorReason] = None
    attempts: List[VerificationAttempt] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class VerificationMachine:
    """Pure verification state machine; one dispatch() entry point."""

    def __init__(
        self,
        retry_delay: float,
        max_retries: int,
        safety_timeout: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.retry_delay = retry_delay
        self.max_retries = max_retries
        self.safety_timeout = safety_timeout
        self._clock = clock

        self.state = VerifierState.IDLE
        self.session_id: Optional[str] = None
        self.run = 0
        self.attempt = 0
        self.result: Optional[VerifySessionResult] = None
        self.error: Optional[str] = None
        self.reason: Optional[HardErrorReason] = None
        self.attempts: List[VerificationAttempt] = []
        self.latched = False
        self.disposed = False
        self._run_started = 0.0

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def view(self) -> VerificationView:
        return VerificationView(
            state=self.state,
            session_id=self.session_id,
            attempt=self.attempt,
            run=self.run,
            result=self.result,
            error=self.error,
            reason=self.reason,
            attempts=list(self.attempts),
        )

    def dispatch(self, event: Any) -> List[Any]:
        if self.disposed:
            return []
        if isinstance(event, Start):
            return self._on_start(event)
        if isinstance(event, ManualRetry):
            return self._on_manual_retry()
        if isinstance(event, VerifySucceeded):
            return self._on_success(event)
        if isinstance(event, VerifyFailed):
            return self._on_failure(event)
        if isinstance(event, RetryTimerFired):
            return self._on_retry_timer(event)
        if isinstance(event, SafetyTimerFired):
            return self._on_safety_timer(event)
        if isinstance(event, Dispose):
            self.disposed = True
            return [CancelRetryTimer(), CancelSafetyTimer(), AbortVerify()]
        raise TypeError(f"Unknown verification event: {event!r}")

    # -- transitions --------------------------------------------------------

    def _on_start(self, event: Start) -> List[Any]:
        if self.latched:
            return []
        self.latched = True
        self.session_id = event.session_id or None
        if not self.session_id:
            self._fail(HardErrorReason.MISSING_SESSION, MISSING_SESSION_MESSAGE)
            return []
        return self._begin_run()

    def _on_manual_retry(self) -> List[Any]:
        # re-arms the latch; only meaningful once the previous run has settled
        if not self.is_terminal or not self.session_id:
            return []
        return [CancelRetryTimer(), CancelSafetyTimer()] + self._begin_run()

    def _on_success(self, event: VerifySucceeded) -> List[Any]:
        if event.run != self.run or self.state != VerifierState.VERIFYING:
            return []
        result = event.result
        if result.already_processed:
            self.state = VerifierState.ALREADY_PROCESSED
            self._record(event.attempt, VerificationOutcome.ALREADY_PROCESSED)
        else:
            self.state = VerifierState.CONFIRMED
            self._record(event.attempt, VerificationOutcome.PAID)
        self.result = result
        self.error = None
        self.reason = None
        return [CancelSafetyTimer(), RefreshBalance()]

    def _on_failure(self, event: VerifyFailed) -> List[Any]:
        if event.run != self.run or self.state != VerifierState.VERIFYING:
            return []
        error = event.error

        if isinstance(error, PaymentNotSettledException):
            self._record(event.attempt, VerificationOutcome.UNCONFIRMED)
            if event.attempt < self.max_retries:
                self.state = VerifierState.UNCONFIRMED
                return [ScheduleRetry(self.run, event.attempt + 1, self.retry_delay)]
            self._fail(HardErrorReason.RETRIES_EXHAUSTED, error_message(error, GENERIC_FAILURE_MESSAGE))
            return [CancelSafetyTimer(), RefreshBalance()]

        self._record(event.attempt, VerificationOutcome.ERROR)
        if isinstance(error, NetworkException):
            self._fail(HardErrorReason.NETWORK_FAILURE, error_message(error, GENERIC_FAILURE_MESSAGE))
            return [CancelSafetyTimer()]
        self._fail(HardErrorReason.REQUEST_FAILED, error_message(error, GENERIC_FAILURE_MESSAGE))
        return [CancelSafetyTimer(), RefreshBalance()]

    def _on_retry_timer(self, event: RetryTimerFired) -> List[Any]:
        if event.run != self.run or self.state != VerifierState.UNCONFIRMED:
            return []
        self.state = VerifierState.VERIFYING
        self.attempt = event.attempt
        return [CallVerify(self.run, self.attempt, self.session_id)]

    def _on_safety_timer(self, event: SafetyTimerFired) -> List[Any]:
        if event.run != self.run or self.is_terminal:
            return []
        self._fail(HardErrorReason.TIMED_OUT, TIMED_OUT_MESSAGE)
        return [CancelRetryTimer(), AbortVerify(), RefreshBalance()]

    # -- helpers ------------------------------------------------------------

    def _begin_run(self) -> List[Any]:
        self.run += 1
        self.attempt = 0
        self.state = VerifierState.VERIFYING
        self.result = None
        self.error = None
        self.reason = None
        self.attempts = []
        self._run_started = self._clock()
        return [
            ArmSafetyTimer(self.run, self.safety_timeout),
            CallVerify(self.run, 0, self.session_id),
        ]

    def _fail(self, reason: HardErrorReason, message: str) -> None:
        self.state = VerifierState.HARD_ERROR
        self.reason = reason
        self.error = message

    def _record(self, index: int, outcome: VerificationOutcome) -> None:
        self.attempts.append(
            VerificationAttempt(index, outcome, self._clock() - self._run_started)
        )


VerifyFn = Callable[[str], Awaitable[VerifySessionResult]]
Listener = Callable[[VerificationView], None]


class PaymentVerifier:
    """
    asyncio driver for VerificationMachine.

    Timers are armed with loop.call_later; verify calls and balance refreshes
    run as tasks. Everything outstanding is cancelled on dispose().
    """

    def __init__(
        self,
        verify_fn: VerifyFn,
        balance_store: Optional[TokenBalanceStore] = None,
        retry_delay: Optional[float] = None,
        max_retries: Optional[int] = None,
        safety_timeout: Optional[float] = None,
    ):
        self._verify_fn = verify_fn
        self._balance_store = balance_store
        self.machine = VerificationMachine(
            retry_delay=settings.VERIFY_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay,
            max_retries=settings.VERIFY_MAX_RETRIES if max_retries is None else max_retries,
            safety_timeout=settings.VERIFY_SAFETY_TIMEOUT_SECONDS if safety_timeout is None else safety_timeout,
        )
        self._retry_handle: Optional[asyncio.TimerHandle] = None
        self._safety_handle: Optional[asyncio.TimerHandle] = None
        self._verify_tasks: Set[asyncio.Task] = set()
        self._side_tasks: Set[asyncio.Task] = set()
        self._listeners: List[Listener] = []
        self._settled = asyncio.Event()
        self._refresh_task: Optional[asyncio.Task] = None

    # -- public API ---------------------------------------------------------

    def start(self, session_id: Optional[str]) -> VerificationView:
        """Run the verification sequence once; repeated calls are no-ops."""
        return self._dispatch(Start(session_id))

    def retry(self) -> VerificationView:
        """User-initiated "Try Again": restart from attempt 0."""
        return self._dispatch(ManualRetry())

    def dispose(self) -> None:
        """Tear down timers and in-flight work; nothing is delivered afterwards."""
        self._listeners.clear()
        self._dispatch(Dispose())
        for task in list(self._side_tasks):
            task.cancel()
        # release anyone blocked in wait_settled
        self._settled.set()

    def snapshot(self) -> VerificationView:
        return self.machine.view()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    async def wait_settled(self, timeout: Optional[float] = None) -> VerificationView:
        """
        Wait for a terminal state (or ``timeout``) and return the current snapshot.

        When the terminal transition re-syncs the balance, this also waits for
        that refresh, so the balance store is current once it returns.
        """
        try:
            await asyncio.wait_for(self._settled.wait(), timeout)
        except asyncio.TimeoutError:
            pass
        return self.snapshot()

    async def __aenter__(self) -> "PaymentVerifier":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # -- driver -------------------------------------------------------------

    def _dispatch(self, event: Any) -> VerificationView:
        previous = self.machine.state
        last_refresh = self._refresh_task
        commands = self.machine.dispatch(event)
        for command in commands:
            self._execute(command)

        view = self.machine.view()
        if not view.is_terminal:
            self._settled.clear()
        elif self._refresh_task is not last_refresh:
            # the settled screen shows the balance, so wait for the re-sync it triggered
            self._refresh_task.add_done_callback(self._mark_settled)
        elif last_refresh is None or last_refresh.done():
            self._settled.set()

        if view.state != previous:
            self._log_transition(previous, view)
        if commands or view.state != previous:
            for listener in list(self._listeners):
                try:
                    listener(view)
                except Exception:
                    logger.exception("verification_listener_failed")
        return view

    def _execute(self, command: Any) -> None:
        if isinstance(command, CallVerify):
            self._spawn(self._call_verify(command), self._verify_tasks)
        elif isinstance(command, ScheduleRetry):
            self._cancel_retry_timer()
            self._retry_handle = asyncio.get_running_loop().call_later(
                command.delay, self._dispatch, RetryTimerFired(command.run, command.attempt)
            )
        elif isinstance(command, ArmSafetyTimer):
            self._cancel_safety_timer()
            self._safety_handle = asyncio.get_running_loop().call_later(
                command.delay, self._dispatch, SafetyTimerFired(command.run)
            )
        elif isinstance(command, CancelSafetyTimer):
            self._cancel_safety_timer()
        elif isinstance(command, CancelRetryTimer):
            self._cancel_retry_timer()
        elif isinstance(command, AbortVerify):
            for task in list(self._verify_tasks):
                task.cancel()
        elif isinstance(command, RefreshBalance):
            if self._balance_store is not None:
                self._refresh_task = self._spawn(self._balance_store.refresh(), self._side_tasks)
        else:
            raise TypeError(f"Unknown verification command: {command!r}")

    def _spawn(self, coro: Awaitable[Any], bucket: Set[asyncio.Task]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        bucket.add(task)
        task.add_done_callback(bucket.discard)
        return task

    def _mark_settled(self, refresh: asyncio.Task) -> None:
        # a newer refresh, or a retry still in progress, settles later
        if self.machine.disposed or (self.machine.is_terminal and self._refresh_task is refresh):
            self._settled.set()

    async def _call_verify(self, command: CallVerify) -> None:
        logger.info(
            "verifying_session",
            session_id=command.session_id,
            attempt=command.attempt + 1,
        )
        try:
            result = await self._verify_fn(command.session_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._dispatch(VerifyFailed(command.run, command.attempt, e))
            return
        self._dispatch(VerifySucceeded(command.run, command.attempt, result))

    def _cancel_safety_timer(self) -> None:
        if self._safety_handle is not None:
            self._safety_handle.cancel()
            self._safety_handle = None

    def _cancel_retry_timer(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    def _log_transition(self, previous: VerifierState, view: VerificationView) -> None:
        fields = dict(
            session_id=view.session_id,
            previous=previous.value,
            state=view.state.value,
            attempt=view.attempt + 1,
        )
        if view.state == VerifierState.HARD_ERROR:
            logger.error("verification_failed", reason=view.reason.value, error=view.error, **fields)
        elif view.state == VerifierState.UNCONFIRMED:
            logger.info("payment_not_settled_retrying", **fields)
        else:
            logger.info("verification_state_changed", **fields)
