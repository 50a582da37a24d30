"""
View Hosts - SocialSense Client Core
socialsense/services/views.py

A "view" owns the control loops a page needs and releases them when the page
goes away. Views are kept in a ViewRegistry so repeated requests for the same
page re-render the same view instead of mounting a new one.
"""

import time
from typing import Any, Callable, Dict, Generic, Mapping, Optional, TypeVar

import structlog

from socialsense.models.analysis import Analysis
from socialsense.models.enumerations import VerifierState
from socialsense.services.api_client import SocialSenseClient
from socialsense.services.balance_store import TokenBalanceStore
from socialsense.services.chart_data import build_charts
from socialsense.services.payment_verifier import PaymentVerifier, VerificationView
from socialsense.services.status_poller import StatusPoller

logger = structlog.get_logger(__name__)

CHARGED_HELP = (
    "If you were charged, your tokens may take a few minutes to appear. "
    "Please check your token balance or contact support if the issue persists."
)
ALREADY_PROCESSED_NOTICE = "This payment was already processed. Your balance is up to date."


class BaseView:
    def __init__(self):
        self.disposed = False
        self.last_seen = time.monotonic()

    def touch(self) -> None:
        self.last_seen = time.monotonic()

    def dispose(self) -> None:
        self.disposed = True


class TokenSuccessView(BaseView):
    """Landing page after checkout: ``/success?session_id=...``."""

    def __init__(self, verifier: PaymentVerifier, balance_store: Optional[TokenBalanceStore] = None):
        super().__init__()
        self.verifier = verifier
        self.balance_store = balance_store
        self.renders = 0

    def render(self, query_params: Mapping[str, Any]) -> Dict[str, Any]:
        """Mount effect plus screen model. Re-rendering never restarts verification."""
        self.touch()
        self.renders += 1
        if not self.disposed:
            self.verifier.start(query_params.get("session_id"))
        return self.model()

    def try_again(self) -> Dict[str, Any]:
        self.touch()
        if not self.disposed:
            self.verifier.retry()
        return self.model()

    async def settle(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        await self.verifier.wait_settled(timeout)
        return self.model()

    def model(self) -> Dict[str, Any]:
        return screen_model(
            self.verifier.snapshot(),
            self.balance_store.value if self.balance_store is not None else None,
        )

    def dispose(self) -> None:
        if not self.disposed:
            self.verifier.dispose()
        super().dispose()


def screen_model(view: VerificationView, balance: Optional[int] = None) -> Dict[str, Any]:
    """Map a verifier snapshot onto what the success page shows."""
    base: Dict[str, Any] = {
        "state": view.state.value,
        "session_id": view.session_id,
        "token_balance": balance,
    }

    if view.state in (VerifierState.IDLE, VerifierState.VERIFYING, VerifierState.UNCONFIRMED):
        attempt = view.attempt + 1
        base.update(
            screen="verifying",
            attempt=attempt,
            message=f"Verifying payment (attempt {attempt})..." if view.attempt > 0 else "Verifying your payment...",
            detail="This usually takes just a moment",
        )
        return base

    if view.state == VerifierState.HARD_ERROR:
        base.update(
            screen="failure",
            title="Verification Issue",
            error=view.error,
            reason=view.reason.value if view.reason else None,
            help=CHARGED_HELP,
            actions=["try_again", "go_to_tokens"],
        )
        return base

    result = view.result
    already = view.state == VerifierState.ALREADY_PROCESSED
    base.update(
        screen="success",
        title="Payment Successful!",
        tokens_added=result.tokens_added if result else 0,
        new_balance=result.new_balance if result else 0,
        already_processed=already,
        notice=ALREADY_PROCESSED_NOTICE if already else None,
        actions=["analyze_comments", "view_tokens"],
    )
    return base


class AnalysisView(BaseView):
    """Analysis detail page: foreground load plus background refresh while processing."""

    def __init__(
        self,
        analysis_id: str,
        client: SocialSenseClient,
        poller: Optional[StatusPoller] = None,
    ):
        super().__init__()
        self.analysis_id = analysis_id
        self.client = client
        self.poller = poller or StatusPoller()
        self.analysis: Optional[Analysis] = None

    async def load(self) -> Analysis:
        """Foreground fetch; errors propagate to the caller."""
        self.touch()
        analysis = await self.client.analysis.get_analysis(self.analysis_id)
        if self.disposed:
            return analysis
        self.analysis = analysis
        self._sync_poller()
        return analysis

    def _on_update(self, analysis: Analysis) -> None:
        if self.disposed:
            return
        self.analysis = analysis

    def _sync_poller(self) -> None:
        if self.analysis is None or self.poller.running:
            return
        self.poller.start(
            self.analysis_id,
            self.analysis.status,
            self.client.analysis.get_analysis,
            self._on_update,
        )

    def model(self) -> Dict[str, Any]:
        self.touch()
        if self.analysis is None:
            return {"analysis": None, "charts": None, "polling": False}
        return {
            "analysis": self.analysis.model_dump(mode="json"),
            "charts": build_charts(self.analysis),
            "polling": self.poller.running,
        }

    def dispose(self) -> None:
        self.poller.stop()
        super().dispose()


V = TypeVar("V", bound=BaseView)


class ViewRegistry(Generic[V]):
    """Live views keyed by page identity (session id, analysis id)."""

    def __init__(self, name: str):
        self.name = name
        self._views: Dict[str, V] = {}

    def __len__(self) -> int:
        return len(self._views)

    def __contains__(self, key: str) -> bool:
        return key in self._views

    def get(self, key: str) -> Optional[V]:
        return self._views.get(key)

    def get_or_create(self, key: str, factory: Callable[[], V]) -> V:
        view = self._views.get(key)
        if view is None or view.disposed:
            view = factory()
            self._views[key] = view
            logger.debug("view_mounted", registry=self.name, key=key)
        return view

    def dispose(self, key: str) -> bool:
        view = self._views.pop(key, None)
        if view is None:
            return False
        view.dispose()
        logger.debug("view_disposed", registry=self.name, key=key)
        return True

    def dispose_idle(self, ttl_seconds: float, now: Optional[float] = None) -> int:
        """Dispose views not touched within ``ttl_seconds``; returns how many were dropped."""
        now = time.monotonic() if now is None else now
        stale = [k for k, v in self._views.items() if now - v.last_seen > ttl_seconds]
        for key in stale:
            self.dispose(key)
        if stale:
            logger.info("idle_views_disposed", registry=self.name, count=len(stale))
        return len(stale)

    def dispose_all(self) -> None:
        for key in list(self._views):
            self.dispose(key)
