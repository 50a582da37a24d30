"""
Dependencies - SocialSense Client Core
socialsense/core/dependencies.py

Process-wide services built once in the app lifespan and injected into
routers through FastAPI dependencies.
"""

from dataclasses import dataclass, field

from fastapi import Request

from socialsense.services.api_client import SocialSenseClient
from socialsense.services.balance_store import TokenBalanceStore
from socialsense.services.payment_verifier import PaymentVerifier
from socialsense.services.status_poller import StatusPoller
from socialsense.services.views import AnalysisView, TokenSuccessView, ViewRegistry


@dataclass
class ServiceContainer:
    """Everything one authenticated client session shares."""

    client: SocialSenseClient
    balance_store: TokenBalanceStore = field(init=False)
    success_views: ViewRegistry = field(init=False)
    analysis_views: ViewRegistry = field(init=False)
    # set once teardown begins; background loops and /health read it
    closing: bool = field(default=False, init=False)

    def __post_init__(self):
        self.balance_store = TokenBalanceStore(self.client.auth.get_token_balance)
        self.success_views = ViewRegistry("token_success")
        self.analysis_views = ViewRegistry("analysis")

    def new_success_view(self) -> TokenSuccessView:
        verifier = PaymentVerifier(self.client.tokens.verify_session, self.balance_store)
        return TokenSuccessView(verifier, self.balance_store)

    def new_analysis_view(self, analysis_id: str) -> AnalysisView:
        return AnalysisView(analysis_id, self.client, StatusPoller())

    def live_view_count(self) -> int:
        return len(self.success_views) + len(self.analysis_views)

    async def aclose(self) -> None:
        self.closing = True
        self.success_views.dispose_all()
        self.analysis_views.dispose_all()
        await self.client.aclose()


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the container created at startup."""
    return request.app.state.services
