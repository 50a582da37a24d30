"""
SocialSense API Client - SocialSense Client Core
socialsense/services/api_client.py

Async wrapper around the SocialSense REST backend.

- Injects the current access token on every request
- Normalizes transport and HTTP failures into core.exceptions
- Groups endpoints the same way the backend routes them
  (auth, tokens, analysis, analytics, scheduled)
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import structlog

from socialsense.config import settings
from socialsense.core.exceptions import (
    MalformedPayloadException,
    NetworkException,
    PaymentNotSettledException,
    SocialSenseAPIException,
    UnauthorizedException,
)
from socialsense.models.analysis import Analysis, parse_analysis
from socialsense.models.tokens import TokenBalanceResponse, VerifySessionResult

logger = structlog.get_logger(__name__)

TokenProvider = Callable[[], Awaitable[Optional[str]]]

TIMEOUT_MESSAGE = "Request timed out. Please try again."
NETWORK_MESSAGE = "Network error. Please check your connection."


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {"data": body}


def raise_for_response(response: httpx.Response) -> None:
    """Translate a non-2xx response into the matching client exception."""
    if response.is_success:
        return

    body = _json_body(response)
    if response.status_code == 401:
        logger.warning("unauthorized_response", path=response.request.url.path)
        raise UnauthorizedException(body)

    # Only an explicit non-"paid" payment status marks a session as not yet settled.
    # Other 400s (e.g. an invalid session id) are ordinary request failures.
    payment_status = body.get("status")
    if response.status_code == 400 and isinstance(payment_status, str) and payment_status != "paid":
        raise PaymentNotSettledException(payment_status, body)

    raise SocialSenseAPIException(
        body.get("error") or f"Request failed with status {response.status_code}",
        status_code=response.status_code,
        body=body,
    )


class _EndpointGroup:
    def __init__(self, client: "SocialSenseClient"):
        self._client = client


class AuthEndpoints(_EndpointGroup):
    async def get_profile(self) -> Dict[str, Any]:
        return await self._client.get_json("/auth/profile")

    async def update_profile(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._client.request_json("PUT", "/auth/profile", json=data)

    async def get_token_balance(self) -> int:
        body = await self._client.get_json("/auth/token-balance")
        return TokenBalanceResponse.model_validate(body).token_balance

    async def get_transactions(self, **params) -> Dict[str, Any]:
        return await self._client.get_json("/auth/transactions", params=params)

    async def get_referral(self) -> Dict[str, Any]:
        return await self._client.get_json("/auth/referral")

    async def apply_referral(self, code: str) -> Dict[str, Any]:
        return await self._client.request_json(
            "POST", "/auth/apply-referral", json={"referral_code": code}
        )

    async def check_referral(self, code: str) -> Dict[str, Any]:
        return await self._client.get_json(f"/auth/check-referral/{code}")


class TokensEndpoints(_EndpointGroup):
    async def get_packages(self) -> Dict[str, Any]:
        return await self._client.get_json("/tokens/packages")

    async def get_costs(self) -> Dict[str, Any]:
        return await self._client.get_json("/tokens/costs")

    async def calculate_cost(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._client.request_json("POST", "/tokens/calculate", json=data)

    async def create_checkout(self, package_id: str) -> Dict[str, Any]:
        return await self._client.request_json(
            "POST", "/tokens/checkout", json={"package_id": package_id}
        )

    async def verify_session(self, session_id: str) -> VerifySessionResult:
        body = await self._client.get_json(
            f"/tokens/verify-session/{session_id}",
            timeout=settings.VERIFY_TIMEOUT_SECONDS,
        )
        return VerifySessionResult.model_validate(body)


class AnalysisEndpoints(_EndpointGroup):
    async def estimate(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._client.request_json(
            "POST", "/analysis/estimate", json=data,
            timeout=settings.ESTIMATE_TIMEOUT_SECONDS,
        )

    async def analyze_comments(
        self,
        data: Dict[str, Any],
        files: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        # multipart form; httpx sets the boundary header itself
        return await self._client.request_json(
            "POST", "/analysis/comments", data=data, files=files,
            timeout=settings.ANALYZE_TIMEOUT_SECONDS,
        )

    async def get_history(self, **params) -> Dict[str, Any]:
        return await self._client.get_json("/analysis/history", params=params)

    async def get_analysis(self, analysis_id: str, silent: bool = False) -> Analysis:
        """Fetch and normalize one analysis. ``silent`` marks background refreshes in the logs."""
        body = await self._client.get_json(f"/analysis/{analysis_id}")
        analysis = parse_analysis(body)
        logger.debug("analysis_fetched", analysis_id=analysis_id, status=analysis.status.value, silent=silent)
        return analysis

    async def export_csv(self, analysis_id: str) -> bytes:
        response = await self._client.request(
            "GET", f"/analysis/{analysis_id}/export",
            timeout=settings.EXPORT_TIMEOUT_SECONDS,
        )
        return response.content

    async def get_progress(self, request_id: str) -> Dict[str, Any]:
        return await self._client.get_json(f"/analysis/progress/{request_id}")

    async def get_account_score(self) -> Dict[str, Any]:
        return await self._client.get_json("/analysis/account-score")

    async def get_score_history(self) -> Dict[str, Any]:
        return await self._client.get_json("/analysis/score-history")

    async def update_action_items(self, analysis_id: str, action_items: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self._client.request_json(
            "PATCH", f"/analysis/{analysis_id}/action-items",
            json={"actionItems": action_items},
        )

    async def compare(self, first_id: str, second_id: str) -> Dict[str, Any]:
        return await self._client.get_json(f"/analysis/compare/{first_id}/{second_id}")


class AnalyticsEndpoints(_EndpointGroup):
    async def get_performance(self) -> Dict[str, Any]:
        return await self._client.get_json("/analytics/performance")


class ScheduledEndpoints(_EndpointGroup):
    async def list(self) -> Dict[str, Any]:
        return await self._client.get_json("/scheduled")

    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._client.request_json("POST", "/scheduled", json=data)

    async def update(self, schedule_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._client.request_json("PATCH", f"/scheduled/{schedule_id}", json=data)

    async def toggle(self, schedule_id: str) -> Dict[str, Any]:
        return await self._client.request_json("PATCH", f"/scheduled/{schedule_id}/toggle")

    async def remove(self, schedule_id: str) -> Dict[str, Any]:
        return await self._client.request_json("DELETE", f"/scheduled/{schedule_id}")

    async def run_now(self, schedule_id: str) -> Dict[str, Any]:
        return await self._client.request_json("POST", f"/scheduled/{schedule_id}/run-now")


class SocialSenseClient:
    """Async SocialSense backend client."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.API_URL).rstrip("/")
        self.token_provider = token_provider
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.API_TIMEOUT_SECONDS,
            transport=transport,
        )

        self.auth = AuthEndpoints(self)
        self.tokens = TokensEndpoints(self)
        self.analysis = AnalysisEndpoints(self)
        self.analytics = AnalyticsEndpoints(self)
        self.scheduled = ScheduledEndpoints(self)

    async def __aenter__(self) -> "SocialSenseClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _auth_headers(self) -> Dict[str, str]:
        token: Optional[str] = None
        if self.token_provider is not None:
            try:
                token = await self.token_provider()
            except Exception as e:
                # Request still goes out; the backend answers 401 if it needs auth
                logger.error("token_provider_failed", error=str(e))
        elif settings.API_ACCESS_TOKEN is not None:
            token = settings.API_ACCESS_TOKEN.get_secret_value()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request and return the 2xx response, raising normalized errors otherwise."""
        headers = {**(await self._auth_headers()), **kwargs.pop("headers", {})}
        try:
            response = await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("request_timeout", method=method, path=path)
            raise NetworkException(TIMEOUT_MESSAGE) from e
        except httpx.TransportError as e:
            logger.warning("network_error", method=method, path=path, error=str(e))
            raise NetworkException(NETWORK_MESSAGE) from e
        raise_for_response(response)
        return response

    async def request_json(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = await self.request(method, path, **kwargs)
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            raise MalformedPayloadException(f"Expected JSON from {path}") from e
        if not isinstance(body, dict):
            return {"data": body}
        return body

    async def get_json(self, path: str, **kwargs) -> Dict[str, Any]:
        return await self.request_json("GET", path, **kwargs)
