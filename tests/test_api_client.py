# tests/test_api_client.py

"""
API Client Tests - auth injection, error normalization and endpoint wrappers
"""

import asyncio
import json

import httpx
import pytest

from socialsense.core.exceptions import (
    MalformedPayloadException,
    NetworkException,
    PaymentNotSettledException,
    SocialSenseAPIException,
    UnauthorizedException,
)
from socialsense.models.analysis import Analysis
from socialsense.models.enumerations import ResourceStatus
from socialsense.models.tokens import VerifySessionResult
from socialsense.services.api_client import NETWORK_MESSAGE, TIMEOUT_MESSAGE


def run(coro):
    return asyncio.run(coro)


class TestAuthInjection:
    """Bearer token handling."""

    def test_token_from_provider_is_sent(self, make_client):
        seen = []

        def handler(request):
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json={"token_balance": 10})

        async def provider():
            return "tok-123"

        async def scenario():
            async with make_client(handler, token_provider=provider) as client:
                return await client.auth.get_token_balance()

        assert run(scenario()) == 10
        assert seen == ["Bearer tok-123"]

    def test_no_token_means_no_header(self, make_client):
        seen = []

        def handler(request):
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json={})

        async def provider():
            return None

        async def scenario():
            async with make_client(handler, token_provider=provider) as client:
                await client.auth.get_profile()

        run(scenario())
        assert seen == [None]

    def test_failing_provider_does_not_block_request(self, make_client):
        seen = []

        def handler(request):
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json={"packages": []})

        async def provider():
            raise RuntimeError("session store offline")

        async def scenario():
            async with make_client(handler, token_provider=provider) as client:
                return await client.tokens.get_packages()

        assert run(scenario()) == {"packages": []}
        assert seen == [None]


class TestErrorNormalization:
    """Transport and HTTP failures map onto core.exceptions."""

    def _call(self, make_client, handler):
        async def scenario():
            async with make_client(handler) as client:
                return await client.tokens.verify_session("cs_test")

        return run(scenario())

    def test_timeout(self, make_client):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(NetworkException) as exc_info:
            self._call(make_client, handler)
        assert exc_info.value.message == TIMEOUT_MESSAGE
        assert exc_info.value.status_code is None

    def test_connection_error(self, make_client):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkException) as exc_info:
            self._call(make_client, handler)
        assert exc_info.value.message == NETWORK_MESSAGE

    def test_unauthorized(self, make_client):
        def handler(request):
            return httpx.Response(401, json={"error": "Invalid token"})

        with pytest.raises(UnauthorizedException) as exc_info:
            self._call(make_client, handler)
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Invalid token"

    def test_unpaid_session_is_payment_not_settled(self, make_client, not_paid_body):
        def handler(request):
            return httpx.Response(400, json=not_paid_body)

        with pytest.raises(PaymentNotSettledException) as exc_info:
            self._call(make_client, handler)
        assert exc_info.value.payment_status == "unpaid"
        assert exc_info.value.status_code == 400

    def test_invalid_session_is_not_retry_eligible(self, make_client):
        def handler(request):
            return httpx.Response(400, json={"error": "Invalid session ID"})

        with pytest.raises(SocialSenseAPIException) as exc_info:
            self._call(make_client, handler)
        assert not isinstance(exc_info.value, PaymentNotSettledException)
        assert exc_info.value.message == "Invalid session ID"

    def test_paid_status_on_400_is_not_retry_eligible(self, make_client):
        def handler(request):
            return httpx.Response(400, json={"error": "Invalid token amount in session", "status": "paid"})

        with pytest.raises(SocialSenseAPIException) as exc_info:
            self._call(make_client, handler)
        assert not isinstance(exc_info.value, PaymentNotSettledException)

    def test_server_error_without_json_body(self, make_client):
        def handler(request):
            return httpx.Response(503, text="upstream unavailable")

        with pytest.raises(SocialSenseAPIException) as exc_info:
            self._call(make_client, handler)
        assert exc_info.value.status_code == 503
        assert "503" in exc_info.value.message

    def test_non_json_success_body(self, make_client):
        def handler(request):
            return httpx.Response(200, text="<html>proxy page</html>")

        with pytest.raises(MalformedPayloadException):
            self._call(make_client, handler)


class TestEndpoints:
    """Endpoint wrappers hit the right paths and decode typed results."""

    def test_verify_session(self, make_client, verify_success_body):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, json=verify_success_body)

        async def scenario():
            async with make_client(handler) as client:
                return await client.tokens.verify_session("cs_test_123")

        result = run(scenario())
        assert isinstance(result, VerifySessionResult)
        assert result.tokens_added == 100
        assert result.new_balance == 150
        assert result.already_processed is False
        assert paths == ["/api/tokens/verify-session/cs_test_123"]

    def test_get_analysis_is_normalized(self, make_client, processing_analysis_payload):
        def handler(request):
            assert request.url.path == "/api/analysis/an-1"
            return httpx.Response(200, json=processing_analysis_payload)

        async def scenario():
            async with make_client(handler) as client:
                return await client.analysis.get_analysis("an-1", silent=True)

        analysis = run(scenario())
        assert isinstance(analysis, Analysis)
        assert analysis.status == ResourceStatus.PROCESSING
        assert analysis.keywords[0].word == "editing"

    def test_export_csv_returns_bytes(self, make_client):
        def handler(request):
            assert request.url.path == "/api/analysis/an-1/export"
            return httpx.Response(200, content=b"author,text\nx,hi\n", headers={"Content-Type": "text/csv"})

        async def scenario():
            async with make_client(handler) as client:
                return await client.analysis.export_csv("an-1")

        assert run(scenario()).startswith(b"author,text")

    def test_apply_referral_posts_code(self, make_client):
        bodies = []

        def handler(request):
            bodies.append((request.method, request.url.path, request.read()))
            return httpx.Response(200, json={"success": True})

        async def scenario():
            async with make_client(handler) as client:
                return await client.auth.apply_referral("FRIEND10")

        assert run(scenario()) == {"success": True}
        method, path, body = bodies[0]
        assert method == "POST"
        assert path == "/api/auth/apply-referral"
        assert b"FRIEND10" in body

    def test_scheduled_toggle_and_list_payload(self, make_client):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json=[{"id": "s1"}])
            return httpx.Response(200, json={"id": "s1", "is_active": False})

        async def scenario():
            async with make_client(handler) as client:
                listed = await client.scheduled.list()
                toggled = await client.scheduled.toggle("s1")
                return listed, toggled

        listed, toggled = run(scenario())
        assert listed == {"data": [{"id": "s1"}]}
        assert toggled["is_active"] is False

    @pytest.mark.parametrize(
        "call,method,path,body,params",
        [
            (lambda c: c.auth.get_profile(), "GET", "/api/auth/profile", None, {}),
            (lambda c: c.auth.update_profile({"name": "Ana"}), "PUT", "/api/auth/profile", {"name": "Ana"}, {}),
            (lambda c: c.auth.get_token_balance(), "GET", "/api/auth/token-balance", None, {}),
            (lambda c: c.auth.get_transactions(page=2), "GET", "/api/auth/transactions", None, {"page": "2"}),
            (lambda c: c.auth.get_referral(), "GET", "/api/auth/referral", None, {}),
            (lambda c: c.auth.apply_referral("FRIEND10"), "POST", "/api/auth/apply-referral",
             {"referral_code": "FRIEND10"}, {}),
            (lambda c: c.auth.check_referral("FRIEND10"), "GET", "/api/auth/check-referral/FRIEND10", None, {}),
            (lambda c: c.tokens.get_packages(), "GET", "/api/tokens/packages", None, {}),
            (lambda c: c.tokens.get_costs(), "GET", "/api/tokens/costs", None, {}),
            (lambda c: c.tokens.calculate_cost({"comments": 500}), "POST", "/api/tokens/calculate",
             {"comments": 500}, {}),
            (lambda c: c.tokens.create_checkout("pro"), "POST", "/api/tokens/checkout", {"package_id": "pro"}, {}),
            (lambda c: c.tokens.verify_session("cs_1"), "GET", "/api/tokens/verify-session/cs_1", None, {}),
            (lambda c: c.analysis.estimate({"url": "https://youtu.be/x"}), "POST", "/api/analysis/estimate",
             {"url": "https://youtu.be/x"}, {}),
            (lambda c: c.analysis.analyze_comments(
                {"platform": "youtube"}, files={"file": ("comments.csv", b"author,text\n", "text/csv")}
            ), "POST", "/api/analysis/comments",
             b'name="platform"', {}),
            (lambda c: c.analysis.get_history(limit=5), "GET", "/api/analysis/history", None, {"limit": "5"}),
            (lambda c: c.analysis.get_analysis("an-1"), "GET", "/api/analysis/an-1", None, {}),
            (lambda c: c.analysis.export_csv("an-1"), "GET", "/api/analysis/an-1/export", None, {}),
            (lambda c: c.analysis.get_progress("req-9"), "GET", "/api/analysis/progress/req-9", None, {}),
            (lambda c: c.analysis.get_account_score(), "GET", "/api/analysis/account-score", None, {}),
            (lambda c: c.analysis.get_score_history(), "GET", "/api/analysis/score-history", None, {}),
            (lambda c: c.analysis.update_action_items("an-1", [{"text": "Reply", "done": True}]), "PATCH",
             "/api/analysis/an-1/action-items", {"actionItems": [{"text": "Reply", "done": True}]}, {}),
            (lambda c: c.analysis.compare("an-1", "an-2"), "GET", "/api/analysis/compare/an-1/an-2", None, {}),
            (lambda c: c.analytics.get_performance(), "GET", "/api/analytics/performance", None, {}),
            (lambda c: c.scheduled.list(), "GET", "/api/scheduled", None, {}),
            (lambda c: c.scheduled.create({"url": "https://youtu.be/x"}), "POST", "/api/scheduled",
             {"url": "https://youtu.be/x"}, {}),
            (lambda c: c.scheduled.update("s1", {"frequency": "weekly"}), "PATCH", "/api/scheduled/s1",
             {"frequency": "weekly"}, {}),
            (lambda c: c.scheduled.toggle("s1"), "PATCH", "/api/scheduled/s1/toggle", None, {}),
            (lambda c: c.scheduled.remove("s1"), "DELETE", "/api/scheduled/s1", None, {}),
            (lambda c: c.scheduled.run_now("s1"), "POST", "/api/scheduled/s1/run-now", None, {}),
        ],
    )
    def test_wrapper_request_shape(self, make_client, call, method, path, body, params):
        seen = []

        def handler(request):
            seen.append(request)
            # satisfies every typed decoder the wrappers apply
            return httpx.Response(200, json={"id": "an-1", "status": "completed", "token_balance": 7})

        async def scenario():
            async with make_client(handler) as client:
                await call(client)

        run(scenario())
        assert len(seen) == 1
        request = seen[0]
        assert request.method == method
        assert request.url.path == path
        assert dict(request.url.params) == params

        content = request.read()
        if body is None:
            assert content == b""
        elif isinstance(body, bytes):
            assert request.headers["Content-Type"].startswith("multipart/form-data")
            assert body in content
        else:
            assert json.loads(content) == body
