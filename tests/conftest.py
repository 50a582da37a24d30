# tests/conftest.py

"""
Pytest Fixtures - Shared test configuration, payloads and a stub backend

FAKE BACKEND ROUTES (httpx.MockTransport):
- GET /api/auth/token-balance
- GET /api/tokens/verify-session/{session_id}
- GET /api/analysis/{analysis_id}
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest
from fastapi.testclient import TestClient

from socialsense.config import settings
from socialsense.main import create_app
from socialsense.services.api_client import SocialSenseClient

BASE_URL = "http://backend.test/api"


# =============================================================================
# PAYLOAD FIXTURES
# =============================================================================

@pytest.fixture
def processing_analysis_payload():
    """Analysis still running; JSON columns arrive encoded as strings."""
    return {
        "analysis": {
            "id": "an-1",
            "status": "processing",
            "platform": "youtube",
            "video_title": "How I edit my videos",
            "keywords": json.dumps([{"word": "editing", "count": 12}, {"word": "music", "count": 4}]),
            "themes": json.dumps([{"theme": "Tutorial requests", "count": 7}]),
            "raw_comments": json.dumps([{"text": "great video", "likes": 3}]),
            "sentiment_scores": json.dumps({"positive": 60, "neutral": 30, "negative": 10}),
            "filter_stats": {"after_hard_filters": 80, "emoji_only": 5, "spam_promo": 0, "duplicates": 2},
        }
    }


@pytest.fixture
def completed_analysis_payload(processing_analysis_payload):
    """Same analysis after the backend finished; JSON columns already decoded."""
    analysis = dict(processing_analysis_payload["analysis"])
    analysis.update(
        status="completed",
        keywords=[{"word": "editing", "count": 12}],
        themes=[{"theme": "Tutorial requests", "count": 7}],
        raw_comments=[{"text": "great video", "likes": 3}],
        sentiment_scores={"positive": 60, "neutral": 30, "negative": 10},
        summary="Viewers want more editing tutorials.",
    )
    return {"analysis": analysis}


@pytest.fixture
def verify_success_body():
    return {"success": True, "tokens_added": 100, "new_balance": 150}


@pytest.fixture
def not_paid_body():
    return {"error": "Payment not completed yet", "status": "unpaid"}


# =============================================================================
# STUB BACKEND
# =============================================================================

Reply = Union[httpx.Response, Exception]


class FakeBackend:
    """Scriptable SocialSense backend for httpx.MockTransport."""

    def __init__(self):
        self.balance = 50
        self.balance_down = False
        self.balance_delay = 0.0
        self.analyses: Dict[str, List[Dict[str, Any]]] = {}
        self.verify_replies: List[Reply] = []
        self.verify_default: Optional[Reply] = None
        self.requests: List[httpx.Request] = []

    def calls_to(self, prefix: str) -> int:
        return sum(1 for r in self.requests if r.url.path.startswith("/api" + prefix))

    def queue_verify(self, *replies: Union[Reply, Dict[str, Any]], status_code: int = 200) -> None:
        for reply in replies:
            if isinstance(reply, dict):
                reply = httpx.Response(status_code, json=reply)
            self.verify_replies.append(reply)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/auth/token-balance":
            if self.balance_delay:
                await asyncio.sleep(self.balance_delay)
            if self.balance_down:
                return httpx.Response(503, json={"error": "Service unavailable"})
            return httpx.Response(200, json={"token_balance": self.balance})

        if path.startswith("/api/tokens/verify-session/"):
            reply = self.verify_replies.pop(0) if self.verify_replies else self.verify_default
            if reply is None:
                return httpx.Response(400, json={"error": "Invalid session ID"})
            if isinstance(reply, Exception):
                raise reply
            return reply

        if path.startswith("/api/analysis/"):
            analysis_id = path.rsplit("/", 1)[-1]
            states = self.analyses.get(analysis_id)
            if not states:
                return httpx.Response(404, json={"error": "Analysis not found"})
            # last scripted state sticks
            payload = states.pop(0) if len(states) > 1 else states[0]
            return httpx.Response(200, json=payload)

        return httpx.Response(404, json={"error": f"No route {path}"})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def make_client() -> Callable[..., SocialSenseClient]:
    """Factory for a SocialSenseClient talking to a handler function."""

    def _make(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> SocialSenseClient:
        return SocialSenseClient(base_url=BASE_URL, transport=httpx.MockTransport(handler), **kwargs)

    return _make


# =============================================================================
# FASTAPI TEST CLIENT FIXTURE
# =============================================================================

@pytest.fixture
def fast_timers(monkeypatch):
    """Shrink poll/retry/safety timers so route tests settle quickly."""
    monkeypatch.setattr(settings, "POLL_INTERVAL_SECONDS", 0.05)
    monkeypatch.setattr(settings, "VERIFY_RETRY_DELAY_SECONDS", 0.05)
    monkeypatch.setattr(settings, "VERIFY_SAFETY_TIMEOUT_SECONDS", 2.0)


@pytest.fixture
def client(backend, make_client):
    """Create a TestClient for the FastAPI application wired to the fake backend."""
    app = create_app(client_factory=lambda: make_client(backend.handler))
    with TestClient(app) as test_client:
        yield test_client
