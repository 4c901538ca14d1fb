"""Shared pytest fixtures for dexcom-share-bridge tests."""

from __future__ import annotations

import json
from collections import defaultdict

import httpx
import pytest

from share_bridge.ledger import DedupLedger
from share_bridge.models import AccountCredentials, GlucoseReading, Region
from share_bridge.share.client import ShareClient

ACCOUNT_ID = "1e7c5b0a-6f6e-4a43-9a51-0c6b8d2c1a11"
SESSION_ID = "5a0f3c8e-2b7d-4f19-8e2a-7d4c9b1e6f22"

# Reading keys used across tests (epoch ms, newest first as Share returns them)
NOW_MS = 1_736_935_800_000  # 2025-01-15 10:10:00 UTC
FIVE_MINUTES_MS = 5 * 60 * 1000


def share_entry(epoch_ms: int, value: int = 120, trend: str = "Flat") -> dict:
    """Build one element of a Share read response."""
    return {
        "WT": f"Date({epoch_ms})",
        "ST": f"Date({epoch_ms})",
        "DT": f"Date({epoch_ms}-0500)",
        "Value": value,
        "Trend": trend,
    }


def reading(epoch_ms: int, value: int = 120, trend: str = "Flat") -> GlucoseReading:
    return GlucoseReading.from_share(share_entry(epoch_ms, value, trend))


class FakeShareServer:
    """Minimal stand-in for the Share web service behind httpx.MockTransport.

    Responses can be queued per endpoint name (last path segment); once a
    queue is empty the endpoint falls back to a successful default.
    """

    account_id = ACCOUNT_ID
    session_id = SESSION_ID

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._queued: dict[str, list[httpx.Response | Exception]] = defaultdict(list)

    def queue(self, endpoint: str, *responses: httpx.Response | Exception) -> None:
        self._queued[endpoint].extend(responses)

    def calls(self, endpoint: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(f"/{endpoint}")]

    @staticmethod
    def json_body(request: httpx.Request) -> dict:
        return json.loads(request.content)

    @staticmethod
    def session_expired(code: str = "SessionIdNotFound", message: str = "Session ID not found") -> httpx.Response:
        return httpx.Response(500, json={"Code": code, "Message": message})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        endpoint = request.url.path.rsplit("/", 1)[-1]

        if self._queued[endpoint]:
            response = self._queued[endpoint].pop(0)
            if isinstance(response, Exception):
                raise response
            return response

        if endpoint == "AuthenticatePublisherAccount":
            return httpx.Response(200, json=self.account_id)
        if endpoint == "LoginPublisherAccountById":
            return httpx.Response(200, json=self.session_id)
        if endpoint == "ReadPublisherLatestGlucoseValues":
            return httpx.Response(200, json=[])
        return httpx.Response(200)


@pytest.fixture
def credentials() -> AccountCredentials:
    """Source account credentials."""
    return AccountCredentials(username="alice", password="s3cret!", region=Region.US)


@pytest.fixture
def fake_share() -> FakeShareServer:
    return FakeShareServer()


@pytest.fixture
def share_client(credentials, fake_share) -> ShareClient:
    """ShareClient wired to the fake server."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_share.handler))
    return ShareClient(credentials, http_client=http_client)


@pytest.fixture
def signed_in_client(share_client, fake_share) -> ShareClient:
    """ShareClient that already holds the fake server's account and session IDs."""
    share_client.account_id = fake_share.account_id
    share_client.session_id = fake_share.session_id
    return share_client


@pytest.fixture
def now_ms() -> int:
    return NOW_MS


@pytest.fixture
def make_share_entry():
    """Factory for elements of a Share read response."""
    return share_entry


@pytest.fixture
def make_reading():
    """Factory for parsed readings keyed by epoch milliseconds."""
    return reading


@pytest.fixture
def ledger() -> DedupLedger:
    """Ledger with a fixed clock."""
    return DedupLedger(clock=lambda: NOW_MS)


@pytest.fixture
def recent_readings() -> list[GlucoseReading]:
    """Three readings five minutes apart, newest first."""
    return [
        reading(NOW_MS, value=132, trend="FortyFiveUp"),
        reading(NOW_MS - FIVE_MINUTES_MS, value=125, trend="Flat"),
        reading(NOW_MS - 2 * FIVE_MINUTES_MS, value=121, trend="Flat"),
    ]
