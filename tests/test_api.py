"""
Tests for the faucet HTTP endpoints.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from faucet_api.claim import ClaimOrchestrator
from faucet_api.db import ClaimLedger
from faucet_api.errors import TransferNetworkError
from faucet_api.main import (
    GENERIC_CLAIM_ERROR,
    app,
    configure_stdlib_logging,
    get_ledger,
    get_orchestrator,
    get_transfer_client,
)

from conftest import T0, FakeClock, FakeTransferClient

WALLET = "0x1111111111111111111111111111111111111111"


def _parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.fixture
def client(orchestrator: ClaimOrchestrator, ledger: ClaimLedger, transfer: FakeTransferClient):
    """Test client wired to the in-test ledger; the lifespan does not run."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_transfer_client] = lambda: transfer
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestClaimEndpoint:
    """Tests for POST /api/claim."""

    def test_claim_success(self, client: TestClient, transfer: FakeTransferClient) -> None:
        response = client.post("/api/claim", json={"walletAddress": WALLET})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["amount"] == "0.01"
        assert data["transactionHash"] == transfer.sent[0][2]
        assert data["message"] == "Reward sent successfully"
        assert _parse_time(data["nextClaimTime"]) == T0 + timedelta(hours=24)

    def test_second_claim_is_rate_limited(self, client: TestClient, clock: FakeClock) -> None:
        client.post("/api/claim", json={"walletAddress": WALLET})
        clock.advance(timedelta(minutes=10))

        response = client.post("/api/claim", json={"walletAddress": WALLET})

        assert response.status_code == 429
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "You must wait 24 hours since your last claim"
        assert _parse_time(data["nextClaimTime"]) == T0 + timedelta(hours=24)
        assert _parse_time(data["lastClaimTime"]) == T0

    @pytest.mark.parametrize(
        "body",
        [
            {"walletAddress": "0x123"},
            {},
            {"walletAddress": 123},
            {"walletAddress": ["0x1111111111111111111111111111111111111111"]},
            {"walletAddress": {"address": WALLET}},
        ],
    )
    def test_invalid_address(self, client: TestClient, transfer: FakeTransferClient, body: dict) -> None:
        response = client.post("/api/claim", json=body)

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid wallet address"}
        assert transfer.sent == []

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"content": b"not json", "headers": {"Content-Type": "application/json"}},
            {},
        ],
    )
    def test_malformed_body(self, client: TestClient, transfer: FakeTransferClient, kwargs: dict) -> None:
        response = client.post("/api/claim", **kwargs)

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid wallet address"}
        assert transfer.sent == []

    def test_transfer_failure_is_generic(self, client: TestClient, transfer: FakeTransferClient) -> None:
        transfer.fail_with = TransferNetworkError("connect ECONNREFUSED 10.0.0.5:8545")

        response = client.post("/api/claim", json={"walletAddress": WALLET})

        assert response.status_code == 500
        data = response.json()
        assert data == {"success": False, "error": GENERIC_CLAIM_ERROR}
        assert "ECONNREFUSED" not in response.text


class TestEligibilityEndpoint:
    """Tests for GET /api/check-eligibility/{address}."""

    def test_first_time(self, client: TestClient) -> None:
        response = client.get(f"/api/check-eligibility/{WALLET}")

        assert response.status_code == 200
        data = response.json()
        assert data["eligible"] is True
        assert data["firstTime"] is True

    def test_not_eligible(self, client: TestClient, clock: FakeClock) -> None:
        client.post("/api/claim", json={"walletAddress": WALLET})
        clock.advance(timedelta(hours=1))

        response = client.get(f"/api/check-eligibility/{WALLET}")

        assert response.status_code == 200
        data = response.json()
        assert data["eligible"] is False
        assert data["timeRemainingMs"] == 23 * 3600 * 1000
        assert isinstance(data["timeRemainingMs"], int)
        assert _parse_time(data["nextClaimTime"]) == T0 + timedelta(hours=24)

    def test_eligible_again(self, client: TestClient, clock: FakeClock) -> None:
        client.post("/api/claim", json={"walletAddress": WALLET})
        clock.advance(timedelta(hours=24))

        data = client.get(f"/api/check-eligibility/{WALLET.upper().replace('0X', '0x')}").json()

        assert data["eligible"] is True
        assert "firstTime" not in data
        assert _parse_time(data["lastClaimTime"]) == T0

    def test_invalid_address(self, client: TestClient) -> None:
        response = client.get("/api/check-eligibility/not-an-address")
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid wallet address"


class TestHealthCheck:
    """Tests for /health endpoint."""

    def test_healthy(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["ethereum"] == "connected"
        assert data["balance"] == "10 ETH"

    def test_unhealthy_when_rpc_fails(
        self,
        client: TestClient,
        transfer: FakeTransferClient,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def broken_balance() -> Decimal:
            raise TransferNetworkError("RPC request timed out")

        monkeypatch.setattr(transfer, "get_balance", broken_balance)

        response = client.get("/health")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["error"] == "Service unavailable"


class TestLogging:
    def test_info_events_are_not_dropped(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        root.handlers = []
        root.setLevel(logging.WARNING)
        try:
            configure_stdlib_logging()

            assert root.getEffectiveLevel() == logging.INFO
            assert len(root.handlers) == 1
            assert logging.getLogger("faucet_api.main").isEnabledFor(logging.INFO)
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)
