"""HTTP tests for the risk, holdings and market routers."""

import pytest
from fastapi.testclient import TestClient

from app.dependencies import get_agent
from app.main import app
from app.utils.auth import get_current_user_id
from tests.helpers.factories import USER


@pytest.fixture
def client(agent, aapl_breach):
    app.dependency_overrides[get_agent] = lambda: agent
    app.dependency_overrides[get_current_user_id] = lambda: USER
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestStopLossRoutes:
    def test_set_and_list(self, client) -> None:
        response = client.put("/risk/stop-loss/msft", json={"stop_loss_price": 300.0})

        assert response.status_code == 200
        assert response.json()["success"] is True
        tickers = [c["ticker"] for c in client.get("/risk/stop-loss").json()]
        assert sorted(tickers) == ["AAPL", "MSFT"]

    def test_missing_values_is_422(self, client) -> None:
        response = client.put("/risk/stop-loss/AAPL", json={})

        assert response.status_code == 422
        assert response.json()["detail"] == "Either stop-loss price or percentage must be provided"

    def test_remove_unknown_is_404(self, client) -> None:
        assert client.delete("/risk/stop-loss/NFLX").status_code == 404


class TestOrderRoutes:
    def test_scan_then_cancel(self, client) -> None:
        created = client.post("/risk/monitoring/scan").json()
        order_id = created[0]["id"]

        pending = client.get("/risk/orders/pending").json()
        assert [o["id"] for o in pending] == [order_id]

        cancelled = client.post(f"/risk/orders/{order_id}/cancel")
        assert cancelled.status_code == 200
        assert cancelled.json()["order"]["status"] == "cancelled"

        again = client.post(f"/risk/orders/{order_id}/cancel")
        assert again.status_code == 409
        assert again.json()["detail"] == "Order already cancelled"

    def test_confirm_executes(self, client) -> None:
        order_id = client.post("/risk/monitoring/scan").json()[0]["id"]

        response = client.post(f"/risk/orders/{order_id}/confirm")

        assert response.status_code == 200
        assert response.json()["order"]["status"] == "executed"
        logs = client.get("/risk/logs", params={"limit": 1}).json()
        assert logs[0]["action"] == "executed"

    def test_confirm_with_market_closed_is_503(self, client, market) -> None:
        order_id = client.post("/risk/monitoring/scan").json()[0]["id"]
        market.open = False

        response = client.post(f"/risk/orders/{order_id}/confirm")

        assert response.status_code == 503
        assert client.get(f"/risk/orders/{order_id}").json()["status"] == "failed"

    def test_unknown_order_is_404(self, client) -> None:
        assert client.get("/risk/orders/SELLNOPE").status_code == 404

    def test_notifications_feed(self, client) -> None:
        client.post("/risk/monitoring/scan")

        feed = client.get("/risk/notifications").json()

        assert feed[0]["title"] == "Stop-Loss Alert: AAPL"


class TestMonitoringAndProfileRoutes:
    def test_start_status_stop(self, client) -> None:
        assert client.post("/risk/monitoring/start").json()["message"] == "Monitoring started"
        assert client.get("/risk/monitoring/status").json()["monitoring"] is True
        assert client.post("/risk/monitoring/stop").json()["message"] == "Monitoring stopped"

    def test_patch_profile(self, client) -> None:
        response = client.patch("/risk/profile", json={"sustained_drop_minutes": 0, "blacklist": ["tsla"]})

        assert response.status_code == 200
        assert response.json()["blacklist"] == ["TSLA"]
        assert response.json()["auto_sell_enabled"] is True

    def test_patch_profile_rejects_negative_window(self, client) -> None:
        response = client.patch("/risk/profile", json={"confirmation_window_minutes": -5})

        assert response.status_code == 422

    def test_assessment(self, client) -> None:
        report = client.get("/risk/assessment").json()

        assert report["total_holdings"] == 2
        assert {a["ticker"] for a in report["assessments"]} == {"AAPL", "PPFAS"}


class TestHoldingsAndMarketRoutes:
    def test_upsert_and_list_holdings(self, client) -> None:
        response = client.put(
            "/holdings/",
            json={
                "kind": "stock",
                "ticker": "infy",
                "company_name": "Infosys",
                "quantity": 5,
                "purchase_price": 1500,
                "price": 1450,
            },
        )

        assert response.status_code == 200
        assert response.json()["ticker"] == "INFY"
        listed = {h["ticker"]: h for h in client.get("/holdings/").json()}
        assert listed["INFY"]["market_value"] == 7250
        assert client.delete("/holdings/INFY").status_code == 200
        assert client.delete("/holdings/INFY").status_code == 404

    def test_market_status(self, client) -> None:
        response = client.get("/market/status/nasdaq")

        assert response.status_code == 200
        assert response.json()["exchange"] == "NASDAQ"
        assert client.get("/market/status/LSE").status_code == 404
