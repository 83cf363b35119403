from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from conftest import FIXED_NOW
from trading_journal.auth import issue_token
from trading_journal.web.app import app, get_config, get_now


@pytest.fixture
def client(app_config):
    app.dependency_overrides[get_config] = lambda: app_config
    app.dependency_overrides[get_now] = lambda: FIXED_NOW
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _register(client: TestClient, username: str = "alice", password: str = "pw", **extra) -> dict[str, str]:
    response = client.post("/api/register", json={"username": username, "password": password, **extra})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


def _add_trade(client: TestClient, headers: dict[str, str], **body) -> dict:
    response = client.post("/api/trades", json=body, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "app": "Trading Journal", "version": "0.1.0"}


class TestAccounts:
    def test_register_returns_token_and_profile(self, client):
        response = client.post(
            "/api/register",
            json={"username": "alice", "password": "pw", "email": "alice@example.com", "name": "Alice"},
        )
        assert response.status_code == 200
        payload = response.json()
        assert payload["token"]
        assert (payload["username"], payload["email"], payload["name"]) == ("alice", "alice@example.com", "Alice")

    def test_register_requires_username_and_password(self, client):
        response = client.post("/api/register", json={"username": "alice"})
        assert response.status_code == 400

    def test_duplicate_username_conflicts(self, client):
        _register(client)
        response = client.post("/api/register", json={"username": "alice", "password": "other"})
        assert response.status_code == 409
        assert response.json()["detail"] == "Username already exists"

    def test_duplicate_email_conflicts(self, client):
        _register(client, email="shared@example.com")
        response = client.post(
            "/api/register",
            json={"username": "bob", "password": "pw", "email": "shared@example.com"},
        )
        assert response.status_code == 409
        assert response.json()["detail"] == "Email already exists"

    def test_login(self, client):
        _register(client)
        response = client.post("/api/login", json={"username": "alice", "password": "pw"})
        assert response.status_code == 200
        assert response.json()["username"] == "alice"

    def test_login_with_wrong_password(self, client):
        _register(client)
        response = client.post("/api/login", json={"username": "alice", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"

    def test_login_unknown_user(self, client):
        response = client.post("/api/login", json={"username": "ghost", "password": "pw"})
        assert response.status_code == 401

    def test_login_missing_fields(self, client):
        assert client.post("/api/login", json={}).status_code == 400

    def test_change_password(self, client):
        headers = _register(client)
        wrong = client.put(
            "/api/settings/password",
            json={"currentPassword": "bad", "newPassword": "pw2"},
            headers=headers,
        )
        assert wrong.status_code == 400
        assert wrong.json()["detail"] == "Current password is incorrect"

        ok = client.put(
            "/api/settings/password",
            json={"currentPassword": "pw", "newPassword": "pw2"},
            headers=headers,
        )
        assert ok.status_code == 200
        assert client.post("/api/login", json={"username": "alice", "password": "pw"}).status_code == 401
        assert client.post("/api/login", json={"username": "alice", "password": "pw2"}).status_code == 200

    def test_profile_update_and_email_conflict(self, client):
        headers = _register(client, email="alice@example.com")
        _register(client, username="bob", email="bob@example.com")

        ok = client.put("/api/settings/profile", json={"name": "Alice A."}, headers=headers)
        assert ok.status_code == 200
        assert ok.json() == {"message": "Profile updated successfully"}

        taken = client.put("/api/settings/profile", json={"email": "bob@example.com"}, headers=headers)
        assert taken.status_code == 400
        assert taken.json()["detail"] == "Email is already in use"

    def test_long_password_register_and_login(self, client):
        long_password = "p" * 80
        response = client.post("/api/register", json={"username": "longpw", "password": long_password})
        assert response.status_code == 200
        assert client.post("/api/login", json={"username": "longpw", "password": long_password}).status_code == 200
        # bcrypt compares the first 72 bytes only.
        assert client.post("/api/login", json={"username": "longpw", "password": "p" * 72}).status_code == 200
        assert client.post("/api/login", json={"username": "longpw", "password": "p" * 71}).status_code == 401

    def test_change_to_long_password(self, client):
        headers = _register(client)
        long_password = "\u00e9" * 50
        response = client.put(
            "/api/settings/password",
            json={"currentPassword": "pw", "newPassword": long_password},
            headers=headers,
        )
        assert response.status_code == 200
        assert client.post("/api/login", json={"username": "alice", "password": long_password}).status_code == 200


class TestAuthBoundary:
    def test_missing_header(self, client):
        response = client.get("/api/trades")
        assert response.status_code == 401
        assert response.json()["detail"] == "No token provided"

    def test_header_without_token(self, client):
        response = client.get("/api/trades", headers={"Authorization": "Bearer"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token format"

    def test_garbage_token(self, client):
        response = client.get("/api/trades", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 403
        assert response.json()["detail"] == "Invalid token"

    def test_expired_token(self, client, app_config):
        token = issue_token(
            app_config.auth,
            user_id="u1",
            username="alice",
            now=FIXED_NOW - timedelta(days=30),
        )
        response = client.get("/api/trades", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Token expired"

    def test_statistics_need_a_token(self, client):
        assert client.get("/api/summary").status_code == 401
        assert client.get("/api/performance").status_code == 401


class TestTrades:
    def test_create_defaults_date_to_now(self, client):
        headers = _register(client)
        created = _add_trade(client, headers, amount=25, type="profit", target="40")
        assert created["type"] == "profit"
        assert created["amount"] == 25
        assert created["target"] == "40"
        assert created["notes"] is None
        assert created["date"] == FIXED_NOW.isoformat()

    def test_list_is_newest_first(self, client):
        headers = _register(client)
        first = _add_trade(client, headers, amount=1, type="profit", date="2024-03-10T09:00:00Z")
        second = _add_trade(client, headers, amount=2, type="loss", date="2024-03-12T09:00:00Z")
        listed = client.get("/api/trades", headers=headers).json()
        assert [item["id"] for item in listed] == [second["id"], first["id"]]

    def test_rejects_negative_amount_and_unknown_type(self, client):
        headers = _register(client)
        assert client.post("/api/trades", json={"amount": -5, "type": "profit"}, headers=headers).status_code == 422
        assert client.post("/api/trades", json={"amount": 5, "type": "draw"}, headers=headers).status_code == 422

    def test_rejects_infinite_amount(self, client):
        headers = {**_register(client), "Content-Type": "application/json"}
        created = client.post("/api/trades", content='{"amount": Infinity, "type": "profit"}', headers=headers)
        assert created.status_code == 422

        record = _add_trade(client, headers, amount=10, type="loss")
        edited = client.put(f"/api/trades/{record['id']}", content='{"amount": Infinity}', headers=headers)
        assert edited.status_code == 422
        assert client.get("/api/trades", headers=headers).json()[0]["amount"] == 10

    def test_edit_trade(self, client):
        headers = _register(client)
        created = _add_trade(client, headers, amount=10, type="profit", target="20")
        response = client.put(
            f"/api/trades/{created['id']}",
            json={"type": "loss", "notes": "reversed"},
            headers=headers,
        )
        assert response.status_code == 200
        updated = response.json()
        assert (updated["type"], updated["notes"], updated["amount"], updated["target"]) == ("loss", "reversed", 10, "20")

    def test_delete_trade(self, client):
        headers = _register(client)
        created = _add_trade(client, headers, amount=10, type="profit")
        response = client.delete(f"/api/trades/{created['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert client.get("/api/trades", headers=headers).json() == []
        assert client.delete(f"/api/trades/{created['id']}", headers=headers).status_code == 404

    def test_other_users_cannot_see_or_touch_trades(self, client):
        alice = _register(client)
        bob = _register(client, username="bob")
        created = _add_trade(client, alice, amount=10, type="profit")

        assert client.get("/api/trades", headers=bob).json() == []
        edit = client.put(f"/api/trades/{created['id']}", json={"amount": 1}, headers=bob)
        assert edit.status_code == 404
        assert edit.json()["detail"] == "Trade not found."
        assert client.delete(f"/api/trades/{created['id']}", headers=bob).status_code == 404
        assert client.get("/api/trades", headers=alice).json()[0]["amount"] == 10


class TestStatistics:
    @pytest.fixture
    def headers(self, client):
        headers = _register(client)
        _add_trade(client, headers, amount=50, type="profit", target="60", date="2024-03-14T09:00:00Z")
        _add_trade(client, headers, amount=20, type="loss", target="60", date="2024-03-14T10:00:00Z")
        _add_trade(client, headers, amount=5, type="profit", target="10", date="2024-03-12T10:00:00Z")
        _add_trade(client, headers, amount=99, type="profit", date="2023-11-02T10:00:00Z")
        return headers

    def test_daily_summary_is_filtered_to_today(self, client, headers):
        response = client.get("/api/summary", params={"timeframe": "daily"}, headers=headers)
        assert response.status_code == 200
        payload = response.json()
        assert payload["timeframe"] == "day"
        assert payload["period"] == "2024-03-14"
        assert payload["stats"] == {
            "totalProfit": 50.0,
            "totalLoss": 20.0,
            "winRate": 50.0,
            "tradeCount": 2,
            "netPnl": 30.0,
        }
        weekday = {row["name"]: row for row in payload["weekday"]}
        assert list(weekday) == ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
        assert (weekday["Thu"]["profit"], weekday["Thu"]["loss"]) == (50, 20)
        assert weekday["Tue"]["total_count"] == 0

    def test_weekly_summary_covers_iso_week(self, client, headers):
        payload = client.get("/api/summary", params={"timeframe": "weekly"}, headers=headers).json()
        assert payload["period"] == "2024-W11"
        assert payload["stats"]["tradeCount"] == 3
        weekday = {row["name"]: row for row in payload["weekday"]}
        assert weekday["Tue"]["profit"] == 5

    def test_weekly_performance_window(self, client, headers):
        payload = client.get("/api/performance", params={"timeframe": "weekly"}, headers=headers).json()
        buckets = payload["buckets"]
        assert len(buckets) == 8
        assert buckets[-1]["key"] == "2024-W11"
        assert buckets[-1]["net"] == 35
        assert buckets[-1]["target"] == 130
        assert buckets[-1]["win_count"] == 2
        assert sum(bucket["total_count"] for bucket in buckets) == 3

    def test_monthly_performance_includes_older_records(self, client, headers):
        buckets = client.get("/api/performance", params={"timeframe": "monthly"}, headers=headers).json()["buckets"]
        assert len(buckets) == 12
        by_key = {bucket["key"]: bucket for bucket in buckets}
        assert by_key["2023-11"]["profit"] == 99
        assert by_key["2024-03"]["net"] == 35

    @pytest.mark.parametrize("timeframe,size", [("daily", 7), ("weekly", 8), ("monthly", 12), ("yearly", 5)])
    def test_window_sizes(self, client, headers, timeframe, size):
        payload = client.get("/api/performance", params={"timeframe": timeframe}, headers=headers).json()
        assert len(payload["buckets"]) == size

    def test_empty_journal_still_has_full_window(self, client):
        headers = _register(client, username="fresh")
        buckets = client.get("/api/performance", params={"timeframe": "yearly"}, headers=headers).json()["buckets"]
        assert [bucket["key"] for bucket in buckets] == ["2020", "2021", "2022", "2023", "2024"]
        assert all(bucket["net"] == 0 for bucket in buckets)

    def test_invalid_timeframe(self, client, headers):
        for path in ("/api/summary", "/api/performance"):
            response = client.get(path, params={"timeframe": "hourly"}, headers=headers)
            assert response.status_code == 400
            assert "timeframe" in response.json()["detail"]


def test_cors_preflight_allows_dev_origin(client):
    response = client.options(
        "/api/trades",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Authorization, Content-Type",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
