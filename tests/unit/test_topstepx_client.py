"""
Unit tests for TopstepXClient against an in-process httpx.MockTransport.
"""

import json
from datetime import datetime, timezone

import httpx
import pytest

from src.api.topstepx_client import TopstepXClient, TopstepXError, _format_timestamp


class FakeBroker:
    """Minimal TopstepX stand-in; records every request it sees."""

    def __init__(self, trades=None, orders=None, validate_ok=True, login_ok=True):
        self.trades = trades or []
        self.orders = orders or []
        self.validate_ok = validate_ok
        self.login_ok = login_ok
        self.requests = []
        self.logins = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.url.path, body, request.headers.get("Authorization")))
        path = request.url.path

        if path == "/api/Auth/loginKey":
            self.logins += 1
            if not self.login_ok:
                return httpx.Response(200, json={"success": False, "errorCode": 3, "errorMessage": "bad key"})
            return httpx.Response(200, json={"success": True, "errorCode": 0, "token": f"tok-{self.logins}"})
        if path == "/api/Auth/validate":
            if not self.validate_ok:
                return httpx.Response(401, json={})
            return httpx.Response(200, json={"success": True, "errorCode": 0, "newToken": "tok-fresh"})
        if path == "/api/Trade/search":
            return httpx.Response(200, json={"success": True, "errorCode": 0, "trades": self.trades})
        if path == "/api/Order/search":
            return httpx.Response(200, json={"success": True, "errorCode": 0, "orders": self.orders})
        if path == "/api/Account/search":
            return httpx.Response(200, json={"success": True, "errorCode": 0, "accounts": [{"id": 42}]})
        return httpx.Response(404, json={})


def _client(broker, **kwargs):
    http = httpx.Client(transport=httpx.MockTransport(broker))
    params = {"base_url": "https://broker.test", "username": "trader", "api_key": "key", "account_id": 42}
    params.update(kwargs)
    return TopstepXClient(http_client=http, **params)


START = datetime(2025, 3, 3, 0, 0)
END = datetime(2025, 3, 4, 0, 0)


class TestAuthentication:
    def test_login_caches_token(self):
        broker = FakeBroker()
        client = _client(broker)
        assert client.login() == "tok-1"
        path, body, _ = broker.requests[0]
        assert path == "/api/Auth/loginKey"
        assert body == {"userName": "trader", "apiKey": "key"}

    def test_cached_token_is_revalidated(self):
        broker = FakeBroker()
        client = _client(broker)
        client.login()
        assert client.get_valid_token() == "tok-fresh"
        assert broker.requests[-1][2] == "Bearer tok-1"

    def test_rejected_token_falls_back_to_login(self):
        broker = FakeBroker(validate_ok=False)
        client = _client(broker)
        client.login()
        assert client.get_valid_token() == "tok-2"
        assert broker.logins == 2

    def test_missing_credentials(self):
        client = _client(FakeBroker(), api_key=None)
        with pytest.raises(TopstepXError):
            client.login()

    def test_success_false_raises(self):
        client = _client(FakeBroker(login_ok=False))
        with pytest.raises(TopstepXError) as exc:
            client.login()
        assert exc.value.error_code == 3


class TestSearch:
    def test_fetch_trades_maps_fields(self):
        broker = FakeBroker(trades=[{
            "id": 8001,
            "accountId": 42,
            "contractId": "CON.F.US.MNQ.M25",
            "creationTimestamp": "2025-03-03T14:30:00.123+00:00",
            "price": 20000.25,
            "profitAndLoss": None,
            "fees": 0.37,
            "side": 1,
            "size": 2,
            "voided": False,
            "orderId": 9001,
        }])
        trades = _client(broker).fetch_trades(START, END)

        assert len(trades) == 1
        trade = trades[0]
        assert trade["id"] == 8001
        assert trade["contract_id"] == "CON.F.US.MNQ.M25"
        assert trade["side"] == "BUY"
        assert trade["profit_and_loss"] is None
        assert trade["order_id"] == 9001
        assert trade["creation_timestamp"] == datetime(2025, 3, 3, 14, 30, 0, 123000, tzinfo=timezone.utc)

        path, body, auth = broker.requests[-1]
        assert path == "/api/Trade/search"
        assert body == {
            "accountId": 42,
            "startTimestamp": "2025-03-03T00:00:00.000Z",
            "endTimestamp": "2025-03-04T00:00:00.000Z",
        }
        assert auth == "Bearer tok-1"

    def test_sell_side_and_bad_timestamp(self):
        broker = FakeBroker(trades=[{
            "id": 8002, "contractId": "CON.F.US.MNQ.M25", "creationTimestamp": "yesterday",
            "price": 1.0, "side": 0, "size": 1, "orderId": 1,
        }])
        trade = _client(broker).fetch_trades(START, END)[0]
        assert trade["side"] == "SELL"
        assert trade["creation_timestamp"] is None
        assert trade["fees"] == 0.0

    def test_fetch_orders_maps_fields(self):
        broker = FakeBroker(orders=[{
            "id": 9001, "accountId": 42, "contractId": "CON.F.US.MNQ.M25",
            "creationTimestamp": "2025-03-03T14:29:59Z", "updateTimestamp": "2025-03-03T14:30:00Z",
            "status": 2, "type": 1, "side": 1, "size": 2, "limitPrice": 20000.0, "stopPrice": None,
        }])
        order = _client(broker).fetch_orders(START, END)[0]
        assert order["id"] == 9001
        assert order["side"] == "BUY"
        assert order["limit_price"] == 20000.0
        assert order["update_timestamp"].minute == 30

    def test_missing_account_id(self):
        client = _client(FakeBroker(), account_id=None)
        with pytest.raises(TopstepXError):
            client.fetch_trades(START, END)

    def test_http_error_status(self):
        def handler(request):
            if request.url.path == "/api/Auth/loginKey":
                return httpx.Response(200, json={"success": True, "errorCode": 0, "token": "t"})
            return httpx.Response(500, text="boom")

        client = TopstepXClient(
            base_url="https://broker.test", username="u", api_key="k", account_id=1,
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        with pytest.raises(TopstepXError) as exc:
            client.fetch_orders(START, END)
        assert exc.value.status_code == 500

    def test_search_accounts(self):
        assert _client(FakeBroker()).search_accounts() == [{"id": 42}]


class TestFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("TOPSTEPX_API_URL", "https://broker.test/")
        monkeypatch.setenv("TOPSTEPX_USERNAME", "trader")
        monkeypatch.setenv("TOPSTEPX_API_KEY", "key")
        monkeypatch.setenv("TOPSTEPX_ACCOUNT_ID", "42")
        client = TopstepXClient.from_env(http_client=httpx.Client(transport=httpx.MockTransport(FakeBroker())))
        assert client.base_url == "https://broker.test"
        assert client.account_id == 42


def test_format_timestamp_converts_to_utc():
    aware = datetime(2025, 3, 3, 9, 30, tzinfo=timezone.utc).astimezone()
    assert _format_timestamp(aware) == "2025-03-03T09:30:00.000Z"
