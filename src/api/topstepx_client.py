import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from dateutil import parser as dtparser
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

DEFAULT_BASE_URL = "https://api.topstepx.com"


class TopstepXError(Exception):
    """Broker request failed: non-2xx response or success=false in the body"""

    def __init__(self, message: str, status_code: Optional[int] = None, error_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code


def _format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with a Z suffix, as the search endpoints expect."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return dtparser.isoparse(value)
    except ValueError:
        logger.warning(f"Unparseable broker timestamp: {value!r}")
        return None


def _side_label(side: Any) -> Optional[str]:
    if side is None:
        return None
    return "BUY" if side == 1 else "SELL"


class TopstepXClient:
    """TopstepX REST client owning its own session token.

    Every request goes through get_valid_token(): a cached token is
    re-validated (the broker hands back a fresh one), and a failed
    validation falls back to a new API-key login.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        username: Optional[str] = None,
        api_key: Optional[str] = None,
        account_id: Optional[int] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.api_key = api_key
        self.account_id = int(account_id) if account_id is not None else None
        self._http = http_client or httpx.Client(timeout=timeout)
        self._token: Optional[str] = None

    @classmethod
    def from_env(cls, http_client: Optional[httpx.Client] = None) -> "TopstepXClient":
        account_id = os.getenv("TOPSTEPX_ACCOUNT_ID")
        return cls(
            base_url=os.getenv("TOPSTEPX_API_URL", DEFAULT_BASE_URL),
            username=os.getenv("TOPSTEPX_USERNAME"),
            api_key=os.getenv("TOPSTEPX_API_KEY"),
            account_id=int(account_id) if account_id else None,
            http_client=http_client,
        )

    def close(self):
        self._http.close()

    # ------------------------------------------------------------------
    # Low-level request
    # ------------------------------------------------------------------

    def _post(self, path: str, payload: Optional[Dict[str, Any]] = None, token: Optional[str] = None) -> Dict[str, Any]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            resp = self._http.post(f"{self.base_url}{path}", json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise TopstepXError(f"{path} request failed: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            logger.error(f"{path} bad response: {resp.status_code} {resp.text[:200]}")
            raise TopstepXError(
                f"{path} failed: {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
            )

        data = resp.json()
        if not data.get("success") or data.get("errorCode", 0) != 0:
            raise TopstepXError(
                f"{path} error ({data.get('errorCode')}): {data.get('errorMessage')}",
                status_code=resp.status_code,
                error_code=data.get("errorCode"),
            )
        return data

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def login(self) -> str:
        """Authenticate with username + API key and cache the session token"""
        if not self.username or not self.api_key:
            raise TopstepXError("Missing TopstepX username or API key")

        logger.info(f"Authenticating with TopstepX as {self.username}")
        data = self._post("/api/Auth/loginKey", {"userName": self.username, "apiKey": self.api_key})
        self._token = data["token"]
        return self._token

    def validate_token(self) -> str:
        """Validate the cached token; the broker returns a refreshed one"""
        if not self._token:
            raise TopstepXError("No session token to validate")
        data = self._post("/api/Auth/validate", token=self._token)
        self._token = data["newToken"]
        return self._token

    def get_valid_token(self) -> str:
        if self._token:
            try:
                return self.validate_token()
            except TopstepXError as e:
                logger.debug(f"Cached token rejected, logging in again: {e}")
                self._token = None
        return self.login()

    # ------------------------------------------------------------------
    # Search endpoints
    # ------------------------------------------------------------------

    def _window_payload(self, start: datetime, end: datetime) -> Dict[str, Any]:
        if self.account_id is None:
            raise TopstepXError("Missing TopstepX account id")
        return {
            "accountId": self.account_id,
            "startTimestamp": _format_timestamp(start),
            "endTimestamp": _format_timestamp(end),
        }

    def fetch_trades(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """All fills in [start, end], normalized to executions-table fields"""
        token = self.get_valid_token()
        payload = self._window_payload(start, end)
        logger.debug(f"Trade search payload: {payload}")
        data = self._post("/api/Trade/search", payload, token=token)

        trades = []
        for t in data.get("trades") or []:
            trades.append({
                "id": t.get("id"),
                "account_id": t.get("accountId", self.account_id),
                "creation_timestamp": _parse_timestamp(t.get("creationTimestamp")),
                "contract_id": t.get("contractId"),
                "side": _side_label(t.get("side")),
                "price": t.get("price"),
                "profit_and_loss": t.get("profitAndLoss"),
                "fees": t.get("fees") or 0.0,
                "size": t.get("size"),
                "voided": bool(t.get("voided", False)),
                "order_id": t.get("orderId"),
            })
        return trades

    def fetch_orders(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """All orders in [start, end], normalized to broker_orders fields"""
        token = self.get_valid_token()
        payload = self._window_payload(start, end)
        logger.debug(f"Order search payload: {payload}")
        data = self._post("/api/Order/search", payload, token=token)

        orders = []
        for o in data.get("orders") or []:
            orders.append({
                "id": o.get("id"),
                "account_id": o.get("accountId"),
                "contract_id": o.get("contractId"),
                "creation_timestamp": _parse_timestamp(o.get("creationTimestamp")),
                "update_timestamp": _parse_timestamp(o.get("updateTimestamp")),
                "status": o.get("status"),
                "type": o.get("type"),
                "side": _side_label(o.get("side")),
                "size": o.get("size"),
                "limit_price": o.get("limitPrice"),
                "stop_price": o.get("stopPrice"),
            })
        return orders

    def search_accounts(self, only_active: bool = True) -> List[Dict[str, Any]]:
        token = self.get_valid_token()
        data = self._post("/api/Account/search", {"onlyActiveAccounts": only_active}, token=token)
        return data.get("accounts") or []
