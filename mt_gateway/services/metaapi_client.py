"""HTTP client for the MetaApi cloud REST API.

Two services are involved: the *provisioning* API (register, deploy and
undeploy MetaTrader accounts) and the regional *client* API (account
information, positions, orders, history).

Usage::

    client = MetaApiClient(token="...")
    account = await client.create_account({"login": "100", ...})
    await client.deploy_account(account["id"])
    info = await client.get_account_information(account["id"])
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = "agiliumtrade.agiliumtrade.ai"
DEFAULT_CLIENT_DOMAIN = "agiliumtrade.ai"
DEFAULT_REGION = "new-york"
DEFAULT_TIMEOUT = 30.0


class MetaApiError(Exception):
    """Non-2xx answer from MetaApi."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        super().__init__(message)


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MetaApiClient:
    """Async HTTP client for MetaApi provisioning and trading data."""

    def __init__(
        self,
        token: str,
        *,
        domain: str = DEFAULT_DOMAIN,
        client_domain: str = DEFAULT_CLIENT_DOMAIN,
        region: str = DEFAULT_REGION,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._provisioning_url = f"https://mt-provisioning-api-v1.{domain}"
        self._client_url = f"https://mt-client-api-v1.{region}.{client_domain}"
        self._timeout = timeout
        self._transport = transport

    # ── Low-level helpers ─────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        base_url: str,
        path: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> Any:
        async with httpx.AsyncClient(
            base_url=base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"auth-token": self._token},
        ) as client:
            resp = await client.request(method, path, json=json, params=params, headers=headers)
            if resp.is_error:
                raise MetaApiError(resp.status_code, self._error_message(resp))
            if not resp.content:
                return None
            return resp.json()

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text or f"HTTP {resp.status_code}"
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return f"HTTP {resp.status_code}"

    async def _provisioning(self, method: str, path: str, **kwargs: Any) -> Any:
        return await self._request(method, self._provisioning_url, path, **kwargs)

    async def _trading(self, method: str, path: str, **kwargs: Any) -> Any:
        return await self._request(method, self._client_url, path, **kwargs)

    # ── Provisioning ──────────────────────────────────────────────────────

    async def find_account(self, login: str, server: str) -> dict | None:
        """Return an already provisioned account for ``login@server``, if any."""
        accounts = await self._provisioning(
            "GET", "/users/current/accounts", params={"query": login},
        )
        for account in accounts or []:
            if str(account.get("login")) == login and account.get("server") == server:
                return account
        return None

    async def create_account(self, payload: dict[str, Any]) -> dict:
        """Provision a new MetaTrader account, returns ``{"id": ..., "state": ...}``."""
        return await self._provisioning(
            "POST",
            "/users/current/accounts",
            json=payload,
            headers={"transaction-id": uuid.uuid4().hex},
        )

    async def update_account(self, account_id: str, payload: dict[str, Any]) -> None:
        """Update name, password and server of a provisioned account."""
        await self._provisioning("PUT", f"/users/current/accounts/{account_id}", json=payload)

    async def get_account(self, account_id: str) -> dict:
        """Account state, including ``state`` and ``connectionStatus``."""
        return await self._provisioning("GET", f"/users/current/accounts/{account_id}")

    async def deploy_account(self, account_id: str) -> None:
        await self._provisioning("POST", f"/users/current/accounts/{account_id}/deploy")

    async def undeploy_account(self, account_id: str) -> None:
        await self._provisioning("POST", f"/users/current/accounts/{account_id}/undeploy")

    # ── Trading data ──────────────────────────────────────────────────────

    async def get_account_information(self, account_id: str) -> dict:
        return await self._trading("GET", f"/users/current/accounts/{account_id}/account-information")

    async def get_positions(self, account_id: str) -> list[dict]:
        return await self._trading("GET", f"/users/current/accounts/{account_id}/positions") or []

    async def get_orders(self, account_id: str) -> list[dict]:
        return await self._trading("GET", f"/users/current/accounts/{account_id}/orders") or []

    async def get_deals_by_time_range(
        self,
        account_id: str,
        start: datetime,
        end: datetime,
    ) -> list[dict]:
        """Executed deals with a time in ``[start, end]``."""
        path = (
            f"/users/current/accounts/{account_id}/history-deals/time/"
            f"{_format_time(start)}/{_format_time(end)}"
        )
        return await self._trading("GET", path) or []
