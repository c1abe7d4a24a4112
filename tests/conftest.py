from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient

from mt_gateway.main import app
from mt_gateway.services.account_registry import AccountRegistry
from mt_gateway.services.broker_connectors.base import (
    AccountConnector,
    AccountHandle,
    ConnectionCredentials,
)


class FakeHandle(AccountHandle):
    """In-memory account handle; ``fail`` maps a method name to the error it raises."""

    def __init__(self, login: str, *, account_id: str | None = None, balance: float = 1000.0) -> None:
        self.login = login
        self._account_id = account_id or f"acc-{login}"
        self.balance = balance
        self.positions: list[dict[str, Any]] = [{"id": "1", "symbol": "EURUSD", "volume": 0.1}]
        self.orders: list[dict[str, Any]] = [
            {"id": "2", "symbol": "GBPUSD"},
            {"id": "3", "symbol": "USDJPY"},
        ]
        self.deals: list[dict[str, Any]] = [{"id": "4"}, {"id": "5"}, {"id": "6"}]
        self.fail: dict[str, Exception] = {}
        self.delay_s = 0.0
        self.disconnected = False
        self.info_calls = 0
        self.deal_ranges: list[tuple[datetime, datetime]] = []

    @property
    def account_id(self) -> str:
        return self._account_id

    async def _maybe_fail(self, name: str) -> None:
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if name in self.fail:
            raise self.fail[name]

    async def wait_connected(self, timeout_s: float) -> None:
        await self._maybe_fail("wait_connected")

    async def get_account_information(self) -> dict[str, Any]:
        await self._maybe_fail("get_account_information")
        self.info_calls += 1
        return {"login": self.login, "balance": self.balance, "currency": "USD"}

    async def get_positions(self) -> list[dict[str, Any]]:
        await self._maybe_fail("get_positions")
        return self.positions

    async def get_orders(self) -> list[dict[str, Any]]:
        await self._maybe_fail("get_orders")
        return self.orders

    async def get_deals_by_date_range(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        await self._maybe_fail("get_deals_by_date_range")
        self.deal_ranges.append((start, end))
        return self.deals

    async def disconnect(self) -> None:
        await self._maybe_fail("disconnect")
        self.disconnected = True


class FakeConnector(AccountConnector):
    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []
        self.credentials: list[ConnectionCredentials] = []
        self.connect_error: Exception | None = None
        # Applied to every handle created from now on
        self.handle_failures: dict[str, Exception] = {}
        self.handle_delay_s = 0.0
        # Hand out one remote account per login, as MetaApi reuses them
        self.reuse_accounts = False

    @property
    def service_name(self) -> str:
        return "fake"

    async def connect(self, credentials: ConnectionCredentials) -> FakeHandle:
        self.credentials.append(credentials)
        if self.connect_error is not None:
            raise self.connect_error
        if self.reuse_accounts:
            account_id = f"acc-{credentials.login}"
        else:
            account_id = f"acc-{credentials.login}-{len(self.handles)}"
        handle = FakeHandle(credentials.login, account_id=account_id)
        handle.fail.update(self.handle_failures)
        handle.delay_s = self.handle_delay_s
        self.handles.append(handle)
        return handle


@pytest.fixture()
def registry() -> AccountRegistry:
    return AccountRegistry()


@pytest.fixture()
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture()
def client(registry: AccountRegistry, connector: FakeConnector) -> Iterator[TestClient]:
    with TestClient(app) as c:
        app.state.registry = registry
        app.state.connector = connector
        yield c


def run(coro):
    return asyncio.run(coro)
