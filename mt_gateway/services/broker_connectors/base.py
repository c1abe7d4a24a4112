"""
Base Account Connector – abstract interface to the external account
connection service.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass
class ConnectionCredentials:
    """Credentials for a trading account on a given broker server."""
    login: str
    password: str
    server: str
    type: str = "cloud"
    platform: str | None = None       # mt4, mt5

    def __repr__(self) -> str:
        return (
            f"ConnectionCredentials(login={self.login!r}, server={self.server!r}, "
            f"type={self.type!r}, platform={self.platform!r})"
        )


class AccountHandle(ABC):
    """Live connection to one trading account.

    Returned by ``AccountConnector.connect()`` and required for every
    subsequent fetch or disconnect.
    """

    @property
    @abstractmethod
    def account_id(self) -> str:
        """Identifier the external service assigned to the account."""

    @abstractmethod
    async def wait_connected(self, timeout_s: float) -> None:
        """Block until the account is connected to its broker.

        Raises:
            UpstreamTimeoutError: the account did not connect within
            ``timeout_s`` seconds.
        """

    @abstractmethod
    async def get_account_information(self) -> dict[str, Any]:
        """Balance, equity, margin, currency … of the account."""

    @abstractmethod
    async def get_positions(self) -> list[dict[str, Any]]:
        """Currently open positions."""

    @abstractmethod
    async def get_orders(self) -> list[dict[str, Any]]:
        """Pending orders."""

    @abstractmethod
    async def get_deals_by_date_range(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        """Executed deals with a time in ``[start, end]``."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the connection on the external service."""


class AccountConnector(ABC):
    """Factory for ``AccountHandle`` objects."""

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Return the service identifier (e.g. ``'metaapi'``)."""

    @abstractmethod
    async def connect(self, credentials: ConnectionCredentials) -> AccountHandle:
        """Register the account with the service and start connecting it.

        The returned handle is not necessarily connected yet; callers must
        ``await handle.wait_connected(...)`` before fetching data.
        """

    async def close(self) -> None:
        """Release connector-wide resources. No-op by default."""
