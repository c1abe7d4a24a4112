"""
MetaApi Connector – MetaTrader 4/5 accounts hosted on the MetaApi cloud.

Connecting registers the account on the provisioning API (or reuses it,
storing the submitted password) and deploys it; the cloud then logs in
to the broker server on our behalf.  Disconnecting undeploys it.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from mt_gateway.core.exceptions import UpstreamTimeoutError
from mt_gateway.services.broker_connectors.base import (
    AccountConnector,
    AccountHandle,
    ConnectionCredentials,
)
from mt_gateway.services.metaapi_client import MetaApiClient

logger = logging.getLogger(__name__)


class MetaApiAccountHandle(AccountHandle):
    """A deployed MetaApi account."""

    def __init__(
        self,
        client: MetaApiClient,
        account_id: str,
        *,
        poll_interval_s: float = 2.0,
    ) -> None:
        self._client = client
        self._account_id = account_id
        self._poll_interval_s = poll_interval_s

    @property
    def account_id(self) -> str:
        return self._account_id

    async def wait_connected(self, timeout_s: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        last_status = "unknown"
        while True:
            account = await self._client.get_account(self._account_id)
            state = account.get("state")
            last_status = account.get("connectionStatus", last_status)
            if state == "DEPLOYED" and last_status == "CONNECTED":
                logger.info("MetaApi account %s connected", self._account_id)
                return
            if loop.time() + self._poll_interval_s > deadline:
                raise UpstreamTimeoutError(
                    error=(
                        f"Account {self._account_id} did not connect within {timeout_s:g} seconds "
                        f"(state={state}, connectionStatus={last_status})"
                    ),
                )
            await asyncio.sleep(self._poll_interval_s)

    async def get_account_information(self) -> dict[str, Any]:
        return await self._client.get_account_information(self._account_id)

    async def get_positions(self) -> list[dict[str, Any]]:
        return await self._client.get_positions(self._account_id)

    async def get_orders(self) -> list[dict[str, Any]]:
        return await self._client.get_orders(self._account_id)

    async def get_deals_by_date_range(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        return await self._client.get_deals_by_time_range(self._account_id, start, end)

    async def disconnect(self) -> None:
        await self._client.undeploy_account(self._account_id)
        logger.info("MetaApi account %s undeployed", self._account_id)


class MetaApiConnector(AccountConnector):
    """Connector backed by the MetaApi cloud REST API."""

    def __init__(
        self,
        client: MetaApiClient,
        *,
        default_platform: str = "mt5",
        poll_interval_s: float = 2.0,
    ) -> None:
        self._client = client
        self._default_platform = default_platform
        self._poll_interval_s = poll_interval_s

    @property
    def service_name(self) -> str:
        return "metaapi"

    async def connect(self, credentials: ConnectionCredentials) -> MetaApiAccountHandle:
        account = await self._client.find_account(credentials.login, credentials.server)
        if account is not None:
            # The cloud logs in with the stored password, so it must be the submitted one
            await self._client.update_account(account["id"], {
                "name": account.get("name") or f"{credentials.login}@{credentials.server}",
                "password": credentials.password,
                "server": credentials.server,
            })
        else:
            account = await self._client.create_account({
                "name": f"{credentials.login}@{credentials.server}",
                "login": credentials.login,
                "password": credentials.password,
                "server": credentials.server,
                "platform": credentials.platform or self._default_platform,
                "type": credentials.type,
                "magic": 0,
            })
            logger.info(
                "Provisioned MetaApi account %s for %s@%s",
                account["id"], credentials.login, credentials.server,
            )
        account_id = account["id"]

        await self._client.deploy_account(account_id)
        return MetaApiAccountHandle(
            self._client,
            account_id,
            poll_interval_s=self._poll_interval_s,
        )
