"""
Account service layer – connect, refresh and disconnect accounts through
an ``AccountConnector`` and keep the ``AccountRegistry`` in sync.

Every upstream call is bounded in time; failures are logged and raised
as ``UpstreamError`` (``UpstreamTimeoutError`` for timeouts).
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, TypeVar

from mt_gateway.core.config import settings
from mt_gateway.core.exceptions import UpstreamError, UpstreamTimeoutError
from mt_gateway.services.account_registry import AccountRegistry, RegistryEntry
from mt_gateway.services.broker_connectors.base import (
    AccountConnector,
    AccountHandle,
    ConnectionCredentials,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONNECT_FAILED = "Failed to connect to account"
FETCH_FAILED = "Failed to fetch account data"
DISCONNECT_FAILED = "Failed to disconnect account"


@dataclass
class AccountSnapshot:
    """Everything fetched for an account in one go."""
    account_info: dict[str, Any]
    positions: list[dict[str, Any]] = field(default_factory=list)
    orders: list[dict[str, Any]] = field(default_factory=list)
    deals: list[dict[str, Any]] = field(default_factory=list)
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


async def _bounded(aw: Awaitable[T], timeout_s: float, what: str) -> T:
    try:
        return await asyncio.wait_for(aw, timeout=timeout_s)
    except asyncio.TimeoutError:
        raise UpstreamTimeoutError(error=f"{what} timed out after {timeout_s:g} seconds") from None


async def fetch_snapshot(
    handle: AccountHandle,
    *,
    history_days: int | None = None,
    timeout_s: float | None = None,
) -> AccountSnapshot:
    """Fetch account info, positions, orders and recent deals concurrently."""
    history_days = history_days if history_days is not None else settings.DEAL_HISTORY_DAYS
    timeout_s = timeout_s if timeout_s is not None else settings.OPERATION_TIMEOUT_S

    end = datetime.now(timezone.utc)
    start = end - timedelta(days=history_days)
    account_info, positions, orders, deals = await _bounded(
        asyncio.gather(
            handle.get_account_information(),
            handle.get_positions(),
            handle.get_orders(),
            handle.get_deals_by_date_range(start, end),
        ),
        timeout_s,
        "Account data fetch",
    )
    return AccountSnapshot(
        account_info=account_info or {},
        positions=list(positions or []),
        orders=list(orders or []),
        deals=list(deals or []),
    )


def _upstream_error(message: str, exc: Exception) -> UpstreamError:
    if isinstance(exc, UpstreamError):
        return type(exc)(message, exc.error)
    return UpstreamError(message, str(exc))


def _shares_account(registry: AccountRegistry, login: str, handle: AccountHandle) -> bool:
    """True if the entry registered for ``login`` uses the same remote account."""
    if login not in registry:
        return False
    return registry.get(login).handle.account_id == handle.account_id


async def _safe_disconnect(login: str, handle: AccountHandle, timeout_s: float) -> None:
    try:
        await _bounded(handle.disconnect(), timeout_s, "Disconnect")
    except Exception as e:
        logger.warning("Error disconnecting account %s: %s", login, e)


# =============================================================================
# Operations
# =============================================================================

async def connect_account(
    registry: AccountRegistry,
    connector: AccountConnector,
    credentials: ConnectionCredentials,
) -> AccountSnapshot:
    """Connect an account, fetch its data and register it.

    The registry is only touched once every fetch succeeded.  A handle
    that was already registered for the same login is replaced, and
    disconnected unless it refers to the same remote account as the
    new one.
    """
    login = credentials.login
    async with registry.locked(login):
        handle: AccountHandle | None = None
        try:
            handle = await _bounded(
                connector.connect(credentials),
                settings.OPERATION_TIMEOUT_S,
                "Connect",
            )
            await _bounded(
                handle.wait_connected(settings.CONNECT_TIMEOUT_S),
                settings.CONNECT_TIMEOUT_S + settings.OPERATION_TIMEOUT_S,
                "Waiting for connection",
            )
            snapshot = await fetch_snapshot(handle)
            if registry.closed:
                raise UpstreamError(CONNECT_FAILED, "Gateway is shutting down")
        except Exception as e:
            logger.error("Connection error for account %s@%s: %s", login, credentials.server, e)
            if handle is not None and not _shares_account(registry, login, handle):
                await _safe_disconnect(login, handle, settings.OPERATION_TIMEOUT_S)
            raise _upstream_error(CONNECT_FAILED, e) from e

        previous = registry.put(login, RegistryEntry(
            handle=handle,
            account_info=snapshot.account_info,
            last_update=snapshot.fetched_at,
            server=credentials.server,
        ))
        if previous is not None and previous.handle.account_id != handle.account_id:
            await _safe_disconnect(login, previous.handle, settings.OPERATION_TIMEOUT_S)

    logger.info(
        "Account %s connected: %d position(s), %d order(s), %d deal(s)",
        login, len(snapshot.positions), len(snapshot.orders), len(snapshot.deals),
    )
    return snapshot


async def refresh_account(registry: AccountRegistry, login: str) -> AccountSnapshot:
    """Re-fetch data for a registered account and update its cached snapshot."""
    registry.get(login)
    async with registry.locked(login):
        # Re-read under the lock: a disconnect may have completed meanwhile
        entry = registry.get(login)
        try:
            snapshot = await fetch_snapshot(entry.handle)
        except Exception as e:
            logger.error("Data fetch error for account %s: %s", login, e)
            raise _upstream_error(FETCH_FAILED, e) from e

        entry.account_info = snapshot.account_info
        entry.last_update = snapshot.fetched_at
        entry.stale = False
        entry.last_error = None
    return snapshot


async def disconnect_account(registry: AccountRegistry, login: str) -> None:
    """Disconnect a registered account and drop it from the registry.

    On failure the entry stays registered and is flagged ``stale``.
    """
    registry.get(login)
    async with registry.locked(login):
        entry = registry.get(login)
        try:
            await _bounded(entry.handle.disconnect(), settings.OPERATION_TIMEOUT_S, "Disconnect")
        except Exception as e:
            logger.error("Disconnect error for account %s: %s", login, e)
            entry.stale = True
            entry.last_error = str(e)
            raise _upstream_error(DISCONNECT_FAILED, e) from e
        registry.remove(login)
    logger.info("Account %s disconnected", login)


async def disconnect_all(registry: AccountRegistry, *, timeout_s: float | None = None) -> int:
    """Best-effort disconnect of every registered account (shutdown sweep).

    Errors are logged and ignored.  Returns the number of accounts that
    disconnected cleanly.  The registry is empty afterwards.
    """
    timeout_s = timeout_s if timeout_s is not None else settings.SHUTDOWN_TIMEOUT_S
    # Connects still in flight release their handle instead of registering it
    registry.closed = True
    logins = [login for login, _ in registry]
    if not logins:
        return 0

    logger.info("Disconnecting %d account(s)", len(logins))

    async def _one(login: str) -> bool:
        async with registry.locked(login):
            if login not in registry:
                return True
            entry = registry.get(login)
            try:
                await entry.handle.disconnect()
            except Exception as e:
                logger.warning("Error disconnecting account %s: %s", login, e)
                return False
            registry.remove(login)
            return True

    tasks = [asyncio.ensure_future(_one(login)) for login in logins]
    done, pending = await asyncio.wait(tasks, timeout=timeout_s)
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
        logger.warning("%d disconnect(s) still pending after %gs, abandoned", len(pending), timeout_s)

    registry.clear()
    return sum(1 for task in done if task.result())
