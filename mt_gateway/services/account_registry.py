"""
Account Registry – in-memory map of connected accounts.

Keyed by login.  An entry holds the live ``AccountHandle`` plus the last
fetched account snapshot.  Nothing is persisted: the registry is empty
after a restart.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterator

from mt_gateway.core.exceptions import NotFoundError
from mt_gateway.services.broker_connectors.base import AccountHandle


@dataclass
class RegistryEntry:
    """A connected account."""
    handle: AccountHandle
    account_info: dict[str, Any]
    last_update: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    server: str | None = None
    # Set when a disconnect failed and the handle state is unknown
    stale: bool = False
    last_error: str | None = None


@dataclass
class AccountSummary:
    login: str
    last_update: datetime
    account_info: dict[str, Any]
    stale: bool = False


class AccountRegistry:
    """Process-wide registry of connected accounts.

    Owned by the application (``app.state.registry``) and handed to the
    route handlers as a dependency.  ``locked(login)`` serialises the
    operations on one login; a lock lives only while someone holds or
    awaits it.  The map itself is only touched from the event loop thread.
    """

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        # Set by the shutdown sweep; no new entries are accepted afterwards
        self.closed = False

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, login: object) -> bool:
        return login in self._entries

    def __iter__(self) -> Iterator[tuple[str, RegistryEntry]]:
        return iter(list(self._entries.items()))

    @asynccontextmanager
    async def locked(self, login: str) -> AsyncIterator[None]:
        """Hold the lock of ``login`` for the duration of the block."""
        lock = self._locks.get(login)
        if lock is None:
            lock = self._locks[login] = asyncio.Lock()
        self._lock_users[login] = self._lock_users.get(login, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[login] -= 1
            if not self._lock_users[login]:
                del self._lock_users[login]
                del self._locks[login]

    def put(self, login: str, entry: RegistryEntry) -> RegistryEntry | None:
        """Insert or replace; returns the replaced entry, if any."""
        previous = self._entries.get(login)
        self._entries[login] = entry
        return previous

    def get(self, login: str) -> RegistryEntry:
        try:
            return self._entries[login]
        except KeyError:
            raise NotFoundError() from None

    def list(self) -> list[AccountSummary]:
        return [
            AccountSummary(
                login=login,
                last_update=entry.last_update,
                account_info=entry.account_info,
                stale=entry.stale,
            )
            for login, entry in self._entries.items()
        ]

    def remove(self, login: str) -> RegistryEntry:
        try:
            return self._entries.pop(login)
        except KeyError:
            raise NotFoundError() from None

    def clear(self) -> None:
        self._entries.clear()
