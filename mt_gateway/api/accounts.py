"""
Account API Endpoints.

Connect / query / list / disconnect MetaTrader accounts.  Errors are
raised as ``GatewayError`` subclasses and turned into the JSON envelope
by the handlers registered in ``main``.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from mt_gateway.api.deps import get_connector, get_registry
from mt_gateway.core.exceptions import ValidationError
from mt_gateway.schemas.account import (
    AccountData,
    AccountDataResponse,
    AccountListItem,
    AccountListResponse,
    ApiResponse,
    ConnectRequest,
    ConnectResponse,
    ConnectResult,
)
from mt_gateway.services.account_registry import AccountRegistry
from mt_gateway.services.account_service import (
    connect_account,
    disconnect_account,
    refresh_account,
)
from mt_gateway.services.broker_connectors.base import AccountConnector, ConnectionCredentials

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Accounts"])


@router.post("/connect", response_model=ConnectResponse)
async def connect_endpoint(
    payload: ConnectRequest,
    registry: AccountRegistry = Depends(get_registry),
    connector: AccountConnector = Depends(get_connector),
):
    """Connect a MetaTrader account and cache its handle."""
    if not payload.is_complete():
        raise ValidationError()

    credentials = ConnectionCredentials(
        login=payload.login,
        password=payload.password,
        server=payload.server,
        type="cloud",
        platform=payload.platform,
    )
    snapshot = await connect_account(registry, connector, credentials)

    return ConnectResponse(
        message="Account connected successfully",
        data=ConnectResult(
            account_info=snapshot.account_info,
            positions=len(snapshot.positions),
            orders=len(snapshot.orders),
            deals=len(snapshot.deals),
            server=payload.server,
            login=payload.login,
        ),
    )


@router.get("/account/{login}", response_model=AccountDataResponse)
async def get_account_endpoint(
    login: str,
    registry: AccountRegistry = Depends(get_registry),
):
    """Refresh and return full account data."""
    snapshot = await refresh_account(registry, login)
    return AccountDataResponse(
        data=AccountData(
            account_info=snapshot.account_info,
            positions=snapshot.positions,
            orders=snapshot.orders,
            deals=snapshot.deals,
            last_update=snapshot.fetched_at,
        ),
    )


@router.get("/accounts", response_model=AccountListResponse)
async def list_accounts_endpoint(registry: AccountRegistry = Depends(get_registry)):
    """List connected accounts with their cached snapshot."""
    return AccountListResponse(
        data=[
            AccountListItem(
                login=s.login,
                last_update=s.last_update,
                account_info=s.account_info,
                stale=s.stale,
            )
            for s in registry.list()
        ],
    )


@router.delete("/disconnect/{login}", response_model=ApiResponse)
async def disconnect_endpoint(
    login: str,
    registry: AccountRegistry = Depends(get_registry),
):
    """Disconnect an account and forget it."""
    await disconnect_account(registry, login)
    return ApiResponse(message="Account disconnected successfully")
