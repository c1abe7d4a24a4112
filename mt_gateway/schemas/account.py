"""
Schemas for the account gateway API.

Wire names are camelCase (``accountInfo``, ``lastUpdate`` …); the Python
attributes stay snake_case.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


# =============================================================================
# Requests
# =============================================================================

class ConnectRequest(BaseModel):
    """Body of ``POST /connect``.

    Every field is optional at the schema level so that a missing field
    is answered with the gateway's own 400 envelope instead of a 422.
    """
    login: Optional[Union[str, int]] = None
    password: Optional[str] = None
    server: Optional[str] = None
    platform: Optional[str] = Field(default=None, pattern="^mt[45]$")

    @field_validator("login")
    @classmethod
    def _login_as_string(cls, v: Union[str, int, None]) -> Optional[str]:
        if v is None:
            return None
        return str(v).strip()

    def is_complete(self) -> bool:
        return bool(self.login) and bool(self.password) and bool(self.server)


# =============================================================================
# Responses
# =============================================================================

class ConnectResult(CamelModel):
    account_info: dict[str, Any]
    positions: int
    orders: int
    deals: int
    server: str
    login: str


class AccountData(CamelModel):
    account_info: dict[str, Any]
    positions: list[dict[str, Any]]
    orders: list[dict[str, Any]]
    deals: list[dict[str, Any]]
    last_update: datetime


class AccountListItem(CamelModel):
    login: str
    last_update: datetime
    account_info: dict[str, Any]
    stale: bool = False


class ApiResponse(BaseModel):
    """Envelope shared by every endpoint."""
    success: bool = True
    message: str | None = None
    error: str | None = None


class ConnectResponse(ApiResponse):
    data: ConnectResult


class AccountDataResponse(ApiResponse):
    data: AccountData


class AccountListResponse(ApiResponse):
    data: list[AccountListItem]


class HealthResponse(CamelModel):
    success: bool = True
    message: str
    timestamp: datetime
    connected_accounts: int


class ErrorResponse(ApiResponse):
    success: bool = False
