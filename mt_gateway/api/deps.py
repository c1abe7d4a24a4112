"""FastAPI dependencies exposing the app-owned registry and connector."""
from fastapi import Request

from mt_gateway.services.account_registry import AccountRegistry
from mt_gateway.services.broker_connectors.base import AccountConnector


def get_registry(request: Request) -> AccountRegistry:
    return request.app.state.registry


def get_connector(request: Request) -> AccountConnector:
    return request.app.state.connector
