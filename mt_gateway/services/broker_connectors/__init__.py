"""
Account Connectors – abstraction layer over the external account
connection service.

Each connector implements the AccountConnector protocol:
  connect()       → register the account, return an AccountHandle

and each handle:
  wait_connected()           → block until the account is online
  get_account_information()  → account snapshot
  get_positions() / get_orders() / get_deals_by_date_range()
  disconnect()               → release the connection
"""
from mt_gateway.services.broker_connectors.base import (
    AccountConnector,
    AccountHandle,
    ConnectionCredentials,
)

__all__ = ["AccountConnector", "AccountHandle", "ConnectionCredentials"]
