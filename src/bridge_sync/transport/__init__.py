"""
transport/__init__.py - Access to the remote relational store.

Provides the RemoteStoreProtocol interface and its HTTP bridge client.
"""

from bridge_sync.transport.base import RemoteStoreProtocol, is_missing_table_message
from bridge_sync.transport.http_transport import BridgeClient, encode_request

__all__ = [
    "RemoteStoreProtocol",
    "BridgeClient",
    "encode_request",
    "is_missing_table_message",
]
