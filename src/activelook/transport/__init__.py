"""BLE transport layer."""

from .connection import BLEConnection, NotificationHandler, ProtocolOwner

__all__ = ["BLEConnection", "NotificationHandler", "ProtocolOwner"]
