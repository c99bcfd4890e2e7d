"""hub-bridge storage layer -- async SQLite database and Pydantic models."""

from hub_bridge.storage.database import Database, get_database
from hub_bridge.storage.models import BridgeRecord
from hub_bridge.storage.store import BridgeStore

__all__ = [
    "Database",
    "get_database",
    "BridgeRecord",
    "BridgeStore",
]
