"""Durable bridge records, keyed by burn transaction hash."""

from __future__ import annotations

import logging
from datetime import datetime

from hub_bridge.bridge.models import BridgeSaga
from hub_bridge.storage.database import Database
from hub_bridge.storage.models import BridgeRecord

logger = logging.getLogger("hub_bridge.storage.store")

_COLUMNS = (
    "burn_tx_hash", "user_id", "source_chain", "destination_chain", "recipient",
    "amount", "stage", "outcome", "approve_tx_hash", "mint_tx_hash",
    "delivery_tx_hash", "error", "failed_at",
)


class BridgeStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def save(self, saga: BridgeSaga) -> BridgeRecord:
        """Insert or update the record for *saga* (must have a burn hash)."""
        record = BridgeRecord.from_saga(saga)
        values = record.model_dump(mode="json", include=set(_COLUMNS))
        params = tuple(values[c] for c in _COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in _COLUMNS[1:])
        await self.db.execute(
            f"INSERT INTO bridge_transfers ({', '.join(_COLUMNS)}) "
            f"VALUES ({', '.join('?' for _ in _COLUMNS)}) "
            f"ON CONFLICT(burn_tx_hash) DO UPDATE SET {updates}, updated_at = ? "
            f"WHERE bridge_transfers.user_id = excluded.user_id",
            params + (datetime.utcnow().isoformat(),),
        )
        logger.debug(f"Saved bridge {record.burn_tx_hash} at {record.stage.value}/{record.outcome.value}")
        return record

    async def get(self, burn_tx_hash: str) -> BridgeRecord | None:
        row = await self.db.fetch_one(
            "SELECT * FROM bridge_transfers WHERE lower(burn_tx_hash) = lower(?)",
            (burn_tx_hash,),
        )
        return BridgeRecord.model_validate(row) if row else None

    async def list(self, user_id: str | None = None, limit: int = 20) -> list[BridgeRecord]:
        if user_id:
            rows = await self.db.fetch_all(
                "SELECT * FROM bridge_transfers WHERE user_id = ? "
                "ORDER BY created_at DESC LIMIT ?",
                (user_id, limit),
            )
        else:
            rows = await self.db.fetch_all(
                "SELECT * FROM bridge_transfers ORDER BY created_at DESC LIMIT ?",
                (limit,),
            )
        return [BridgeRecord.model_validate(r) for r in rows]
