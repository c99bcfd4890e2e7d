"""Pydantic models mapping to the hub-bridge database tables."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from hub_bridge.bridge.models import BridgeSaga, SagaOutcome, SagaStage


class BridgeRecord(BaseModel):
    """Maps to the ``bridge_transfers`` table.

    Written once the burn lands, so a resumed saga always knows the amount
    and recipient the user asked for.
    """

    burn_tx_hash: str
    user_id: str
    source_chain: str
    destination_chain: str
    recipient: str
    amount: str  # stored as string to preserve decimal precision
    stage: SagaStage = SagaStage.BURNED
    outcome: SagaOutcome = SagaOutcome.PENDING
    approve_tx_hash: Optional[str] = None
    mint_tx_hash: Optional[str] = None
    delivery_tx_hash: Optional[str] = None
    error: Optional[str] = None
    failed_at: Optional[SagaStage] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def from_saga(cls, saga: BridgeSaga) -> BridgeRecord:
        if not saga.burn_tx_hash:
            raise ValueError("Only burned sagas can be recorded")
        return cls(
            burn_tx_hash=saga.burn_tx_hash.lower(),
            user_id=saga.user_id,
            source_chain=saga.source_chain,
            destination_chain=saga.destination_chain,
            recipient=saga.recipient,
            amount=saga.amount,
            stage=saga.stage,
            outcome=saga.outcome,
            approve_tx_hash=saga.approve_tx_hash,
            mint_tx_hash=saga.mint_tx_hash,
            delivery_tx_hash=saga.delivery_tx_hash,
            error=saga.error_message,
            failed_at=saga.failed_at,
        )

    def to_saga(self) -> BridgeSaga:
        return BridgeSaga(
            source_chain=self.source_chain,
            destination_chain=self.destination_chain,
            recipient=self.recipient,
            amount=self.amount,
            user_id=self.user_id,
            stage=self.stage,
            outcome=self.outcome,
            burn_tx_hash=self.burn_tx_hash,
            approve_tx_hash=self.approve_tx_hash,
            mint_tx_hash=self.mint_tx_hash,
            delivery_tx_hash=self.delivery_tx_hash,
            error_message=self.error,
            failed_at=self.failed_at,
        )
