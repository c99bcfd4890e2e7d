"""Value types flowing through the bridge saga."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from hub_bridge.bridge.errors import BridgeError
from hub_bridge.wallet.chains import CHAINS


class AttestationStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"


class SagaStage(str, Enum):
    INITIATED = "initiated"
    BURNED = "burned"
    ATTESTED = "attested"
    MINTED = "minted"
    DELIVERED = "delivered"


class SagaOutcome(str, Enum):
    PENDING = "pending"
    MINTED = "minted"
    DELIVERED = "delivered"
    FAILED = "failed"


_STAGE_ORDER = list(SagaStage)


@dataclass(frozen=True)
class BurnReceipt:
    source_chain: str
    tx_hash: str
    amount_atomic: int
    destination_domain: int
    mint_recipient: str


@dataclass(frozen=True)
class Attestation:
    message: str
    attestation: str
    status: AttestationStatus = AttestationStatus.COMPLETE

    @property
    def is_complete(self) -> bool:
        return self.status is AttestationStatus.COMPLETE and bool(self.message and self.attestation)


@dataclass
class BridgeSaga:
    """Progress of one bridge transfer.

    ``stage`` is the last stage reached. On failure ``outcome`` is
    ``FAILED`` and ``failed_at`` names the stage that could not be entered.
    """

    source_chain: str
    destination_chain: str
    recipient: str
    amount: str
    user_id: str
    stage: SagaStage = SagaStage.INITIATED
    outcome: SagaOutcome = SagaOutcome.PENDING
    burn_tx_hash: Optional[str] = None
    approve_tx_hash: Optional[str] = None
    mint_tx_hash: Optional[str] = None
    delivery_tx_hash: Optional[str] = None
    error: Optional[BridgeError] = field(default=None, repr=False)
    error_message: Optional[str] = None
    failed_at: Optional[SagaStage] = None

    @property
    def finished(self) -> bool:
        return self.outcome is not SagaOutcome.PENDING

    @property
    def succeeded(self) -> bool:
        return self.outcome in (SagaOutcome.MINTED, SagaOutcome.DELIVERED)

    def reached(self, stage: SagaStage) -> bool:
        return _STAGE_ORDER.index(self.stage) >= _STAGE_ORDER.index(stage)

    def advance(self, stage: SagaStage) -> None:
        self.stage = stage

    def fail(self, error: BridgeError, at: SagaStage) -> None:
        self.error = error
        self.error_message = str(error)
        self.failed_at = at
        self.outcome = SagaOutcome.FAILED

    def summary(self) -> str:
        """One terminal message: the completed stages, then the failure if any."""
        src = CHAINS.get(self.source_chain)
        dst = CHAINS.get(self.destination_chain)
        dst_name = dst.name if dst else self.destination_chain
        lines: list[str] = []

        if self.burn_tx_hash and src:
            lines.append(
                f"Burned {self.amount} USDC on {src.name}: {src.tx_url(self.burn_tx_hash)}"
            )
        if self.mint_tx_hash and dst:
            lines.append(f"Minted on {dst.name}: {dst.tx_url(self.mint_tx_hash)}")
        if self.delivery_tx_hash and dst:
            lines.append(
                f"Delivered {self.amount} USDC to {self.recipient}: "
                f"{dst.tx_url(self.delivery_tx_hash)}"
            )

        if self.outcome is SagaOutcome.FAILED:
            err = self.error_message or "unknown error"
            if self.failed_at is SagaStage.ATTESTED:
                lines.append(
                    f"Burn complete, finalization unresolved: {err}. "
                    f"Resume later with burn hash {self.burn_tx_hash}."
                )
            elif self.failed_at is SagaStage.DELIVERED:
                lines.append(
                    f"Minted, delivery unresolved: {err}. "
                    f"Funds are in your wallet on {dst_name}."
                )
            elif self.failed_at is SagaStage.MINTED:
                lines.append(
                    f"Mint failed on {dst_name}: {err}. "
                    f"Burn {self.burn_tx_hash} remains valid for resume."
                )
            else:
                lines.append(f"Bridge failed: {err}")
        elif self.outcome is SagaOutcome.PENDING:
            lines.append(
                f"Bridge in progress ({self.stage.value}); "
                f"{self.amount} USDC will arrive on {dst_name} after attestation."
            )
        elif self.outcome is SagaOutcome.MINTED:
            lines.append(f"Bridge complete: {self.amount} USDC is in your wallet on {dst_name}.")
        else:
            lines.append(f"Bridge complete: {self.amount} USDC delivered on {dst_name}.")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "source_chain": self.source_chain,
            "destination_chain": self.destination_chain,
            "recipient": self.recipient,
            "amount": self.amount,
            "user_id": self.user_id,
            "stage": self.stage.value,
            "outcome": self.outcome.value,
            "burn_tx_hash": self.burn_tx_hash,
            "approve_tx_hash": self.approve_tx_hash,
            "mint_tx_hash": self.mint_tx_hash,
            "delivery_tx_hash": self.delivery_tx_hash,
            "error": self.error_message,
            "error_kind": self.error.kind if self.error else None,
            "failed_at": self.failed_at.value if self.failed_at else None,
        }
