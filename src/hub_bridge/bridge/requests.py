"""Validated request objects for the bridge entry points.

Tool arguments arrive from a free-text router under many field names. A
closed alias table maps them onto canonical fields exactly once; anything
still missing afterwards is a validation error, never a guess.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hub_bridge.bridge.amounts import parse_amount

BRIDGE_PARAM_ALIASES: dict[str, str] = {
    "toChain": "destinationChain",
    "to_chain": "destinationChain",
    "target_chain": "destinationChain",
    "chain": "destinationChain",
    "dest_chain": "destinationChain",
    "destination_chain": "destinationChain",
    "fromChain": "sourceChain",
    "from_chain": "sourceChain",
    "source_chain": "sourceChain",
    "to_address": "recipient",
    "to": "recipient",
    "address": "recipient",
    "destination_address": "recipient",
}

RESUME_PARAM_ALIASES: dict[str, str] = {
    "burn_tx_hash": "burnTxHash",
    "burnTx": "burnTxHash",
    "txHash": "burnTxHash",
    "tx_hash": "burnTxHash",
    "hash": "burnTxHash",
    "fromChain": "sourceChain",
    "from_chain": "sourceChain",
    "source_chain": "sourceChain",
    "toChain": "destinationChain",
    "to_chain": "destinationChain",
    "dest_chain": "destinationChain",
    "destination_chain": "destinationChain",
    "to_address": "recipient",
    "to": "recipient",
    "address": "recipient",
}


def normalize_params(raw: dict[str, Any], aliases: dict[str, str]) -> dict[str, Any]:
    """Rename aliased keys to their canonical name.

    An alias never overwrites a canonical key that is already present.
    """
    normalized = dict(raw)
    for alias, canonical in aliases.items():
        if alias in normalized and canonical not in normalized:
            normalized[canonical] = normalized.pop(alias)
    return normalized


def _amount_text(value: Any) -> Any:
    # JSON numbers reach us as int/float; their shortest repr is what the
    # caller typed.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return repr(value) if isinstance(value, float) else str(value)
    if isinstance(value, str):
        return value.strip()
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value.strip() if isinstance(value, str) else value


class BridgeRequest(BaseModel):
    """Move ``amount`` USDC to ``destination_chain``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    amount: str
    destination_chain: str = Field(alias="destinationChain")
    source_chain: Optional[str] = Field(default=None, alias="sourceChain")
    recipient: Optional[str] = None  # None == the user's own destination wallet

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value: Any) -> Any:
        return _amount_text(value)

    @field_validator("amount")
    @classmethod
    def _positive(cls, value: str) -> str:
        parse_amount(value)
        return value

    @field_validator("destination_chain", mode="before")
    @classmethod
    def _required_text(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            raise ValueError("destinationChain must not be empty")
        return value

    @field_validator("source_chain", "recipient", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @classmethod
    def from_params(cls, raw: dict[str, Any]) -> BridgeRequest:
        return cls.model_validate(normalize_params(raw, BRIDGE_PARAM_ALIASES))


class ResumeRequest(BaseModel):
    """Re-enter a saga from its burn hash.

    Only ``burn_tx_hash`` is needed when the transfer was recorded at burn
    time. Without a record, chains, amount and recipient must all be given.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    burn_tx_hash: str = Field(alias="burnTxHash")
    source_chain: Optional[str] = Field(default=None, alias="sourceChain")
    destination_chain: Optional[str] = Field(default=None, alias="destinationChain")
    amount: Optional[str] = None
    recipient: Optional[str] = None

    @field_validator("burn_tx_hash")
    @classmethod
    def _hash(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith("0x") or len(value) < 4:
            raise ValueError("burnTxHash must be a 0x-prefixed transaction hash")
        return value

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value: Any) -> Any:
        return _blank_to_none(_amount_text(value))

    @field_validator("amount")
    @classmethod
    def _positive(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            parse_amount(value)
        return value

    @field_validator("source_chain", "destination_chain", "recipient", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @property
    def is_self_contained(self) -> bool:
        """True if the request alone is enough to resume without a record."""
        return bool(
            self.source_chain and self.destination_chain and self.amount and self.recipient
        )

    @classmethod
    def from_params(cls, raw: dict[str, Any]) -> ResumeRequest:
        return cls.model_validate(normalize_params(raw, RESUME_PARAM_ALIASES))
