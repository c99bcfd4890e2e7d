"""Configuration system for hub-bridge.

Loads settings from ``.hub-bridge/config.yaml``, supports environment
variable expansion, and supplies defaults for every poll budget and backoff
table used by the bridge saga.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Environment-variable expansion helper
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with their environment values.

    If the variable is not set the placeholder is left as-is so that
    validation can catch it later.
    """

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return _ENV_VAR_RE.sub(_replace, value)


def _expand_env_recursive(obj: object) -> object:
    """Walk an arbitrary nested structure and expand env vars in strings."""
    if isinstance(obj, str):
        return _expand_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _expand_env_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_recursive(item) for item in obj]
    return obj


def is_unresolved(value: str) -> bool:
    """True if *value* is empty or still an unexpanded ``${VAR}`` placeholder."""
    return not value or bool(_ENV_VAR_RE.fullmatch(value.strip()))


# ---------------------------------------------------------------------------
# Pydantic v2 models
# ---------------------------------------------------------------------------


class CustodyConfig(BaseModel):
    """Developer-controlled wallet service credentials."""

    base_url: str = "https://api.circle.com/v1/w3s"
    api_key: str = "${CIRCLE_API_KEY}"
    entity_secret: str = "${CIRCLE_ENTITY_SECRET}"
    wallet_set_name: str = "ArcHub-Autonomous-v3"
    fee_level: str = "MEDIUM"
    timeout_seconds: float = 30.0


class WalletsConfig(BaseModel):
    """Which chains a user's universal wallet is created on, and how."""

    account_type: str = "SCA"
    chains: Optional[list[str]] = None  # None == every registry chain
    name: str = "AGENT-SCA-UNIVERSAL"

    @field_validator("account_type")
    @classmethod
    def _upper_account_type(cls, value: str) -> str:
        value = value.upper()
        if value not in ("SCA", "EOA"):
            raise ValueError("account_type must be 'SCA' or 'EOA'")
        return value


class ExecutorConfig(BaseModel):
    """Polling budget while waiting for a custody job to get an on-chain hash."""

    poll_interval_seconds: float = 2.0
    max_attempts: int = 15


class AttestationConfig(BaseModel):
    """Attestation oracle endpoint and poll budget (~15 minutes)."""

    base_url: str = "https://iris-api-sandbox.circle.com"
    poll_interval_seconds: float = 15.0
    max_attempts: int = 60
    timeout_seconds: float = 30.0


class DeliveryConfig(BaseModel):
    """Backoff table for the final transfer; one attempt per entry."""

    backoff_seconds: list[float] = Field(
        default_factory=lambda: [20.0, 40.0, 60.0, 60.0, 60.0]
    )

    @field_validator("backoff_seconds")
    @classmethod
    def _non_empty(cls, value: list[float]) -> list[float]:
        if not value:
            raise ValueError("backoff_seconds needs at least one entry")
        return value


class BurnConfig(BaseModel):
    """depositForBurn tuning knobs."""

    max_fee: int = 0
    min_finality_threshold: int = 2000


class BridgeConfig(BaseModel):
    """Root configuration object."""

    custody: CustodyConfig = Field(default_factory=CustodyConfig)
    wallets: WalletsConfig = Field(default_factory=WalletsConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    attestation: AttestationConfig = Field(default_factory=AttestationConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    burn: BurnConfig = Field(default_factory=BurnConfig)
    rpc_overrides: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def get_root_dir(base: Path | None = None, *, create: bool = False) -> Path:
    """Return the ``.hub-bridge/`` directory.

    Parameters
    ----------
    base:
        Parent directory that contains (or will contain) the root folder.
        Defaults to the current working directory.
    create:
        Create the directory if it does not exist yet.
    """
    if base is None:
        base = Path.cwd()
    root = base / ".hub-bridge"
    if create:
        root.mkdir(parents=True, exist_ok=True)
    return root


def default_config() -> BridgeConfig:
    return BridgeConfig()


def load_config(path: Path) -> BridgeConfig:
    """Load and validate a configuration from a YAML file.

    Environment variable placeholders (``${VAR}``) are expanded before
    validation. A missing file yields the defaults, expanded the same way.
    """
    if path.exists():
        raw_data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    else:
        raw_data = default_config().model_dump(mode="python")
    expanded = _expand_env_recursive(raw_data)
    return BridgeConfig.model_validate(expanded)


def save_config(config: BridgeConfig, path: Path) -> None:
    """Serialize a :class:`BridgeConfig` to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="python", exclude_none=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, sort_keys=False)
