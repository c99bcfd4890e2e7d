"""Router-facing bridge and wallet tools.

Arguments arrive as loose dicts from a free-text router. Each tool maps
aliased field names once, validates, and returns a ``ToolResult`` dict:
``{"success": bool, "message": str, "data": dict | None}``. Expected
failures never escape as exceptions.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from pydantic import ValidationError

from hub_bridge.bridge.errors import BridgeError
from hub_bridge.bridge.requests import BridgeRequest, ResumeRequest
from hub_bridge.tools.registry import tool
from hub_bridge.wallet.chains import CHAINS
from hub_bridge.wallet.custody import CustodyError

if TYPE_CHECKING:
    from hub_bridge.core.runtime import BridgeRuntime

logger = logging.getLogger("hub_bridge.tools.bridge")

# Module-level state, set at runtime by BridgeRuntime
_runtime: BridgeRuntime | None = None


def set_runtime(runtime: BridgeRuntime | None) -> None:
    """Inject the BridgeRuntime instance (called by BridgeRuntime on startup)."""
    global _runtime
    _runtime = runtime


def _require_runtime() -> BridgeRuntime:
    if _runtime is None:
        raise RuntimeError("Bridge runtime not loaded. Call BridgeRuntime.load() first.")
    return _runtime


def tool_result(success: bool, message: str, data: Optional[dict] = None) -> dict:
    return {"success": success, "message": message, "data": data}


def _validation_message(exc: ValidationError, required: str) -> str:
    issues = "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}"
        for err in exc.errors()
    )
    return f"Invalid parameters: {issues}. REQUIRED: {required}."


@tool(
    "execute_bridge",
    "EXECUTE a bridge transaction to move USDC from the Arc hub to another chain (e.g. Arc to Base).",
    {
        "type": "object",
        "properties": {
            "amount": {"type": "string", "description": "Amount of USDC to bridge, e.g. '0.5'"},
            "destinationChain": {
                "type": "string",
                "description": "Destination chain name (e.g. 'Base', 'Sepolia')",
            },
            "sourceChain": {
                "type": "string",
                "description": "Origin chain name. Defaults to the Arc hub.",
            },
            "recipient": {
                "type": "string",
                "description": "Destination address. Defaults to the user's own wallet.",
            },
        },
        "required": ["amount", "destinationChain"],
    },
)
async def execute_bridge(user_id: str, wait: bool = False, **params: Any) -> dict:
    rt = _require_runtime()
    try:
        request = BridgeRequest.from_params(params)
    except ValidationError as exc:
        return tool_result(False, _validation_message(exc, "'destinationChain', 'amount'"))

    saga = await rt.orchestrator.bridge(request, user_id, await_completion=wait)
    return tool_result(saga.outcome.value != "failed", saga.summary(), saga.to_dict())


@tool(
    "resume_bridge",
    "Resume or retry a stuck bridge transaction from its burn transaction hash.",
    {
        "type": "object",
        "properties": {
            "burnTxHash": {
                "type": "string",
                "description": "Transaction hash of the burn on the source chain",
            },
            "sourceChain": {"type": "string", "description": "Chain the funds were sent from"},
            "destinationChain": {"type": "string", "description": "Chain the funds go to"},
            "amount": {"type": "string", "description": "Original amount, if not on record"},
            "recipient": {"type": "string", "description": "Original recipient, if not on record"},
        },
        "required": ["burnTxHash"],
    },
)
async def resume_bridge(user_id: str, wait: bool = True, **params: Any) -> dict:
    rt = _require_runtime()
    try:
        request = ResumeRequest.from_params(params)
    except ValidationError as exc:
        return tool_result(False, _validation_message(exc, "'burnTxHash'"))

    try:
        saga = await rt.orchestrator.resume(request, user_id, await_completion=wait)
    except KeyError as exc:
        return tool_result(False, str(exc.args[0]) if exc.args else str(exc))
    except (PermissionError, ValueError, BridgeError) as exc:
        return tool_result(False, str(exc))
    return tool_result(saga.outcome.value != "failed", saga.summary(), saga.to_dict())


@tool(
    "get_balance",
    "Get the user's USDC balance on one chain, or on every supported chain if omitted.",
    {
        "type": "object",
        "properties": {
            "chain": {"type": "string", "description": "Chain name. Omit for all chains."},
        },
        "required": [],
    },
)
async def get_balance(user_id: str, chain: str = "", **_ignored: Any) -> dict:
    rt = _require_runtime()
    targets = [chain] if chain.strip() else list(rt.wallets.chains)

    balances: dict[str, str] = {}
    errors: dict[str, str] = {}
    for target in targets:
        try:
            balances[target] = await rt.get_balance(user_id, target)
        except (BridgeError, CustodyError) as exc:
            logger.warning(f"Balance lookup on {target} failed: {exc}")
            errors[target] = str(exc)

    if not balances:
        return tool_result(False, "; ".join(f"{k}: {v}" for k, v in errors.items()), {"errors": errors})

    lines = ["USDC balances:"]
    for key, amount in balances.items():
        name = CHAINS[key].name if key in CHAINS else key
        lines.append(f"  {name}: {amount} USDC")
    for key, err in errors.items():
        lines.append(f"  {key}: error ({err})")
    return tool_result(True, "\n".join(lines), {"balances": balances, "errors": errors})


@tool(
    "get_wallet_address",
    "Get the user's wallet address (the same address on every supported chain).",
    {"type": "object", "properties": {}, "required": []},
)
async def get_wallet_address(user_id: str, **_ignored: Any) -> dict:
    rt = _require_runtime()
    try:
        address = await rt.get_address(user_id)
    except BridgeError as exc:
        return tool_result(False, f"Could not provision wallet: {exc}")
    return tool_result(True, f"Your wallet address: {address}", {"address": address})


@tool(
    "list_chains",
    "List the networks USDC can be bridged between.",
    {"type": "object", "properties": {}, "required": []},
)
def list_chains(**_ignored: Any) -> dict:
    chains = [
        {"key": c.key, "name": c.name, "domain": c.domain, "hub": c.is_hub}
        for c in CHAINS.values()
    ]
    names = ", ".join(c.name for c in CHAINS.values())
    return tool_result(True, f"Supported chains: {names}", {"chains": chains})
