"""Submit contract calls and transfers through custody, then wait for a hash."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from hub_bridge.config import ExecutorConfig
from hub_bridge.wallet.chains import get_chain
from hub_bridge.wallet.custody import FAILED_STATES, CustodyClient, CustodyError
from hub_bridge.wallet.provisioning import CustodialWallet

logger = logging.getLogger("hub_bridge.wallet.executor")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class CallResult:
    """Outcome of one custody job.

    ``tx_hash`` is set only on success; ``error`` only on failure. ``job_id``
    is the custody transaction id when the submission itself was accepted.
    """

    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    job_id: Optional[str] = None


class ContractCallExecutor:
    """Runs custody jobs to the point where an on-chain hash exists.

    Never raises for custody errors: every failure comes back as
    ``CallResult(success=False, error=...)`` so the caller decides which
    stage failed.
    """

    def __init__(
        self,
        custody: CustodyClient,
        config: ExecutorConfig | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.custody = custody
        self.config = config or ExecutorConfig()
        self._sleep = sleep

    async def execute(
        self,
        wallet: CustodialWallet,
        contract_address: str,
        function_signature: str,
        parameters: list,
        chain_key: str,
    ) -> CallResult:
        logger.info(f"Executing {function_signature} on {chain_key} from {wallet.address}")
        try:
            job = await self.custody.create_contract_execution(
                wallet.wallet_id,
                contract_address,
                function_signature,
                parameters,
                str(uuid.uuid4()),
            )
        except CustodyError as exc:
            logger.error(f"{function_signature} submission failed on {chain_key}: {exc}")
            return CallResult(success=False, error=str(exc))
        return await self._wait_for_hash(job, function_signature)

    async def transfer(
        self,
        wallet: CustodialWallet,
        to_address: str,
        amount: str,
        token_address: str | None,
        chain_key: str,
    ) -> CallResult:
        """Transfer *amount* (a human decimal string) of a token to *to_address*."""
        logger.info(f"Transferring {amount} on {chain_key} to {to_address}")
        try:
            job = await self.custody.create_transfer(
                wallet.wallet_id,
                get_chain(chain_key).custody_blockchain,
                to_address,
                amount,
                token_address,
                str(uuid.uuid4()),
            )
        except CustodyError as exc:
            logger.error(f"Transfer submission failed on {chain_key}: {exc}")
            return CallResult(success=False, error=str(exc))
        return await self._wait_for_hash(job, "transfer")

    async def _wait_for_hash(self, job: dict, label: str) -> CallResult:
        job_id = job.get("id")
        if not job_id:
            return CallResult(success=False, error=f"Custody returned no job id for {label}")

        attempts = self.config.max_attempts
        for attempt in range(1, attempts + 1):
            await self._sleep(self.config.poll_interval_seconds)
            try:
                tx = await self.custody.get_transaction(job_id)
            except CustodyError as exc:
                logger.warning(f"Polling job {job_id} failed (attempt {attempt}/{attempts}): {exc}")
                continue

            tx_hash = tx.get("txHash") or ""
            if tx_hash.startswith("0x"):
                logger.info(f"{label} job {job_id} landed as {tx_hash}")
                return CallResult(success=True, tx_hash=tx_hash, job_id=job_id)

            state = tx.get("state", "")
            if state in FAILED_STATES:
                reason = tx.get("errorReason") or tx.get("errorDetails") or state
                logger.error(f"{label} job {job_id} ended in {state}: {reason}")
                return CallResult(
                    success=False, error=f"{label} {state.lower()}: {reason}", job_id=job_id
                )
            logger.debug(f"{label} job {job_id} state={state or 'unknown'} ({attempt}/{attempts})")

        return CallResult(
            success=False,
            error=f"{label} job {job_id} produced no transaction hash after {attempts} polls",
            job_id=job_id,
        )
