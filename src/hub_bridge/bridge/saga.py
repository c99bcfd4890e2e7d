"""Burn-and-mint bridge saga: burn, attestation, mint, delivery.

A burn cannot be undone, so every failure after it leaves funds "in flight"
rather than lost. Those failures are recorded on the saga (and in the store)
with enough context to resume from the burn hash.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Protocol

from hub_bridge.bridge.amounts import from_atomic, to_atomic
from hub_bridge.bridge.attestation import AttestationPoller
from hub_bridge.bridge.errors import (
    ApprovalFailure,
    BalanceReadError,
    BridgeError,
    BurnFailure,
    DeliveryFailure,
    GasInsufficientError,
    InsufficientFundsError,
    MintFailure,
    StageInterrupted,
)
from hub_bridge.bridge.models import Attestation, BridgeSaga, BurnReceipt, SagaOutcome, SagaStage
from hub_bridge.bridge.requests import BridgeRequest, ResumeRequest
from hub_bridge.config import BurnConfig, DeliveryConfig
from hub_bridge.wallet.chains import ChainConfig, get_chain, hub_chain, require_chain_key
from hub_bridge.wallet.custody import CustodyClient, CustodyError
from hub_bridge.wallet.executor import ContractCallExecutor
from hub_bridge.wallet.provisioning import CustodialWallet, WalletProvisioningService

if TYPE_CHECKING:
    from hub_bridge.storage.store import BridgeStore

logger = logging.getLogger("hub_bridge.bridge.saga")

Sleep = Callable[[float], Awaitable[None]]

APPROVE_SIGNATURE = "approve(address,uint256)"
BURN_SIGNATURE = "depositForBurn(uint256,uint32,bytes32,address,bytes32,uint256,uint32)"
MINT_SIGNATURE = "receiveMessage(bytes,bytes)"

# Destination caller of all zeros lets anyone submit the mint.
ZERO_BYTES32 = "0x" + "00" * 32


class BalanceReader(Protocol):
    async def get_token_balance(self, address: str, chain_key: str) -> int: ...

    async def get_allowance(self, owner: str, spender: str, chain_key: str) -> int: ...


def pad_address(address: str) -> str:
    """Left-pad a 20-byte address to a 32-byte word, as CCTP expects."""
    body = address.lower().removeprefix("0x")
    if len(body) != 40:
        raise ValueError(f"Not an EVM address: {address}")
    return "0x" + body.rjust(64, "0")


def _require_user(user_id: str) -> None:
    if not user_id or not user_id.strip():
        raise ValueError("user_id is required to bridge")


class BridgeOrchestrator:
    """Runs bridge sagas.

    Parameters
    ----------
    provisioning:
        Resolves the user's custodial wallet on each chain.
    executor:
        Submits approve/burn/mint/transfer calls through custody.
    poller:
        Waits for the burn attestation.
    balances:
        Read-only RPC access (token balance and allowance).
    custody:
        Used for the custody-side balance view (gas check before an EOA mint).
    store:
        Optional durable record store; without one, resume needs a
        self-contained :class:`ResumeRequest`.
    sleep:
        Awaitable used between delivery attempts.
    """

    def __init__(
        self,
        provisioning: WalletProvisioningService,
        executor: ContractCallExecutor,
        poller: AttestationPoller,
        balances: BalanceReader,
        custody: CustodyClient,
        *,
        store: Optional[BridgeStore] = None,
        burn_config: BurnConfig | None = None,
        delivery_config: DeliveryConfig | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.provisioning = provisioning
        self.executor = executor
        self.poller = poller
        self.balances = balances
        self.custody = custody
        self.store = store
        self.burn_config = burn_config or BurnConfig()
        self.delivery_config = delivery_config or DeliveryConfig()
        self._sleep = sleep
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def bridge(
        self, request: BridgeRequest, user_id: str, await_completion: bool = True
    ) -> BridgeSaga:
        """Start a transfer.

        With ``await_completion`` the terminal saga is returned. Otherwise
        the saga is returned as soon as the burn lands (stage ``BURNED``)
        and the rest runs as a background task.
        """
        _require_user(user_id)
        saga = BridgeSaga(
            source_chain=request.source_chain or hub_chain().key,
            destination_chain=request.destination_chain,
            recipient=request.recipient or "",
            amount=request.amount,
            user_id=user_id,
        )
        try:
            await self._burn(saga)
        except BridgeError as exc:
            saga.fail(exc, SagaStage.BURNED)
            logger.error(f"Bridge for {user_id} failed before burning: {exc}")
            return saga

        return await self._run_or_schedule(saga, await_completion)

    async def resume(
        self,
        request: ResumeRequest | str,
        user_id: str,
        await_completion: bool = True,
    ) -> BridgeSaga:
        """Re-enter a saga from its burn hash.

        Uses the stored record when there is one. Without a record the
        request must carry chains, amount and recipient.

        Raises
        ------
        KeyError
            No record of the burn and the request is not self-contained.
        PermissionError
            The burn is recorded under a different user.
        ValueError
            Missing user id, or the saga already completed.
        """
        _require_user(user_id)
        if isinstance(request, str):
            request = ResumeRequest(burn_tx_hash=request)

        record = await self.store.get(request.burn_tx_hash) if self.store else None
        if record is not None and record.user_id != user_id:
            raise PermissionError(
                f"Bridge {request.burn_tx_hash} belongs to another user"
            )
        if record is not None:
            saga = record.to_saga()
            if saga.stage is SagaStage.DELIVERED or saga.outcome in (
                SagaOutcome.MINTED,
                SagaOutcome.DELIVERED,
            ):
                raise ValueError(
                    f"Bridge {request.burn_tx_hash} already completed ({saga.outcome.value})"
                )
            saga.outcome = SagaOutcome.PENDING
            saga.error = None
            saga.error_message = None
            saga.failed_at = None
        elif request.is_self_contained:
            saga = BridgeSaga(
                source_chain=require_chain_key(request.source_chain),
                destination_chain=require_chain_key(request.destination_chain),
                recipient=request.recipient or "",
                amount=request.amount or "",
                user_id=user_id,
                stage=SagaStage.BURNED,
                burn_tx_hash=request.burn_tx_hash,
            )
            await self._persist(saga)
        else:
            raise KeyError(
                f"No record of bridge {request.burn_tx_hash}. Provide sourceChain, "
                f"destinationChain, amount and recipient to resume it."
            )

        logger.info(f"Resuming bridge {saga.burn_tx_hash} from stage {saga.stage.value}")
        return await self._run_or_schedule(saga, await_completion)

    async def wait_for_background(self) -> None:
        """Wait for every scheduled saga completion to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._background)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def _run_or_schedule(self, saga: BridgeSaga, await_completion: bool) -> BridgeSaga:
        if await_completion:
            await self._complete(saga)
            return saga

        task = asyncio.create_task(self._complete(saga), name=f"bridge-{saga.burn_tx_hash}")
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return saga

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            logger.warning(f"Background {task.get_name()} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background {task.get_name()} crashed", exc_info=exc)

    # ------------------------------------------------------------------
    # Stage: Initiated -> Burned
    # ------------------------------------------------------------------

    async def _burn(self, saga: BridgeSaga) -> BurnReceipt:
        src_key = require_chain_key(saga.source_chain)
        dst_key = require_chain_key(saga.destination_chain)
        if src_key == dst_key:
            raise BridgeError(f"Source and destination are both {src_key}")
        saga.source_chain, saga.destination_chain = src_key, dst_key
        src, dst = get_chain(src_key), get_chain(dst_key)

        atomic = to_atomic(saga.amount, src.token_decimals)

        src_wallet, dst_wallet = await self.provisioning.ensure_wallets(saga.user_id, src_key, dst_key)
        if not saga.recipient:
            saga.recipient = dst_wallet.address

        balance = await self._read(
            self.balances.get_token_balance(src_wallet.address, src_key),
            f"token balance on {src.name}",
        )
        if balance < atomic:
            raise InsufficientFundsError(
                src.name, from_atomic(balance, src.token_decimals), saga.amount
            )

        allowance = await self._read(
            self.balances.get_allowance(src_wallet.address, src.token_messenger, src_key),
            f"allowance on {src.name}",
        )
        if allowance < atomic:
            logger.info(f"Approving {saga.amount} USDC for the token messenger on {src.name}")
            result = await self.executor.execute(
                src_wallet,
                src.token_address,
                APPROVE_SIGNATURE,
                [src.token_messenger, str(atomic)],
                src_key,
            )
            if not result.success:
                raise ApprovalFailure(f"Approval failed on {src.name}: {result.error}")
            saga.approve_tx_hash = result.tx_hash

        mint_recipient = pad_address(dst_wallet.address)
        logger.info(
            f"Burning {saga.amount} USDC on {src.name} for domain {dst.domain} "
            f"(mint recipient {dst_wallet.address})"
        )
        result = await self.executor.execute(
            src_wallet,
            src.token_messenger,
            BURN_SIGNATURE,
            [
                str(atomic),
                str(dst.domain),
                mint_recipient,
                src.token_address,
                ZERO_BYTES32,
                str(self.burn_config.max_fee),
                str(self.burn_config.min_finality_threshold),
            ],
            src_key,
        )
        if not result.success or not result.tx_hash:
            raise BurnFailure(f"Burn failed on {src.name}: {result.error}")

        saga.burn_tx_hash = result.tx_hash
        saga.advance(SagaStage.BURNED)
        await self._persist(saga)
        logger.info(f"Burn landed on {src.name}: {result.tx_hash}")
        return BurnReceipt(
            source_chain=src_key,
            tx_hash=result.tx_hash,
            amount_atomic=atomic,
            destination_domain=dst.domain,
            mint_recipient=dst_wallet.address,
        )

    async def _read(self, awaitable: Awaitable[int], what: str) -> int:
        try:
            return int(await awaitable)
        except Exception as exc:
            raise BalanceReadError(f"Could not read {what}: {exc}") from exc

    # ------------------------------------------------------------------
    # Stages after the burn
    # ------------------------------------------------------------------

    async def _complete(self, saga: BridgeSaga) -> BridgeSaga:
        entering = SagaStage.ATTESTED
        try:
            if not saga.reached(SagaStage.MINTED):
                attestation = await self.poller.await_attestation(
                    saga.burn_tx_hash, get_chain(saga.source_chain).domain
                )
                saga.advance(SagaStage.ATTESTED)
                await self._persist(saga)

                entering = SagaStage.MINTED
                await self._mint(saga, attestation)

            entering = SagaStage.DELIVERED
            await self._deliver(saga)
        except BridgeError as exc:
            saga.fail(exc, entering)
            logger.error(
                f"Bridge {saga.burn_tx_hash} ({saga.source_chain} -> "
                f"{saga.destination_chain}) failed at {entering.value}: {exc}"
            )
        except Exception as exc:
            saga.fail(StageInterrupted(entering.value, exc), entering)
            logger.exception(
                f"Bridge {saga.burn_tx_hash} stopped by an unexpected error at {entering.value}"
            )
        await self._persist(saga)
        return saga

    async def _mint(self, saga: BridgeSaga, attestation: Attestation) -> None:
        dst = get_chain(saga.destination_chain)
        wallet = await self.provisioning.ensure_wallet(saga.user_id, dst.key)

        if not wallet.sponsored_gas:
            await self._check_gas(wallet, dst)

        logger.info(f"Minting on {dst.name} with wallet {wallet.address}")
        result = await self.executor.execute(
            wallet,
            dst.message_transmitter,
            MINT_SIGNATURE,
            [attestation.message, attestation.attestation],
            dst.key,
        )
        if not result.success:
            raise MintFailure(f"Mint failed on {dst.name}: {result.error}")

        saga.mint_tx_hash = result.tx_hash
        saga.advance(SagaStage.MINTED)
        await self._persist(saga)
        logger.info(f"Minted on {dst.name}: {result.tx_hash}")

    async def _check_gas(self, wallet: CustodialWallet, chain: ChainConfig) -> None:
        try:
            balances = await self.custody.get_token_balances(wallet.wallet_id)
        except CustodyError as exc:
            raise MintFailure(
                f"Could not read gas balance on {chain.name}: {exc}", retryable=exc.retryable
            ) from exc
        native = next((b for b in balances if (b.get("token") or {}).get("isNative")), None)
        try:
            amount = Decimal(str(native.get("amount", "0"))) if native else Decimal(0)
        except InvalidOperation:
            amount = Decimal(0)
        if amount <= 0:
            raise GasInsufficientError(chain.name, wallet.address, chain.native_symbol)

    async def _deliver(self, saga: BridgeSaga) -> None:
        dst = get_chain(saga.destination_chain)
        wallet = await self.provisioning.ensure_wallet(saga.user_id, dst.key)

        if saga.recipient.lower() == wallet.address.lower():
            saga.outcome = SagaOutcome.MINTED
            logger.info(f"Bridge {saga.burn_tx_hash} complete; funds stay in {wallet.address}")
            return

        # The custody balance view can lag the mint, so early transfers may
        # be rejected for insufficient balance.
        delays = self.delivery_config.backoff_seconds
        last_error: str | None = None
        for attempt, delay in enumerate(delays, start=1):
            result = await self.executor.transfer(
                wallet, saga.recipient, saga.amount, dst.token_address, dst.key
            )
            if result.success:
                saga.delivery_tx_hash = result.tx_hash
                saga.advance(SagaStage.DELIVERED)
                saga.outcome = SagaOutcome.DELIVERED
                logger.info(f"Delivered {saga.amount} USDC to {saga.recipient}: {result.tx_hash}")
                return
            last_error = result.error
            logger.warning(f"Delivery attempt {attempt}/{len(delays)} failed: {result.error}")
            if attempt < len(delays):
                await self._sleep(delay)

        raise DeliveryFailure(
            f"Delivery to {saga.recipient} failed after {len(delays)} attempts: {last_error}",
            attempts=len(delays),
        )

    async def _persist(self, saga: BridgeSaga) -> None:
        if self.store is None or not saga.burn_tx_hash:
            return
        try:
            await self.store.save(saga)
        except sqlite3.Error as exc:
            logger.error(f"Could not record bridge {saga.burn_tx_hash}: {exc}")
