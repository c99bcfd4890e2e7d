"""Custodial wallet provisioning: one address per user, on every chain."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, TypeVar

from hub_bridge.bridge.errors import (
    AddressMismatchError,
    ChainResolutionError,
    WalletProvisioningError,
)
from hub_bridge.config import WalletsConfig
from hub_bridge.wallet.chains import chain_for_custody_blockchain, get_chain, hub_chain, list_chain_names
from hub_bridge.wallet.custody import CustodyClient, CustodyError

logger = logging.getLogger("hub_bridge.wallet.provisioning")

T = TypeVar("T")

# Same namespace as the original wallet-creation keys, so a restarted process
# computes the key the custody service has already seen.
WALLET_NAMESPACE = uuid.NAMESPACE_DNS


class AccountType(str, Enum):
    SCA = "SCA"  # smart-contract account, gas may be sponsored
    EOA = "EOA"  # externally-owned account, must hold native gas


@dataclass(frozen=True)
class CustodialWallet:
    """One user's account on one chain."""

    wallet_id: str
    address: str
    account_type: AccountType
    chain_key: str

    @property
    def sponsored_gas(self) -> bool:
        return self.account_type is AccountType.SCA


def wallet_idempotency_key(user_id: str) -> str:
    """Deterministic key for a user's batched wallet creation."""
    return str(uuid.uuid5(WALLET_NAMESPACE, f"universal-wallet-{user_id}"))


async def _custody_call(awaitable: Awaitable[T], what: str) -> T:
    try:
        return await awaitable
    except CustodyError as exc:
        raise WalletProvisioningError(
            f"Failed to {what}: {exc}", retryable=exc.retryable
        ) from exc


class WalletSetResolver:
    """Finds (or creates once) the wallet set all user wallets live in."""

    def __init__(self, custody: CustodyClient, name: str) -> None:
        self.custody = custody
        self.name = name
        self._wallet_set_id: str | None = None
        self._lock = asyncio.Lock()

    async def get_wallet_set_id(self) -> str:
        if self._wallet_set_id:
            return self._wallet_set_id
        async with self._lock:
            if self._wallet_set_id:
                return self._wallet_set_id

            sets = await _custody_call(self.custody.list_wallet_sets(), "list wallet sets")
            developer = [s for s in sets if s.get("custodyType") == "DEVELOPER"]
            target = next((s for s in developer if s.get("name") == self.name), None)
            if target is None and developer:
                target = developer[0]
                logger.warning(
                    f"Wallet set '{self.name}' not found, falling back to {target.get('id')}"
                )

            if target is None:
                logger.info(f"Creating wallet set '{self.name}'")
                target = await _custody_call(
                    self.custody.create_wallet_set(
                        self.name,
                        str(uuid.uuid5(WALLET_NAMESPACE, f"wallet-set-{self.name}")),
                    ),
                    "create wallet set",
                )

            if not target.get("id"):
                raise WalletProvisioningError("Custody returned a wallet set without an id")
            self._wallet_set_id = target["id"]
            logger.info(f"Using wallet set {self._wallet_set_id}")
            return self._wallet_set_id


class WalletProvisioningService:
    """Ensures every user has a custodial wallet with one address on all chains.

    The in-process cache is a performance optimization only. The custody
    service is the source of truth: a fresh process re-derives every entry
    by querying wallets tagged with the user id.

    Parameters
    ----------
    custody:
        Custody API client.
    wallet_sets:
        Resolver for the wallet set new wallets are created in.
    config:
        The ``wallets`` section of the configuration.
    """

    def __init__(
        self,
        custody: CustodyClient,
        wallet_sets: WalletSetResolver,
        config: WalletsConfig | None = None,
    ) -> None:
        self.custody = custody
        self.wallet_sets = wallet_sets
        self.config = config or WalletsConfig()
        self.account_type = AccountType(self.config.account_type)
        self.chains: list[str] = [get_chain(k).key for k in (self.config.chains or list_chain_names())]
        self._cache: dict[tuple[str, str], CustodialWallet] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def cached(self, user_id: str, chain_key: str) -> CustodialWallet | None:
        return self._cache.get((user_id, chain_key))

    async def ensure_wallet(self, user_id: str, chain_key: str) -> CustodialWallet:
        """Return the user's wallet on *chain_key*, creating it if needed.

        Raises
        ------
        ValueError
            If *user_id* is empty. Checked before any network call.
        ChainResolutionError
            If *chain_key* is not one of the provisioned chains.
        WalletProvisioningError
            If the custody service fails (``retryable`` says whether a
            later call may succeed).
        AddressMismatchError
            If the custody service returned different addresses for the
            same user. Not retryable.
        """
        if not user_id or not user_id.strip():
            raise ValueError("user_id is required to provision a wallet")
        if chain_key not in self.chains:
            raise ChainResolutionError(chain_key)

        hit = self._cache.get((user_id, chain_key))
        if hit is not None:
            return hit

        # One creation per user at a time; other users proceed in parallel.
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            hit = self._cache.get((user_id, chain_key))
            if hit is not None:
                return hit
            return await self._provision(user_id, chain_key)

    async def ensure_wallets(self, user_id: str, *chain_keys: str) -> list[CustodialWallet]:
        return [await self.ensure_wallet(user_id, key) for key in chain_keys]

    async def get_address(self, user_id: str) -> str:
        """The user's universal address (looked up through the hub wallet)."""
        key = hub_chain().key if hub_chain().key in self.chains else self.chains[0]
        return (await self.ensure_wallet(user_id, key)).address

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _provision(self, user_id: str, chain_key: str) -> CustodialWallet:
        wallet_set_id = await self.wallet_sets.get_wallet_set_id()
        logger.info(f"Ensuring wallet exists for {user_id} on {chain_key}")

        listed = await _custody_call(
            self.custody.list_wallets(wallet_set_id, user_id), "list wallets"
        )
        found = self._parse_wallets(listed, user_id)
        if found:
            self._check_consistent(user_id, found)
            self._store(user_id, found)
            logger.info(f"User {user_id} already has wallets on {sorted(found)}")
            hit = self._cache.get((user_id, chain_key))
            if hit is not None:
                return hit

        blockchains = [get_chain(k).custody_blockchain for k in self.chains]
        logger.info(
            f"Creating universal {self.account_type.value} wallet for {user_id} on {blockchains}"
        )
        created_raw = await _custody_call(
            self.custody.create_wallets(
                wallet_set_id,
                blockchains,
                self.account_type.value,
                {"name": self.config.name, "refId": user_id},
                wallet_idempotency_key(user_id),
            ),
            "create wallets",
        )
        created = self._parse_wallets(created_raw, user_id)
        if not created:
            raise WalletProvisioningError("Custody returned no wallets for the creation request")

        self._check_consistent(user_id, {**found, **created})
        self._store(user_id, created)
        address = next(iter(created.values())).address
        logger.info(f"Wallets for {user_id} share address {address} on {len(created)} chains")

        hit = self._cache.get((user_id, chain_key))
        if hit is None:
            raise WalletProvisioningError(
                f"Custody did not provision {chain_key} for user '{user_id}'",
                retryable=False,
            )
        return hit

    def _parse_wallets(self, raw: list[dict], user_id: str) -> dict[str, CustodialWallet]:
        wallets: dict[str, CustodialWallet] = {}
        for item in raw:
            ref_id = item.get("refId")
            if ref_id is not None and ref_id != user_id:
                continue
            if item.get("accountType", self.account_type.value) != self.account_type.value:
                continue
            chain = chain_for_custody_blockchain(item.get("blockchain", ""))
            if chain is None or chain.key not in self.chains:
                logger.debug(f"Ignoring wallet on unsupported blockchain {item.get('blockchain')}")
                continue
            if not item.get("id") or not item.get("address"):
                raise WalletProvisioningError(f"Malformed wallet record from custody: {item}")
            wallets[chain.key] = CustodialWallet(
                wallet_id=item["id"],
                address=item["address"],
                account_type=AccountType(item.get("accountType", self.account_type.value)),
                chain_key=chain.key,
            )
        return wallets

    def _check_consistent(self, user_id: str, wallets: dict[str, CustodialWallet]) -> None:
        known = {
            key: w.address
            for (uid, key), w in self._cache.items()
            if uid == user_id
        }
        known.update({key: w.address for key, w in wallets.items()})
        if len({addr.lower() for addr in known.values()}) > 1:
            logger.error(f"Address mismatch for {user_id}: {known}")
            raise AddressMismatchError(user_id, known)

    def _store(self, user_id: str, wallets: dict[str, CustodialWallet]) -> None:
        for key, wallet in wallets.items():
            self._cache.setdefault((user_id, key), wallet)
