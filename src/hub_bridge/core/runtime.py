"""BridgeRuntime - wires configuration, storage and clients together."""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path

from hub_bridge.bridge.attestation import AttestationPoller
from hub_bridge.bridge.saga import BridgeOrchestrator
from hub_bridge.config import BridgeConfig, get_root_dir, load_config, save_config
from hub_bridge.storage.database import Database, get_database
from hub_bridge.storage.store import BridgeStore
from hub_bridge.tools.bridge_tools import set_runtime
from hub_bridge.wallet.chains import get_chain, require_chain_key
from hub_bridge.wallet.custody import CustodyClient
from hub_bridge.wallet.executor import ContractCallExecutor
from hub_bridge.wallet.provider import Web3Provider
from hub_bridge.wallet.provisioning import WalletProvisioningService, WalletSetResolver

logger = logging.getLogger("hub_bridge.runtime")


class BridgeRuntime:
    """Owns every long-lived object of one bridge process.

    The provisioning cache and the background saga tasks live here, so a
    process should build exactly one runtime and call :meth:`shutdown`
    before exiting.
    """

    def __init__(
        self,
        config: BridgeConfig,
        root_dir: Path,
        db: Database,
        *,
        custody: CustodyClient | None = None,
        poller: AttestationPoller | None = None,
        provider: Web3Provider | None = None,
    ) -> None:
        self.config = config
        self.root_dir = root_dir
        self.db = db
        self.store = BridgeStore(db)

        self.custody = custody or CustodyClient(config.custody)
        self.provider = provider or Web3Provider(config.rpc_overrides)
        self.poller = poller or AttestationPoller(config.attestation)
        self.wallet_sets = WalletSetResolver(self.custody, config.custody.wallet_set_name)
        self.wallets = WalletProvisioningService(self.custody, self.wallet_sets, config.wallets)
        self.executor = ContractCallExecutor(self.custody, config.executor)
        self.orchestrator = BridgeOrchestrator(
            self.wallets,
            self.executor,
            self.poller,
            self.provider,
            self.custody,
            store=self.store,
            burn_config=config.burn,
            delivery_config=config.delivery,
        )

        set_runtime(self)

    @classmethod
    async def load(cls, base_path: Path | None = None) -> BridgeRuntime:
        """Load configuration from ``.hub-bridge/`` and open the database.

        A missing config file means defaults (with ``${ENV}`` expansion).
        """
        root_dir = get_root_dir(base_path, create=True)
        config = load_config(root_dir / "config.yaml")
        db = get_database(root_dir)
        await db.connect()
        return cls(config=config, root_dir=root_dir, db=db)

    @classmethod
    def init(cls, base_path: Path | None = None) -> Path:
        """Write a default config file; return its path. Existing files are kept."""
        root_dir = get_root_dir(base_path, create=True)
        config_path = root_dir / "config.yaml"
        if not config_path.exists():
            save_config(BridgeConfig(), config_path)
            logger.info(f"Wrote default configuration to {config_path}")
        return config_path

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_address(self, user_id: str) -> str:
        """The user's universal address, identical on every chain."""
        return await self.wallets.get_address(user_id)

    async def get_balance(self, user_id: str, chain: str) -> str:
        """Custody-reported USDC balance on *chain*, as a decimal string.

        On the hub USDC is the native gas token, so the native entry is used.
        """
        chain_cfg = get_chain(require_chain_key(chain))
        wallet = await self.wallets.ensure_wallet(user_id, chain_cfg.key)
        balances = await self.custody.get_token_balances(wallet.wallet_id)

        for entry in balances:
            token = entry.get("token") or {}
            if chain_cfg.is_hub and token.get("isNative"):
                return _plain(entry.get("amount", "0"))
            address = (token.get("tokenAddress") or "").lower()
            if address == chain_cfg.token_address.lower():
                return _plain(entry.get("amount", "0"))
        return "0"

    async def get_gas_balance(self, user_id: str, chain: str) -> Decimal:
        """Native gas balance of the user's wallet on *chain*, read over RPC."""
        key = require_chain_key(chain)
        wallet = await self.wallets.ensure_wallet(user_id, key)
        return await self.provider.get_native_balance(wallet.address, key)

    async def confirmations(self, burn_tx_hash: str) -> dict[str, bool | None]:
        """Receipt status of a recorded bridge's burn and mint transactions.

        ``True`` mined, ``False`` reverted, ``None`` not mined (or not sent).
        """
        record = await self.store.get(burn_tx_hash)
        if record is None:
            raise KeyError(f"No bridge recorded for {burn_tx_hash}")
        status: dict[str, bool | None] = {
            "burn": await self.provider.get_transaction_status(
                record.burn_tx_hash, record.source_chain
            ),
            "mint": None,
        }
        if record.mint_tx_hash:
            status["mint"] = await self.provider.get_transaction_status(
                record.mint_tx_hash, record.destination_chain
            )
        return status

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Wait for background sagas, then close clients and the database."""
        pending = self.orchestrator.pending_count
        if pending:
            logger.info(f"Waiting for {pending} bridge(s) to finish")
        await self.orchestrator.wait_for_background()
        await self.custody.close()
        await self.poller.close()
        await self.db.close()
        set_runtime(None)


def _plain(amount: object) -> str:
    value = Decimal(str(amount))
    text = format(value.normalize(), "f") if value else "0"
    return text
