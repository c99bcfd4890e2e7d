"""Read-only Web3 access across the hub and extension chains."""

from __future__ import annotations

import logging
from decimal import Decimal

from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound
from web3.middleware import ExtraDataToPOAMiddleware

from hub_bridge.bridge.amounts import from_atomic
from hub_bridge.wallet.chains import get_chain

logger = logging.getLogger("hub_bridge.wallet.provider")

ERC20_ABI = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]


class Web3Provider:
    """Manages AsyncWeb3 connections and the balance reads the bridge needs.

    Nothing here signs or sends; every write goes through the custody
    service.
    """

    def __init__(self, rpc_overrides: dict[str, str] | None = None) -> None:
        self._instances: dict[str, AsyncWeb3] = {}
        self._rpc_overrides = dict(rpc_overrides or {})

    def get_web3(self, chain_key: str) -> AsyncWeb3:
        """Return a (cached) AsyncWeb3 instance for the given chain.

        Injects POA middleware, since every supported network is a testnet
        or L2 with extended block extra-data.
        """
        if chain_key in self._instances:
            return self._instances[chain_key]

        chain = get_chain(chain_key)
        rpc_url = self._rpc_overrides.get(chain_key, chain.rpc_url)
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

        self._instances[chain_key] = w3
        return w3

    def _token(self, chain_key: str):
        chain = get_chain(chain_key)
        w3 = self.get_web3(chain_key)
        return w3.eth.contract(
            address=Web3.to_checksum_address(chain.token_address), abi=ERC20_ABI
        )

    async def get_token_balance(self, address: str, chain_key: str) -> int:
        """Bridged-token balance in atomic units (registry ``token_decimals``)."""
        token = self._token(chain_key)
        return int(
            await token.functions.balanceOf(Web3.to_checksum_address(address)).call()
        )

    async def get_allowance(self, owner: str, spender: str, chain_key: str) -> int:
        token = self._token(chain_key)
        return int(
            await token.functions.allowance(
                Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)
            ).call()
        )

    async def get_native_balance(self, address: str, chain_key: str) -> Decimal:
        """Native gas balance in human units, at the chain's native decimals."""
        chain = get_chain(chain_key)
        w3 = self.get_web3(chain_key)
        raw = await w3.eth.get_balance(Web3.to_checksum_address(address))
        return Decimal(from_atomic(raw, chain.native_decimals))

    async def get_transaction_status(self, tx_hash: str, chain_key: str) -> bool | None:
        """``True``/``False`` for a mined success/revert, ``None`` if not mined."""
        w3 = self.get_web3(chain_key)
        try:
            receipt = await w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            logger.debug(f"No receipt yet for {tx_hash} on {chain_key}")
            return None
        return receipt["status"] == 1
