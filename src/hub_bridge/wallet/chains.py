"""Chain definitions for the hub and its CCTP extension networks."""

from __future__ import annotations

import re
from dataclasses import dataclass

from hub_bridge.bridge.errors import ChainResolutionError

# CCTP V2 contracts share one address on every EVM testnet (CREATE2).
TOKEN_MESSENGER_V2 = "0x8FE6B999Dc680CcFDD5Bf7EB0974218be2542DAA"
MESSAGE_TRANSMITTER_V2 = "0xE737e5cEBEEBa77EFE34D4aa090756590b1CE275"

HUB_CHAIN = "arcTestnet"


@dataclass(frozen=True)
class ChainConfig:
    """A network that takes part in burn-and-mint transfers."""

    key: str
    name: str
    domain: int
    chain_id: int
    custody_blockchain: str
    token_address: str
    token_messenger: str
    message_transmitter: str
    token_decimals: int
    native_symbol: str
    native_decimals: int
    rpc_url: str
    explorer_url: str
    is_hub: bool = False

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"

    def address_url(self, address: str) -> str:
        return f"{self.explorer_url}/address/{address}"


CHAINS: dict[str, ChainConfig] = {
    # USDC is the gas token on Arc: 18 decimals natively, 6 through the
    # ERC20 interface at the token address.
    "arcTestnet": ChainConfig(
        key="arcTestnet",
        name="Arc Testnet",
        domain=26,
        chain_id=5042002,
        custody_blockchain="ARC-TESTNET",
        token_address="0x3600000000000000000000000000000000000000",
        token_messenger=TOKEN_MESSENGER_V2,
        message_transmitter=MESSAGE_TRANSMITTER_V2,
        token_decimals=6,
        native_symbol="USDC",
        native_decimals=18,
        rpc_url="https://rpc.testnet.arc.network",
        explorer_url="https://testnet.arcscan.app",
        is_hub=True,
    ),
    "ethereumSepolia": ChainConfig(
        key="ethereumSepolia",
        name="Ethereum Sepolia",
        domain=0,
        chain_id=11155111,
        custody_blockchain="ETH-SEPOLIA",
        token_address="0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
        token_messenger=TOKEN_MESSENGER_V2,
        message_transmitter=MESSAGE_TRANSMITTER_V2,
        token_decimals=6,
        native_symbol="ETH",
        native_decimals=18,
        rpc_url="https://sepolia.drpc.org",
        explorer_url="https://sepolia.etherscan.io",
    ),
    "baseSepolia": ChainConfig(
        key="baseSepolia",
        name="Base Sepolia",
        domain=6,
        chain_id=84532,
        custody_blockchain="BASE-SEPOLIA",
        token_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        token_messenger=TOKEN_MESSENGER_V2,
        message_transmitter=MESSAGE_TRANSMITTER_V2,
        token_decimals=6,
        native_symbol="ETH",
        native_decimals=18,
        rpc_url="https://sepolia.base.org",
        explorer_url="https://sepolia.basescan.org",
    ),
    "arbitrumSepolia": ChainConfig(
        key="arbitrumSepolia",
        name="Arbitrum Sepolia",
        domain=3,
        chain_id=421614,
        custody_blockchain="ARB-SEPOLIA",
        token_address="0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d",
        token_messenger=TOKEN_MESSENGER_V2,
        message_transmitter=MESSAGE_TRANSMITTER_V2,
        token_decimals=6,
        native_symbol="ETH",
        native_decimals=18,
        rpc_url="https://sepolia-rollup.arbitrum.io/rpc",
        explorer_url="https://sepolia.arbiscan.io",
    ),
    "optimismSepolia": ChainConfig(
        key="optimismSepolia",
        name="Optimism Sepolia",
        domain=2,
        chain_id=11155420,
        custody_blockchain="OP-SEPOLIA",
        token_address="0x5fd84259d66Cd46123540766Be93DFE6D43130D7",
        token_messenger=TOKEN_MESSENGER_V2,
        message_transmitter=MESSAGE_TRANSMITTER_V2,
        token_decimals=6,
        native_symbol="ETH",
        native_decimals=18,
        rpc_url="https://sepolia.optimism.io",
        explorer_url="https://sepolia-optimism.etherscan.io",
    ),
    "avalancheFuji": ChainConfig(
        key="avalancheFuji",
        name="Avalanche Fuji",
        domain=1,
        chain_id=43113,
        custody_blockchain="AVAX-FUJI",
        token_address="0x5425890298aed601595a70AB815c96711a31Bc65",
        token_messenger=TOKEN_MESSENGER_V2,
        message_transmitter=MESSAGE_TRANSMITTER_V2,
        token_decimals=6,
        native_symbol="AVAX",
        native_decimals=18,
        rpc_url="https://api.avax-test.network/ext/bc/C/rpc",
        explorer_url="https://testnet.snowtrace.io",
    ),
    "polygonAmoy": ChainConfig(
        key="polygonAmoy",
        name="Polygon Amoy",
        domain=7,
        chain_id=80002,
        custody_blockchain="MATIC-AMOY",
        token_address="0x41E94Eb019C0762f9Bfcf9Fb1E58725BfB0e7582",
        token_messenger=TOKEN_MESSENGER_V2,
        message_transmitter=MESSAGE_TRANSMITTER_V2,
        token_decimals=6,
        native_symbol="POL",
        native_decimals=18,
        rpc_url="https://rpc-amoy.polygon.technology",
        explorer_url="https://amoy.polygonscan.com",
    ),
}

# Closed alias table. Keys are already normalized (see _normalize).
_ALIASES: dict[str, str] = {
    "arc": "arcTestnet",
    "arctestnet": "arcTestnet",
    "hub": "arcTestnet",
    "eth": "ethereumSepolia",
    "ethereum": "ethereumSepolia",
    "sepolia": "ethereumSepolia",
    "ethsepolia": "ethereumSepolia",
    "ethereumsepolia": "ethereumSepolia",
    "base": "baseSepolia",
    "basesepolia": "baseSepolia",
    "arb": "arbitrumSepolia",
    "arbitrum": "arbitrumSepolia",
    "arbsepolia": "arbitrumSepolia",
    "arbitrumsepolia": "arbitrumSepolia",
    "op": "optimismSepolia",
    "opt": "optimismSepolia",
    "optimism": "optimismSepolia",
    "opsepolia": "optimismSepolia",
    "optimismsepolia": "optimismSepolia",
    "avax": "avalancheFuji",
    "avalanche": "avalancheFuji",
    "fuji": "avalancheFuji",
    "avaxfuji": "avalancheFuji",
    "avalanchefuji": "avalancheFuji",
    "poly": "polygonAmoy",
    "polygon": "polygonAmoy",
    "matic": "polygonAmoy",
    "amoy": "polygonAmoy",
    "maticamoy": "polygonAmoy",
    "polygonamoy": "polygonAmoy",
}

_STRIP_RE = re.compile(r"[\s\-_]+")


def _normalize(text: str) -> str:
    return _STRIP_RE.sub("", text.strip().lower())


def resolve_chain_key(text: str | None) -> str | None:
    """Map a free-form chain name to its registry key.

    Returns ``None`` for anything outside the alias table. There is no
    default chain: an unknown destination must never be guessed.
    """
    if not text:
        return None
    return _ALIASES.get(_normalize(text))


def require_chain_key(text: str | None) -> str:
    """Like :func:`resolve_chain_key` but raises ``ChainResolutionError``."""
    key = resolve_chain_key(text)
    if key is None:
        raise ChainResolutionError(text or "")
    return key


def get_chain(key: str) -> ChainConfig:
    """Get a chain by canonical key. Raises ``KeyError`` if not found."""
    if key not in CHAINS:
        raise KeyError(
            f"Unknown chain '{key}'. Available: {list_chain_names()}"
        )
    return CHAINS[key]


def chain_for_custody_blockchain(blockchain: str) -> ChainConfig | None:
    """Reverse lookup from a custody blockchain id (e.g. ``BASE-SEPOLIA``)."""
    for chain in CHAINS.values():
        if chain.custody_blockchain == blockchain:
            return chain
    return None


def hub_chain() -> ChainConfig:
    return CHAINS[HUB_CHAIN]


def list_chain_names() -> list[str]:
    """Return the keys of all supported chains."""
    return list(CHAINS.keys())
