import pytest

from hub_bridge.bridge.errors import ChainResolutionError
from hub_bridge.wallet.chains import (
    CHAINS,
    chain_for_custody_blockchain,
    get_chain,
    hub_chain,
    require_chain_key,
    resolve_chain_key,
)


@pytest.mark.parametrize(
    "text",
    ["Base", "base", "  BASE ", "base-sepolia", "Base_Sepolia", "base sepolia", "baseSepolia"],
)
def test_resolver_ignores_case_whitespace_and_separators(text):
    assert resolve_chain_key(text) == "baseSepolia"


@pytest.mark.parametrize(
    "text,key",
    [
        ("Sepolia", "ethereumSepolia"),
        ("eth", "ethereumSepolia"),
        ("arc", "arcTestnet"),
        ("Arbitrum", "arbitrumSepolia"),
        ("OP", "optimismSepolia"),
        ("fuji", "avalancheFuji"),
        ("matic", "polygonAmoy"),
    ],
)
def test_resolver_aliases(text, key):
    assert resolve_chain_key(text) == key


@pytest.mark.parametrize("text", ["solana", "mainnet", "", None, "bas"])
def test_unknown_chain_is_unresolved_not_guessed(text):
    assert resolve_chain_key(text) is None


def test_require_chain_key_raises():
    with pytest.raises(ChainResolutionError) as exc:
        require_chain_key("dogechain")
    assert exc.value.chain == "dogechain"
    assert not exc.value.retryable


def test_every_canonical_key_resolves_to_itself():
    for key in CHAINS:
        assert resolve_chain_key(key) == key


def test_registry_lookups():
    assert hub_chain().key == "arcTestnet"
    assert hub_chain().native_decimals == 18
    assert hub_chain().token_decimals == 6
    assert chain_for_custody_blockchain("BASE-SEPOLIA").key == "baseSepolia"
    assert chain_for_custody_blockchain("SOL-DEVNET") is None
    assert get_chain("baseSepolia").tx_url("0xabc") == "https://sepolia.basescan.org/tx/0xabc"
    with pytest.raises(KeyError):
        get_chain("base")


def test_domains_are_unique():
    domains = [c.domain for c in CHAINS.values()]
    assert len(domains) == len(set(domains))
