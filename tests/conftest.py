"""Shared fakes for the custody service, the RPC node and the oracle."""

from __future__ import annotations

import hashlib
import itertools

import pytest

from hub_bridge.bridge.errors import AttestationTimeout
from hub_bridge.bridge.models import Attestation
from hub_bridge.bridge.saga import BridgeOrchestrator
from hub_bridge.config import DeliveryConfig, ExecutorConfig, WalletsConfig
from hub_bridge.wallet.custody import CustodyError
from hub_bridge.wallet.executor import ContractCallExecutor
from hub_bridge.wallet.provisioning import WalletProvisioningService, WalletSetResolver


def address_for(user_id: str) -> str:
    return "0x" + hashlib.sha256(user_id.encode()).hexdigest()[:40]


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeCustody:
    """In-memory custody service.

    Wallets survive across provisioning-service instances, the way the real
    service outlives a process restart.
    """

    def __init__(self):
        self.wallet_sets = [{"id": "ws-1", "name": "ArcHub-Autonomous-v3", "custodyType": "DEVELOPER"}]
        self.wallets: dict[str, list[dict]] = {}
        self.seen_keys: dict[str, list[dict]] = {}
        self.calls: list[tuple] = []
        self.jobs: dict[str, dict] = {}
        self.transfer_failures = 0
        self.fail_signatures: set[str] = set()
        self.native_balance = "0"
        self.token_balances: list[dict] = []
        self.address_override: dict[str, str] = {}
        self.unavailable = False
        self._ids = itertools.count(1)

    def _guard(self):
        if self.unavailable:
            raise CustodyError("Custody API unreachable: connection refused")

    def calls_named(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def list_wallet_sets(self):
        self._guard()
        self.calls.append(("list_wallet_sets",))
        return list(self.wallet_sets)

    async def create_wallet_set(self, name, idempotency_key):
        self.calls.append(("create_wallet_set", name, idempotency_key))
        ws = {"id": f"ws-{next(self._ids)}", "name": name, "custodyType": "DEVELOPER"}
        self.wallet_sets.append(ws)
        return ws

    async def list_wallets(self, wallet_set_id, ref_id):
        self._guard()
        self.calls.append(("list_wallets", wallet_set_id, ref_id))
        return list(self.wallets.get(ref_id, []))

    async def create_wallets(self, wallet_set_id, blockchains, account_type, metadata, idempotency_key):
        self._guard()
        self.calls.append(("create_wallets", wallet_set_id, tuple(blockchains), account_type, metadata, idempotency_key))
        if idempotency_key in self.seen_keys:
            return list(self.seen_keys[idempotency_key])
        user_id = metadata["refId"]
        created = []
        for chain in blockchains:
            created.append({
                "id": f"w-{next(self._ids)}",
                "address": self.address_override.get(chain, address_for(user_id)),
                "blockchain": chain,
                "accountType": account_type,
                "refId": user_id,
                "state": "LIVE",
            })
        self.wallets.setdefault(user_id, []).extend(created)
        self.seen_keys[idempotency_key] = created
        return list(created)

    async def create_contract_execution(self, wallet_id, contract_address, function_signature, parameters, idempotency_key):
        self._guard()
        self.calls.append(("contract", wallet_id, contract_address, function_signature, list(parameters), idempotency_key))
        job_id = f"job-{next(self._ids)}"
        if function_signature in self.fail_signatures:
            self.jobs[job_id] = {"id": job_id, "state": "FAILED", "errorReason": "reverted"}
        else:
            self.jobs[job_id] = {"id": job_id, "state": "COMPLETE", "txHash": f"0x{function_signature[:4].encode().hex()}{job_id[4:]:0>8}"}
        return {"id": job_id, "state": "INITIATED"}

    async def create_transfer(self, wallet_id, blockchain, destination_address, amount, token_address, idempotency_key):
        self.calls.append(("transfer", wallet_id, blockchain, destination_address, amount, token_address, idempotency_key))
        if self.transfer_failures > 0:
            self.transfer_failures -= 1
            raise CustodyError("insufficient balance", status_code=400)
        job_id = f"job-{next(self._ids)}"
        self.jobs[job_id] = {"id": job_id, "state": "COMPLETE", "txHash": f"0xde11{job_id[4:]:0>8}"}
        return {"id": job_id, "state": "INITIATED"}

    async def get_transaction(self, transaction_id):
        return dict(self.jobs[transaction_id])

    async def get_token_balances(self, wallet_id, token_address=None):
        self.calls.append(("balances", wallet_id))
        native = {"token": {"isNative": True, "symbol": "ETH", "decimals": 18}, "amount": self.native_balance}
        return [native, *self.token_balances]

    async def close(self):
        pass


class FakeBalances:
    def __init__(self, token_units: int = 10_000_000, allowance: int = 0):
        self.token_units = token_units
        self.allowance = allowance
        self.reads: list[tuple] = []

    async def get_token_balance(self, address, chain_key):
        self.reads.append(("balance", address, chain_key))
        return self.token_units

    async def get_allowance(self, owner, spender, chain_key):
        self.reads.append(("allowance", owner, spender, chain_key))
        return self.allowance


class FakePoller:
    def __init__(self, complete: bool = True):
        self.complete = complete
        self.calls: list[tuple] = []

    async def await_attestation(self, burn_tx_hash, source_domain):
        self.calls.append((burn_tx_hash, source_domain))
        if not self.complete:
            raise AttestationTimeout(burn_tx_hash, 60)
        return Attestation(message="0xmessage", attestation="0xsignature")

    async def close(self):
        pass


@pytest.fixture
def custody():
    return FakeCustody()


@pytest.fixture
def balances():
    return FakeBalances()


@pytest.fixture
def poller():
    return FakePoller()


@pytest.fixture
def sleep():
    return SleepRecorder()


def make_provisioning(custody, account_type: str = "SCA", chains=None) -> WalletProvisioningService:
    return WalletProvisioningService(
        custody,
        WalletSetResolver(custody, "ArcHub-Autonomous-v3"),
        WalletsConfig(account_type=account_type, chains=chains),
    )


@pytest.fixture
def make_orchestrator(custody, balances, poller, sleep):
    def _make(account_type: str = "SCA", store=None) -> BridgeOrchestrator:
        return BridgeOrchestrator(
            make_provisioning(custody, account_type),
            ContractCallExecutor(custody, ExecutorConfig(poll_interval_seconds=0), sleep=SleepRecorder()),
            poller,
            balances,
            custody,
            store=store,
            delivery_config=DeliveryConfig(),
            sleep=sleep,
        )

    return _make

