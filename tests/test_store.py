import asyncio

import pytest

from conftest import FakePoller, SleepRecorder, make_provisioning
from hub_bridge.bridge.models import SagaOutcome, SagaStage
from hub_bridge.bridge.requests import BridgeRequest, ResumeRequest
from hub_bridge.bridge.saga import BURN_SIGNATURE, MINT_SIGNATURE, BridgeOrchestrator
from hub_bridge.config import ExecutorConfig
from hub_bridge.storage.database import Database
from hub_bridge.storage.store import BridgeStore
from hub_bridge.wallet.executor import ContractCallExecutor

RECIPIENT = "0x" + "42" * 20


def _with_store(coro_factory):
    async def run():
        db = Database(":memory:")
        await db.connect()
        try:
            return await coro_factory(BridgeStore(db))
        finally:
            await db.close()

    return asyncio.run(run())


def test_record_written_at_burn_and_updated(make_orchestrator):
    async def scenario(store):
        saga = await make_orchestrator(store=store).bridge(
            BridgeRequest(amount="1.25", destination_chain="base", recipient=RECIPIENT), "alice"
        )
        return saga, await store.get(saga.burn_tx_hash), await store.list(user_id="alice")

    saga, record, listed = _with_store(scenario)
    assert record.amount == "1.25"
    assert record.recipient == RECIPIENT
    assert record.stage is SagaStage.DELIVERED
    assert record.outcome is SagaOutcome.DELIVERED
    assert record.delivery_tx_hash == saga.delivery_tx_hash
    assert [r.burn_tx_hash for r in listed] == [saga.burn_tx_hash]


def test_nothing_recorded_before_burn(make_orchestrator, balances):
    balances.token_units = 0

    async def scenario(store):
        await make_orchestrator(store=store).bridge(BridgeRequest(amount="1", destination_chain="base"), "alice")
        return await store.list()

    assert _with_store(scenario) == []


def test_resume_after_attestation_timeout_uses_recorded_amount(make_orchestrator, custody, poller):
    poller.complete = False

    async def scenario(store):
        orchestrator = make_orchestrator(store=store)
        failed = await orchestrator.bridge(
            BridgeRequest(amount="0.75", destination_chain="base", recipient=RECIPIENT), "alice"
        )
        stored = await store.get(failed.burn_tx_hash)
        poller.complete = True
        resumed = await orchestrator.resume(failed.burn_tx_hash, "alice")
        return failed, stored, resumed

    failed, stored, resumed = _with_store(scenario)
    assert failed.failed_at is SagaStage.ATTESTED
    assert stored.outcome is SagaOutcome.FAILED
    assert stored.failed_at is SagaStage.ATTESTED

    assert resumed.outcome is SagaOutcome.DELIVERED
    assert resumed.burn_tx_hash == failed.burn_tx_hash
    (transfer,) = custody.calls_named("transfer")
    assert transfer[4] == "0.75"
    signatures = [c[3] for c in custody.calls_named("contract")]
    assert signatures.count(BURN_SIGNATURE) == 1
    assert signatures.count(MINT_SIGNATURE) == 1


def test_resume_after_delivery_failure_skips_mint(make_orchestrator, custody):
    custody.transfer_failures = 5

    async def scenario(store):
        orchestrator = make_orchestrator(store=store)
        failed = await orchestrator.bridge(
            BridgeRequest(amount="3", destination_chain="base", recipient=RECIPIENT), "alice"
        )
        resumed = await orchestrator.resume(ResumeRequest(burn_tx_hash=failed.burn_tx_hash), "alice")
        return failed, resumed

    failed, resumed = _with_store(scenario)
    assert failed.failed_at is SagaStage.DELIVERED
    assert resumed.outcome is SagaOutcome.DELIVERED
    signatures = [c[3] for c in custody.calls_named("contract")]
    assert signatures.count(MINT_SIGNATURE) == 1


def test_resume_refuses_completed_bridge(make_orchestrator):
    async def scenario(store):
        orchestrator = make_orchestrator(store=store)
        saga = await orchestrator.bridge(BridgeRequest(amount="1", destination_chain="base"), "alice")
        with pytest.raises(ValueError):
            await orchestrator.resume(saga.burn_tx_hash, "alice")

    _with_store(scenario)


def test_resume_unknown_hash_requires_full_details(make_orchestrator):
    async def scenario(store):
        orchestrator = make_orchestrator(store=store)
        with pytest.raises(KeyError):
            await orchestrator.resume("0x" + "99" * 32, "alice")

        request = ResumeRequest(
            burn_tx_hash="0x" + "99" * 32,
            source_chain="arc",
            destination_chain="base",
            amount="2",
            recipient=RECIPIENT,
        )
        saga = await orchestrator.resume(request, "alice")
        return saga, await store.get(request.burn_tx_hash)

    saga, record = _with_store(scenario)
    assert saga.outcome is SagaOutcome.DELIVERED
    assert record.amount == "2"


def test_resume_without_store_needs_self_contained_request(custody, balances, sleep):
    orchestrator = BridgeOrchestrator(
        make_provisioning(custody),
        ContractCallExecutor(custody, ExecutorConfig(poll_interval_seconds=0), sleep=SleepRecorder()),
        FakePoller(),
        balances,
        custody,
        sleep=sleep,
    )
    with pytest.raises(KeyError):
        asyncio.run(orchestrator.resume("0x" + "77" * 32, "alice"))


def test_resume_refuses_someone_elses_bridge(make_orchestrator, custody, poller):
    poller.complete = False

    async def scenario(store):
        orchestrator = make_orchestrator(store=store)
        failed = await orchestrator.bridge(BridgeRequest(amount="1", destination_chain="base"), "alice")
        with pytest.raises(PermissionError):
            await orchestrator.resume(
                ResumeRequest(
                    burn_tx_hash=failed.burn_tx_hash,
                    source_chain="arc",
                    destination_chain="base",
                    amount="1",
                    recipient=RECIPIENT,
                ),
                "bob",
            )
        after = await store.get(failed.burn_tx_hash)
        poller.complete = True
        resumed = await orchestrator.resume(failed.burn_tx_hash, "alice")
        return failed, after, resumed

    failed, after, resumed = _with_store(scenario)
    assert after.user_id == "alice"
    assert after.recipient == failed.recipient
    assert resumed.outcome is SagaOutcome.MINTED
    assert custody.calls_named("transfer") == []


def test_upsert_never_changes_owner(make_orchestrator, poller):
    poller.complete = False

    async def scenario(store):
        failed = await make_orchestrator(store=store).bridge(
            BridgeRequest(amount="1", destination_chain="base"), "alice"
        )
        failed.user_id = "bob"
        failed.recipient = RECIPIENT
        await store.save(failed)
        return await store.get(failed.burn_tx_hash)

    record = _with_store(scenario)
    assert record.user_id == "alice"
    assert record.recipient != RECIPIENT


def test_hash_case_does_not_create_a_second_record(make_orchestrator, poller):
    poller.complete = False
    burn = "0x" + "Ab" * 32
    details = dict(source_chain="arc", destination_chain="base", amount="2", recipient=RECIPIENT)

    async def scenario(store):
        orchestrator = make_orchestrator(store=store)
        await orchestrator.resume(ResumeRequest(burn_tx_hash=burn, **details), "alice")
        await orchestrator.resume(ResumeRequest(burn_tx_hash=burn.upper().replace("0X", "0x"), **details), "alice")
        return await store.list()

    records = _with_store(scenario)
    assert [r.burn_tx_hash for r in records] == [burn.lower()]


def test_unexpected_error_is_recorded_not_left_pending(make_orchestrator, custody):
    original = custody.get_transaction
    polls = []

    async def garbled_after_burn(transaction_id):
        polls.append(transaction_id)
        if len(polls) > 2:
            raise ValueError("garbled transaction body")
        return await original(transaction_id)

    custody.get_transaction = garbled_after_burn

    async def scenario(store):
        orchestrator = make_orchestrator(store=store)
        saga = await orchestrator.bridge(
            BridgeRequest(amount="1", destination_chain="base"), "alice", await_completion=False
        )
        await orchestrator.wait_for_background()
        return saga, await store.get(saga.burn_tx_hash)

    saga, record = _with_store(scenario)
    assert saga.outcome is SagaOutcome.FAILED
    assert record.outcome is SagaOutcome.FAILED
    assert record.failed_at is SagaStage.MINTED
    assert "garbled transaction body" in record.error


def test_unopened_database_raises():
    with pytest.raises(RuntimeError):
        asyncio.run(Database(":memory:").fetch_all("SELECT 1"))
