import pytest
from eth_utils import to_checksum_address

from chain_fakes import (
    ALICE, BOB, CONTRACT, TRANSFER_ABI, FakeProvider, MemoryCheckpoint, MemorySink,
    block_hash, make_log, transfer_log,
)
from etl.abi import InterfaceSchema
from etl.instructions import parse_instructions
from etl.pipeline import EMITTED, FAILED, SKIPPED, CycleError, IngestionContext, run_cycle

INSTRUCTIONS = parse_instructions({"Transfer": {
    "to": {"isDistinctId": True},
    "amount": {"argType": "eth"},
}})


def _ctx(provider, checkpoint=None, sink=None, instructions=INSTRUCTIONS):
    return IngestionContext(
        contract_address=CONTRACT,
        schema=InterfaceSchema.from_abi([TRANSFER_ABI]),
        provider=provider,
        checkpoint=checkpoint if checkpoint is not None else MemoryCheckpoint(),
        sink=sink if sink is not None else MemorySink(),
        instructions=instructions,
    )


def test_first_run_starts_at_head():
    provider = FakeProvider(head=5000, logs=[transfer_log(block_number=10)])
    cp = MemoryCheckpoint()
    sink = MemorySink()
    report = run_cycle(_ctx(provider, cp, sink))
    assert provider.log_calls == [(CONTRACT, 5000, 5000)]
    assert sink.events == []
    assert cp.writes == [5000]
    assert report.checkpoint_before is None
    assert report.checkpoint_after == 5000


def test_transfer_scenario_end_to_end():
    bh = block_hash(4990)
    provider = FakeProvider(head=5000, logs=[transfer_log(to=ALICE, amount=2 * 10**18, block_number=4990)],
                            timestamps={bh: 1_700_000_123})
    cp = MemoryCheckpoint(4980)
    sink = MemorySink()
    report = run_cycle(_ctx(provider, cp, sink))

    assert report.emitted == 1
    name, record = sink.events[0]
    assert name == "Transfer"
    assert record.event_name == "Transfer"
    assert record.properties() == {
        "$timestamp": 1_700_000_123,
        "blockNumber": 4990,
        "blockHash": bh,
        "to": to_checksum_address(ALICE),
        "amount": "2",
        "distinct_id": to_checksum_address(ALICE),
    }
    assert cp.value == 5000


def test_clamped_window_when_far_behind():
    provider = FakeProvider(head=10_000)
    cp = MemoryCheckpoint(100)
    report = run_cycle(_ctx(provider, cp))
    assert provider.log_calls == [(CONTRACT, 9000, 10_000)]
    assert report.window.clamped
    assert cp.value == 10_000


def test_unknown_topic_emits_nothing_and_raises_nothing():
    log = make_log("Other(uint256)", data_types=("uint256",), data_values=(1,), block_number=995)
    provider = FakeProvider(head=1000, logs=[log])
    sink = MemorySink()
    cp = MemoryCheckpoint(990)
    report = run_cycle(_ctx(provider, cp, sink))
    assert sink.events == []
    assert [r.status for r in report.results] == [SKIPPED]
    assert report.failed == 0
    assert cp.value == 1000


def test_one_timestamp_fetch_per_block_hash():
    logs = [transfer_log(block_number=995, log_index=i) for i in range(5)]
    logs.append(transfer_log(block_number=996))
    provider = FakeProvider(head=1000, logs=logs)
    report = run_cycle(_ctx(provider, MemoryCheckpoint(990)))
    assert report.emitted == 6
    assert provider.block_calls == [block_hash(995), block_hash(996)]
    assert report.timestamp_fetches == 2


def test_timestamp_cache_does_not_outlive_cycle():
    provider = FakeProvider(head=1000, logs=[transfer_log(block_number=1000)])
    ctx = _ctx(provider, MemoryCheckpoint(999))
    run_cycle(ctx)
    run_cycle(ctx)
    assert provider.block_calls == [block_hash(1000), block_hash(1000)]


def test_second_run_without_new_logs_is_idempotent():
    provider = FakeProvider(head=1000, logs=[transfer_log(block_number=995)])
    cp = MemoryCheckpoint(990)
    sink = MemorySink()
    ctx = _ctx(provider, cp, sink)
    run_cycle(ctx)
    assert len(sink.events) == 1

    provider.logs = []
    report = run_cycle(ctx)
    assert report.emitted == 0
    assert len(sink.events) == 1
    assert cp.value == 1000
    assert report.checkpoint_before == report.checkpoint_after == 1000


def test_log_in_head_block_is_emitted_again_on_unchanged_head():
    # the window includes the checkpoint block, so delivery is at-least-once there
    provider = FakeProvider(head=1000, logs=[transfer_log(block_number=1000)])
    cp = MemoryCheckpoint(990)
    sink = MemorySink()
    ctx = _ctx(provider, cp, sink)
    run_cycle(ctx)
    report = run_cycle(ctx)
    assert (report.window.from_block, report.window.to_block) == (1000, 1000)
    assert report.emitted == 1
    assert [rec.block_number for _, rec in sink.events] == [1000, 1000]
    assert cp.writes == [1000, 1000]


def test_failures_are_isolated_per_log():
    bad_data = make_log("Transfer(address,uint256)", indexed_topics=(), block_number=994)
    logs = [
        transfer_log(to=ALICE, block_number=993),
        bad_data,
        transfer_log(to=BOB, block_number=995),
        transfer_log(to=ALICE, block_number=996),
    ]
    provider = FakeProvider(head=1000, logs=logs)
    sink = MemorySink(fail_on=lambda name, rec: rec.block_number == 995)
    cp = MemoryCheckpoint(990)
    report = run_cycle(_ctx(provider, cp, sink))

    assert [r.status for r in report.results] == [EMITTED, FAILED, FAILED, EMITTED]
    assert "DecodeError" in report.results[1].error
    assert [rec.block_number for _, rec in sink.events] == [993, 996]
    assert cp.value == 1000


def test_coercion_failure_is_isolated():
    instructions = parse_instructions({"Transfer": {"amount": {"argType": "string"}}})
    provider = FakeProvider(head=1000, logs=[transfer_log(block_number=995), transfer_log(block_number=996)])
    cp = MemoryCheckpoint(990)
    report = run_cycle(_ctx(provider, cp, instructions=instructions))
    assert report.failed == 2
    assert cp.value == 1000


def test_timestamp_failure_aborts_without_checkpoint_write():
    provider = FakeProvider(head=1000, logs=[transfer_log(block_number=995)])
    provider.fail_blocks = {block_hash(995)}
    cp = MemoryCheckpoint(990)
    sink = MemorySink()
    ctx = _ctx(provider, cp, sink)
    with pytest.raises(CycleError):
        run_cycle(ctx)
    assert cp.writes == []
    assert sink.events == []

    provider.fail_blocks = set()
    report = run_cycle(ctx)
    assert report.window.from_block == 990
    assert len(sink.events) == 1
    assert cp.value == 1000


def test_head_failure_aborts_without_checkpoint_write():
    provider = FakeProvider(head=1000)
    provider.fail_head = True
    cp = MemoryCheckpoint(990)
    with pytest.raises(CycleError):
        run_cycle(_ctx(provider, cp))
    assert cp.writes == []


def test_log_fetch_failure_aborts_and_retries_same_window():
    provider = FakeProvider(head=1000, logs=[transfer_log(block_number=995)])
    provider.fail_logs = True
    cp = MemoryCheckpoint(990)
    sink = MemorySink()
    ctx = _ctx(provider, cp, sink)
    with pytest.raises(CycleError):
        run_cycle(ctx)
    assert cp.writes == []

    provider.fail_logs = False
    run_cycle(ctx)
    assert provider.log_calls == [(CONTRACT, 990, 1000), (CONTRACT, 990, 1000)]
    assert len(sink.events) == 1


def test_head_behind_checkpoint_leaves_checkpoint():
    provider = FakeProvider(head=900)
    cp = MemoryCheckpoint(1000)
    report = run_cycle(_ctx(provider, cp))
    assert report.window.is_empty
    assert provider.log_calls == []
    assert cp.writes == []
