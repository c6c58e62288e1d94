from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from common.settings import ConfigError, read_attachment
from etl.abi import InterfaceSchema, load_abi
from etl.decoder import decode_log
from etl.instructions import InstructionSet, load_instructions
from etl.transform import NormalizedRecord, transform_event
from ingestion.checkpoint import Checkpoint, CheckpointError, StorageCheckpoint
from ingestion.fetcher import RpcProvider
from ingestion.models import RawLog
from ingestion.timestamps import BlockTimestampCache
from ingestion.window import MAX_LOOKBACK, BlockWindow, compute_window
from storage.manager import get_storage

logger = logging.getLogger(__name__)


class CycleError(RuntimeError):
    """The cycle stopped before the checkpoint write; the next trigger retries the same window."""


class Provider(Protocol):
    def get_latest_block_number(self) -> int: ...
    def get_logs(self, address: str, from_block: int, to_block: int) -> List[RawLog]: ...
    def get_block_by_hash(self, block_hash: str) -> Dict[str, Any]: ...


class CheckpointStore(Protocol):
    def get_last(self) -> Optional[int]: ...
    def update(self, block_number: int) -> None: ...


class Sink(Protocol):
    def emit(self, event_name: str, record: NormalizedRecord) -> None: ...


@dataclass
class IngestionContext:
    contract_address: str
    schema: InterfaceSchema
    provider: Provider
    checkpoint: CheckpointStore
    sink: Sink
    instructions: InstructionSet = field(default_factory=dict)
    max_lookback: int = MAX_LOOKBACK


EMITTED = "emitted"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class LogResult:
    log: RawLog
    status: str
    record: Optional[NormalizedRecord] = None
    error: Optional[str] = None


@dataclass
class CycleReport:
    window: BlockWindow
    checkpoint_before: Optional[int]
    checkpoint_after: Optional[int]
    results: List[LogResult] = field(default_factory=list)
    timestamp_fetches: int = 0

    def _count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def emitted(self) -> int:
        return self._count(EMITTED)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FAILED)


def build_context(settings, *, config_dir: str = ".", provider=None, storage=None) -> IngestionContext:
    """
    Load the ABI and parsing instructions and wire the collaborators, once, at
    startup. Anything missing or invalid raises ConfigError.
    """
    abi_text = read_attachment(settings.contract.abi_file, config_dir)
    if not abi_text:
        raise ConfigError("Contract ABI not provided!")
    try:
        schema = load_abi(abi_text)
        instructions = load_instructions(
            read_attachment(settings.contract.parsing_instructions_file, config_dir)
        )
    except ValueError as e:
        raise ConfigError(str(e)) from e
    if len(schema) == 0:
        logger.warning("Contract ABI declares no events; every log will be skipped")

    for event_name in instructions:
        if not any(frag.name == event_name for frag in schema.events):
            logger.warning("Parsing instructions reference unknown event %s", event_name)

    if provider is None:
        provider = RpcProvider(settings.rpc.url, timeout=settings.rpc.timeout)

    if storage is None:
        db = settings.db
        if db.driver == "sqlite":
            parent = os.path.dirname(db.sqlite_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
        try:
            storage = get_storage(db.driver, sqlite_path=db.sqlite_path, dsn=db.dsn)
        except ValueError as e:
            raise ConfigError(str(e)) from e
    storage.setup()

    if settings.checkpoint.backend == "file":
        checkpoint = Checkpoint(settings.checkpoint.file)
    else:
        checkpoint = StorageCheckpoint(storage)

    return IngestionContext(
        contract_address=settings.contract.address,
        schema=schema,
        provider=provider,
        checkpoint=checkpoint,
        sink=storage,
        instructions=instructions,
        max_lookback=settings.ingestion.max_lookback,
    )


def process_log(ctx: IngestionContext, log: RawLog, ts: int) -> LogResult:
    """Decode, transform and emit one log. Never raises: failures come back as a FAILED result."""
    try:
        event = decode_log(ctx.schema, log)
        if event is None:
            return LogResult(log=log, status=SKIPPED)
        record = transform_event(event, ctx.instructions, ts, log.blockNumber, log.blockHash)
        ctx.sink.emit(event.name, record)
        return LogResult(log=log, status=EMITTED, record=record)
    except Exception as e:
        logger.exception(
            "Couldn't process log block=%s tx=%s index=%s",
            log.blockNumber, log.transactionHash, log.logIndex,
        )
        return LogResult(log=log, status=FAILED, error=f"{type(e).__name__}: {e}")


def run_cycle(ctx: IngestionContext) -> CycleReport:
    """
    One ingestion cycle: head -> checkpoint -> window -> logs -> records -> checkpoint.

    Head query, checkpoint read, log fetch and block timestamp failures raise
    CycleError with the checkpoint untouched. Per-log failures are isolated and the checkpoint
    still advances to the head once every log was seen.
    """
    try:
        latest = ctx.provider.get_latest_block_number()
    except Exception as e:
        raise CycleError(f"Failed to query the chain head: {e}") from e

    try:
        stored = ctx.checkpoint.get_last()
    except CheckpointError as e:
        raise CycleError(str(e)) from e
    # a fresh install starts from the current head, not genesis
    last = latest if stored is None else stored

    window = compute_window(last, latest, ctx.max_lookback)
    report = CycleReport(window=window, checkpoint_before=stored, checkpoint_after=stored)
    if window.is_empty:
        logger.info("Chain head %d is behind checkpoint %d, nothing to ingest", latest, last)
        return report

    try:
        logs = ctx.provider.get_logs(ctx.contract_address, window.from_block, window.to_block)
    except Exception as e:
        raise CycleError(f"Failed to fetch logs for blocks {window.from_block}..{window.to_block}: {e}") from e

    timestamps = BlockTimestampCache(ctx.provider.get_block_by_hash)
    for log in logs:
        try:
            ts = timestamps.get(log.blockHash)
        except Exception as e:
            # a log without a timestamp is never emitted, so the window must be retried
            raise CycleError(f"Failed to fetch timestamp for block {log.blockHash}: {e}") from e
        report.results.append(process_log(ctx, log, ts))
    report.timestamp_fetches = timestamps.fetches

    try:
        ctx.checkpoint.update(latest)
    except CheckpointError as e:
        raise CycleError(str(e)) from e
    report.checkpoint_after = latest

    logger.info(
        "Blocks %d..%d logs %d emitted %d skipped %d failed %d",
        window.from_block, window.to_block, len(logs), report.emitted, report.skipped, report.failed,
    )
    return report
