"""
Bulk Ledger Loader
==================

Drains the public inventory into the ledger so that every index the gate
hands out resolves to real, queryable content.

Flow:
1. Resume point = max(checkpoint.lastConfirmedIndex, observed ledger count)
   (the ledger is the source of truth when they disagree)
2. Split the remaining public items into fixed-size batches, in index order
   (indices the ledger already holds are skipped)
3. Publish each batch (fire-and-forget), retrying transient failures with
   exponential backoff up to MAX_SEND_ATTEMPTS. On exhaustion: persist the
   checkpoint and stop with LedgerWriteExhausted (resumable)
4. Every VERIFY_EVERY_BATCHES: re-read the loaded count and log drift
   (writes may still be in flight, drift is never fatal)
5. Every RECONCILE_EVERY_BATCHES and after the last batch: fetch populated
   indices, compute the missing ones and re-send exactly those (gap healing)
6. Done when the observed count equals the expected count; persist
   complete=true

Throughput:
- Single logical writer; at most MAX_IN_FLIGHT batches dispatched together
- SEND_DELAY_SECONDS between dispatches (avoids provider-side 429s)
- Stop is coarse: in-flight batches finish or fail naturally, then the run
  returns with its checkpoint persisted

Idempotence: identical content is always re-sent at identical indices, and an
index whose observed content differs from expectation is reported as a
conflict and never overwritten.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mint_gateway.config import GatewayConfig
from mint_gateway.errors import (
    LedgerError,
    LedgerWriteExhausted,
    LedgerWriteFailure,
    ReconciliationMismatch,
)
from mint_gateway.ledger.adapter import (
    LedgerAdapter,
    LedgerBatch,
    LedgerEntry,
    LoadedState,
    group_runs,
)
from mint_gateway.models.inventory import Inventory
from mint_gateway.tasks.checkpoint import CheckpointStore, ProgressCheckpoint

logger = logging.getLogger(__name__)


@dataclass
class LoaderSettings:
    batch_size: int = 10
    heal_batch_size: int = 1
    send_delay_seconds: float = 0.05
    max_in_flight: int = 1
    max_send_attempts: int = 5
    backoff_min_seconds: float = 1.0
    backoff_max_seconds: float = 30.0
    verify_every_batches: int = 20
    reconcile_every_batches: int = 50
    settle_seconds: float = 10.0
    max_heal_passes: int = 5
    name_prefix: str = ""
    uri_prefix: str = ""

    @classmethod
    def from_config(cls, config: GatewayConfig) -> "LoaderSettings":
        return cls(
            batch_size=config.BATCH_SIZE,
            heal_batch_size=config.HEAL_BATCH_SIZE,
            send_delay_seconds=config.SEND_DELAY_SECONDS,
            max_in_flight=config.MAX_IN_FLIGHT,
            max_send_attempts=config.MAX_SEND_ATTEMPTS,
            backoff_min_seconds=config.BACKOFF_MIN_SECONDS,
            backoff_max_seconds=config.BACKOFF_MAX_SECONDS,
            verify_every_batches=config.VERIFY_EVERY_BATCHES,
            reconcile_every_batches=config.RECONCILE_EVERY_BATCHES,
            settle_seconds=config.SETTLE_SECONDS,
            max_heal_passes=config.MAX_HEAL_PASSES,
            name_prefix=config.NAME_PREFIX,
            uri_prefix=config.URI_PREFIX,
        )


@dataclass
class ReconcileResult:
    missing: List[int] = field(default_factory=list)
    conflicts: List[int] = field(default_factory=list)
    healed: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    observed: int = 0
    error: Optional[str] = None


@dataclass
class LoaderReport:
    expected: int
    resumed_from: int = 0
    batches_sent: int = 0
    items_sent: int = 0
    drift_events: int = 0
    reconcile_passes: int = 0
    healed: int = 0
    conflicts: List[int] = field(default_factory=list)
    final_loaded: int = 0
    complete: bool = False
    stopped: bool = False
    elapsed_seconds: float = 0.0


class BulkLedgerLoader:
    """
    Resumable, batched, self-healing publisher.

    Usage:
        loader = BulkLedgerLoader(ledger, FileCheckpointStore(path), LoaderSettings.from_config(cfg))
        report = await loader.run(inventory)
    """

    def __init__(
        self,
        ledger: LedgerAdapter,
        checkpoints: CheckpointStore,
        settings: Optional[LoaderSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.ledger = ledger
        self.checkpoints = checkpoints
        self.settings = settings or LoaderSettings()
        self._sleep = sleep
        self._stop = asyncio.Event()

    def stop(self) -> None:
        """Request a stop at the next batch boundary."""
        self._stop.set()

    # ============================================================
    # Helpers
    # ============================================================

    def expected_entries(self, inventory: Inventory) -> List[LedgerEntry]:
        """Ledger content for every public position, in order."""
        return [
            LedgerEntry.from_item(item, self.settings.name_prefix, self.settings.uri_prefix)
            for item in inventory.public_items
        ]

    def _retrying(self) -> AsyncRetrying:
        s = self.settings
        return AsyncRetrying(
            stop=stop_after_attempt(s.max_send_attempts),
            wait=wait_exponential(multiplier=s.backoff_min_seconds, min=s.backoff_min_seconds, max=s.backoff_max_seconds),
            retry=retry_if_exception_type(LedgerWriteFailure),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

    @staticmethod
    def _log_retry(retry_state) -> None:
        exc = retry_state.outcome.exception()
        logger.warning(
            f"Ledger call failed (attempt {retry_state.attempt_number}): {exc}. "
            f"Retrying in {retry_state.next_action.sleep:.1f}s..."
        )

    async def _publish(self, batch: LedgerBatch) -> None:
        async for attempt in self._retrying():
            with attempt:
                await self.ledger.publish_batch(batch)

    async def _fetch_state(self) -> LoadedState:
        async for attempt in self._retrying():
            with attempt:
                return await self.ledger.fetch_loaded_state()
        raise LedgerError("Ledger state unavailable")

    # ============================================================
    # Reconciliation
    # ============================================================

    def _observe(self, state: LoadedState, expected: List[LedgerEntry], upto: int) -> None:
        """
        Raises:
            ReconciliationMismatch: Indices below ``upto`` are missing or differ
        """
        missing, conflicts = [], []
        for index in range(upto):
            entry = state.entries.get(index)
            if entry is None or entry.is_empty:
                missing.append(index)
            elif entry != expected[index]:
                conflicts.append(index)

        if missing or conflicts:
            raise ReconciliationMismatch(
                f"{len(missing)} missing, {len(conflicts)} conflicting of {upto}",
                missing=missing,
                conflicts=conflicts,
            )

    async def reconcile(
        self, expected: List[LedgerEntry], upto: Optional[int] = None, heal: bool = True
    ) -> ReconcileResult:
        """
        Re-publish exactly the indices in ``[0, upto)`` that the ledger does
        not hold. Failures are logged and left for the next cycle.

        With ``heal=False`` the mismatch is only reported.
        """
        upto = len(expected) if upto is None else min(upto, len(expected))
        result = ReconcileResult()

        try:
            state = await self._fetch_state()
        except LedgerError as e:
            result.error = str(e)
            logger.error(f"Reconciliation skipped, could not read ledger state: {e}")
            return result

        result.observed = state.items_loaded
        try:
            self._observe(state, expected, upto)
            return result
        except ReconciliationMismatch as mismatch:
            result.missing = mismatch.missing
            result.conflicts = mismatch.conflicts
            logger.warning(f"Reconciliation mismatch: {mismatch}")

        for index in result.conflicts:
            logger.error(
                f"Index {index} holds {state.entries[index]} but expected {expected[index]}; "
                f"not overwriting"
            )

        if not heal:
            return result

        for run in group_runs(result.missing, self.settings.heal_batch_size):
            batch = LedgerBatch(start_index=run[0], entries=tuple(expected[i] for i in run))
            try:
                await self._publish(batch)
                result.healed.extend(run)
            except LedgerError as e:
                result.failed.extend(run)
                logger.error(f"Failed to fill [{batch.start_index}, {batch.end_index}): {e}")
            await self._sleep(self.settings.send_delay_seconds)

        logger.info(
            f"Gap heal: filled {len(result.healed)}/{len(result.missing)} "
            f"({len(result.failed)} failed, {len(result.conflicts)} conflicts)"
        )
        return result

    # ============================================================
    # Main run
    # ============================================================

    async def run(self, inventory: Inventory) -> LoaderReport:
        """
        Publish ``inventory`` until the ledger holds every public item.

        Returns:
            LoaderReport (``complete`` is False if gaps remain after
            MAX_HEAL_PASSES or the run was stopped)

        Raises:
            LedgerWriteExhausted: A batch could not be published; the
                checkpoint has been persisted
        """
        s = self.settings
        started = time.monotonic()
        expected = self.expected_entries(inventory)
        total = len(expected)
        report = LoaderReport(expected=total)

        checkpoint = self.checkpoints.load()
        state = await self._fetch_state()
        resume = min(max(checkpoint.last_confirmed_index, state.items_loaded), total)
        report.resumed_from = resume

        print("=" * 80)
        print("📤 BULK LEDGER LOAD")
        print("=" * 80)
        print(f"   Expected items: {total}")
        print(f"   On ledger: {state.items_loaded}/{state.items_available}")
        print(f"   Checkpoint: {checkpoint.last_confirmed_index} (complete={checkpoint.complete})")
        print(f"   Resuming from: {resume}")
        print(f"   Batch size: {s.batch_size}, in-flight: {s.max_in_flight}, delay: {s.send_delay_seconds}s")
        print("=" * 80)

        checkpoint.last_confirmed_index = resume
        # Already-populated indices are left to reconciliation, never re-sent
        populated = state.populated
        pending = [i for i in range(resume, total) if i not in populated]
        batches = [
            LedgerBatch(start_index=run[0], entries=tuple(expected[i] for i in run))
            for run in group_runs(pending, s.batch_size)
        ]
        sent_through = resume

        for window_start in range(0, len(batches), s.max_in_flight):
            if self._stop.is_set():
                logger.info(f"Stop requested, halting at {sent_through}/{total}")
                report.stopped = True
                break

            window = batches[window_start:window_start + s.max_in_flight]
            results = await asyncio.gather(
                *[self._publish(batch) for batch in window], return_exceptions=True
            )

            # Checkpoint only advances over a contiguous prefix of successes
            failure = None
            for batch, outcome in zip(window, results):
                if isinstance(outcome, BaseException):
                    failure = failure or (batch, outcome)
                    continue
                report.batches_sent += 1
                report.items_sent += len(batch)
                if failure is None:
                    sent_through = batch.end_index

            checkpoint.last_confirmed_index = sent_through
            self.checkpoints.save(checkpoint)

            if failure is not None:
                batch, error = failure
                if not isinstance(error, LedgerError):
                    raise error
                if isinstance(error, LedgerWriteFailure):
                    reason = f"failed after {s.max_send_attempts} attempts"
                else:
                    reason = "was rejected (not retried)"
                logger.error(
                    f"Batch at {batch.start_index} {reason}: {error}. "
                    f"Checkpoint saved at {sent_through}."
                )
                raise LedgerWriteExhausted(
                    f"Batch at {batch.start_index} {reason}: {error}",
                    start_index=batch.start_index,
                    checkpoint=checkpoint,
                ) from error

            await self._sleep(s.send_delay_seconds)

            done = window_start + len(window)
            if s.verify_every_batches and done % s.verify_every_batches < len(window):
                await self._check_drift(sent_through, total, report)
            if s.reconcile_every_batches and done % s.reconcile_every_batches < len(window):
                self._merge(report, await self.reconcile(expected, upto=sent_through))

        if report.stopped:
            report.final_loaded = (await self._fetch_state()).items_loaded
            report.elapsed_seconds = time.monotonic() - started
            return report

        await self._finish(expected, checkpoint, report)
        report.elapsed_seconds = time.monotonic() - started

        print("=" * 80)
        print(f"{'✅ ALL ITEMS LOADED' if report.complete else '⚠️  LOAD INCOMPLETE'}")
        print(f"   On ledger: {report.final_loaded}/{total}")
        print(f"   Sent: {report.items_sent} items in {report.batches_sent} batches")
        print(f"   Healed: {report.healed}, conflicts: {len(report.conflicts)}")
        print(f"   Elapsed: {report.elapsed_seconds:.1f}s")
        if not report.complete:
            print(f"   {total - report.final_loaded} missing. Run again to fill gaps.")
        print("=" * 80)

        return report

    async def _check_drift(self, sent_through: int, total: int, report: LoaderReport) -> None:
        try:
            state = await self._fetch_state()
        except LedgerError as e:
            logger.warning(f"Drift check skipped: {e}")
            return

        if state.items_loaded != sent_through:
            report.drift_events += 1
            logger.warning(
                f"Ledger drift: {state.items_loaded} loaded, {sent_through} sent "
                f"(writes may still be in flight)"
            )
        else:
            logger.info(f"On ledger: {state.items_loaded}/{total}")

    @staticmethod
    def _merge(report: LoaderReport, result: ReconcileResult) -> None:
        report.reconcile_passes += 1
        report.healed += len(result.healed)
        report.conflicts = sorted(set(report.conflicts) | set(result.conflicts))

    async def _finish(self, expected: List[LedgerEntry], checkpoint: ProgressCheckpoint, report: LoaderReport) -> None:
        """Settle, then reconcile until complete or out of heal passes."""
        s = self.settings
        total = len(expected)

        for heal_pass in range(s.max_heal_passes + 1):
            await self._sleep(s.settle_seconds)

            result = await self.reconcile(expected, heal=heal_pass < s.max_heal_passes)
            self._merge(report, result)
            if result.error is not None:
                continue

            report.final_loaded = result.observed
            if not result.missing and result.observed >= total:
                report.complete = True
                break

        checkpoint.complete = report.complete
        if report.complete:
            checkpoint.last_confirmed_index = total
        self.checkpoints.save(checkpoint)
