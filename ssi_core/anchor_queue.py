"""
Anchor Queue
============

Buffers issued credentials and commits their fingerprints to the ledger in
batches.

States: Idle <-> Flushing. At most one flush is in flight; size-triggered and
timer-triggered flush requests collapse into it. The pending list and the
in-flight flag are only touched on the event loop thread, and the flag check,
snapshot and flag set happen without an intervening await.

On success exactly the snapshotted prefix is drained; credentials enqueued while
the batch was in flight stay pending. On failure the batch stays in place, in
order, for the next trigger.

A fingerprint is never pending and confirmed at the same time: enqueue skips
credentials whose fingerprint is already queued or locally known as anchored.
The local anchor records are a bounded cache; the ledger stays authoritative
for is_anchored().
"""

import asyncio
import contextlib
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .config import Settings
from .credential_codec import Credential, CredentialCodec
from .errors import (
    LedgerError,
    LedgerRejected,
    LedgerTimeout,
    LedgerUnavailable,
    QueueFlushConflict,
)
from .ledger_client import AnchorStatus, ConfirmationStatus, LedgerClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnchorRecord:
    fingerprint: str
    transaction_id: str
    block_height: int
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "credentialHash": "0x" + self.fingerprint,
            "txHash": self.transaction_id,
            "blockNumber": self.block_height,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class RevocationRecord:
    fingerprint: str
    transaction_id: str
    block_height: int
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "credentialHash": "0x" + self.fingerprint,
            "revoked": True,
            "txHash": self.transaction_id,
            "blockNumber": self.block_height,
            "timestamp": self.timestamp,
        }


@dataclass
class FlushResult:
    """What one flush() call did"""
    attempted: int = 0
    records: List[AnchorRecord] = field(default_factory=list)
    error: Optional[LedgerError] = None
    skipped: str = ""  # "empty" | "in_flight" when nothing was submitted

    @property
    def success(self) -> bool:
        return self.attempted > 0 and self.error is None


class AnchorQueue:
    """
    Owns the pending queue and all ledger writes for anchoring

    Args:
        ledger: LedgerClient used for submissions and queries
        batch_threshold: Queue size that triggers a flush
        flush_interval: Seconds between timer-driven flushes
        confirmation_timeout: Upper bound on waiting for a confirmation
        submit_timeout: Upper bound on a single submission call
        anchor_cache_size: How many AnchorRecords are remembered locally
    """

    def __init__(
        self,
        ledger: LedgerClient,
        codec: Optional[CredentialCodec] = None,
        batch_threshold: int = 5,
        flush_interval: float = 60.0,
        confirmation_timeout: float = 120.0,
        submit_timeout: float = 30.0,
        anchor_cache_size: int = 10000
    ):
        if batch_threshold < 1:
            raise ValueError("batch_threshold must be at least 1")

        self.ledger = ledger
        self.codec = codec or CredentialCodec()
        self.batch_threshold = batch_threshold
        self.flush_interval = flush_interval
        self.confirmation_timeout = confirmation_timeout
        self.submit_timeout = submit_timeout
        self.anchor_cache_size = anchor_cache_size

        # fingerprint -> credential, in enqueue order
        self._pending: Dict[str, Credential] = {}
        self._flush_in_flight = False
        self._anchors: "OrderedDict[str, AnchorRecord]" = OrderedDict()
        self._flush_task: Optional[asyncio.Task] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._running = False

        self.flush_count = 0
        self.failed_flushes = 0
        self.last_error: Optional[LedgerError] = None

    @classmethod
    def from_settings(
        cls,
        ledger: LedgerClient,
        settings: Settings,
        codec: Optional[CredentialCodec] = None
    ) -> "AnchorQueue":
        return cls(
            ledger,
            codec=codec,
            batch_threshold=settings.BATCH_THRESHOLD,
            flush_interval=settings.FLUSH_INTERVAL,
            confirmation_timeout=settings.CONFIRMATION_TIMEOUT,
            submit_timeout=settings.SUBMIT_TIMEOUT,
            anchor_cache_size=settings.ANCHOR_CACHE_SIZE,
        )

    # ==================== STATE ====================

    @property
    def pending(self) -> List[Credential]:
        """Copy of the pending credentials, in enqueue order"""
        return list(self._pending.values())

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_flushing(self) -> bool:
        return self._flush_in_flight

    def anchor_record(self, credential: Credential) -> Optional[AnchorRecord]:
        """Locally cached AnchorRecord (only set after confirmation)"""
        return self._anchors.get(self.codec.fingerprint(credential))

    # ==================== ENQUEUE ====================

    async def enqueue(self, credential: Credential) -> Optional[asyncio.Task]:
        """
        Add a credential to the pending queue

        A credential whose fingerprint is already pending or already anchored
        is skipped.

        Returns:
            The background flush task if this call triggered one, else None.
            Ledger failures inside that task are absorbed, never raised here.
        """
        fingerprint = self.codec.fingerprint(credential)
        if fingerprint in self._pending:
            logger.info(f"Credential {credential.id} already queued, skipping")
            return None
        if fingerprint in self._anchors:
            logger.info(f"Credential {credential.id} already anchored, skipping")
            return None

        self._pending[fingerprint] = credential
        logger.info(f"Queued credential {credential.id}. Queue size: {len(self._pending)}")

        flush_scheduled = self._flush_task is not None and not self._flush_task.done()
        if len(self._pending) >= self.batch_threshold and not (self._flush_in_flight or flush_scheduled):
            logger.info("Batch threshold reached, scheduling flush")
            self._flush_task = asyncio.create_task(self.flush())
            self._flush_task.add_done_callback(self._log_task_failure)
            return self._flush_task
        return None

    @staticmethod
    def _log_task_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background flush failed: {error!r}", exc_info=error)

    # ==================== FLUSH ====================

    async def flush(self) -> FlushResult:
        """
        Submit all currently pending credentials as one ledger transaction

        No-op when the queue is empty or a flush is already in flight.
        Ledger failures are logged and returned, never raised. Any other
        exception out of the ledger client is reported as LedgerUnavailable.
        """
        if self._flush_in_flight:
            logger.debug("Flush already in flight, skipping")
            return FlushResult(skipped="in_flight")
        if not self._pending:
            return FlushResult(skipped="empty")

        # No await between the check above and taking the snapshot
        self._flush_in_flight = True
        batch = list(self._pending.items())
        result = FlushResult(attempted=len(batch))

        try:
            fingerprints = [fingerprint for fingerprint, _ in batch]
            logger.info(f"Processing batch of {len(batch)} credentials...")

            try:
                transaction_id, block_height = await self._submit_and_confirm(fingerprints)
            except LedgerError as e:
                return self._record_failure(result, e)
            except Exception as e:
                logger.exception("Unexpected error from ledger client")
                error = LedgerUnavailable(f"Ledger client failed: {type(e).__name__}: {e}")
                error.__cause__ = e
                return self._record_failure(result, error)

            self._commit(batch, transaction_id, block_height, result)
            self.flush_count += 1
            self.last_error = None
            logger.info(f"Batch anchored in block {block_height} (tx {transaction_id})")
            return result
        finally:
            self._flush_in_flight = False

    def _record_failure(self, result: FlushResult, error: LedgerError) -> FlushResult:
        self.failed_flushes += 1
        self.last_error = error
        result.error = error
        logger.warning(
            f"Batch anchoring failed ({type(error).__name__}: {error}); "
            f"{result.attempted} credentials kept for retry"
        )
        return result

    async def _submit_and_confirm(self, fingerprints: List[str]) -> Tuple[str, int]:
        try:
            transaction_id = await asyncio.wait_for(
                self.ledger.submit_anchor_batch(fingerprints),
                timeout=self.submit_timeout
            )
        except asyncio.TimeoutError:
            raise LedgerTimeout(f"Batch submission exceeded {self.submit_timeout}s")

        block_height = await self._confirm(transaction_id)
        return transaction_id, block_height

    async def _confirm(self, transaction_id: str) -> int:
        """Wait for confirmation, mapping every non-success outcome to a LedgerError"""
        try:
            confirmation = await asyncio.wait_for(
                self.ledger.await_confirmation(transaction_id, self.confirmation_timeout),
                # small grace so the client can report its own timeout first
                timeout=self.confirmation_timeout + 1.0
            )
        except asyncio.TimeoutError:
            raise LedgerTimeout(f"No confirmation for {transaction_id} within {self.confirmation_timeout}s")

        if confirmation.status == ConfirmationStatus.TIMED_OUT:
            raise LedgerTimeout(f"Confirmation timed out for {transaction_id}: {confirmation.reason}")
        if confirmation.status == ConfirmationStatus.REJECTED:
            raise LedgerRejected(f"Transaction {transaction_id} rejected: {confirmation.reason}")
        return confirmation.block_height

    def _commit(
        self,
        batch: List[Tuple[str, Credential]],
        transaction_id: str,
        block_height: int,
        result: FlushResult
    ) -> None:
        """Record anchors and drain the snapshot in one step"""
        head = list(self._pending.items())[:len(batch)]
        if len(head) != len(batch) or any(
            fp != batch_fp or credential is not batch_credential
            for (fp, credential), (batch_fp, batch_credential) in zip(head, batch)
        ):
            raise QueueFlushConflict("Pending queue changed under an in-flight flush")

        now = time.time()
        for fingerprint, _ in batch:
            record = AnchorRecord(fingerprint, transaction_id, block_height, now)
            self._anchors[fingerprint] = record
            result.records.append(record)
            del self._pending[fingerprint]

        while len(self._anchors) > self.anchor_cache_size:
            self._anchors.popitem(last=False)

    async def wait_idle(self) -> None:
        """Wait for a size-triggered flush task, if any, to finish"""
        task = self._flush_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    # ==================== TIMER ====================

    async def start(self) -> None:
        """Start the periodic flush timer"""
        if self._running:
            return
        self._running = True
        self._timer_task = asyncio.create_task(self._timer_loop())

    async def stop(self, final_flush: bool = True) -> None:
        self._running = False
        if self._timer_task:
            self._timer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer_task
            self._timer_task = None
        await self.wait_idle()
        if final_flush:
            await self.flush()

    async def _timer_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.flush_interval)
            try:
                result = await self.flush()
            except Exception:
                logger.exception("Timer flush failed")
                continue
            if result.attempted:
                logger.debug(f"Timer flush: {len(result.records)}/{result.attempted} anchored")

    # ==================== QUERIES ====================

    async def is_anchored(self, credential: Credential) -> AnchorStatus:
        """Ledger view of anchoring; the local queue is never consulted"""
        return await self.ledger.query_anchored(self.codec.fingerprint(credential))

    async def is_revoked(self, credential: Credential) -> bool:
        return await self.ledger.query_revoked(self.codec.fingerprint(credential))

    # ==================== REVOCATION ====================

    async def revoke(self, credential: Credential) -> RevocationRecord:
        """
        Revoke a credential with its own, unbatched transaction

        Raises:
            LedgerError: submission or confirmation failed
        """
        fingerprint = self.codec.fingerprint(credential)
        logger.info(f"Revoking credential {credential.id} (0x{fingerprint[:8]}...)")

        try:
            transaction_id = await asyncio.wait_for(
                self.ledger.submit_revoke(fingerprint),
                timeout=self.submit_timeout
            )
        except asyncio.TimeoutError:
            raise LedgerTimeout(f"Revocation submission exceeded {self.submit_timeout}s")

        block_height = await self._confirm(transaction_id)
        logger.info(f"Credential {credential.id} revoked in block {block_height}")
        return RevocationRecord(fingerprint, transaction_id, block_height, time.time())

    # ==================== STATISTICS ====================

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "pending": len(self._pending),
            "flushing": self._flush_in_flight,
            "anchored": len(self._anchors),
            "flushes": self.flush_count,
            "failedFlushes": self.failed_flushes,
            "lastError": str(self.last_error) if self.last_error else None,
        }
