"""
Ledger Client
=============

The narrow interface through which SSI Core reaches the anchoring ledger.
All calls are coroutines and may suspend; callers bound them with timeouts.

Implementations:
- InMemoryLedgerClient: local ledger for development and tests
- Web3LedgerClient (web3_ledger.py): EVM anchoring contract
"""

import asyncio
import hashlib
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import LedgerRejected, LedgerUnavailable

logger = logging.getLogger(__name__)


class ConfirmationStatus(Enum):
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    REJECTED = "rejected"


@dataclass
class Confirmation:
    """Outcome of waiting for a transaction"""
    status: ConfirmationStatus
    block_height: Optional[int] = None
    reason: str = ""

    @property
    def confirmed(self) -> bool:
        return self.status == ConfirmationStatus.CONFIRMED


@dataclass
class AnchorStatus:
    anchored: bool
    timestamp: Optional[int] = None  # unix seconds of the anchoring block

    def to_dict(self) -> Dict[str, Any]:
        anchored_date = None
        if self.timestamp:
            anchored_date = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.timestamp))
        return {
            "anchored": self.anchored,
            "timestamp": self.timestamp,
            "anchoredDate": anchored_date,
        }


class LedgerClient(ABC):
    """Ledger operations keyed by credential fingerprint (64-char hex)"""

    @abstractmethod
    async def submit_anchor(self, fingerprint: str) -> str:
        """Submit one fingerprint, return the transaction id"""

    @abstractmethod
    async def submit_anchor_batch(self, fingerprints: List[str]) -> str:
        """Submit many fingerprints in one transaction"""

    @abstractmethod
    async def await_confirmation(self, transaction_id: str, timeout: float) -> Confirmation:
        """Wait up to timeout seconds for the transaction to land"""

    @abstractmethod
    async def query_anchored(self, fingerprint: str) -> AnchorStatus:
        pass

    @abstractmethod
    async def submit_revoke(self, fingerprint: str) -> str:
        pass

    @abstractmethod
    async def query_revoked(self, fingerprint: str) -> bool:
        pass

    async def get_info(self) -> Dict[str, Any]:
        """Diagnostics about the connected network"""
        return {"ledger": type(self).__name__}


@dataclass
class _PendingTransaction:
    kind: str  # "anchor" | "revoke"
    fingerprints: List[str]


class InMemoryLedgerClient(LedgerClient):
    """
    Append-only ledger held in memory

    Every confirmed transaction gets its own block. Failure injection:
    - available = False: submissions raise LedgerUnavailable
    - reject_next / time_out_next: the next confirmation is rejected / times out
    - confirmation_delay: seconds await_confirmation suspends before answering
    - confirmation_gate: if set, await_confirmation waits on this event first
    """

    def __init__(self, confirmation_delay: float = 0.0):
        self.confirmation_delay = confirmation_delay
        self.confirmation_gate: Optional[asyncio.Event] = None
        self.available = True
        self.reject_next = False
        self.time_out_next = False

        self.block_height = 0
        self.submissions: List[List[str]] = []  # fingerprints per submitted transaction
        self._pending: Dict[str, _PendingTransaction] = {}
        self._anchored: Dict[str, int] = {}
        self._revoked: Dict[str, int] = {}
        self._tx_counter = 0

    # ==================== SUBMISSION ====================

    def _submit(self, kind: str, fingerprints: List[str]) -> str:
        if not self.available:
            raise LedgerUnavailable("Ledger node unreachable")
        if not fingerprints:
            raise LedgerRejected("Empty transaction")

        self._tx_counter += 1
        digest = hashlib.sha256(f"{kind}:{self._tx_counter}:{','.join(fingerprints)}".encode())
        transaction_id = "0x" + digest.hexdigest()
        self._pending[transaction_id] = _PendingTransaction(kind, list(fingerprints))
        self.submissions.append(list(fingerprints))
        logger.debug(f"Submitted {kind} tx {transaction_id[:10]} ({len(fingerprints)} items)")
        return transaction_id

    async def submit_anchor(self, fingerprint: str) -> str:
        return self._submit("anchor", [fingerprint])

    async def submit_anchor_batch(self, fingerprints: List[str]) -> str:
        return self._submit("anchor", fingerprints)

    async def submit_revoke(self, fingerprint: str) -> str:
        return self._submit("revoke", [fingerprint])

    # ==================== CONFIRMATION ====================

    async def await_confirmation(self, transaction_id: str, timeout: float) -> Confirmation:
        if self.confirmation_gate is not None:
            try:
                await asyncio.wait_for(self.confirmation_gate.wait(), timeout)
            except asyncio.TimeoutError:
                return Confirmation(ConfirmationStatus.TIMED_OUT, reason="gate timeout")
        if self.confirmation_delay:
            await asyncio.sleep(self.confirmation_delay)

        tx = self._pending.pop(transaction_id, None)
        if tx is None:
            return Confirmation(ConfirmationStatus.REJECTED, reason="unknown transaction")
        if self.time_out_next:
            self.time_out_next = False
            return Confirmation(ConfirmationStatus.TIMED_OUT, reason="injected timeout")
        if self.reject_next:
            self.reject_next = False
            return Confirmation(ConfirmationStatus.REJECTED, reason="injected revert")

        self.block_height += 1
        now = int(time.time())
        target = self._anchored if tx.kind == "anchor" else self._revoked
        for fingerprint in tx.fingerprints:
            target.setdefault(fingerprint, now)
        return Confirmation(ConfirmationStatus.CONFIRMED, block_height=self.block_height)

    # ==================== QUERIES ====================

    async def query_anchored(self, fingerprint: str) -> AnchorStatus:
        if not self.available:
            raise LedgerUnavailable("Ledger node unreachable")
        timestamp = self._anchored.get(fingerprint)
        return AnchorStatus(anchored=timestamp is not None, timestamp=timestamp)

    async def query_revoked(self, fingerprint: str) -> bool:
        if not self.available:
            raise LedgerUnavailable("Ledger node unreachable")
        return fingerprint in self._revoked

    async def get_info(self) -> Dict[str, Any]:
        return {
            "ledger": "in-memory",
            "blockHeight": self.block_height,
            "anchored": len(self._anchored),
            "revoked": len(self._revoked),
        }
