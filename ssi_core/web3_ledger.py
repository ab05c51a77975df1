"""
Web3 Ledger Client
==================

Anchors credential fingerprints in an EVM contract:

    function anchor(bytes32 credentialHash)
    function anchorBatch(bytes32[] hashes)
    function anchored(bytes32 credentialHash) view returns (uint256)
    function revoke(bytes32 credentialHash)
    function revoked(bytes32 credentialHash) view returns (bool)

[USAGE]
    client = Web3LedgerClient(
        rpc_url="https://rpc-amoy.polygon.technology",
        contract_address="0x...",
        private_key="0x...",
    )
    tx = await client.submit_anchor_batch([fingerprint])
    confirmation = await client.await_confirmation(tx, timeout=120)
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .config import Settings
from .errors import LedgerRejected, LedgerUnavailable
from .ledger_client import AnchorStatus, Confirmation, ConfirmationStatus, LedgerClient

logger = logging.getLogger(__name__)


ANCHOR_ABI = [
    {"inputs": [{"name": "credentialHash", "type": "bytes32"}], "name": "anchor", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [{"name": "hashes", "type": "bytes32[]"}], "name": "anchorBatch", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [{"name": "credentialHash", "type": "bytes32"}], "name": "anchored", "outputs": [{"type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "credentialHash", "type": "bytes32"}], "name": "revoke", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [{"name": "credentialHash", "type": "bytes32"}], "name": "revoked", "outputs": [{"type": "bool"}], "stateMutability": "view", "type": "function"},
]


def fingerprint_to_bytes32(fingerprint: str) -> bytes:
    raw = bytes.fromhex(fingerprint[2:] if fingerprint.startswith("0x") else fingerprint)
    if len(raw) != 32:
        raise LedgerRejected(f"Fingerprint must be 32 bytes, got {len(raw)}")
    return raw


class Web3LedgerClient(LedgerClient):
    """
    LedgerClient backed by an anchoring contract

    Blocking RPC calls run in worker threads. Transaction building is
    serialized so a batch flush and a revocation never share a nonce.
    """

    def __init__(
        self,
        rpc_url: str = "",
        contract_address: str = "",
        private_key: str = "",
        chain_id: Optional[int] = None,
        explorer_url: str = "",
        w3: Optional[Web3] = None
    ):
        if not contract_address:
            raise ValueError("Anchoring contract address is required")
        if not private_key:
            raise ValueError("Private key required for submitting transactions")

        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url))
        self.account = Account.from_key(private_key)
        self.address = self.account.address
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=ANCHOR_ABI
        )
        self._chain_id = chain_id
        self.explorer_url = explorer_url
        self._tx_lock = asyncio.Lock()
        self._unfinished_sends: Dict[Tuple, asyncio.Task] = {}

        logger.info(f"Web3 ledger client ready (contract: {contract_address}, wallet: {self.address})")

    @classmethod
    def from_settings(cls, settings: Settings) -> "Web3LedgerClient":
        return cls(
            rpc_url=settings.RPC_URL,
            contract_address=settings.CONTRACT_ADDRESS,
            private_key=settings.PRIVATE_KEY,
            chain_id=settings.CHAIN_ID,
            explorer_url=settings.EXPLORER_URL,
        )

    # ==================== TRANSACTIONS ====================

    def _send(self, contract_call) -> str:
        """Build, sign and broadcast one contract transaction (blocking)"""
        if self._chain_id is None:
            self._chain_id = self.w3.eth.chain_id

        tx = contract_call.build_transaction({
            "from": self.address,
            "nonce": self.w3.eth.get_transaction_count(self.address, "pending"),
            "chainId": self._chain_id,
        })
        signed = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    async def _submit(self, contract_call, label: str, key: Tuple) -> str:
        """
        Broadcast a contract call, at most once per key at a time

        The send runs in its own task that holds the nonce lock until the
        worker thread returns, even if the caller stops waiting. A caller that
        times out leaves the task behind under its key; the next submission
        of the same payload awaits that task instead of broadcasting again.
        """
        task = self._unfinished_sends.pop(key, None)
        if task is None or (task.done() and (task.cancelled() or task.exception() is not None)):
            task = asyncio.ensure_future(self._locked_send(contract_call, label))
            task.add_done_callback(self._log_send_failure)

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                logger.warning(f"{label} still broadcasting after caller gave up; keeping it for reuse")
                self._unfinished_sends[key] = task
            raise

    async def _locked_send(self, contract_call, label: str) -> str:
        async with self._tx_lock:
            try:
                transaction_id = await asyncio.to_thread(self._send, contract_call)
            except ContractLogicError as e:
                raise LedgerRejected(f"{label} reverted: {e}")
            except (Web3Exception, OSError, ValueError) as e:
                raise LedgerUnavailable(f"{label} submission failed: {e}")

        logger.info(f"{label} transaction sent: {transaction_id}")
        return transaction_id

    @staticmethod
    def _log_send_failure(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Transaction send failed: {task.exception()}")

    async def submit_anchor(self, fingerprint: str) -> str:
        call = self.contract.functions.anchor(fingerprint_to_bytes32(fingerprint))
        return await self._submit(call, "anchor", ("anchor", fingerprint))

    async def submit_anchor_batch(self, fingerprints: List[str]) -> str:
        call = self.contract.functions.anchorBatch(
            [fingerprint_to_bytes32(fp) for fp in fingerprints]
        )
        return await self._submit(call, f"anchorBatch[{len(fingerprints)}]", ("anchorBatch", tuple(fingerprints)))

    async def submit_revoke(self, fingerprint: str) -> str:
        call = self.contract.functions.revoke(fingerprint_to_bytes32(fingerprint))
        return await self._submit(call, "revoke", ("revoke", fingerprint))

    async def await_confirmation(self, transaction_id: str, timeout: float) -> Confirmation:
        try:
            receipt = await asyncio.to_thread(
                self.w3.eth.wait_for_transaction_receipt, transaction_id, timeout
            )
        except TimeExhausted:
            return Confirmation(ConfirmationStatus.TIMED_OUT, reason=f"no receipt after {timeout}s")
        except (Web3Exception, OSError, ValueError) as e:
            raise LedgerUnavailable(f"Receipt lookup failed: {e}")

        if receipt["status"] != 1:
            return Confirmation(
                ConfirmationStatus.REJECTED,
                block_height=receipt["blockNumber"],
                reason="transaction reverted"
            )
        return Confirmation(ConfirmationStatus.CONFIRMED, block_height=receipt["blockNumber"])

    # ==================== QUERIES ====================

    async def query_anchored(self, fingerprint: str) -> AnchorStatus:
        call = self.contract.functions.anchored(fingerprint_to_bytes32(fingerprint))
        try:
            timestamp = await asyncio.to_thread(call.call)
        except (Web3Exception, OSError, ValueError) as e:
            raise LedgerUnavailable(f"anchored() query failed: {e}")
        return AnchorStatus(anchored=timestamp > 0, timestamp=int(timestamp) if timestamp > 0 else None)

    async def query_revoked(self, fingerprint: str) -> bool:
        call = self.contract.functions.revoked(fingerprint_to_bytes32(fingerprint))
        try:
            return bool(await asyncio.to_thread(call.call))
        except (Web3Exception, OSError, ValueError) as e:
            raise LedgerUnavailable(f"revoked() query failed: {e}")

    async def get_info(self) -> Dict[str, Any]:
        """Gas price and wallet balance"""
        try:
            gas_price = await asyncio.to_thread(lambda: self.w3.eth.gas_price)
            balance = await asyncio.to_thread(self.w3.eth.get_balance, self.address)
        except (Web3Exception, OSError, ValueError) as e:
            raise LedgerUnavailable(f"Node info unavailable: {e}")

        return {
            "ledger": "web3",
            "wallet": self.address,
            "contract": self.contract.address,
            "gasPrice": f"{Web3.from_wei(gas_price, 'gwei')} gwei",
            "balance": str(Web3.from_wei(balance, "ether")),
        }

    def explorer_link(self, transaction_id: str) -> str:
        if not self.explorer_url:
            return ""
        return f"{self.explorer_url.rstrip('/')}/tx/{transaction_id}"
