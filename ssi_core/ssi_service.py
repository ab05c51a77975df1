"""
SSI Integration Service
=======================

Builds the long-lived SSI Core instances once and hands them out by
reference:
- IdentityKeyring / CredentialCodec / SignatureEngine / TrustScorer
- LedgerClient (Web3 when RPC_URL is configured, in-memory otherwise)
- AnchorQueue with its flush timer
- IssuerService, CredentialVerifier
"""

import logging
from typing import Any, Dict, Optional

from .anchor_queue import AnchorQueue
from .config import Settings, get_settings
from .credential_codec import CredentialCodec
from .credential_verifier import CredentialVerifier
from .issuer_service import IssuerService
from .key_manager import IdentityKeyring
from .ledger_client import InMemoryLedgerClient, LedgerClient
from .signature_engine import SignatureEngine
from .trust_scorer import TrustScorer
from .wallet_service import Wallet, WalletService

logger = logging.getLogger(__name__)


def build_ledger_client(settings: Settings) -> LedgerClient:
    if settings.RPC_URL:
        from .web3_ledger import Web3LedgerClient
        return Web3LedgerClient.from_settings(settings)
    logger.warning("No RPC_URL configured, using in-memory ledger")
    return InMemoryLedgerClient()


class SSIService:
    """
    Main service class for SSI operations

    Usage:
        service = SSIService()
        await service.start()
        issued = await service.issuer.issue_credential(did, "BirthCertificate", {...})
        ...
        await service.stop()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        ledger: Optional[LedgerClient] = None
    ):
        self.settings = settings or get_settings()

        self.keyring = IdentityKeyring()
        self.codec = CredentialCodec(self.keyring)
        self.engine = SignatureEngine(self.codec, self.keyring)
        self.scorer = TrustScorer.from_settings(self.settings)

        self.ledger = ledger or build_ledger_client(self.settings)
        self.anchor_queue = AnchorQueue.from_settings(self.ledger, self.settings, codec=self.codec)

        self.issuer = IssuerService(
            self.anchor_queue,
            engine=self.engine,
            display_name=self.settings.ISSUER_NAME,
            identity_file=self.settings.ISSUER_IDENTITY_FILE,
        )
        self.verifier = CredentialVerifier(self.engine, self.anchor_queue)

    async def start(self) -> None:
        self.issuer.initialize()
        await self.anchor_queue.start()
        logger.info(f"SSI service started (issuer: {self.issuer.identity.identifier})")

    async def stop(self) -> None:
        await self.anchor_queue.stop(final_flush=True)
        logger.info("SSI service stopped")

    def wallet_service(self, wallet: Optional[Wallet] = None) -> WalletService:
        """A WalletService sharing this service's engine, scorer and verifier"""
        return WalletService(
            wallet=wallet,
            engine=self.engine,
            scorer=self.scorer,
            verifier=self.verifier,
        )

    async def get_statistics(self) -> Dict[str, Any]:
        return await self.issuer.get_statistics()
