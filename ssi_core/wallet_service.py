"""
Wallet Service
==============

Holder-side credential store. Credentials are verified locally before they
are accepted; an optional ledger check rejects revoked or expired ones. The
wallet state is a plain object the caller persists through to_dict/from_dict.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .credential_codec import Credential, utc_timestamp
from .credential_verifier import CredentialVerifier
from .errors import CredentialRejected, LedgerError
from .key_manager import Identity, IdentityKeyring
from .signature_engine import SignatureEngine
from .trust_scorer import TrustScorer

logger = logging.getLogger(__name__)


@dataclass
class StoredCredential:
    credential: Credential
    signature: str  # hex
    received_at: str = ""
    ledger_verified: bool = False
    anchored: bool = False

    def __post_init__(self):
        if not self.received_at:
            self.received_at = utc_timestamp()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "credential": self.credential.to_dict(),
            "signature": self.signature,
            "receivedAt": self.received_at,
            "blockchainVerified": self.ledger_verified,
            "anchored": self.anchored,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoredCredential":
        return cls(
            credential=Credential.from_dict(data["credential"]),
            signature=data["signature"],
            received_at=data.get("receivedAt", ""),
            ledger_verified=data.get("blockchainVerified", False),
            anchored=data.get("anchored", False),
        )


@dataclass
class Wallet:
    identity: Identity
    credentials: List[StoredCredential] = field(default_factory=list)
    trust_score: int = 0
    created_at: str = ""

    def __post_init__(self):
        if not self.created_at:
            self.created_at = utc_timestamp()

    @property
    def identifier(self) -> str:
        return self.identity.identifier

    def to_dict(self) -> Dict[str, Any]:
        data = self.identity.to_dict()
        data.update({
            "credentials": [item.to_dict() for item in self.credentials],
            "trustScore": self.trust_score,
            "createdAt": self.created_at,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Wallet":
        return cls(
            identity=Identity.from_dict(data),
            credentials=[StoredCredential.from_dict(c) for c in data.get("credentials", [])],
            trust_score=data.get("trustScore", 0),
            created_at=data.get("createdAt", ""),
        )


class WalletService:
    """
    Wallet-facing surface

    Args:
        wallet: Existing wallet state (create_wallet() makes a new one)
        engine: SignatureEngine for local verification
        scorer: TrustScorer for the credential set
        verifier: Optional CredentialVerifier with ledger access
    """

    def __init__(
        self,
        wallet: Optional[Wallet] = None,
        engine: Optional[SignatureEngine] = None,
        scorer: Optional[TrustScorer] = None,
        verifier: Optional[CredentialVerifier] = None
    ):
        self.wallet = wallet
        self.engine = engine or SignatureEngine()
        self.scorer = scorer or TrustScorer()
        self.verifier = verifier

    def create_wallet(self) -> Wallet:
        self.wallet = Wallet(identity=IdentityKeyring.generate())
        logger.info(f"Created wallet {self.wallet.identifier}")
        return self.wallet

    def _require_wallet(self) -> Wallet:
        if self.wallet is None:
            raise RuntimeError("No wallet loaded")
        return self.wallet

    # ==================== CREDENTIALS ====================

    async def add_credential(
        self,
        credential_data: Dict[str, Any],
        check_ledger: bool = True,
        now: Optional[datetime] = None
    ) -> int:
        """
        Verify and store a {credential, signature} bundle

        Returns:
            Updated trust score

        Raises:
            CredentialRejected: bad signature, revoked, expired or duplicate
            MalformedIdentifier / MalformedSignature / MalformedKey: unparseable input
        """
        wallet = self._require_wallet()

        credential = credential_data["credential"]
        if isinstance(credential, dict):
            credential = Credential.from_dict(credential)
        signature = self._signature_hex(credential_data["signature"])

        if not credential.id:
            raise CredentialRejected("Credential has no id")

        if any(item.credential.id == credential.id for item in wallet.credentials):
            raise CredentialRejected(f"Credential already stored: {credential.id}")

        # Step 1: local signature check
        if not self.engine.verify_with_identifier(credential, signature):
            raise CredentialRejected("Invalid credential signature")

        stored = StoredCredential(credential=credential, signature=signature)

        # Step 2: ledger check (optional)
        if check_ledger and self.verifier is not None:
            try:
                result = await self.verifier.verify(credential, signature, now=now)
            except LedgerError as e:
                logger.warning(f"Ledger check failed, storing credential unverified: {e}")
            else:
                if result.revoked:
                    raise CredentialRejected("This credential has been revoked")
                if result.expired:
                    raise CredentialRejected("This credential has expired")
                stored.ledger_verified = result.is_valid
                stored.anchored = bool(result.anchored)

        wallet.credentials.append(stored)
        return self._rescore(now)

    def remove_credential(self, credential_id: str, now: Optional[datetime] = None) -> int:
        """Delete a credential by id and return the updated trust score"""
        wallet = self._require_wallet()
        wallet.credentials = [
            item for item in wallet.credentials
            if item.credential.id != credential_id
        ]
        return self._rescore(now)

    def get_credentials(self) -> List[StoredCredential]:
        return list(self._require_wallet().credentials)

    def prepare_shareable_bundle(self) -> Dict[str, Any]:
        """Bundle for out-of-band transfer to a verifier"""
        wallet = self._require_wallet()
        return {
            "identifier": wallet.identifier,
            "credentials": [
                {"credential": item.credential.to_dict(), "signature": item.signature}
                for item in wallet.credentials
            ],
            "trustScore": wallet.trust_score,
            "sharedAt": utc_timestamp(),
        }

    # ==================== HELPERS ====================

    def _rescore(self, now: Optional[datetime] = None) -> int:
        wallet = self._require_wallet()
        wallet.trust_score = self.scorer.score(
            [item.credential for item in wallet.credentials], now=now
        )
        return wallet.trust_score

    @staticmethod
    def _signature_hex(signature: Union[bytes, str]) -> str:
        if isinstance(signature, (bytes, bytearray)):
            return bytes(signature).hex()
        return signature
