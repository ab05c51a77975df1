"""
Issuer Service
==============

Manages the issuer's identity and credential issuance. Every issued
credential is queued for anchoring as a side effect.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .anchor_queue import AnchorQueue, FlushResult, RevocationRecord
from .credential_codec import Credential, CredentialCodec
from .errors import LedgerError
from .key_manager import Identity, IdentityKeyring
from .signature_engine import SignatureEngine

logger = logging.getLogger(__name__)


@dataclass
class IssuedCredential:
    credential: Credential
    signature: bytes

    def to_dict(self) -> Dict[str, Any]:
        """Transport form shared with wallets: {credential, signature(hex)}"""
        return {
            "credential": self.credential.to_dict(),
            "signature": self.signature.hex(),
        }


class IssuerService:
    """
    Issuer-facing surface

    Args:
        anchor_queue: Queue that receives every issued credential
        display_name: Name stamped into credentials as issuerName
        identity: Issuer identity; if None, call initialize() first
        identity_file: Where initialize() loads/stores the identity
    """

    def __init__(
        self,
        anchor_queue: AnchorQueue,
        engine: Optional[SignatureEngine] = None,
        display_name: str = "SSI Issuer",
        identity: Optional[Identity] = None,
        identity_file: Optional[Path] = None
    ):
        self.anchor_queue = anchor_queue
        self.engine = engine or SignatureEngine(codec=anchor_queue.codec)
        self.codec = self.engine.codec
        self.keyring = self.engine.keyring
        self.display_name = display_name
        self.identity = identity
        self.identity_file = Path(identity_file) if identity_file else None
        self.issued_count = 0

    # ==================== IDENTITY ====================

    def initialize(self) -> Identity:
        """
        Load the issuer identity from identity_file, or create and save a new one

        WARNING: the file holds the private key in plain hex; the caller is
        responsible for protecting it.
        """
        if self.identity is not None:
            return self.identity

        if self.identity_file and self.identity_file.exists():
            logger.info(f"Loading existing issuer identity from {self.identity_file}")
            with open(self.identity_file, "r") as f:
                self.identity = Identity.from_dict(json.load(f))
        else:
            logger.info("Creating new issuer identity")
            self.identity = IdentityKeyring.generate()
            if self.identity_file:
                with open(self.identity_file, "w") as f:
                    json.dump(self.identity.to_dict(), f, indent=2)
                logger.info(f"Saved issuer identity to {self.identity_file}")

        logger.info(f"Issuer identity: {self.identity.identifier}")
        return self.identity

    def _require_identity(self) -> Identity:
        if self.identity is None:
            raise RuntimeError("Issuer not initialized")
        return self.identity

    # ==================== ISSUANCE ====================

    async def issue_credential(
        self,
        subject: str,
        credential_type: str,
        claims: Dict[str, Any],
        expiration_date: Optional[str] = None
    ) -> IssuedCredential:
        """
        Create, sign and queue a credential

        Raises:
            InvalidSubject: subject identifier is invalid
        """
        identity = self._require_identity()

        credential = self.codec.create(
            identity.identifier,
            subject,
            credential_type,
            claims,
            expiration_date=expiration_date,
            issuer_name=self.display_name,
        )
        signature = self.engine.sign(credential, identity.private_key)
        self.issued_count += 1
        logger.info(f"Issued {credential_type} credential {credential.id}")

        await self.anchor_queue.enqueue(credential)
        return IssuedCredential(credential=credential, signature=signature)

    async def anchor_now(self) -> FlushResult:
        """Flush the anchor queue immediately"""
        return await self.anchor_queue.flush()

    async def revoke_credential(self, credential: Credential) -> RevocationRecord:
        if credential.issuer != self._require_identity().identifier:
            raise ValueError(f"Credential {credential.id} was not issued by this issuer")
        return await self.anchor_queue.revoke(credential)

    # ==================== INFO ====================

    def get_info(self) -> Dict[str, Any]:
        identity = self.identity
        return {
            "identifier": identity.identifier if identity else None,
            "publicKey": identity.public_key.hex() if identity else None,
            "displayName": self.display_name,
        }

    async def get_statistics(self) -> Dict[str, Any]:
        try:
            ledger_info = await self.anchor_queue.ledger.get_info()
        except LedgerError as e:
            ledger_info = {"error": str(e)}

        return {
            "issuer": self.get_info(),
            "issued": self.issued_count,
            "anchoring": self.anchor_queue.get_statistics(),
            "ledger": ledger_info,
        }
