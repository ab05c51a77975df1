"""
Verifiable Credentials Verifier
================================

Xác thực Verifiable Credentials

Checks, each reported on its own:
- Structure
- Signature (local, against the key in the issuer's identifier)
- Expiration
- Anchoring on the ledger
- Revocation on the ledger
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .anchor_queue import AnchorQueue
from .credential_codec import Credential, VC_TYPE_MARKER, parse_timestamp, utc_timestamp
from .errors import IdentityError, SignatureError
from .signature_engine import SignatureEngine

logger = logging.getLogger(__name__)


class VerificationStatus(Enum):
    """Credential verification status"""
    VALID = "valid"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    REVOKED = "revoked"
    MALFORMED = "malformed"


@dataclass
class VerificationResult:
    """Result of credential verification"""
    status: VerificationStatus
    credential_id: Optional[str]
    issuer: Optional[str]
    subject: str
    signature_valid: bool = False
    expired: bool = False
    anchored: Optional[bool] = None   # None = ledger not consulted
    anchored_date: Optional[str] = None
    revoked: Optional[bool] = None
    errors: List[str] = field(default_factory=list)
    verified_at: str = ""

    def __post_init__(self):
        if not self.verified_at:
            self.verified_at = utc_timestamp()

    @property
    def is_valid(self) -> bool:
        return self.signature_valid and not self.revoked and not self.expired

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.is_valid,
            "status": self.status.value,
            "checks": {
                "signatureValid": self.signature_valid,
                "anchored": self.anchored,
                "anchoredDate": self.anchored_date,
                "revoked": self.revoked,
                "expired": self.expired,
            },
            "credentialId": self.credential_id,
            "issuer": self.issuer,
            "subject": self.subject,
            "errors": self.errors,
            "verifiedAt": self.verified_at,
        }


class CredentialVerifier:
    """
    Verifies credentials against their signature and the ledger

    Args:
        engine: SignatureEngine for local verification
        anchor_queue: Source of ledger anchor/revocation lookups (optional)
    """

    def __init__(
        self,
        engine: SignatureEngine,
        anchor_queue: Optional[AnchorQueue] = None
    ):
        self.engine = engine
        self.anchor_queue = anchor_queue

    # ==================== VERIFICATION ====================

    def verify_local(
        self,
        credential: Credential,
        signature: Union[bytes, str],
        now: Optional[datetime] = None
    ) -> VerificationResult:
        """Structure, signature and expiration checks, no ledger access"""
        result = VerificationResult(
            status=VerificationStatus.VALID,
            credential_id=credential.id,
            issuer=credential.issuer,
            subject=credential.subject_id,
        )

        structure_valid, structure_errors = self._validate_structure(credential)
        if not structure_valid:
            result.errors.extend(structure_errors)
            result.status = VerificationStatus.MALFORMED
            return result

        try:
            result.signature_valid = self.engine.verify_with_identifier(credential, signature)
        except (IdentityError, SignatureError) as e:
            result.errors.append(str(e))
            result.status = VerificationStatus.MALFORMED
            return result

        if not result.signature_valid:
            result.errors.append("Signature verification failed")
            result.status = VerificationStatus.INVALID_SIGNATURE

        result.expired, expiry_error = self._check_expiration(credential, now)
        if expiry_error:
            result.errors.append(expiry_error)
        if result.expired and result.status == VerificationStatus.VALID:
            result.status = VerificationStatus.EXPIRED

        return result

    async def verify(
        self,
        credential: Credential,
        signature: Union[bytes, str],
        check_ledger: bool = True,
        now: Optional[datetime] = None
    ) -> VerificationResult:
        """
        Verify a credential

        Raises:
            LedgerError: the ledger could not be queried
        """
        result = self.verify_local(credential, signature, now)
        if result.status == VerificationStatus.MALFORMED:
            return result

        if check_ledger and self.anchor_queue is not None:
            anchor_status = await self.anchor_queue.is_anchored(credential)
            result.anchored = anchor_status.anchored
            result.anchored_date = anchor_status.to_dict()["anchoredDate"]
            result.revoked = await self.anchor_queue.is_revoked(credential)

            if result.revoked:
                result.errors.append("Credential has been revoked")
                if result.status == VerificationStatus.VALID:
                    result.status = VerificationStatus.REVOKED

        logger.info(f"Verified credential {credential.id}: {result.status.value}")
        return result

    # ==================== VALIDATION HELPERS ====================

    def _validate_structure(self, credential: Credential) -> Tuple[bool, List[str]]:
        errors = []

        if not credential.id:
            errors.append("Missing credential ID")

        if VC_TYPE_MARKER not in credential.types:
            errors.append("Invalid or missing credential type")

        if not credential.issuer:
            errors.append("Missing issuer")

        if not credential.issuance_date:
            errors.append("Missing issuance date")

        if not credential.credential_subject:
            errors.append("Missing credential subject")

        return len(errors) == 0, errors

    @staticmethod
    def _check_expiration(
        credential: Credential,
        now: Optional[datetime] = None
    ) -> Tuple[bool, Optional[str]]:
        if not credential.expiration_date:
            return False, None
        try:
            expiration = parse_timestamp(credential.expiration_date)
        except ValueError as e:
            return False, f"Invalid expiration date format: {e}"

        now = now or datetime.now(timezone.utc)
        if now > expiration:
            return True, "Credential has expired"
        return False, None
