"""
Credential Codec
================

Builds W3C-style Verifiable Credentials and their canonical byte form.

The canonical form is the single interop contract between issuer, wallet and
verifier: JSON with sorted keys, no whitespace, UTF-8, signature fields removed.

Reference: https://www.w3.org/TR/vc-data-model/
"""

import copy
import hashlib
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import InvalidSubject
from .key_manager import IdentityKeyring


CREDENTIALS_CONTEXT = "https://www.w3.org/2018/credentials/v1"
VC_TYPE_MARKER = "VerifiableCredential"

# Fields never covered by the signature
SIGNATURE_FIELDS = frozenset(["proof", "signature"])

_KNOWN_FIELDS = frozenset([
    "@context", "id", "type", "issuer", "issuerName",
    "issuanceDate", "expirationDate", "credentialSubject",
])


class CredentialType(Enum):
    """Credential types with a trust weight"""
    COMMUNITY_VOUCH = "CommunityVouch"
    REFUGEE_REGISTRATION = "RefugeeRegistration"
    SCHOOL_ENROLLMENT = "SchoolEnrollment"
    HEALTH_RECORD = "HealthRecord"
    VACCINATION_RECORD = "VaccinationRecord"
    BIRTH_CERTIFICATE = "BirthCertificate"
    NATIONAL_ID = "NationalID"
    PASSPORT = "Passport"
    DRIVER_LICENSE = "DriverLicense"


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix"""
    moment = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC"""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Credential:
    """
    W3C Verifiable Credential (unsigned document)

    The signature travels next to the credential, never inside it. Fields are
    kept exactly as received: a value of None means the key is absent from the
    document, and string forms of `type`/`@context` are not widened to lists.
    """
    issuer: Optional[str] = None
    credential_subject: Optional[Dict[str, Any]] = field(default_factory=dict)
    type: Union[str, List[str], None] = field(default_factory=lambda: [VC_TYPE_MARKER])
    context: Union[str, List[str], None] = field(default_factory=lambda: [CREDENTIALS_CONTEXT])
    id: Optional[str] = None
    issuance_date: Optional[str] = None
    expiration_date: Optional[str] = None
    issuer_name: Optional[str] = None

    # Unknown top-level fields from foreign documents, kept so canonical bytes round-trip
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def types(self) -> List[str]:
        if self.type is None:
            return []
        if isinstance(self.type, str):
            return [self.type]
        return list(self.type)

    @property
    def credential_type(self) -> str:
        """Semantic type (second element of the type pair)"""
        types = self.types
        if len(types) > 1:
            return types[1]
        return types[0] if types else ""

    @property
    def subject_id(self) -> str:
        if not isinstance(self.credential_subject, dict):
            return ""
        return self.credential_subject.get("id", "")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to W3C VC JSON format"""
        vc = copy.deepcopy(self.extra)
        known = {
            "@context": self.context,
            "id": self.id,
            "type": self.type,
            "issuer": self.issuer,
            "issuerName": self.issuer_name,
            "issuanceDate": self.issuance_date,
            "expirationDate": self.expiration_date,
            "credentialSubject": self.credential_subject,
        }
        for key, value in known.items():
            if value is not None:
                vc[key] = copy.deepcopy(value)
        return vc

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        """Parse a received document without filling in or reshaping anything"""
        extra = {
            key: copy.deepcopy(value) for key, value in data.items()
            if key not in _KNOWN_FIELDS and key not in SIGNATURE_FIELDS
        }
        return cls(
            context=copy.deepcopy(data.get("@context")),
            id=data.get("id"),
            type=copy.deepcopy(data.get("type")),
            issuer=data.get("issuer"),
            issuer_name=data.get("issuerName"),
            issuance_date=data.get("issuanceDate"),
            expiration_date=data.get("expirationDate"),
            credential_subject=copy.deepcopy(data.get("credentialSubject")),
            extra=extra,
        )


class CredentialCodec:
    """
    Creates credentials and serializes them canonically

    Holds no mutable state; safe to share between tasks.
    """

    def __init__(self, keyring: Optional[IdentityKeyring] = None):
        self.keyring = keyring or IdentityKeyring()

    # ==================== CREATION ====================

    def create(
        self,
        issuer: str,
        subject: str,
        credential_type: Union[str, CredentialType],
        claims: Optional[Dict[str, Any]] = None,
        expiration_date: Optional[str] = None,
        issuer_name: Optional[str] = None
    ) -> Credential:
        """
        Create an unsigned credential

        Args:
            issuer: Issuer's identifier
            subject: Subject's identifier
            credential_type: Semantic type, e.g. "BirthCertificate" or CredentialType.BIRTH_CERTIFICATE
            claims: Claims merged into credentialSubject
            expiration_date: Optional ISO-8601 expiry
            issuer_name: Optional display name of the issuer

        Raises:
            InvalidSubject: subject is not a syntactically valid identifier
        """
        if not self.keyring.is_valid_identifier(subject):
            raise InvalidSubject(f"Invalid subject identifier: {subject!r}")

        if isinstance(credential_type, CredentialType):
            credential_type = credential_type.value

        credential_subject = dict(claims or {})
        credential_subject["id"] = subject

        return Credential(
            id=f"urn:uuid:{uuid.uuid4()}",
            issuance_date=utc_timestamp(),
            type=[VC_TYPE_MARKER, credential_type],
            issuer=issuer,
            issuer_name=issuer_name,
            expiration_date=expiration_date,
            credential_subject=credential_subject,
        )

    # ==================== CANONICAL FORM ====================

    @staticmethod
    def canonicalize(credential: Credential) -> bytes:
        """Deterministic bytes of the credential, signature fields excluded"""
        document = credential.to_dict()
        for name in SIGNATURE_FIELDS:
            document.pop(name, None)
        return json.dumps(
            document,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        ).encode("utf-8")

    @classmethod
    def digest(cls, credential: Credential) -> bytes:
        return hashlib.sha256(cls.canonicalize(credential)).digest()

    @classmethod
    def fingerprint(cls, credential: Credential) -> str:
        """Hex SHA-256 of the canonical bytes; the ledger-facing key"""
        return cls.digest(credential).hex()
