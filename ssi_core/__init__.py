"""
Self-Sovereign Identity Core
============================

did:key identities, signed Verifiable Credentials, trust scoring and
batched ledger anchoring.

Components:
- IdentityKeyring: did:key identifiers from Ed25519 keys
- CredentialCodec: Credential documents and canonical bytes
- SignatureEngine: Sign/verify canonical digests
- TrustScorer: Numeric trust score of a credential set
- AnchorQueue: Batched fingerprint anchoring and revocation
- LedgerClient: Ledger interface (in-memory and Web3 implementations)
- IssuerService / WalletService / CredentialVerifier: outer surfaces
- SSIService: Integrated service

Standards:
- did:key method: https://w3c-ccg.github.io/did-method-key/
- W3C Verifiable Credentials: https://www.w3.org/TR/vc-data-model/
"""

from .errors import (
    SSIError,
    MalformedIdentifier,
    MalformedKey,
    MalformedSignature,
    SigningError,
    InvalidSubject,
    CredentialRejected,
    LedgerError,
    LedgerUnavailable,
    LedgerTimeout,
    LedgerRejected,
    QueueFlushConflict,
)
from .config import Settings, get_settings, configure_logging
from .key_manager import IdentityKeyring, Identity
from .credential_codec import CredentialCodec, Credential, CredentialType
from .signature_engine import SignatureEngine
from .trust_scorer import TrustScorer
from .ledger_client import (
    LedgerClient,
    InMemoryLedgerClient,
    AnchorStatus,
    Confirmation,
    ConfirmationStatus,
)
from .anchor_queue import AnchorQueue, AnchorRecord, RevocationRecord, FlushResult
from .credential_verifier import CredentialVerifier, VerificationResult, VerificationStatus
from .issuer_service import IssuerService, IssuedCredential
from .wallet_service import WalletService, Wallet, StoredCredential
from .ssi_service import SSIService

__version__ = "1.0.0"
__all__ = [
    # Errors
    "SSIError",
    "MalformedIdentifier",
    "MalformedKey",
    "MalformedSignature",
    "SigningError",
    "InvalidSubject",
    "CredentialRejected",
    "LedgerError",
    "LedgerUnavailable",
    "LedgerTimeout",
    "LedgerRejected",
    "QueueFlushConflict",

    # Config
    "Settings",
    "get_settings",
    "configure_logging",

    # Identity & credentials
    "IdentityKeyring",
    "Identity",
    "CredentialCodec",
    "Credential",
    "CredentialType",
    "SignatureEngine",
    "TrustScorer",

    # Ledger & anchoring
    "LedgerClient",
    "InMemoryLedgerClient",
    "AnchorStatus",
    "Confirmation",
    "ConfirmationStatus",
    "AnchorQueue",
    "AnchorRecord",
    "RevocationRecord",
    "FlushResult",

    # Surfaces
    "CredentialVerifier",
    "VerificationResult",
    "VerificationStatus",
    "IssuerService",
    "IssuedCredential",
    "WalletService",
    "Wallet",
    "StoredCredential",
    "SSIService",
]
