"""
SSI Core Exceptions
===================

Structural errors (identifiers, keys, signatures, subjects) are raised to the
caller immediately and are never retried. Ledger errors are transient: the
AnchorQueue absorbs them into retry state instead of raising them from enqueue.
"""


class SSIError(Exception):
    """Base exception for all SSI core errors"""
    pass


# ==================== IDENTITY ====================

class IdentityError(SSIError):
    pass


class MalformedIdentifier(IdentityError):
    """Identifier has a bad marker, bad base58 payload, wrong tag or wrong length"""
    pass


class MalformedKey(IdentityError):
    """Key material cannot be parsed as an Ed25519 key"""
    pass


# ==================== CREDENTIALS ====================

class CredentialError(SSIError):
    pass


class InvalidSubject(CredentialError):
    """Subject identifier is syntactically invalid"""
    pass


class CredentialRejected(CredentialError):
    """Wallet refused to store a credential (bad signature, revoked, expired, duplicate)"""
    pass


# ==================== SIGNATURES ====================

class SignatureError(SSIError):
    pass


class MalformedSignature(SignatureError):
    """Signature bytes cannot be parsed as an Ed25519 signature"""
    pass


class SigningError(SignatureError):
    """Private key is unusable for signing"""
    pass


# ==================== LEDGER ====================

class LedgerError(SSIError):
    """Transient ledger fault; retried by the anchor queue"""
    pass


class LedgerUnavailable(LedgerError):
    pass


class LedgerTimeout(LedgerError):
    pass


class LedgerRejected(LedgerError):
    pass


# ==================== QUEUE ====================

class QueueFlushConflict(SSIError):
    """Two flushes overlapped or the pending snapshot was disturbed"""
    pass
