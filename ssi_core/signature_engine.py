"""
Signature Engine - Ký và xác thực credentials bằng Ed25519

The signed message is SHA-256(canonicalize(credential)), so cost is
independent of credential size and any field change breaks the signature.
"""

from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import ed25519

from .credential_codec import Credential, CredentialCodec
from .errors import MalformedKey, MalformedSignature, SigningError
from .key_manager import IdentityKeyring, PRIVATE_KEY_LENGTH, PUBLIC_KEY_LENGTH


SIGNATURE_LENGTH = 64

BytesLike = Union[bytes, bytearray, str]


def _to_bytes(value: BytesLike) -> bytes:
    """Accept raw bytes or a hex string"""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    raise TypeError(f"Expected bytes or hex string, got {type(value).__name__}")


class SignatureEngine:
    """Signs and verifies credentials; holds no mutable state"""

    def __init__(self, codec: CredentialCodec = None, keyring: IdentityKeyring = None):
        self.keyring = keyring or IdentityKeyring()
        self.codec = codec or CredentialCodec(self.keyring)

    # ==================== SIGNING ====================

    def sign(self, credential: Credential, private_key: BytesLike) -> bytes:
        """
        Sign a credential

        Args:
            credential: The credential to sign
            private_key: Raw 32-byte Ed25519 seed (or hex)

        Returns:
            64-byte signature

        Raises:
            SigningError: private key is malformed
        """
        try:
            key_bytes = _to_bytes(private_key)
            if len(key_bytes) != PRIVATE_KEY_LENGTH:
                raise ValueError(f"expected {PRIVATE_KEY_LENGTH} bytes, got {len(key_bytes)}")
            key = ed25519.Ed25519PrivateKey.from_private_bytes(key_bytes)
        except (TypeError, ValueError) as e:
            raise SigningError(f"Malformed private key: {e}")

        return key.sign(self.codec.digest(credential))

    # ==================== VERIFICATION ====================

    def verify(
        self,
        credential: Credential,
        signature: BytesLike,
        public_key: BytesLike
    ) -> bool:
        """
        Verify a credential signature

        Returns:
            True if valid, False for a well-formed signature that does not match

        Raises:
            MalformedSignature: signature is not 64 bytes / valid hex
            MalformedKey: public key is not 32 bytes / valid hex
        """
        try:
            sig_bytes = _to_bytes(signature)
        except (TypeError, ValueError) as e:
            raise MalformedSignature(f"Unparseable signature: {e}")
        if len(sig_bytes) != SIGNATURE_LENGTH:
            raise MalformedSignature(f"Signature must be 64 bytes, got {len(sig_bytes)}")

        try:
            key_bytes = _to_bytes(public_key)
            if len(key_bytes) != PUBLIC_KEY_LENGTH:
                raise ValueError(f"expected {PUBLIC_KEY_LENGTH} bytes, got {len(key_bytes)}")
            pub_key = ed25519.Ed25519PublicKey.from_public_bytes(key_bytes)
        except (TypeError, ValueError) as e:
            raise MalformedKey(f"Unparseable public key: {e}")

        try:
            pub_key.verify(sig_bytes, self.codec.digest(credential))
            return True
        except InvalidSignature:
            return False

    def verify_with_identifier(
        self,
        credential: Credential,
        signature: BytesLike,
        issuer_identifier: str = None
    ) -> bool:
        """Verify using the key embedded in the issuer's identifier"""
        public_key = self.keyring.identifier_to_public_key(
            issuer_identifier or credential.issuer
        )
        return self.verify(credential, signature, public_key)
