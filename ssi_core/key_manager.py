"""
Key Manager - Quản lý định danh did:key cho SSI Core

Identifier format: did:key:z<base58btc(0xed 0x01 || ed25519 public key)>

Reference: https://w3c-ccg.github.io/did-method-key/
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict

import base58
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from .errors import MalformedIdentifier, MalformedKey


DID_KEY_PREFIX = "did:key:z"  # "z" = multibase base58btc
ED25519_MULTICODEC = b"\xed\x01"
PUBLIC_KEY_LENGTH = 32
PRIVATE_KEY_LENGTH = 32

_IDENTIFIER_RE = re.compile(r"^did:key:z[1-9A-HJ-NP-Za-km-z]+$")


@dataclass(frozen=True)
class Identity:
    """A self-certifying identity. private_key is the raw 32-byte Ed25519 seed."""
    identifier: str
    public_key: bytes
    private_key: bytes = field(repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "did": self.identifier,
            "publicKey": self.public_key.hex(),
            "privateKey": self.private_key.hex(),
        }

    def public_info(self) -> Dict[str, Any]:
        """Shareable view (no private key)"""
        return {"did": self.identifier, "publicKey": self.public_key.hex()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        try:
            private_key = bytes.fromhex(data["privateKey"])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedKey(f"Stored identity has no usable private key: {e}")

        identity = IdentityKeyring.identity_from_private_key(private_key)
        if data.get("did") and data["did"] != identity.identifier:
            raise MalformedIdentifier(
                f"Stored identifier does not match its key: {data['did']}"
            )
        return identity


class IdentityKeyring:
    """
    Generates and decodes did:key identifiers

    Stateless: every method is a pure function of its arguments
    (apart from the entropy consumed by generate).
    """

    # ==================== GENERATION ====================

    @staticmethod
    def generate() -> Identity:
        """
        Generate a fresh Ed25519 identity

        Returns:
            Identity with identifier derived from the public key
        """
        private_key = ed25519.Ed25519PrivateKey.generate()
        return IdentityKeyring._identity_from_key(private_key)

    @staticmethod
    def identity_from_private_key(private_key: bytes) -> Identity:
        """Rebuild an Identity from a stored 32-byte seed"""
        if not isinstance(private_key, (bytes, bytearray)) or len(private_key) != PRIVATE_KEY_LENGTH:
            raise MalformedKey("Ed25519 private key must be 32 bytes")
        key = ed25519.Ed25519PrivateKey.from_private_bytes(bytes(private_key))
        return IdentityKeyring._identity_from_key(key)

    @staticmethod
    def _identity_from_key(private_key: ed25519.Ed25519PrivateKey) -> Identity:
        private_bytes = private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption()
        )
        public_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )
        return Identity(
            identifier=IdentityKeyring.public_key_to_identifier(public_bytes),
            public_key=public_bytes,
            private_key=private_bytes,
        )

    # ==================== ENCODING ====================

    @staticmethod
    def public_key_to_identifier(public_key: bytes) -> str:
        if len(public_key) != PUBLIC_KEY_LENGTH:
            raise MalformedKey(f"Ed25519 public key must be 32 bytes, got {len(public_key)}")
        encoded = base58.b58encode(ED25519_MULTICODEC + bytes(public_key)).decode("ascii")
        return f"{DID_KEY_PREFIX}{encoded}"

    @staticmethod
    def identifier_to_public_key(identifier: str) -> bytes:
        """
        Recover the raw public key from a did:key identifier

        Raises:
            MalformedIdentifier: bad marker, undecodable payload, wrong tag or length
        """
        if not isinstance(identifier, str) or not identifier.startswith(DID_KEY_PREFIX):
            raise MalformedIdentifier(f"Not a did:key identifier: {identifier!r}")

        try:
            decoded = base58.b58decode(identifier[len(DID_KEY_PREFIX):])
        except ValueError as e:
            raise MalformedIdentifier(f"Invalid base58 payload: {e}")

        if len(decoded) != len(ED25519_MULTICODEC) + PUBLIC_KEY_LENGTH:
            raise MalformedIdentifier(
                f"Decoded key has wrong length: {len(decoded)} bytes"
            )
        if decoded[:2] != ED25519_MULTICODEC:
            raise MalformedIdentifier(f"Unsupported key type tag: {decoded[:2].hex()}")

        return decoded[2:]

    @staticmethod
    def is_valid_identifier(identifier: Any) -> bool:
        """Cheap syntactic check, does not decode"""
        return isinstance(identifier, str) and bool(_IDENTIFIER_RE.match(identifier))
