"""
SSI Core Tests
==============

Identity, credential encoding, signatures and trust scoring
"""

import json
from datetime import datetime, timedelta, timezone

import base58
import pytest

from ssi_core.config import DEFAULT_TRUST_WEIGHTS
from ssi_core.credential_codec import Credential, CredentialCodec, CredentialType, utc_timestamp
from ssi_core.errors import (
    InvalidSubject,
    MalformedIdentifier,
    MalformedKey,
    MalformedSignature,
    SigningError,
)
from ssi_core.key_manager import Identity, IdentityKeyring
from ssi_core.signature_engine import SignatureEngine
from ssi_core.trust_scorer import TrustScorer


RECIPIENT = "did:key:zRecipient"


class TestIdentityKeyring:
    """Test IdentityKeyring functionality"""

    def setup_method(self):
        self.keyring = IdentityKeyring()

    def test_generate_identity(self):
        identity = self.keyring.generate()

        assert identity.identifier.startswith("did:key:z6Mk")
        assert len(identity.public_key) == 32
        assert len(identity.private_key) == 32
        print(f"✅ Generated identity: {identity.identifier}")

    def test_identifier_round_trip(self):
        for _ in range(20):
            identity = self.keyring.generate()
            assert self.keyring.identifier_to_public_key(identity.identifier) == identity.public_key

    def test_identifiers_are_unique(self):
        identifiers = {self.keyring.generate().identifier for _ in range(10)}
        assert len(identifiers) == 10

    def test_rejects_wrong_marker(self):
        with pytest.raises(MalformedIdentifier):
            self.keyring.identifier_to_public_key("did:web:example.com")

    def test_rejects_bad_base58(self):
        with pytest.raises(MalformedIdentifier):
            self.keyring.identifier_to_public_key("did:key:z0OIl")

    def test_rejects_wrong_length(self):
        with pytest.raises(MalformedIdentifier):
            self.keyring.identifier_to_public_key(RECIPIENT)

    def test_rejects_wrong_tag(self):
        payload = base58.b58encode(b"\xe7\x01" + b"\x01" * 32).decode()
        with pytest.raises(MalformedIdentifier):
            self.keyring.identifier_to_public_key(f"did:key:z{payload}")

    def test_is_valid_identifier(self):
        identity = self.keyring.generate()

        assert self.keyring.is_valid_identifier(identity.identifier)
        assert self.keyring.is_valid_identifier(RECIPIENT)
        assert not self.keyring.is_valid_identifier("did:key:")
        assert not self.keyring.is_valid_identifier("did:key:zBad0")
        assert not self.keyring.is_valid_identifier("did:example:123")
        assert not self.keyring.is_valid_identifier(None)

    def test_identity_persistence(self):
        identity = self.keyring.generate()

        restored = Identity.from_dict(json.loads(json.dumps(identity.to_dict())))

        assert restored == identity

    def test_private_key_not_in_repr(self):
        identity = self.keyring.generate()

        assert identity.private_key.hex() not in repr(identity)
        assert repr(identity.private_key) not in repr(identity)
        assert identity.identifier in repr(identity)

    def test_identity_from_bad_private_key(self):
        with pytest.raises(MalformedKey):
            self.keyring.identity_from_private_key(b"\x00" * 5)


class TestCredentialCodec:
    """Test CredentialCodec functionality"""

    def setup_method(self):
        self.codec = CredentialCodec()
        self.issuer = IdentityKeyring.generate()

    def test_create_credential(self):
        credential = self.codec.create(
            self.issuer.identifier, RECIPIENT, "BirthCertificate", {"name": "Amara"}
        )

        vc_dict = credential.to_dict()
        assert vc_dict["@context"] == ["https://www.w3.org/2018/credentials/v1"]
        assert vc_dict["id"].startswith("urn:uuid:")
        assert vc_dict["type"] == ["VerifiableCredential", "BirthCertificate"]
        assert vc_dict["issuer"] == self.issuer.identifier
        assert vc_dict["issuanceDate"].endswith("Z")
        assert vc_dict["credentialSubject"] == {"id": RECIPIENT, "name": "Amara"}
        assert "expirationDate" not in vc_dict
        print(f"✅ Credential created: {credential.id}")

    def test_ids_are_unique(self):
        first = self.codec.create(self.issuer.identifier, RECIPIENT, "HealthRecord", {})
        second = self.codec.create(self.issuer.identifier, RECIPIENT, "HealthRecord", {})
        assert first.id != second.id

    def test_invalid_subject(self):
        with pytest.raises(InvalidSubject):
            self.codec.create(self.issuer.identifier, "not-a-did", "HealthRecord", {})

    def test_subject_id_not_overridden_by_claims(self):
        credential = self.codec.create(
            self.issuer.identifier, RECIPIENT, "HealthRecord", {"id": "did:key:zOther"}
        )
        assert credential.subject_id == RECIPIENT

    def test_canonical_form_ignores_construction_order(self):
        first = Credential(
            issuer=self.issuer.identifier,
            credential_subject={"id": RECIPIENT, "name": "Amara", "born": "2010-01-01"},
            type=["VerifiableCredential", "BirthCertificate"],
            id="urn:uuid:1",
            issuance_date="2024-01-01T00:00:00.000Z",
        )
        second = Credential.from_dict({
            "credentialSubject": {"born": "2010-01-01", "name": "Amara", "id": RECIPIENT},
            "issuanceDate": "2024-01-01T00:00:00.000Z",
            "issuer": self.issuer.identifier,
            "type": ["VerifiableCredential", "BirthCertificate"],
            "id": "urn:uuid:1",
            "@context": ["https://www.w3.org/2018/credentials/v1"],
        })

        assert self.codec.canonicalize(first) == self.codec.canonicalize(second)
        assert self.codec.fingerprint(first) == self.codec.fingerprint(second)

    def test_canonical_form_is_compact_sorted_json(self):
        credential = self.codec.create(self.issuer.identifier, RECIPIENT, "Passport", {"b": 1, "a": 2})

        canonical = self.codec.canonicalize(credential).decode("utf-8")

        assert " " not in canonical
        keys = list(json.loads(canonical).keys())
        assert keys == sorted(keys)

    def test_canonical_form_excludes_signature_fields(self):
        credential = self.codec.create(self.issuer.identifier, RECIPIENT, "Passport", {})
        data = credential.to_dict()
        data["proof"] = {"proofValue": "abc"}
        data["signature"] = "00" * 64

        assert self.codec.canonicalize(Credential.from_dict(data)) == self.codec.canonicalize(credential)

    def test_canonicalize_does_not_mutate(self):
        credential = self.codec.create(self.issuer.identifier, RECIPIENT, "Passport", {"n": 1})
        before = credential.to_dict()

        self.codec.canonicalize(credential)

        assert credential.to_dict() == before

    def test_foreign_fields_survive_round_trip(self):
        credential = self.codec.create(
            self.issuer.identifier, RECIPIENT, "Passport", {}, issuer_name="Registry"
        )
        data = credential.to_dict()
        data["credentialStatus"] = {"type": "Ledger"}

        restored = Credential.from_dict(json.loads(json.dumps(data)))

        assert restored.issuer_name == "Registry"
        assert restored.to_dict() == data

    def test_received_document_is_not_restamped(self):
        data = {
            "@context": "https://www.w3.org/2018/credentials/v1",
            "type": "VerifiableCredential",
            "issuer": self.issuer.identifier,
            "credentialSubject": {"id": RECIPIENT},
        }

        credential = Credential.from_dict(data)

        assert credential.id is None
        assert credential.issuance_date is None
        assert credential.to_dict() == data
        assert self.codec.canonicalize(credential) == json.dumps(
            data, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")

    def test_create_accepts_credential_type_enum(self):
        credential = self.codec.create(
            self.issuer.identifier, RECIPIENT, CredentialType.BIRTH_CERTIFICATE, {}
        )
        assert credential.type == ["VerifiableCredential", "BirthCertificate"]
        assert credential.credential_type == CredentialType.BIRTH_CERTIFICATE.value


    def test_fingerprint_is_sha256_hex(self):
        credential = self.codec.create(self.issuer.identifier, RECIPIENT, "Passport", {})
        fingerprint = self.codec.fingerprint(credential)
        assert len(fingerprint) == 64
        int(fingerprint, 16)


class TestSignatureEngine:
    """Test SignatureEngine functionality"""

    def setup_method(self):
        self.engine = SignatureEngine()
        self.identity = IdentityKeyring.generate()
        self.credential = self.engine.codec.create(
            self.identity.identifier, RECIPIENT, "BirthCertificate", {"name": "Amara"}
        )

    def test_sign_and_verify(self):
        signature = self.engine.sign(self.credential, self.identity.private_key)

        assert len(signature) == 64
        assert self.engine.verify(self.credential, signature, self.identity.public_key)
        print("✅ Ed25519 sign/verify: Valid")

    def test_birth_certificate_tamper_scenario(self):
        signature = self.engine.sign(self.credential, self.identity.private_key)
        assert self.engine.verify(self.credential, signature, self.identity.public_key) is True

        self.credential.credential_subject["name"] = "Someone Else"

        assert self.engine.verify(self.credential, signature, self.identity.public_key) is False
        print("✅ Tampered credential rejected")

    @pytest.mark.parametrize("mutate", [
        lambda c: setattr(c, "id", "urn:uuid:other"),
        lambda c: setattr(c, "issuer", "did:key:zOther"),
        lambda c: setattr(c, "issuance_date", "2000-01-01T00:00:00.000Z"),
        lambda c: setattr(c, "expiration_date", "2100-01-01T00:00:00.000Z"),
        lambda c: setattr(c, "type", ["VerifiableCredential", "Passport"]),
        lambda c: setattr(c, "context", ["https://example.com/v2"]),
        lambda c: c.credential_subject.update({"extra": True}),
        lambda c: c.credential_subject.update({"id": "did:key:zSomeoneElse"}),
    ])
    def test_any_field_change_breaks_signature(self, mutate):
        signature = self.engine.sign(self.credential, self.identity.private_key)

        mutate(self.credential)

        assert self.engine.verify(self.credential, signature, self.identity.public_key) is False

    def test_wrong_key_returns_false(self):
        other = IdentityKeyring.generate()
        signature = self.engine.sign(self.credential, self.identity.private_key)

        assert self.engine.verify(self.credential, signature, other.public_key) is False

    def test_hex_signature_and_key(self):
        signature = self.engine.sign(self.credential, self.identity.private_key.hex())

        assert self.engine.verify(self.credential, signature.hex(), self.identity.public_key.hex())

    def test_verify_with_identifier(self):
        signature = self.engine.sign(self.credential, self.identity.private_key)
        assert self.engine.verify_with_identifier(self.credential, signature)

    def test_malformed_signature(self):
        with pytest.raises(MalformedSignature):
            self.engine.verify(self.credential, b"\x00" * 10, self.identity.public_key)
        with pytest.raises(MalformedSignature):
            self.engine.verify(self.credential, "zz", self.identity.public_key)

    def test_malformed_public_key(self):
        signature = self.engine.sign(self.credential, self.identity.private_key)
        with pytest.raises(MalformedKey):
            self.engine.verify(self.credential, signature, b"\x01" * 31)

    def test_malformed_private_key(self):
        with pytest.raises(SigningError):
            self.engine.sign(self.credential, b"short")
        with pytest.raises(SigningError):
            self.engine.sign(self.credential, "not hex")


class TestTrustScorer:
    """Test TrustScorer functionality"""

    def setup_method(self):
        self.scorer = TrustScorer()
        self.codec = CredentialCodec()
        self.now = datetime(2026, 6, 1, tzinfo=timezone.utc)
        self.issuer_a = IdentityKeyring.generate().identifier
        self.issuer_b = IdentityKeyring.generate().identifier

    def _credential(self, issuer, credential_type, age_days=0):
        credential = self.codec.create(issuer, RECIPIENT, credential_type, {})
        credential.issuance_date = utc_timestamp(self.now - timedelta(days=age_days))
        return credential

    def test_empty_set(self):
        assert self.scorer.score([], now=self.now) == 0

    def test_refugee_registration_scenario(self):
        credential = self._credential(self.issuer_a, "RefugeeRegistration", age_days=60)

        # 3 + min(2 * 0.5, 10) + 2 * 1
        assert self.scorer.score([credential], now=self.now) == 6

    def test_unknown_type_only_gets_bonuses(self):
        credential = self._credential(self.issuer_a, "LibraryCard")
        assert self.scorer.score([credential], now=self.now) == 2

    def test_age_bonus_is_capped(self):
        credential = self._credential(self.issuer_a, "Passport", age_days=3650)
        assert self.scorer.score([credential], now=self.now) == 30 + 10 + 2

    def test_future_issuance_gets_no_bonus(self):
        credential = self._credential(self.issuer_a, "Passport", age_days=-90)
        assert self.scorer.score([credential], now=self.now) == 32

    def test_diversity_bonus(self):
        credentials = [
            self._credential(self.issuer_a, "HealthRecord"),
            self._credential(self.issuer_a, "SchoolEnrollment"),
            self._credential(self.issuer_b, "CommunityVouch"),
        ]
        assert self.scorer.score(credentials, now=self.now) == 5 + 5 + 2 + 2 * 2

    def test_order_independent_and_deterministic(self):
        credentials = [
            self._credential(self.issuer_a, "HealthRecord", age_days=45),
            self._credential(self.issuer_b, "NationalID", age_days=17),
            self._credential(self.issuer_a, "CommunityVouch", age_days=400),
        ]
        forward = self.scorer.score(credentials, now=self.now)

        assert self.scorer.score(list(reversed(credentials)), now=self.now) == forward
        assert self.scorer.score(credentials, now=self.now) == forward

    def test_adding_never_decreases(self):
        credentials = []
        previous = self.scorer.score(credentials, now=self.now)
        for index, credential_type in enumerate(["LibraryCard", "CommunityVouch", "Passport", "LibraryCard"]):
            issuer = self.issuer_a if index % 2 else self.issuer_b
            credentials.append(self._credential(issuer, credential_type, age_days=index * 20))
            current = self.scorer.score(credentials, now=self.now)
            assert current >= previous
            previous = current

    def test_rounds_half_up(self):
        credential = self._credential(self.issuer_a, "LibraryCard", age_days=30)
        # 0.5 age bonus + 2 diversity = 2.5
        assert self.scorer.score([credential], now=self.now) == 3

    def test_custom_policy(self):
        scorer = TrustScorer(weights={"LibraryCard": 1}, diversity_bonus=0)
        credential = self._credential(self.issuer_a, "LibraryCard")
        assert scorer.score([credential], now=self.now) == 1

    def test_every_credential_type_has_a_weight(self):
        assert set(DEFAULT_TRUST_WEIGHTS) == {t.value for t in CredentialType}
        credential = self._credential(self.issuer_a, CredentialType.NATIONAL_ID)
        assert self.scorer.score([credential], now=self.now) == 25 + 2
