"""Tests for signing key material."""

import base64

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from tokenmesh.exceptions import ConfigurationError
from tokenmesh.identity.keys import KeyMaterial, base64url_decode, base64url_encode


class TestKeyMaterial:
    def test_generate_has_key_id(self):
        keys = KeyMaterial.generate()
        assert len(keys.key_id) == 32
        assert keys.algorithm == "EdDSA"

    def test_key_id_is_stable_per_instance(self):
        keys = KeyMaterial.generate()
        assert keys.key_id == keys.key_id
        assert KeyMaterial.generate().key_id != keys.key_id

    def test_sign_and_verify(self):
        keys = KeyMaterial.generate()
        sig = keys.sign(b"payload")
        assert keys.verify(sig, b"payload") is True
        assert keys.verify(sig, b"tampered") is False

    def test_verify_rejects_other_key(self):
        sig = KeyMaterial.generate().sign(b"payload")
        assert KeyMaterial.generate().verify(sig, b"payload") is False

    def test_public_key_b64_is_der_spki(self):
        keys = KeyMaterial.generate()
        der = base64.b64decode(keys.public_key_b64())
        loaded = serialization.load_der_public_key(der)
        assert isinstance(loaded, ed25519.Ed25519PublicKey)

    def test_public_key_bytes_length(self):
        assert len(KeyMaterial.generate().public_key_bytes()) == 32


class TestKeyFiles:
    def test_write_and_load_round_trip(self, tmp_path):
        keys = KeyMaterial.generate()
        priv, pub = tmp_path / "k.pem", tmp_path / "k.pub.pem"
        keys.write_pem(priv, pub)

        loaded = KeyMaterial.load(priv, pub)
        assert loaded.public_key_bytes() == keys.public_key_bytes()
        # a loaded key gets its own process-stable id
        assert loaded.key_id != keys.key_id

    def test_private_key_file_mode(self, tmp_path):
        keys = KeyMaterial.generate()
        priv, pub = tmp_path / "k.pem", tmp_path / "k.pub.pem"
        keys.write_pem(priv, pub)
        assert priv.stat().st_mode & 0o777 == 0o600

    def test_mismatched_pair_rejected(self, tmp_path):
        a, b = KeyMaterial.generate(), KeyMaterial.generate()
        (tmp_path / "a.pem").write_bytes(a.private_key_pem())
        (tmp_path / "b.pub.pem").write_bytes(b.public_key_pem())
        with pytest.raises(ConfigurationError, match="does not match"):
            KeyMaterial.load(tmp_path / "a.pem", tmp_path / "b.pub.pem")

    def test_missing_file_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            KeyMaterial.load(tmp_path / "nope.pem", tmp_path / "nope.pub.pem")

    def test_non_ed25519_key_rejected(self, tmp_path):
        from cryptography.hazmat.primitives.asymmetric import ec

        other = ec.generate_private_key(ec.SECP256R1())
        (tmp_path / "ec.pem").write_bytes(
            other.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            )
        )
        (tmp_path / "ec.pub.pem").write_bytes(
            other.public_key().public_bytes(
                serialization.Encoding.PEM,
                serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        )
        with pytest.raises(ConfigurationError, match="Ed25519"):
            KeyMaterial.load(tmp_path / "ec.pem", tmp_path / "ec.pub.pem")

    def test_from_paths_generates_when_unset(self):
        keys = KeyMaterial.from_paths(None, None)
        assert keys.key_id


class TestJwk:
    def test_to_jwk_fields(self):
        keys = KeyMaterial.generate()
        jwk = keys.to_jwk()
        assert jwk["kty"] == "OKP"
        assert jwk["crv"] == "Ed25519"
        assert jwk["kid"] == keys.key_id
        assert "d" not in jwk
        assert base64url_decode(jwk["x"]) == keys.public_key_bytes()

    def test_to_jwks(self):
        keys = KeyMaterial.generate()
        jwks = keys.to_jwks()
        assert len(jwks["keys"]) == 1
        assert jwks["keys"][0]["kid"] == keys.key_id

    def test_base64url_has_no_padding(self):
        encoded = base64url_encode(b"\x00\x01")
        assert "=" not in encoded
        assert base64url_decode(encoded) == b"\x00\x01"
