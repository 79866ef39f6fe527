"""
Tests for the envelope cipher.

Tests cover:
- Master key validation at construction
- Encrypt/decrypt round trip for both AEAD backends
- Tamper detection on ciphertext, nonce and tag
- Wrong-key and wrong-context rejection
- Nonce freshness
- Structural validation of nonce/tag/ciphertext
"""
import os

import pytest

from stellar_custody.vault.crypto import (
    NONCE_SIZE,
    TAG_SIZE,
    EnvelopeCipher,
    SealedSecret,
)
from stellar_custody.vault.exceptions import (
    AuthenticationFailure,
    InvalidKeyLength,
    MalformedInput,
)

SECRET = "SBQWY3DNPFWGSZTFNV4WQZLBOJ2GQZLSMVXGKZLPMJXGQ2LSNRSXE3DFN5WA3LYO"


def _flip(data: bytes, bit: int) -> bytes:
    buf = bytearray(data)
    buf[bit // 8] ^= 1 << (bit % 8)
    return bytes(buf)


@pytest.fixture(params=["aesgcm", "chacha20"])
def cipher(request, master_key):
    return EnvelopeCipher(master_key, backend=request.param)


class TestConstruction:
    """Master key checks happen once, when the cipher is built."""

    @pytest.mark.parametrize("size", [0, 16, 31, 33, 64])
    def test_rejects_wrong_key_length(self, size):
        with pytest.raises(InvalidKeyLength):
            EnvelopeCipher(os.urandom(size))

    def test_rejects_non_bytes_key(self):
        with pytest.raises(InvalidKeyLength):
            EnvelopeCipher("a" * 32)

    def test_rejects_unknown_backend(self, master_key):
        with pytest.raises(ValueError):
            EnvelopeCipher(master_key, backend="des")

    def test_repr_hides_key(self, master_key):
        assert master_key.hex() not in repr(EnvelopeCipher(master_key))


class TestRoundTrip:
    """decrypt(encrypt(x)) == x."""

    @pytest.mark.parametrize("plaintext", [SECRET, "x", "ñandú 🔑", "S" * 4096])
    def test_round_trip(self, cipher, plaintext):
        sealed = cipher.encrypt(plaintext)
        assert cipher.decrypt(*sealed) == plaintext

    def test_sealed_shape(self, cipher):
        sealed = cipher.encrypt(SECRET)
        assert isinstance(sealed, SealedSecret)
        assert len(sealed.nonce) == NONCE_SIZE
        assert len(sealed.auth_tag) == TAG_SIZE
        assert len(sealed.ciphertext) == len(SECRET)
        assert SECRET.encode() not in sealed.ciphertext

    def test_round_trip_with_associated_data(self, cipher):
        sealed = cipher.encrypt(SECRET, b"alice")
        assert cipher.decrypt(*sealed, b"alice") == SECRET

    def test_empty_plaintext_rejected(self, cipher):
        with pytest.raises(MalformedInput):
            cipher.encrypt("")


class TestTamperDetection:
    """Any single flipped bit fails closed."""

    @pytest.mark.parametrize("field", ["ciphertext", "nonce", "auth_tag"])
    def test_every_bit_flip_fails(self, master_key, field):
        cipher = EnvelopeCipher(master_key)
        sealed = cipher.encrypt(SECRET)
        original = getattr(sealed, field)
        for bit in range(len(original) * 8):
            tampered = sealed._replace(**{field: _flip(original, bit)})
            with pytest.raises(AuthenticationFailure):
                cipher.decrypt(*tampered)

    def test_wrong_master_key(self, master_key):
        sealed = EnvelopeCipher(master_key).encrypt(SECRET)
        other = EnvelopeCipher(os.urandom(32))
        with pytest.raises(AuthenticationFailure):
            other.decrypt(*sealed)

    def test_wrong_backend(self, master_key):
        sealed = EnvelopeCipher(master_key, backend="aesgcm").encrypt(SECRET)
        other = EnvelopeCipher(master_key, backend="chacha20")
        with pytest.raises(AuthenticationFailure):
            other.decrypt(*sealed)

    def test_wrong_associated_data(self, cipher):
        sealed = cipher.encrypt(SECRET, b"alice")
        with pytest.raises(AuthenticationFailure):
            cipher.decrypt(*sealed, b"bob")
        with pytest.raises(AuthenticationFailure):
            cipher.decrypt(*sealed)

    def test_truncated_ciphertext(self, cipher):
        sealed = cipher.encrypt(SECRET)
        with pytest.raises(AuthenticationFailure):
            cipher.decrypt(sealed.ciphertext[:-1], sealed.nonce, sealed.auth_tag)

    def test_failure_message_has_no_secret(self, cipher):
        sealed = cipher.encrypt(SECRET)
        with pytest.raises(AuthenticationFailure) as excinfo:
            cipher.decrypt(sealed.ciphertext, sealed.nonce, bytes(TAG_SIZE))
        assert SECRET not in str(excinfo.value)
        assert sealed.ciphertext.hex() not in str(excinfo.value)


class TestMalformedInput:
    """Structurally invalid metadata is rejected before decryption."""

    @pytest.mark.parametrize("size", [0, 8, 11, 13, 16])
    def test_bad_nonce_length(self, cipher, size):
        sealed = cipher.encrypt(SECRET)
        with pytest.raises(MalformedInput):
            cipher.decrypt(sealed.ciphertext, os.urandom(size), sealed.auth_tag)

    @pytest.mark.parametrize("size", [0, 12, 15, 17, 32])
    def test_bad_tag_length(self, cipher, size):
        sealed = cipher.encrypt(SECRET)
        with pytest.raises(MalformedInput):
            cipher.decrypt(sealed.ciphertext, sealed.nonce, os.urandom(size))

    def test_empty_ciphertext(self, cipher):
        sealed = cipher.encrypt(SECRET)
        with pytest.raises(MalformedInput):
            cipher.decrypt(b"", sealed.nonce, sealed.auth_tag)


class TestNonces:
    """A fresh nonce is drawn for every encryption."""

    def test_ten_thousand_distinct_nonces(self, master_key):
        cipher = EnvelopeCipher(master_key)
        nonces = {cipher.encrypt(SECRET).nonce for _ in range(10_000)}
        assert len(nonces) == 10_000

    def test_same_plaintext_different_ciphertext(self, cipher):
        first = cipher.encrypt(SECRET)
        second = cipher.encrypt(SECRET)
        assert first.ciphertext != second.ciphertext
        assert first.nonce != second.nonce
