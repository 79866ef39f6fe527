"""
Vault Crypto Core: Envelope cipher for secret seeds at rest.

HKDF(MASTER_KEY, "stellar-custody-wallet-v1") → AEAD → (ciphertext, nonce, tag)

The nonce, tag and ciphertext are stored as separate fields of a wallet
record and must travel together; losing any one makes the record
permanently undecryptable.

Security Note:
    Never log plaintext or ciphertext values.
    Nonces are random 96-bit, drawn fresh on every encryption; callers
    cannot supply one.
"""
import os
import logging
from typing import NamedTuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from .exceptions import AuthenticationFailure, InvalidKeyLength, MalformedInput

logger = logging.getLogger("stellar_custody.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_LENGTH = 32  # AES-256

_KEY_CONTEXT = "stellar-custody-wallet-v1"

_CIPHERS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}


class SealedSecret(NamedTuple):
    """Encrypted secret and the metadata needed to open it."""
    ciphertext: bytes
    nonce: bytes
    auth_tag: bytes


def derive_key(seed: bytes, context: str) -> bytes:
    """Derive a 32-byte encryption key using HKDF-SHA256.

    Args:
        seed: Input key material (the master key).
        context: Context string for domain separation.

    Returns:
        32-byte derived key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,  # deterministic: the same master key must reopen old records
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


class EnvelopeCipher:
    """Authenticated encryption of single secret values under one master key.

    The master key is validated once here; ``encrypt``/``decrypt`` never
    re-check it. The instance holds no per-call state and is safe to share
    between concurrent tasks.
    """

    def __init__(self, master_key: bytes, backend: str = "aesgcm"):
        if not isinstance(master_key, (bytes, bytearray)) or len(master_key) != KEY_LENGTH:
            size = len(master_key) if isinstance(master_key, (bytes, bytearray)) else "non-bytes"
            raise InvalidKeyLength(
                f"master key must be exactly {KEY_LENGTH} bytes, got {size}"
            )
        try:
            cipher_cls = _CIPHERS[backend]
        except KeyError:
            raise ValueError(f"Unsupported cipher backend: {backend}") from None
        self._backend = backend
        self._aead = cipher_cls(derive_key(bytes(master_key), _KEY_CONTEXT))

    def __repr__(self) -> str:
        return f"<EnvelopeCipher backend={self._backend}>"

    @property
    def backend(self) -> str:
        return self._backend

    def encrypt(self, plaintext: str, associated_data: bytes | None = None) -> SealedSecret:
        """Encrypt a secret string.

        Args:
            plaintext: Non-empty secret to seal.
            associated_data: Optional context bound into the tag (not encrypted).

        Returns:
            SealedSecret with ciphertext, the fresh nonce, and the 16-byte tag.

        Raises:
            MalformedInput: If plaintext is empty.
        """
        if not plaintext:
            raise MalformedInput("plaintext must be a non-empty string")
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), associated_data)
        return SealedSecret(
            ciphertext=sealed[:-TAG_SIZE],
            nonce=nonce,
            auth_tag=sealed[-TAG_SIZE:],
        )

    def decrypt(
        self,
        ciphertext: bytes,
        nonce: bytes,
        auth_tag: bytes,
        associated_data: bytes | None = None,
    ) -> str:
        """Verify and decrypt a sealed secret.

        The tag is verified before any plaintext is released.

        Raises:
            MalformedInput: If nonce or tag have the wrong length, or
                ciphertext is empty.
            AuthenticationFailure: If the tag does not verify.
        """
        if len(nonce) != NONCE_SIZE:
            raise MalformedInput(
                f"nonce must be {NONCE_SIZE} bytes, got {len(nonce)}"
            )
        if len(auth_tag) != TAG_SIZE:
            raise MalformedInput(
                f"auth tag must be {TAG_SIZE} bytes, got {len(auth_tag)}"
            )
        if not ciphertext:
            raise MalformedInput("ciphertext is empty")
        try:
            plaintext = self._aead.decrypt(
                bytes(nonce), bytes(ciphertext) + bytes(auth_tag), associated_data,
            )
        except InvalidTag as err:
            raise AuthenticationFailure(
                "sealed secret failed authentication"
            ) from err
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            # the decode error holds the plaintext bytes, do not chain it
            raise MalformedInput("sealed secret is not valid UTF-8") from None
