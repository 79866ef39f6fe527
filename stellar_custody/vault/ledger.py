"""
Ledger Collaborators: Stellar keypairs and transaction signing.

The key store only needs three things from the ledger SDK: a fresh
keypair, a signer rebuilt from a secret seed, and "append a signature to
this transaction envelope". Everything else about transactions (building,
fees, submission, sequencing) stays with the caller.
"""
from typing import Any, Protocol

from stellar_sdk import Keypair, TransactionBuilder
from stellar_sdk.exceptions import Ed25519SecretSeedInvalidError

from .exceptions import AuthenticationFailure, InvalidTransaction


class KeypairGenerator(Protocol):
    def generate(self) -> tuple[str, str]:
        """Return a fresh ``(public_key, secret)`` pair."""
        ...

    def from_secret(self, secret: str) -> Any:
        """Build a signer from a plaintext secret seed."""
        ...


class TransactionSigner(Protocol):
    def sign(self, unsigned_blob: str, signer: Any) -> str:
        """Append ``signer``'s signature to the transaction blob."""
        ...


class StellarKeypairGenerator:
    """Ed25519 keypairs in Stellar strkey format (G... / S...)."""

    def generate(self) -> tuple[str, str]:
        keypair = Keypair.random()
        return keypair.public_key, keypair.secret

    def from_secret(self, secret: str) -> Keypair:
        try:
            return Keypair.from_secret(secret)
        except Ed25519SecretSeedInvalidError:
            # the SDK error repeats the seed, do not chain it
            raise AuthenticationFailure(
                "decrypted secret is not a valid Stellar seed"
            ) from None


class StellarTransactionSigner:
    """Signs base64 XDR transaction envelopes for one network passphrase."""

    def __init__(self, network_passphrase: str):
        self.network_passphrase = network_passphrase

    def sign(self, unsigned_blob: str, signer: Keypair) -> str:
        """Parse the envelope, add a signature, and re-encode it.

        Raises:
            InvalidTransaction: If the blob is not a transaction envelope.
        """
        try:
            envelope = TransactionBuilder.from_xdr(
                unsigned_blob, self.network_passphrase,
            )
        except Exception as err:
            raise InvalidTransaction(
                "payload is not a Stellar transaction envelope"
            ) from err
        envelope.sign(signer)
        return envelope.to_xdr()
