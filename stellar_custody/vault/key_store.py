"""
CustodialKeyStore: Wallet lifecycle and signing for custodial Stellar keys.

Provides the public API for the custody vault:
- ``get_or_create_wallet(user_id)``: idempotent wallet creation
- ``get_public_address(user_id)``: read-only address lookup
- ``sign_for_user(user_id, unsigned_xdr)``: decrypt, sign, discard
- ``has_wallet`` / ``get_wallet`` / ``list_wallet_addresses``: read-only helpers

Security Note:
    This is the only component that materializes a plaintext secret seed.
    The seed and its signer are locals of ``sign_for_user`` and are dropped
    when the call returns or raises; nothing is cached between calls.
    Python cannot wipe immutable strings, so the seed may linger in freed
    memory until it is reused. This is an accepted limitation; mitigation
    requires an HSM or enclave and is out of scope.
    Never log plaintext, ciphertext or key material. Only log user ids,
    wallet ids and public keys.
"""
import uuid
import logging
from datetime import datetime, timezone
from typing import Optional

from stellar_sdk import Network

from .config import CustodyConfig
from .crypto import EnvelopeCipher
from .exceptions import (
    AuthenticationFailure,
    StorageFailure,
    WalletAlreadyExists,
    WalletNotFound,
)
from .ledger import (
    KeypairGenerator,
    StellarKeypairGenerator,
    StellarTransactionSigner,
    TransactionSigner,
)
from .models import WalletInfo, WalletRecord
from .storage import WalletStore

logger = logging.getLogger("stellar_custody.vault")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CustodialKeyStore:
    """Creates, reads and signs with per-user custodial Stellar wallets.

    Construct once at startup and pass the instance to request handlers.
    The master key is consumed by the envelope cipher here and is not kept
    anywhere else, so an invalid key stops startup with ``InvalidKeyLength``.

    The instance holds no per-request state: concurrent calls, for the same
    or different users, only share the store and the (stateless) cipher.
    """

    def __init__(
        self,
        master_key: bytes,
        store: WalletStore,
        keypairs: Optional[KeypairGenerator] = None,
        signer: Optional[TransactionSigner] = None,
        network_passphrase: str = Network.TESTNET_NETWORK_PASSPHRASE,
        cipher_backend: str = "aesgcm",
    ):
        self._cipher = EnvelopeCipher(master_key, backend=cipher_backend)
        self._store = store
        self._keypairs = keypairs or StellarKeypairGenerator()
        self._signer = signer or StellarTransactionSigner(network_passphrase)

    def __repr__(self) -> str:
        return (
            f"<CustodialKeyStore store={type(self._store).__name__} "
            f"cipher={self._cipher.backend}>"
        )

    @classmethod
    def from_config(
        cls,
        config: CustodyConfig,
        store: WalletStore,
        keypairs: Optional[KeypairGenerator] = None,
    ) -> "CustodialKeyStore":
        """Build a key store from validated configuration."""
        return cls(
            master_key=config.master_key,
            store=store,
            keypairs=keypairs,
            network_passphrase=config.network_passphrase,
            cipher_backend=config.cipher_backend,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _associated_data(user_id: str) -> bytes:
        """Bind a sealed seed to its owner so rows cannot be swapped."""
        return f"stellar-wallet:{user_id}".encode("utf-8")

    async def _require(self, user_id: str) -> WalletRecord:
        record = await self._store.find_by_user_id(user_id)
        if record is None:
            raise WalletNotFound(user_id)
        return record

    def _new_record(self, user_id: str) -> WalletRecord:
        """Generate a keypair and seal its secret half.

        Everything is computed before the store is touched, so a failed
        insert leaves nothing behind.
        """
        public_key, secret = self._keypairs.generate()
        sealed = self._cipher.encrypt(secret, self._associated_data(user_id))
        return WalletRecord(
            wallet_id=uuid.uuid4().hex,
            user_id=user_id,
            public_key=public_key,
            encrypted_secret=sealed.ciphertext,
            nonce=sealed.nonce,
            auth_tag=sealed.auth_tag,
            created_at=_utcnow(),
        )

    def _open_signer(self, record: WalletRecord):
        """Decrypt the record's seed and return a signer for it.

        Raises:
            AuthenticationFailure: The sealed seed does not verify, or it
                does not belong to the record's public key.
            MalformedInput: The stored nonce or tag is malformed.
        """
        try:
            signer = self._keypairs.from_secret(
                self._cipher.decrypt(
                    record.encrypted_secret,
                    record.nonce,
                    record.auth_tag,
                    self._associated_data(record.user_id),
                )
            )
        except AuthenticationFailure:
            logger.error(
                "Wallet authentication failed: user=%s wallet=%s",
                record.user_id, record.wallet_id,
            )
            raise
        if signer.public_key != record.public_key:
            logger.error(
                "Wallet key mismatch: user=%s wallet=%s",
                record.user_id, record.wallet_id,
            )
            raise AuthenticationFailure(
                f"sealed secret does not match public key {record.public_key}"
            )
        return signer

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_or_create_wallet(self, user_id: str) -> WalletInfo:
        """Return the user's wallet, creating it on first request.

        Calling this any number of times, concurrently or not, yields one
        record and one public key per user.

        Args:
            user_id: Stable, opaque user identifier.

        Returns:
            WalletInfo with the user's public key and wallet id.

        Raises:
            StorageFailure: The store failed.
        """
        if not user_id:
            raise ValueError("user_id cannot be empty")

        existing = await self._store.find_by_user_id(user_id)
        if existing is not None:
            return existing.info()

        record = self._new_record(user_id)
        try:
            stored = await self._store.insert(record)
        except WalletAlreadyExists:
            # another request created it first; its keypair wins
            winner = await self._store.find_by_user_id(user_id)
            if winner is None:
                raise StorageFailure(
                    f"wallet for user {user_id} reported as existing but not found"
                ) from None
            logger.warning(
                "Wallet create race resolved: user=%s wallet=%s",
                user_id, winner.wallet_id,
            )
            return winner.info()

        logger.info(
            "Created Stellar wallet: user=%s wallet=%s public_key=%s",
            user_id, stored.wallet_id, stored.public_key,
        )
        return stored.info()

    async def get_public_address(self, user_id: str) -> str:
        """Return the user's Stellar address without creating a wallet.

        Raises:
            WalletNotFound: The user has no wallet.
        """
        record = await self._require(user_id)
        return record.public_key

    async def sign_for_user(self, user_id: str, unsigned_xdr: str) -> str:
        """Sign a transaction envelope with the user's custodial key.

        The seed is decrypted fresh for every call and never leaves it.

        Args:
            user_id: Wallet owner.
            unsigned_xdr: Base64 XDR transaction envelope built by the caller.

        Returns:
            The envelope with the user's signature appended, as base64 XDR.

        Raises:
            WalletNotFound: The user has no wallet.
            AuthenticationFailure: The stored secret was tampered with or the
                master key does not match. Do not retry.
            MalformedInput: The stored encryption metadata is malformed.
            InvalidTransaction: ``unsigned_xdr`` is not an envelope.
            StorageFailure: Reading or updating the record failed.
        """
        record = await self._require(user_id)
        signed = self._signer.sign(unsigned_xdr, self._open_signer(record))
        await self._store.touch_last_used(record.wallet_id, _utcnow())
        logger.debug(
            "Signed transaction: user=%s wallet=%s", user_id, record.wallet_id,
        )
        return signed

    async def has_wallet(self, user_id: str) -> bool:
        return await self._store.find_by_user_id(user_id) is not None

    async def get_wallet(self, user_id: str) -> WalletInfo:
        """Return the public view of the user's wallet.

        Raises:
            WalletNotFound: The user has no wallet.
        """
        record = await self._require(user_id)
        return record.info()

    async def list_wallet_addresses(self) -> list[str]:
        """Return all custodial addresses (monitoring/admin)."""
        return await self._store.list_public_keys()
