"""Custody Vault: Encrypted custodial Stellar wallets and signing.

Security Note (Threat Model):
    Secret seeds are stored sealed under a process-wide master key and are
    decrypted in process memory only for the duration of one signing call.
    A memory dump taken during that window could expose a seed; the master
    key itself lives in process memory for the process lifetime.
    This is an accepted limitation; mitigation requires HSM/secure
    enclave integration which is out of scope.
"""

from .key_store import CustodialKeyStore
from .crypto import EnvelopeCipher, SealedSecret
from .config import CustodyConfig, load_master_key, generate_master_key
from .models import WalletInfo, WalletRecord
from .storage import WalletStore, MemoryWalletStore, PostgresWalletStore
from .ledger import StellarKeypairGenerator, StellarTransactionSigner
from .exceptions import (
    CustodyError,
    InvalidKeyLength,
    WalletNotFound,
    AuthenticationFailure,
    MalformedInput,
    StorageFailure,
    WalletAlreadyExists,
    InvalidTransaction,
)

__all__ = [
    "CustodialKeyStore",
    "EnvelopeCipher",
    "SealedSecret",
    "CustodyConfig",
    "load_master_key",
    "generate_master_key",
    "WalletInfo",
    "WalletRecord",
    "WalletStore",
    "MemoryWalletStore",
    "PostgresWalletStore",
    "StellarKeypairGenerator",
    "StellarTransactionSigner",
    "CustodyError",
    "InvalidKeyLength",
    "WalletNotFound",
    "AuthenticationFailure",
    "MalformedInput",
    "StorageFailure",
    "WalletAlreadyExists",
    "InvalidTransaction",
]
