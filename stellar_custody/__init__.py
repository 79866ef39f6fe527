"""Stellar Custody.

Custodial key management and transaction signing for Stellar wallets.
"""
from .version import __version__
from .vault import CustodialKeyStore, CustodyConfig, MemoryWalletStore, PostgresWalletStore

__all__ = [
    "__version__",
    "CustodialKeyStore",
    "CustodyConfig",
    "MemoryWalletStore",
    "PostgresWalletStore",
]
