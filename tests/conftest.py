import os

import pytest
from stellar_sdk import Account, Asset, Keypair, Network, TransactionBuilder

from stellar_custody.vault import (
    CustodialKeyStore,
    MemoryWalletStore,
    StellarKeypairGenerator,
)


class RecordingKeypairs(StellarKeypairGenerator):
    """Real Stellar keypairs, remembering every secret handed out."""

    def __init__(self):
        self.secrets: list[str] = []

    def generate(self) -> tuple[str, str]:
        public_key, secret = super().generate()
        self.secrets.append(secret)
        return public_key, secret


def build_unsigned_xdr(source_public_key: str) -> str:
    """Build an unsigned payment envelope from ``source_public_key``."""
    account = Account(source_public_key, 1234)
    transaction = (
        TransactionBuilder(
            source_account=account,
            network_passphrase=Network.TESTNET_NETWORK_PASSPHRASE,
            base_fee=100,
        )
        .append_payment_op(
            destination=Keypair.random().public_key,
            asset=Asset.native(),
            amount="10",
        )
        .set_timeout(30)
        .build()
    )
    return transaction.to_xdr()


@pytest.fixture
def master_key():
    return os.urandom(32)


@pytest.fixture
def store():
    return MemoryWalletStore()


@pytest.fixture
def keypairs():
    return RecordingKeypairs()


@pytest.fixture
def key_store(master_key, store, keypairs):
    return CustodialKeyStore(master_key, store, keypairs=keypairs)


@pytest.fixture
def unsigned_xdr_for():
    return build_unsigned_xdr
