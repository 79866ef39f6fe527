"""
Custody Vault Errors: typed failures surfaced to callers.

Callers branch on the class, not on the message:
- ``WalletNotFound``: benign, take the creation path.
- ``StorageFailure``: retry later (retry policy belongs to the caller).
- ``AuthenticationFailure`` / ``MalformedInput`` / ``InvalidKeyLength``:
  fatal, alert an operator.

Security Note:
    Messages carry identifiers only (user id, wallet id, public key).
    Never put secret seeds, master key bytes or ciphertext in a message.
"""


class CustodyError(Exception):
    """Base exception for the custody vault."""


class InvalidKeyLength(CustodyError):
    """Master key is missing, undecodable or not exactly 32 bytes."""


class WalletNotFound(CustodyError):
    """No wallet record exists for the requested user."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No Stellar wallet found for user: {user_id}")


class AuthenticationFailure(CustodyError):
    """Sealed secret failed authentication (tampering or master key mismatch)."""


class MalformedInput(CustodyError):
    """Ciphertext, nonce or tag is structurally invalid."""


class StorageFailure(CustodyError):
    """The persistence collaborator failed."""


class WalletAlreadyExists(StorageFailure):
    """A wallet record for this user was already persisted."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Stellar wallet already exists for user: {user_id}")


class InvalidTransaction(CustodyError):
    """Unsigned payload is not a transaction envelope for the configured network."""


__all__ = [
    "CustodyError",
    "InvalidKeyLength",
    "WalletNotFound",
    "AuthenticationFailure",
    "MalformedInput",
    "StorageFailure",
    "WalletAlreadyExists",
    "InvalidTransaction",
]
