"""Wallet record models."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class WalletInfo(BaseModel):
    """Public view of a custodial wallet, safe to hand to callers."""

    user_id: str
    public_key: str
    wallet_id: str

    model_config = {"frozen": True}


class WalletRecord(BaseModel):
    """Persisted wallet: public key plus the sealed secret seed.

    ``encrypted_secret``, ``nonce`` and ``auth_tag`` form one unit; they are
    excluded from ``repr`` so records can be logged by id safely.
    """

    wallet_id: str
    user_id: str
    public_key: str
    encrypted_secret: bytes = Field(repr=False)
    nonce: bytes = Field(repr=False)
    auth_tag: bytes = Field(repr=False)
    created_at: datetime
    last_used_at: Optional[datetime] = None

    model_config = {"frozen": True}

    def info(self) -> WalletInfo:
        return WalletInfo(
            user_id=self.user_id,
            public_key=self.public_key,
            wallet_id=self.wallet_id,
        )
