"""
Vault Records — Stored credential rows and the inputs that create them.

A ``SecretRecord`` only ever carries the ciphertext bundle of a secret. The
plaintext password exists on the input models until it is encrypted.
"""
from typing import Optional
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .crypto import CipherBundle

MAX_LABEL_LENGTH = 255


class SecretRecord(BaseModel):
    """One stored credential, as persisted by the record store."""

    id: str
    user_id: str
    website: str
    username: Optional[str] = None
    notes: Optional[str] = None
    encrypted_data: str
    iv: str
    salt: str
    created_at: datetime
    updated_at: datetime

    @property
    def bundle(self) -> CipherBundle:
        return CipherBundle(ciphertext=self.encrypted_data, nonce=self.iv, salt=self.salt)

    @staticmethod
    def bundle_fields(bundle: CipherBundle) -> dict[str, str]:
        """Map a bundle onto the record's storage columns."""
        return {
            "encrypted_data": bundle.ciphertext,
            "iv": bundle.nonce,
            "salt": bundle.salt,
        }


def _check_label(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("website cannot be empty")
    if len(v) > MAX_LABEL_LENGTH:
        raise ValueError(f"website cannot exceed {MAX_LABEL_LENGTH} characters")
    return v


class CreateSecretInput(BaseModel):
    """A new credential submitted while the vault is unlocked."""

    website: str
    password: str = Field(min_length=1)
    username: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("website")
    @classmethod
    def validate_website(cls, v: str) -> str:
        return _check_label(v)


class UpdateSecretInput(BaseModel):
    """Partial update; only fields that are set get patched."""

    website: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=1)
    username: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("website")
    @classmethod
    def validate_website(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _check_label(v)

    def plain_patch(self) -> dict[str, Optional[str]]:
        """Return the set plaintext-label fields (never the password)."""
        patch = self.model_dump(exclude_unset=True, exclude={"password"})
        if patch.get("website", "") is None:
            del patch["website"]
        return patch
