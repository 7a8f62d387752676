"""
Vault Configuration — Validated settings for key derivation and sessions.

Reads optional overrides from environment variables:
    VAULT_KDF_ITERATIONS = <int, >= 100000>
    VAULT_CIPHER_BACKEND = aesgcm | chacha20
    VAULT_KEY_CACHE_SIZE = <int, 0 disables the derived-key cache>
    VAULT_PASSPHRASE_LENGTH = <int, default length of generated passphrases>

Security Note:
    The master passphrase is never part of the configuration.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("lifedash.vault")

MIN_KDF_ITERATIONS = 100_000
SUPPORTED_CIPHERS = ("aesgcm", "chacha20")


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, falling back to ``default``.

    Raises:
        ValueError: If the variable is set but is not a valid integer.
    """
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    kdf_iterations: int = Field(default=MIN_KDF_ITERATIONS, ge=MIN_KDF_ITERATIONS)
    cipher_backend: str = Field(default="aesgcm")
    key_cache_size: int = Field(default=64, ge=0, le=10_000)
    passphrase_length: int = Field(default=16, ge=1, le=1024)

    model_config = {"frozen": True}

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in SUPPORTED_CIPHERS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        config = cls(
            kdf_iterations=_env_int("VAULT_KDF_ITERATIONS", MIN_KDF_ITERATIONS),
            cipher_backend=os.environ.get("VAULT_CIPHER_BACKEND", "aesgcm"),
            key_cache_size=_env_int("VAULT_KEY_CACHE_SIZE", 64),
            passphrase_length=_env_int("VAULT_PASSPHRASE_LENGTH", 16),
        )
        logger.debug(
            "Vault config: cipher=%s iterations=%d key_cache=%d",
            config.cipher_backend, config.kdf_iterations, config.key_cache_size,
        )
        return config
