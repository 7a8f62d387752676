"""LifeDash Vault.

Client-side password vault of the LifeDash personal dashboard.
"""
from .version import __version__
from .exceptions import (
    VaultError,
    InvalidInput,
    SessionLocked,
    DecryptionFailed,
    StoreError,
)
from .vault import (
    VaultConfig,
    VaultSession,
    PasswordManager,
    generate_passphrase,
    validate_passphrase,
)

__all__ = [
    "__version__",
    "VaultError",
    "InvalidInput",
    "SessionLocked",
    "DecryptionFailed",
    "StoreError",
    "VaultConfig",
    "VaultSession",
    "PasswordManager",
    "generate_passphrase",
    "validate_passphrase",
]
