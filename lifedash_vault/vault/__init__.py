"""Password Vault — Zero-knowledge storage of dashboard credentials.

Security Note (Threat Model):
    The master passphrase and decrypted secrets live in process memory while
    a VaultSession is unlocked. The record store only ever sees labels and
    ciphertext bundles. A memory dump of an unlocked client can expose the
    passphrase; locking the session drops it together with derived keys and
    revealed plaintexts.
"""

from .config import VaultConfig
from .crypto import (
    CipherBundle,
    derive_key,
    encrypt_secret,
    decrypt_secret,
    decrypt_bundle,
)
from .passphrase import (
    CharacterClasses,
    PassphraseValidation,
    generate_passphrase,
    validate_passphrase,
)
from .session_vault import VaultSession, VaultState
from .records import SecretRecord, CreateSecretInput, UpdateSecretInput
from .store import VaultRecordStore, MemoryRecordStore, PoolRecordStore
from .manager import PasswordManager, DecryptedRecord
from .key_rotation import rotate_master_passphrase

__all__ = [
    "VaultConfig",
    "CipherBundle",
    "derive_key",
    "encrypt_secret",
    "decrypt_secret",
    "decrypt_bundle",
    "CharacterClasses",
    "PassphraseValidation",
    "generate_passphrase",
    "validate_passphrase",
    "VaultSession",
    "VaultState",
    "SecretRecord",
    "CreateSecretInput",
    "UpdateSecretInput",
    "VaultRecordStore",
    "MemoryRecordStore",
    "PoolRecordStore",
    "PasswordManager",
    "DecryptedRecord",
    "rotate_master_passphrase",
]
