"""
Vault Exceptions — closed error taxonomy of the password vault.

Every error raised by the library derives from ``VaultError``. Errors coming
from third-party libraries (cipher backends, storage drivers) are translated
where the library is called, so callers only ever handle these types.
"""


class VaultError(Exception):
    """Base class for all vault errors."""


class InvalidInput(VaultError, ValueError):
    """Malformed argument: bad salt length, non-positive length, empty passphrase."""


class SessionLocked(VaultError):
    """Encrypt or decrypt attempted while the vault session is locked."""

    def __init__(self, message: str = "Vault is locked. Unlock it first."):
        super().__init__(message)


class DecryptionFailed(VaultError):
    """Ciphertext could not be opened.

    Raised for a wrong passphrase, tampered ciphertext and malformed nonce or
    salt alike. The message is the same in every case.
    """

    def __init__(self, message: str = "Failed to decrypt data."):
        super().__init__(message)


class StoreError(VaultError):
    """A Vault Record Store operation failed."""
