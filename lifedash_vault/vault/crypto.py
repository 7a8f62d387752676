"""
Vault Crypto Core — Key derivation, authenticated encryption and bundle codec.

Every secret is encrypted on its own:
    PBKDF2-SHA256(master passphrase, salt 16B, 100k iterations) → 32B key
    AES-256-GCM(key, nonce 12B) → ciphertext + 16B tag

The salt and nonce are random per call and travel next to the ciphertext as
base64 text in a ``CipherBundle``. Neither is secret.

Security Note:
    Never log plaintext, passphrases, keys or ciphertext values.
    Decryption failures are reported with one error type regardless of cause.
"""
import os
import base64
import binascii
import logging

import orjson
from pydantic import BaseModel, ValidationError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..exceptions import InvalidInput, DecryptionFailed
from .config import MIN_KDF_ITERATIONS

logger = logging.getLogger("lifedash.vault")

SALT_SIZE = 16  # 128-bit salt
NONCE_SIZE = 12  # 96-bit nonce
KEY_LENGTH = 32  # AES-256
TAG_SIZE = 16
PBKDF2_ITERATIONS = MIN_KDF_ITERATIONS

_CIPHERS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}


def get_cipher_cls(name: str = "aesgcm") -> type:
    """Return the AEAD cipher class registered under ``name``.

    Raises:
        InvalidInput: If the backend name is unknown.
    """
    try:
        return _CIPHERS[name.lower()]
    except (KeyError, AttributeError):
        raise InvalidInput(f"Unsupported cipher backend: {name!r}") from None


# ---------------------------------------------------------------------------
# Text encoding
# ---------------------------------------------------------------------------

def encode_for_storage(data: bytes) -> str:
    """Encode raw bytes as standard base64 text."""
    return base64.b64encode(data).decode("ascii")


def decode_from_storage(value: str) -> bytes:
    """Decode base64 text produced by ``encode_for_storage``.

    Raises:
        binascii.Error: If ``value`` is not valid base64.
    """
    return base64.b64decode(value, validate=True)


class CipherBundle(BaseModel):
    """Ciphertext bundle persisted in place of a plaintext secret.

    All three fields are base64 text. ``ciphertext`` carries the AEAD tag.
    """

    ciphertext: str
    nonce: str
    salt: str

    model_config = {"frozen": True}

    def decode(self) -> tuple[bytes, bytes, bytes]:
        """Return raw ``(ciphertext, nonce, salt)`` bytes.

        Raises:
            DecryptionFailed: If any field is malformed.
        """
        return unpack_bundle(self.ciphertext, self.nonce, self.salt)

    def to_json(self) -> bytes:
        """Serialize the bundle for transport."""
        return orjson.dumps(self.model_dump())

    @classmethod
    def from_json(cls, data: bytes | str) -> "CipherBundle":
        """Rebuild a bundle from ``to_json`` output.

        Raises:
            InvalidInput: If ``data`` is not a bundle document.
        """
        try:
            return cls.model_validate(orjson.loads(data))
        except (orjson.JSONDecodeError, ValidationError) as err:
            raise InvalidInput(f"Not a cipher bundle: {err}") from None


def unpack_bundle(ciphertext: str, nonce: str, salt: str) -> tuple[bytes, bytes, bytes]:
    """Decode and length-check the three text fields of a bundle.

    Raises:
        DecryptionFailed: If a field is not base64 or has the wrong size.
    """
    try:
        ct = decode_from_storage(ciphertext)
        iv = decode_from_storage(nonce)
        salt_bytes = decode_from_storage(salt)
    except (binascii.Error, ValueError, TypeError):
        raise DecryptionFailed() from None
    if len(iv) != NONCE_SIZE or len(salt_bytes) != SALT_SIZE or len(ct) < TAG_SIZE:
        raise DecryptionFailed()
    return ct, iv, salt_bytes


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def generate_salt() -> bytes:
    """Generate a cryptographically random 16-byte salt."""
    return os.urandom(SALT_SIZE)


def derive_key(
    passphrase: str,
    salt: bytes,
    iterations: int = PBKDF2_ITERATIONS,
) -> bytes:
    """Derive a 32-byte encryption key from a master passphrase.

    Args:
        passphrase: User's master passphrase.
        salt: Exactly 16 random bytes, stored with the ciphertext.
        iterations: PBKDF2 iteration count (minimum 100,000).

    Returns:
        32-byte derived key.

    Raises:
        InvalidInput: If the salt is not 16 bytes or iterations is too low.
    """
    if not isinstance(salt, (bytes, bytearray)) or len(salt) != SALT_SIZE:
        raise InvalidInput(f"salt must be exactly {SALT_SIZE} bytes")
    if iterations < MIN_KDF_ITERATIONS:
        raise InvalidInput(
            f"iterations must be at least {MIN_KDF_ITERATIONS}, got {iterations}"
        )
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=bytes(salt),
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


# ---------------------------------------------------------------------------
# Encryption with an already derived key
# ---------------------------------------------------------------------------

def seal(plaintext: str, key: bytes, salt: bytes, cipher: str = "aesgcm") -> CipherBundle:
    """Encrypt ``plaintext`` under ``key`` with a fresh random nonce.

    ``salt`` is the one ``key`` was derived from; it is only carried along.
    """
    nonce = os.urandom(NONCE_SIZE)
    aead = get_cipher_cls(cipher)(key)
    ct = aead.encrypt(nonce, plaintext.encode("utf-8"), None)
    return CipherBundle(
        ciphertext=encode_for_storage(ct),
        nonce=encode_for_storage(nonce),
        salt=encode_for_storage(salt),
    )


def open_sealed(ciphertext: bytes, nonce: bytes, key: bytes, cipher: str = "aesgcm") -> str:
    """Authenticate and decrypt raw ciphertext bytes.

    Raises:
        DecryptionFailed: If authentication fails or the payload is not UTF-8.
    """
    aead = get_cipher_cls(cipher)(key)
    try:
        return aead.decrypt(nonce, ciphertext, None).decode("utf-8")
    except (InvalidTag, ValueError):
        # ValueError covers bad nonce sizes and UnicodeDecodeError.
        raise DecryptionFailed() from None


# ---------------------------------------------------------------------------
# Passphrase-level API
# ---------------------------------------------------------------------------

def encrypt_secret(
    plaintext: str,
    passphrase: str,
    *,
    iterations: int = PBKDF2_ITERATIONS,
    cipher: str = "aesgcm",
) -> CipherBundle:
    """Encrypt a secret string under a master passphrase.

    A fresh salt and nonce are generated on every call, so encrypting the
    same plaintext twice never yields the same bundle.

    Args:
        plaintext: Secret to encrypt.
        passphrase: Master passphrase.
        iterations: PBKDF2 iteration count.
        cipher: AEAD backend name.

    Returns:
        CipherBundle with base64 ciphertext, nonce and salt.
    """
    salt = generate_salt()
    key = derive_key(passphrase, salt, iterations)
    return seal(plaintext, key, salt, cipher)


def decrypt_secret(
    ciphertext: str,
    nonce: str,
    salt: str,
    passphrase: str,
    *,
    iterations: int = PBKDF2_ITERATIONS,
    cipher: str = "aesgcm",
) -> str:
    """Decrypt a secret from its stored bundle fields.

    Returns:
        Decrypted plaintext.

    Raises:
        DecryptionFailed: Wrong passphrase, tampered data, or malformed fields.
    """
    ct, iv, salt_bytes = unpack_bundle(ciphertext, nonce, salt)
    key = derive_key(passphrase, salt_bytes, iterations)
    return open_sealed(ct, iv, key, cipher)


def decrypt_bundle(
    bundle: CipherBundle,
    passphrase: str,
    *,
    iterations: int = PBKDF2_ITERATIONS,
    cipher: str = "aesgcm",
) -> str:
    """Shortcut for ``decrypt_secret`` taking a ``CipherBundle``."""
    return decrypt_secret(
        bundle.ciphertext, bundle.nonce, bundle.salt, passphrase,
        iterations=iterations, cipher=cipher,
    )
