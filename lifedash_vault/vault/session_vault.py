"""
VaultSession — In-memory custody of the master passphrase.

Provides the lock/unlock state machine of the password vault:
- ``unlock(passphrase)`` — hold the passphrase for the session
- ``setup(passphrase, confirmation)`` — first-run unlock, strength-checked
- ``lock()`` — forget the passphrase and everything derived from it
- ``encrypt(plaintext)`` / ``decrypt(bundle)`` — gated by the session state
- ``reveal(record_id, bundle)`` / ``hide(record_id)`` — display cache

Security Note:
    Never log plaintext, passphrases or keys. A session never persists
    anything; every new instance starts LOCKED.
"""
import logging
import threading
from enum import Enum
from typing import Optional
from collections import OrderedDict

from ..exceptions import DecryptionFailed, InvalidInput, SessionLocked
from .config import VaultConfig
from .crypto import CipherBundle, derive_key, generate_salt, open_sealed, seal
from .passphrase import PassphraseValidation, validate_passphrase

logger = logging.getLogger("lifedash.vault")


class VaultState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class VaultSession:
    """Lock/unlock state machine mediating every encrypt and decrypt call.

    The session is created explicitly and handed to whoever needs it; there
    is no module-level instance. Derived keys are cached per salt while the
    session stays unlocked with the same passphrase (``key_cache_size`` in
    ``VaultConfig``, 0 disables). Decrypted plaintexts kept for display live
    in the reveal cache. Both caches are emptied on ``lock()``.
    """

    def __init__(self, config: Optional[VaultConfig] = None):
        self._config = config or VaultConfig()
        self._passphrase: Optional[str] = None
        self._keys: OrderedDict[bytes, bytes] = OrderedDict()
        self._revealed: dict[str, tuple[CipherBundle, str]] = {}
        self._mutex = threading.Lock()

    def __repr__(self) -> str:
        return (
            f"<VaultSession [{self.state.value}] "
            f"keys={len(self._keys)} revealed={len(self._revealed)}>"
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def state(self) -> VaultState:
        return VaultState.UNLOCKED if self._passphrase is not None else VaultState.LOCKED

    @property
    def is_unlocked(self) -> bool:
        return self._passphrase is not None

    def _clear_caches(self) -> None:
        """Drop derived keys and revealed plaintexts. Caller holds the mutex."""
        self._keys.clear()
        self._revealed.clear()

    def _require_passphrase(self) -> str:
        passphrase = self._passphrase
        if passphrase is None:
            raise SessionLocked()
        return passphrase

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def unlock(self, passphrase: str) -> None:
        """Hold ``passphrase`` for the rest of the session.

        Any non-empty passphrase is accepted; a wrong one only shows up as a
        failed decrypt. Unlocking again replaces the held passphrase.

        Raises:
            InvalidInput: If the passphrase is empty.
        """
        if not isinstance(passphrase, str) or not passphrase:
            raise InvalidInput("Password is required")
        with self._mutex:
            if self._passphrase != passphrase:
                self._clear_caches()
            self._passphrase = passphrase
        logger.info("Vault session unlocked")

    def setup(
        self,
        passphrase: str,
        confirmation: Optional[str] = None,
    ) -> PassphraseValidation:
        """First-run unlock for an empty vault.

        The passphrase must pass the strength rules and match
        ``confirmation`` when one is given. The session is unlocked only if
        the returned result is valid.
        """
        if not passphrase:
            return PassphraseValidation(valid=False, errors=["Password is required"])
        result = validate_passphrase(passphrase)
        if confirmation is not None and confirmation != passphrase:
            result = PassphraseValidation(
                valid=False, errors=[*result.errors, "Passwords do not match"],
            )
        if result.valid:
            self.unlock(passphrase)
        else:
            logger.debug("Vault setup rejected: %d rule(s) failed", len(result.errors))
        return result

    def lock(self) -> None:
        """Forget the passphrase, derived keys and every revealed plaintext."""
        with self._mutex:
            self._passphrase = None
            self._clear_caches()
        logger.info("Vault session locked")

    # ------------------------------------------------------------------
    # Key cache
    # ------------------------------------------------------------------

    def _key_for(self, passphrase: str, salt: bytes) -> bytes:
        """Return the key for ``salt``, deriving and caching it when needed."""
        size = self._config.key_cache_size
        if size:
            with self._mutex:
                key = self._keys.get(salt)
                if key is not None:
                    self._keys.move_to_end(salt)
                    return key
        key = derive_key(passphrase, salt, self._config.kdf_iterations)
        if size:
            with self._mutex:
                # only cache if no lock/unlock happened while deriving
                if self._passphrase == passphrase:
                    self._keys[salt] = key
                    while len(self._keys) > size:
                        self._keys.popitem(last=False)
        return key

    # ------------------------------------------------------------------
    # Encrypt / decrypt
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: str) -> CipherBundle:
        """Encrypt ``plaintext`` under the held passphrase.

        Raises:
            SessionLocked: If the session is locked.
        """
        passphrase = self._require_passphrase()
        salt = generate_salt()
        key = self._key_for(passphrase, salt)
        return seal(plaintext, key, salt, self._config.cipher_backend)

    def decrypt(self, bundle: CipherBundle) -> str:
        """Decrypt a bundle with the held passphrase.

        A failure leaves the session unlocked.

        Raises:
            SessionLocked: If the session is locked.
            DecryptionFailed: Wrong passphrase, tampered or malformed bundle.
        """
        passphrase = self._require_passphrase()
        ciphertext, nonce, salt = bundle.decode()
        key = self._key_for(passphrase, salt)
        return open_sealed(ciphertext, nonce, key, self._config.cipher_backend)

    # ------------------------------------------------------------------
    # Reveal cache
    # ------------------------------------------------------------------

    def reveal(self, record_id: str, bundle: CipherBundle) -> str:
        """Decrypt a record for display and keep the plaintext until hidden.

        A cached plaintext is only reused while ``bundle`` is the one it was
        decrypted from; a changed bundle is decrypted again.

        Raises:
            SessionLocked: If the session is locked, or got locked while
                decrypting.
            DecryptionFailed: If the bundle does not open.
        """
        with self._mutex:
            cached = self._revealed.get(record_id)
        if cached is not None and cached[0] == bundle:
            return cached[1]
        passphrase = self._require_passphrase()
        try:
            plaintext = self.decrypt(bundle)
        except DecryptionFailed:
            self.hide(record_id)
            raise
        with self._mutex:
            if self._passphrase != passphrase:
                raise SessionLocked()
            self._revealed[record_id] = (bundle, plaintext)
        return plaintext

    def revealed(self, record_id: str) -> Optional[str]:
        """Return the revealed plaintext of a record, or None."""
        with self._mutex:
            cached = self._revealed.get(record_id)
        return cached[1] if cached is not None else None

    def hide(self, record_id: str) -> None:
        """Drop the revealed plaintext of one record."""
        with self._mutex:
            self._revealed.pop(record_id, None)

    def revealed_ids(self) -> list[str]:
        """List ids of records whose plaintext is currently revealed."""
        with self._mutex:
            return list(self._revealed.keys())
