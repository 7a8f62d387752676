"""
PasswordManager — Credential records coordinated with a VaultSession.

Keeps a website-sorted view of the account's records, encrypts new and
changed passwords through the session before they reach the store, and
decrypts on demand for display. Key derivation runs in a worker thread so
the event loop stays responsive.
"""
import asyncio
import logging
from typing import Any, Literal, Optional, Union
from collections.abc import Mapping

from pydantic import BaseModel

from ..exceptions import DecryptionFailed, StoreError
from .key_rotation import rotate_master_passphrase
from .passphrase import CharacterClasses, PassphraseValidation, generate_passphrase
from .records import CreateSecretInput, SecretRecord, UpdateSecretInput
from .session_vault import VaultSession
from .store import VaultRecordStore

logger = logging.getLogger("lifedash.vault")

UnlockMode = Literal["setup", "unlock"]


class DecryptedRecord(BaseModel):
    """A record paired with its plaintext, or a failure marker."""

    record: SecretRecord
    plaintext: Optional[str] = None
    failed: bool = False


class PasswordManager:
    """Password manager bound to one account store and one vault session.

    Args:
        store: Record store scoped to the signed-in account.
        session: Vault session shared with the rest of the client.
    """

    def __init__(self, store: VaultRecordStore, session: VaultSession):
        self._store = store
        self._session = session
        self._records: list[SecretRecord] = []

    @property
    def session(self) -> VaultSession:
        return self._session

    @property
    def records(self) -> list[SecretRecord]:
        return list(self._records)

    def _set_records(self, records: list[SecretRecord]) -> None:
        self._records = sorted(records, key=lambda r: r.website.lower())

    def _load(self, records: list[SecretRecord]) -> None:
        """Replace the local view with ``records`` from the store.

        Revealed plaintexts of records that vanished or whose bundle changed
        are hidden.
        """
        known = {r.id: r for r in self._records}
        fresh = {r.id: r for r in records}
        for record_id in self._session.revealed_ids():
            previous, current = known.get(record_id), fresh.get(record_id)
            if current is None or previous is None or current.bundle != previous.bundle:
                self._session.hide(record_id)
        self._set_records(records)

    def _find(self, record_id: str) -> SecretRecord:
        for record in self._records:
            if record.id == record_id:
                return record
        raise StoreError(f"Record {record_id} not found")

    # ------------------------------------------------------------------
    # Lock / unlock
    # ------------------------------------------------------------------

    async def _resolve_mode(self) -> tuple[UnlockMode, bool]:
        """Return the unlock mode and whether the records were loaded for it."""
        if self._session.is_unlocked:
            return "unlock", False
        records = await self._store.list()
        self._load(records)
        return ("unlock" if records else "setup"), True

    async def unlock_mode(self) -> UnlockMode:
        """Return "setup" for a locked, empty vault, else "unlock"."""
        mode, _ = await self._resolve_mode()
        return mode

    async def unlock(
        self,
        passphrase: str,
        confirmation: Optional[str] = None,
    ) -> PassphraseValidation:
        """Unlock the session, strength-checking the passphrase on first run.

        An empty passphrase is refused with an invalid result in both modes.
        The store is listed once per call.

        Returns:
            The setup validation result, or a valid result for a plain unlock.
        """
        if not passphrase:
            return PassphraseValidation(valid=False, errors=["Password is required"])
        mode, loaded = await self._resolve_mode()
        if mode == "setup":
            result = self._session.setup(passphrase, confirmation)
        else:
            self._session.unlock(passphrase)
            result = PassphraseValidation(valid=True)
        if result.valid and not loaded:
            await self.fetch()
        return result

    def lock(self) -> None:
        self._session.lock()

    async def change_master_passphrase(
        self,
        new_passphrase: str,
        batch_size: int = 50,
    ) -> dict:
        """Re-encrypt every record under ``new_passphrase`` and reload them.

        Returns:
            Stats dict with keys: total, rotated, skipped.

        Raises:
            SessionLocked: If the session is locked.
            InvalidInput: If the new passphrase is weak or batch_size < 1.
            DecryptionFailed: If a record opens under neither passphrase.
            StoreError: If a write fails; calling again resumes the rotation.
        """
        stats = await rotate_master_passphrase(
            self._store, self._session, new_passphrase, batch_size,
        )
        await self.fetch()
        return stats

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def fetch(self) -> list[SecretRecord]:
        """Reload the account's records from the store."""
        self._load(await self._store.list())
        logger.debug("Fetched %d record(s) for user=%s", len(self._records), self._store.user_id)
        return self.records

    async def create(self, data: CreateSecretInput) -> SecretRecord:
        """Encrypt and store a new credential.

        Raises:
            SessionLocked: If the session is locked.
            StoreError: If the store rejects the record.
        """
        bundle = await asyncio.to_thread(self._session.encrypt, data.password)
        record = await self._store.create({
            "website": data.website,
            "username": data.username or None,
            "notes": data.notes or None,
            **SecretRecord.bundle_fields(bundle),
        })
        self._set_records([*self._records, record])
        logger.info("Vault record created: id=%s", record.id)
        return record

    async def update(self, record_id: str, data: UpdateSecretInput) -> SecretRecord:
        """Patch a credential; a new password is re-encrypted with fresh salt and nonce.

        Label-only updates do not need an unlocked session.

        Raises:
            SessionLocked: If the password changes while the session is locked.
            StoreError: If the record does not exist or the store fails.
        """
        patch: dict = data.plain_patch()
        if data.password is not None:
            bundle = await asyncio.to_thread(self._session.encrypt, data.password)
            patch.update(SecretRecord.bundle_fields(bundle))
        record = await self._store.update(record_id, patch)
        # stale plaintext must not outlive a password change
        self._session.hide(record_id)
        self._set_records([r for r in self._records if r.id != record_id] + [record])
        logger.info("Vault record updated: id=%s", record_id)
        return record

    async def delete(self, record_id: str) -> None:
        await self._store.delete(record_id)
        self._session.hide(record_id)
        self._set_records([r for r in self._records if r.id != record_id])
        logger.info("Vault record deleted: id=%s", record_id)

    # ------------------------------------------------------------------
    # Decryption
    # ------------------------------------------------------------------

    async def decrypt(self, record: SecretRecord) -> str:
        """Decrypt one record's password.

        Raises:
            SessionLocked: If the session is locked.
            DecryptionFailed: If the record does not open.
        """
        return await asyncio.to_thread(self._session.decrypt, record.bundle)

    async def decrypt_all(self) -> list[DecryptedRecord]:
        """Decrypt every loaded record.

        A record that fails is returned with ``failed=True`` and no plaintext;
        the others are still decrypted.

        Raises:
            SessionLocked: If the session is locked.
        """
        results = await asyncio.gather(
            *(self.decrypt(record) for record in self._records),
            return_exceptions=True,
        )
        decrypted: list[DecryptedRecord] = []
        for record, result in zip(self._records, results):
            if isinstance(result, DecryptionFailed):
                logger.warning("Failed to decrypt vault record id=%s", record.id)
                decrypted.append(DecryptedRecord(record=record, failed=True))
            elif isinstance(result, BaseException):
                raise result
            else:
                decrypted.append(DecryptedRecord(record=record, plaintext=result))
        return decrypted

    async def reveal(self, record_id: str) -> str:
        """Decrypt a record for display; the plaintext stays until hidden or locked."""
        record = self._find(record_id)
        return await asyncio.to_thread(self._session.reveal, record_id, record.bundle)

    def hide(self, record_id: str) -> None:
        self._session.hide(record_id)

    def is_revealed(self, record_id: str) -> bool:
        return self._session.revealed(record_id) is not None

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, term: str) -> list[SecretRecord]:
        """Case-insensitive match of ``term`` in website or username."""
        needle = term.lower()
        return [
            r for r in self._records
            if needle in r.website.lower()
            or (r.username is not None and needle in r.username.lower())
        ]

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_password(
        self,
        classes: Optional[Union[CharacterClasses, Mapping[str, Any]]] = None,
        length: Optional[int] = None,
    ) -> str:
        """Generate a password for a new record; length defaults to the config."""
        if length is None:
            length = self._session.config.passphrase_length
        return generate_passphrase(length, classes)
