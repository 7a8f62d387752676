"""
Vault Key Rotation — Re-encryption of every record under a new master passphrase.

All records are decrypted in memory before anything is written, so a record
that opens under neither passphrase aborts the rotation with nothing changed.
Writes then go out in batches. The operation is resumable and idempotent:
records already readable under the new passphrase are skipped.

Security Note:
    Plaintext exists in memory only during re-encryption.
    Never log plaintext, passphrases or ciphertext values.
"""
import asyncio
import logging

from ..exceptions import DecryptionFailed, InvalidInput, SessionLocked
from .crypto import decrypt_bundle, encrypt_secret
from .passphrase import validate_passphrase
from .records import SecretRecord
from .session_vault import VaultSession
from .store import VaultRecordStore

logger = logging.getLogger("lifedash.vault")


def _open_record(
    record: SecretRecord,
    session: VaultSession,
    new_passphrase: str,
) -> tuple[str, bool]:
    """Return ``(plaintext, already_rotated)`` for one record.

    Raises:
        DecryptionFailed: If the record opens under neither passphrase.
    """
    config = session.config
    try:
        return session.decrypt(record.bundle), False
    except DecryptionFailed:
        pass
    plaintext = decrypt_bundle(
        record.bundle, new_passphrase,
        iterations=config.kdf_iterations, cipher=config.cipher_backend,
    )
    return plaintext, True


async def rotate_master_passphrase(
    store: VaultRecordStore,
    session: VaultSession,
    new_passphrase: str,
    batch_size: int = 50,
) -> dict:
    """Re-encrypt all records from the session passphrase to ``new_passphrase``.

    Args:
        store: Record store of the account.
        session: Unlocked session holding the current passphrase.
        new_passphrase: Replacement master passphrase, strength-checked.
        batch_size: Number of records written per batch.

    Returns:
        Stats dict with keys: total, rotated, skipped.

    Raises:
        SessionLocked: If the session is locked.
        InvalidInput: If the new passphrase is weak or batch_size < 1.
        DecryptionFailed: If a record opens under neither passphrase.
        StoreError: If a write fails; rerunning resumes the rotation.
    """
    if not session.is_unlocked:
        raise SessionLocked()
    if batch_size < 1:
        raise InvalidInput(f"batch_size must be positive, got {batch_size}")
    validation = validate_passphrase(new_passphrase)
    if not validation.valid:
        raise InvalidInput(", ".join(validation.errors))

    config = session.config
    records = await store.list()
    stats = {"total": len(records), "rotated": 0, "skipped": 0}

    logger.info(
        "Starting master passphrase rotation: %d record(s), batch_size=%d",
        len(records), batch_size,
    )

    pending: list[tuple[SecretRecord, str]] = []
    for record in records:
        try:
            plaintext, done = await asyncio.to_thread(
                _open_record, record, session, new_passphrase,
            )
        except DecryptionFailed:
            logger.error("Rotation aborted: record id=%s does not decrypt", record.id)
            raise
        if done:
            stats["skipped"] += 1
        else:
            pending.append((record, plaintext))

    for start in range(0, len(pending), batch_size):
        batch = pending[start:start + batch_size]
        logger.info(
            "Processing batch %d (%d records)", start // batch_size + 1, len(batch),
        )
        for record, plaintext in batch:
            bundle = await asyncio.to_thread(
                encrypt_secret, plaintext, new_passphrase,
                iterations=config.kdf_iterations, cipher=config.cipher_backend,
            )
            await store.update(record.id, SecretRecord.bundle_fields(bundle))
            stats["rotated"] += 1

    session.unlock(new_passphrase)
    logger.info("Master passphrase rotation complete: %s", stats)
    return stats
