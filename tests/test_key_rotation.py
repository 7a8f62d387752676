"""
Tests for master passphrase rotation.
"""
import pytest
import pytest_asyncio

from lifedash_vault.exceptions import DecryptionFailed, InvalidInput, SessionLocked, StoreError
from lifedash_vault.vault.crypto import decrypt_bundle, encrypt_secret
from lifedash_vault.vault.key_rotation import rotate_master_passphrase
from lifedash_vault.vault.records import SecretRecord
from lifedash_vault.vault.session_vault import VaultSession
from lifedash_vault.vault.store import MemoryRecordStore

OLD = "Tr0ub4dor!"
NEW = "C0rrectHorse"


@pytest.fixture
def session():
    s = VaultSession()
    s.unlock(OLD)
    return s


@pytest_asyncio.fixture
async def store():
    store = MemoryRecordStore(user_id="user-1")
    for site, secret in (("a.com", "alpha"), ("b.com", "beta"), ("c.com", "gamma")):
        await store.create({
            "website": site,
            **SecretRecord.bundle_fields(encrypt_secret(secret, OLD)),
        })
    return store


class FlakyStore(MemoryRecordStore):
    """Memory store whose updates fail after a number of successes."""

    def __init__(self, user_id: str, fail_after: int):
        super().__init__(user_id)
        self.fail_after = fail_after

    async def update(self, record_id, patch):
        if self.fail_after == 0:
            raise StoreError("backend unavailable")
        self.fail_after -= 1
        return await super().update(record_id, patch)


class TestRotation:
    """Tests for rotate_master_passphrase."""

    @pytest.mark.asyncio
    async def test_rotates_every_record(self, store, session):
        """Test all records open under the new passphrase afterwards."""
        stats = await rotate_master_passphrase(store, session, NEW, batch_size=2)
        assert stats == {"total": 3, "rotated": 3, "skipped": 0}
        secrets = {r.website: decrypt_bundle(r.bundle, NEW) for r in await store.list()}
        assert secrets == {"a.com": "alpha", "b.com": "beta", "c.com": "gamma"}
        for record in await store.list():
            with pytest.raises(DecryptionFailed):
                decrypt_bundle(record.bundle, OLD)

    @pytest.mark.asyncio
    async def test_session_switches_passphrase(self, store, session):
        """Test the session holds the new passphrase after rotation."""
        await rotate_master_passphrase(store, session, NEW)
        record = (await store.list())[0]
        assert session.decrypt(record.bundle) == "alpha"

    @pytest.mark.asyncio
    async def test_locked_session(self, store):
        """Test rotation needs an unlocked session."""
        with pytest.raises(SessionLocked):
            await rotate_master_passphrase(store, VaultSession(), NEW)

    @pytest.mark.asyncio
    async def test_weak_new_passphrase(self, store, session):
        """Test a weak new passphrase is rejected with its rule errors."""
        with pytest.raises(InvalidInput) as exc:
            await rotate_master_passphrase(store, session, "weak")
        assert "uppercase" in str(exc.value)

    @pytest.mark.asyncio
    async def test_bad_batch_size(self, store, session):
        """Test batch_size must be positive."""
        with pytest.raises(InvalidInput):
            await rotate_master_passphrase(store, session, NEW, batch_size=0)

    @pytest.mark.asyncio
    async def test_unreadable_record_aborts_before_writes(self, store, session):
        """Test a foreign record stops the rotation with nothing written."""
        await store.create({
            "website": "foreign.com",
            **SecretRecord.bundle_fields(encrypt_secret("x", "someone-else")),
        })
        before = {r.id: r.encrypted_data for r in await store.list()}
        with pytest.raises(DecryptionFailed):
            await rotate_master_passphrase(store, session, NEW)
        after = {r.id: r.encrypted_data for r in await store.list()}
        assert before == after
        assert session.decrypt((await store.list())[0].bundle) == "alpha"

    @pytest.mark.asyncio
    async def test_resume_after_store_failure(self, session):
        """Test a failed run can be resumed and skips rotated records."""
        store = FlakyStore(user_id="user-1", fail_after=1)
        for site, secret in (("a.com", "alpha"), ("b.com", "beta"), ("c.com", "gamma")):
            await store.create({
                "website": site,
                **SecretRecord.bundle_fields(encrypt_secret(secret, OLD)),
            })
        with pytest.raises(StoreError):
            await rotate_master_passphrase(store, session, NEW)
        # session still holds the old passphrase
        assert session.decrypt((await store.list())[1].bundle) == "beta"

        store.fail_after = -1
        stats = await rotate_master_passphrase(store, session, NEW)
        assert stats == {"total": 3, "rotated": 2, "skipped": 1}
        secrets = sorted(decrypt_bundle(r.bundle, NEW) for r in await store.list())
        assert secrets == ["alpha", "beta", "gamma"]

    @pytest.mark.asyncio
    async def test_empty_vault(self, session):
        """Test rotating an empty vault just switches the passphrase."""
        stats = await rotate_master_passphrase(MemoryRecordStore("user-1"), session, NEW)
        assert stats == {"total": 0, "rotated": 0, "skipped": 0}
        assert session.is_unlocked is True
