"""Tests for backup code generation and one-time consumption."""
import pytest
import threading

from twofactor.auth.exceptions import BackupCodeAlreadyUsedError, BackupCodeNotFoundError
from twofactor.models.two_factor import BackupCodeRecord
from twofactor.services.backup_code_vault import BACKUP_CODE_ALPHABET, BackupCodeVault


@pytest.fixture
def vault(test_db):
    return BackupCodeVault(test_db)


class TestGenerate:

    def test_generate_default_set(self, vault, sample_account_id):
        codes = vault.generate(sample_account_id)

        assert len(codes) == 8
        assert len(set(codes)) == 8
        assert all(len(code) == 10 for code in codes)
        assert all(ch in BACKUP_CODE_ALPHABET for code in codes for ch in code)
        assert vault.remaining(sample_account_id) == 8

    def test_only_hashes_are_stored(self, vault, test_db, sample_account_id):
        codes = vault.generate(sample_account_id, count=3)
        stored = [r.code_hash for r in test_db.query(BackupCodeRecord).all()]

        assert len(stored) == 3
        for code in codes:
            assert all(code not in code_hash for code_hash in stored)

    def test_custom_count_and_length(self, vault, sample_account_id):
        codes = vault.generate(sample_account_id, count=4, code_length=12)
        assert len(codes) == 4
        assert all(len(code) == 12 for code in codes)

    def test_regenerate_invalidates_previous_set(self, vault, sample_account_id):
        old_codes = vault.generate(sample_account_id, count=3)
        new_codes = vault.generate(sample_account_id, count=3)

        assert vault.remaining(sample_account_id) == 3
        assert vault.consume(sample_account_id, old_codes[0]) is False
        assert vault.consume(sample_account_id, new_codes[0]) is True

    def test_sets_are_per_account(self, vault):
        codes_a = vault.generate("account-a", count=2)
        vault.generate("account-b", count=2)
        assert vault.consume("account-b", codes_a[0]) is False
        assert vault.remaining("account-a") == 2

    def test_invalid_arguments(self, vault, sample_account_id):
        with pytest.raises(ValueError):
            vault.generate(sample_account_id, count=0)
        with pytest.raises(ValueError):
            vault.generate(sample_account_id, code_length=4)


class TestConsume:

    def test_code_is_single_use(self, vault, sample_account_id):
        codes = vault.generate(sample_account_id, count=3)

        assert vault.consume(sample_account_id, codes[0]) is True
        assert vault.consume(sample_account_id, codes[0]) is False
        assert vault.remaining(sample_account_id) == 2

    def test_redeem_reports_already_used(self, vault, sample_account_id):
        codes = vault.generate(sample_account_id, count=2)
        vault.redeem(sample_account_id, codes[1])
        with pytest.raises(BackupCodeAlreadyUsedError):
            vault.redeem(sample_account_id, codes[1])

    def test_redeem_reports_not_found(self, vault, sample_account_id):
        vault.generate(sample_account_id, count=2)
        with pytest.raises(BackupCodeNotFoundError):
            vault.redeem(sample_account_id, "ZZZZZZZZZZ")

    def test_redeem_without_codes(self, vault, sample_account_id):
        with pytest.raises(BackupCodeNotFoundError):
            vault.redeem(sample_account_id, "ABCDEFGHIJ")

    def test_case_and_separators_are_normalized(self, vault, sample_account_id):
        code = vault.generate(sample_account_id, count=1)[0]
        typed = f"{code[:5].lower()}-{code[5:].lower()} "
        assert vault.consume(sample_account_id, typed) is True

    def test_used_at_is_recorded(self, vault, test_db, sample_account_id, now):
        code = vault.generate(sample_account_id, count=1)[0]
        vault.redeem(sample_account_id, code, now)

        record = test_db.query(BackupCodeRecord).one()
        test_db.refresh(record)
        assert record.used is True
        assert record.used_at is not None

    def test_matches_format(self, vault):
        assert vault.matches_format("ABCDE-12345") is True
        assert vault.matches_format("abcde12345") is True
        assert vault.matches_format("123456") is False
        assert vault.matches_format("ABCDE_12345") is False

    def test_concurrent_consumption_succeeds_once(self, session_factory, sample_account_id):
        setup_db = session_factory()
        code = BackupCodeVault(setup_db).generate(sample_account_id, count=8)[0]
        setup_db.close()

        barrier = threading.Barrier(2)
        results = []
        results_lock = threading.Lock()

        def attempt():
            db = session_factory()
            try:
                vault = BackupCodeVault(db)
                barrier.wait()
                try:
                    vault.redeem(sample_account_id, code)
                    outcome = "accepted"
                except BackupCodeAlreadyUsedError:
                    outcome = "already_used"
                with results_lock:
                    results.append(outcome)
            finally:
                db.close()

        threads = [threading.Thread(target=attempt) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(results) == ["accepted", "already_used"]
