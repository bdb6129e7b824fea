import pytest
import os
import tempfile
from datetime import datetime, timezone
from twofactor.config.settings import TwoFactorSettings
from twofactor.database import build_engine, create_tables, make_session_factory
from twofactor.services.activity_events import ActivityLog
from twofactor.services.keyed_lock import KeyedLock


@pytest.fixture(scope="function")
def session_factory():
    """Session factory bound to a temporary database file"""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    test_database_url = f"sqlite:///{db_path}"
    
    engine = build_engine(test_database_url)
    create_tables(engine)
    
    yield make_session_factory(engine)
    
    engine.dispose()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture(scope="function")
def test_db(session_factory):
    """A session on the temporary database"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings():
    return TwoFactorSettings(max_login_attempts=3, lockout_duration_minutes=15)


@pytest.fixture
def activity_log():
    return ActivityLog()


@pytest.fixture
def locks():
    return KeyedLock()


@pytest.fixture
def sample_account_id():
    """Provide a sample account ID for testing"""
    return "test-account-123"


@pytest.fixture
def now():
    """A fixed instant in the middle of a 30-second time step"""
    return datetime(2024, 1, 15, 10, 30, 15, tzinfo=timezone.utc)


@pytest.fixture
def pinned_keys(monkeypatch):
    """Make newly provisioned secrets use the given keys, in order"""
    from twofactor.services import secret_store

    def pin(*keys):
        supply = iter(keys)

        class KeySource:
            @staticmethod
            def token_bytes(n):
                return next(supply)

        monkeypatch.setattr(secret_store, "random_source", KeySource)

    return pin
