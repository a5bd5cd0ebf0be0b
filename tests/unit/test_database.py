"""Unit tests for DatabaseManager."""

import pytest
from sqlalchemy.pool import StaticPool

import database
from database import DatabaseManager, get_db_manager, reset_db_manager
from shared.models.entities import KeyValueEntry


@pytest.fixture
def manager(test_settings):
    db_manager = DatabaseManager(test_settings)
    db_manager.create_tables()
    yield db_manager
    db_manager.close()


class TestSessionScope:
    def test_commits(self, manager):
        with manager.session_scope() as session:
            session.add(KeyValueEntry(key="k", value="v"))

        with manager.session_scope() as session:
            assert session.get(KeyValueEntry, "k").value == "v"

    def test_rolls_back_on_error(self, manager):
        with pytest.raises(RuntimeError):
            with manager.session_scope() as session:
                session.add(KeyValueEntry(key="lost", value="v"))
                session.flush()
                raise RuntimeError("boom")

        with manager.session_scope() as session:
            assert session.get(KeyValueEntry, "lost") is None


class TestHealthAndLifecycle:
    def test_in_memory_sqlite_shares_one_connection(self, manager):
        assert isinstance(manager.engine.pool, StaticPool)

    def test_engine_and_factory_are_cached(self, manager):
        assert manager.engine is manager.engine
        assert manager.session_factory is manager.session_factory
        session = manager.get_session()
        try:
            assert session.get_bind() is manager.engine
        finally:
            session.close()

    def test_health_check(self, manager):
        assert manager.health_check() is True

    def test_mask_password(self):
        masked = DatabaseManager._mask_password("postgresql://workshop:s3cret@db:5432/workshop")
        assert masked == "postgresql://workshop:****@db:5432/workshop"
        assert DatabaseManager._mask_password("sqlite:///./workshop.db") == "sqlite:///./workshop.db"

    def test_global_manager(self, monkeypatch, test_settings):
        monkeypatch.setattr(database, "get_settings", lambda: test_settings)
        reset_db_manager()

        first = get_db_manager()
        assert first is get_db_manager()
        assert first.settings is test_settings

        reset_db_manager()
        assert database._db_manager is None
