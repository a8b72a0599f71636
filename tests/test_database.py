"""Tests for database session handling."""
import pytest

from eskimo_sync.database import DatabaseManager, _masked
from eskimo_sync.models import Category


@pytest.fixture
def manager():
    manager = DatabaseManager('sqlite:///:memory:')
    manager.initialize(create_tables=True)
    yield manager
    manager.engine.dispose()


class TestDatabaseManager:
    """Test transactional scopes on the shared manager."""

    def test_scope_commits(self, manager):
        with manager.session_scope() as session:
            session.add(Category(name='Shirts', slug='shirts'))

        with manager.session_scope() as session:
            assert session.query(Category).count() == 1

    def test_scope_rolls_back_on_error(self, manager):
        with pytest.raises(ValueError):
            with manager.session_scope() as session:
                session.add(Category(name='Shirts', slug='shirts'))
                session.flush()
                raise ValueError("boom")

        with manager.session_scope() as session:
            assert session.query(Category).count() == 0

    def test_uninitialized(self):
        with pytest.raises(RuntimeError):
            with DatabaseManager('sqlite:///:memory:').session_scope():
                pass

    def test_health_check(self, manager):
        assert manager.health_check() == {'status': 'healthy', 'connection_test': True}

    def test_masked_url(self):
        assert _masked('postgresql://user:pw@db/eskimo') == 'postgresql://***@db/eskimo'
        assert _masked('sqlite:///eskimo.db') == 'sqlite:///eskimo.db'
