"""Tests for Celery sync tasks."""
import pytest
from unittest.mock import Mock, patch

from eskimo_sync import tasks
from eskimo_sync.celery_app import celery_app
from eskimo_sync.config import Config
from eskimo_sync.services.error_handler import ReconciliationError


@pytest.fixture
def service(tmp_path):
    """Run tasks against a mock engine with a throwaway database scope and log path."""
    service = Mock()
    with patch.object(Config, 'LOG_PATH', str(tmp_path)), \
            patch('eskimo_sync.tasks.database') as database, \
            patch('eskimo_sync.tasks._sync_service', return_value=service):
        database.db_manager.engine = Mock()
        yield service


class TestCatalogTasks:
    """Test scheduled catalog tasks."""

    def test_registered_names(self):
        assert 'eskimo.categories_new' in celery_app.tasks
        assert 'eskimo.order_refunded' in celery_app.tasks

    def test_categories_new(self, service):
        service.categories_new.return_value = {'imported': []}

        result = tasks.categories_new_task.run()

        assert result == {'status': 'completed', 'operation': 'categories_new', 'result': {'imported': []}}

    def test_skus_modified_arguments(self, service):
        tasks.skus_modified_task.run('stock', 'minutes', 20)
        service.skus_modified.assert_called_once_with('stock', 'minutes', 20, 1, 250)

    def test_skus_modified_all_arguments(self, service):
        tasks.skus_modified_all_task.run('price', 'days', 1)
        service.skus_modified_all.assert_called_once_with('price', 'days', 1)

    def test_engine_error_reported(self, service):
        """Test that an engine error fails the run without raising."""
        service.products_new.side_effect = ReconciliationError("nothing to do")

        result = tasks.products_new_task.run()

        assert result['status'] == 'failed'
        assert result['result'] == 'RECONCILIATION_ERROR: nothing to do'


class TestStoreHooks:
    """Test customer and order hook tasks."""

    def test_guest_checkout_skipped(self, service):
        result = tasks.customer_created_task.run(None)
        assert result['status'] == 'skipped'

    def test_customer_created_exports_new_customer(self, service):
        customer = Mock(role='customer', email='sam@example.com')
        service.db_session.get.return_value = customer
        service.customer_exists.return_value = False
        service.customer_insert.return_value = 'ID[3] EPOS ID[42]'

        result = tasks.customer_created_task.run(3)

        assert result['result'] == 'ID[3] EPOS ID[42]'
        service.customer_insert.assert_called_once_with(3)

    def test_customer_created_existing_email(self, service):
        service.db_session.get.return_value = Mock(role='customer', email='sam@example.com')
        service.customer_exists.return_value = True

        result = tasks.customer_created_task.run(3)

        assert 'Exists' in result['result']
        service.customer_insert.assert_not_called()

    def test_customer_created_other_role(self, service):
        service.db_session.get.return_value = Mock(role='shop_manager', email='staff@example.com')

        tasks.customer_created_task.run(3)

        service.customer_exists.assert_not_called()

    @pytest.mark.parametrize("status", ['processing', 'completed'])
    def test_order_exported_on_status(self, service, status):
        tasks.order_status_changed_task.run(7, status)
        service.order_export.assert_called_once_with(7)

    def test_order_other_status_ignored(self, service):
        result = tasks.order_status_changed_task.run(7, 'pending')

        assert result['status'] == 'skipped'
        service.order_export.assert_not_called()

    def test_order_refunded(self, service):
        tasks.order_refunded_task.run(7, 2)
        service.return_export.assert_called_once_with(7, 2)
