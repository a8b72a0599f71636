"""Tests for the Eskimo sync REST endpoints."""
import pytest
from unittest.mock import Mock, patch

from eskimo_sync.services.error_handler import AuthError, ReconciliationError
from eskimo_sync.services.sync_lock import SyncInProgressError


@pytest.fixture
def service():
    """Patch service construction so routes run against a mock engine."""
    service = Mock()
    with patch('eskimo_sync.eskimo_api.EskimoSyncService.create', return_value=service):
        yield service


class TestAuthentication:
    """Test that every endpoint requires a JWT."""

    @pytest.mark.parametrize("url", [
        '/api/eskimo/categories-all',
        '/api/eskimo/products/1/20',
        '/api/eskimo/order-insert/5',
    ])
    def test_requires_jwt(self, client, service, url):
        response = client.get(url)
        assert response.status_code == 401
        service.assert_not_called()


class TestCategoryRoutes:
    """Test category endpoints."""

    def test_categories_all_shape(self, client, auth_headers, service):
        service.categories_all.return_value = {'imported': [], 'skipped': [], 'write_back': {}}

        response = client.get('/api/eskimo/categories-all', headers=auth_headers)

        assert response.status_code == 200
        assert response.json == {
            'route': 'categories-all',
            'params': {},
            'result': {'imported': [], 'skipped': [], 'write_back': {}},
        }

    def test_specific_id_passes_route_identifier(self, client, auth_headers, service):
        service.category_by_id.return_value = {'imported': []}

        response = client.get('/api/eskimo/categories-specific-id/10-product', headers=auth_headers)

        assert response.status_code == 200
        assert response.json['params'] == {'id': '10-product'}
        service.category_by_id.assert_called_once_with('10-product')

    def test_category_products_paged(self, client, auth_headers, service):
        service.category_products.return_value = {'imported': []}

        response = client.get('/api/eskimo/category-products/21/20', headers=auth_headers)

        assert response.status_code == 200
        assert response.json['params'] == {'start': '21', 'records': '20'}
        service.category_products.assert_called_once_with(21, 20)

    def test_category_products_defaults(self, client, auth_headers, service):
        service.category_products.return_value = {'imported': []}

        client.get('/api/eskimo/category-products', headers=auth_headers)

        service.category_products.assert_called_once_with(1, 20)


class TestProductRoutes:
    """Test product and SKU endpoints."""

    def test_products_defaults(self, client, auth_headers, service):
        service.products_range.return_value = {'imported': []}

        response = client.get('/api/eskimo/products', headers=auth_headers)

        assert response.status_code == 200
        service.products_range.assert_called_once_with(1, 20)

    def test_non_numeric_start_rejected(self, client, auth_headers, service):
        response = client.get('/api/eskimo/products/abc/20', headers=auth_headers)

        assert response.status_code == 400
        assert response.json['result'] == 'VALIDATION_ERROR: Invalid Start[abc]'
        service.products_range.assert_not_called()

    def test_invalid_route_rejected(self, client, auth_headers, service):
        response = client.get('/api/eskimo/products-new/fortnights/2', headers=auth_headers)

        assert response.status_code == 400
        assert response.json['params'] == {'route': 'fortnights', 'amount': '2'}

    def test_invalid_product_path(self, client, auth_headers, service):
        response = client.get('/api/eskimo/product-import/colour/1-STY01-', headers=auth_headers)

        assert response.status_code == 400
        assert response.json['result'] == 'VALIDATION_ERROR: Invalid Product Path[colour]'

    def test_skus_modified_paged(self, client, auth_headers, service):
        service.skus_modified.return_value = {'updated': [], 'skipped': []}

        response = client.get('/api/eskimo/skus-modified/stock/hours/2/1/500', headers=auth_headers)

        assert response.status_code == 200
        service.skus_modified.assert_called_once_with('stock', 'hours', 2, 1, 500)

    def test_skus_modified_adjust_rejected(self, client, auth_headers, service):
        response = client.get('/api/eskimo/skus-modified/adjust/hours/2', headers=auth_headers)
        assert response.status_code == 400


class TestErrorMapping:
    """Test conversion of engine errors to responses."""

    def test_engine_error_in_result(self, client, auth_headers, service):
        """Test that business-rule failures return 200 with the error in result."""
        service.order_export.side_effect = ReconciliationError("EPOS Order exists ID[5] EPOS Web Order ID[W-1]")

        response = client.get('/api/eskimo/order-insert/5', headers=auth_headers)

        assert response.status_code == 200
        assert response.json['result'] == 'RECONCILIATION_ERROR: EPOS Order exists ID[5] EPOS Web Order ID[W-1]'

    def test_auth_error_in_result(self, client, auth_headers, service):
        service.categories_all.side_effect = AuthError()

        response = client.get('/api/eskimo/categories-all', headers=auth_headers)

        assert response.status_code == 200
        assert response.json['result'] == 'AUTH_ERROR: API Error: Could Not Connect To API'

    def test_sync_in_progress_conflict(self, client, auth_headers, service):
        service.products_all.side_effect = SyncInProgressError("Sync [catalog] already in progress")

        response = client.get('/api/eskimo/products-all', headers=auth_headers)

        assert response.status_code == 409

    def test_outcomes_logged_to_rest_channel(self, app, client, auth_headers, service):
        rest_log = Mock()
        app.extensions['eskimo_rest_log'] = rest_log
        service.order_export.side_effect = ReconciliationError("Order not found [5]")

        client.get('/api/eskimo/order-insert/5', headers=auth_headers)
        client.get('/api/eskimo/products/abc/20', headers=auth_headers)

        rest_log.error.assert_called_once_with('order-insert: RECONCILIATION_ERROR: Order not found [5]')
        rest_log.warning.assert_called_once_with('products: Invalid Start[abc]')

    def test_unexpected_error(self, client, auth_headers, service):
        service.shops.side_effect = RuntimeError("boom")

        response = client.get('/api/eskimo/shops', headers=auth_headers)

        assert response.status_code == 500
        assert response.json['result'] == 'INTERNAL_ERROR: boom'


class TestCustomerAndOrderRoutes:
    """Test customer and order endpoints."""

    def test_customer_exists(self, client, auth_headers, service):
        service.customer_exists.return_value = True

        response = client.get('/api/eskimo/customer-exists/sam@example.com', headers=auth_headers)

        assert response.json['result'] is True

    def test_customer_exists_invalid_email(self, client, auth_headers, service):
        response = client.get('/api/eskimo/customer-exists/not-an-email', headers=auth_headers)
        assert response.status_code == 400

    def test_order_return(self, client, auth_headers, service):
        service.return_export.return_value = 'ID[5] Refund[2] EPOS Return ID[WEB-1-1-5-R2]'

        response = client.get('/api/eskimo/order-return/5/2', headers=auth_headers)

        assert response.status_code == 200
        service.return_export.assert_called_once_with(5, 2)

    def test_order_lookup(self, client, auth_headers, service):
        service.order_by_id.return_value = {'ExternalIdentifier': 'WEB-1001'}

        response = client.get('/api/eskimo/order/WEB-1001', headers=auth_headers)

        assert response.json == {
            'route': 'order',
            'params': {'id': 'WEB-1001'},
            'result': {'ExternalIdentifier': 'WEB-1001'},
        }
        service.order_by_id.assert_called_once_with('WEB-1001')

    def test_order_lookup_invalid_id(self, client, auth_headers, service):
        response = client.get('/api/eskimo/order/WEB.1001', headers=auth_headers)

        assert response.status_code == 400
        service.order_by_id.assert_not_called()

    def test_orders_search(self, client, auth_headers, service):
        service.orders_search.return_value = [{'ExternalIdentifier': 'WEB-1-42'}]

        response = client.get('/api/eskimo/orders-search/900', headers=auth_headers)

        assert response.json['params'] == {'customer_id': '900'}
        service.orders_search.assert_called_once_with('900')

    def test_fulfilment_methods(self, client, auth_headers, service):
        service.fulfilment_methods.return_value = [{'ID': 1}]

        response = client.get('/api/eskimo/fulfilment-methods', headers=auth_headers)

        assert response.json['result'] == [{'ID': 1}]

    def test_tax_code_by_id(self, client, auth_headers, service):
        service.tax_codes.return_value = {'ID': 1}

        response = client.get('/api/eskimo/tax-codes/1', headers=auth_headers)

        assert response.json == {'route': 'tax-codes', 'params': {'id': '1'}, 'result': {'ID': 1}}


class TestHealth:
    """Test the health endpoint."""

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.json['services']['database'] == 'healthy'
        assert response.json['services']['redis'] == 'healthy'
