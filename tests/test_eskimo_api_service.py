"""Tests for the EPOS REST client."""
import json
import pytest
import requests
from unittest.mock import Mock

from eskimo_sync.services.batch_service import BatchRequest
from eskimo_sync.services.error_handler import AuthError, RemoteDataError, TransportError
from eskimo_sync.services.eskimo_api_service import EskimoAPIService
from eskimo_sync.services.eskimo_models import EskimoCategory, EskimoProduct


def http_response(status=200, body=None, text=None):
    response = Mock()
    response.status_code = status
    if text is None:
        text = json.dumps(body) if body is not None else ''
    response.text = text
    response.content = text.encode('utf-8')
    response.json.side_effect = lambda: json.loads(text)
    return response


@pytest.fixture
def auth():
    auth = Mock()
    auth.ensure_authenticated.return_value = 'token-123'
    return auth


@pytest.fixture
def http():
    return Mock(spec=requests.Session)


@pytest.fixture
def api(settings, auth, http):
    return EskimoAPIService(settings, auth, http=http)


class TestRequests:
    """Test request construction and response decoding."""

    def test_get_headers_and_url(self, api, http):
        """Test that GETs carry the bearer token and the fixed user agent."""
        http.get.return_value = http_response(body=[{'Eskimo_Category_ID': '10|product'}])

        api.categories_all()

        http.get.assert_called_once_with(
            'https://epos.test/api/Categories/All',
            headers={
                'Accept': 'application/json',
                'Authorization': 'Bearer token-123',
                'User-Agent': 'Eskimo/1.0'
            },
            timeout=60
        )

    def test_post_sends_json_body(self, api, http):
        http.post.return_value = http_response(body=[])

        api.products_all(BatchRequest(1, 20))

        args, kwargs = http.post.call_args
        assert args[0] == 'https://epos.test/api/Products/All'
        assert kwargs['headers']['Content-Type'] == 'application/json'
        assert json.loads(kwargs['data']) == {
            'StartPosition': 1,
            'RecordCount': 20,
            'TimestampFrom': '2000-01-01T00:00:00'
        }

    def test_decodes_dtos(self, api, http):
        http.get.return_value = http_response(body=[
            {'Eskimo_Category_ID': '10|product', 'ParentID': '', 'ShortDescription': 'Shirts', 'Web_ID': ''},
            {'Eskimo_Category_ID': '11|product', 'ParentID': '10|product', 'ShortDescription': 'Polos'},
        ])

        categories = api.categories_all()

        assert all(isinstance(c, EskimoCategory) for c in categories)
        assert categories[0].is_parent
        assert categories[1].parent_id == '10|product'

    def test_product_with_skus(self, api, http):
        http.get.return_value = http_response(body={
            'eskimo_identifier': '1|STY01|',
            'title': ' School Polo ',
            'sku': [{'sku_code': 'POLO-M', 'StockAmount': 4, 'SellPrice': '12.50'}],
        })

        product = api.products_specific_id('1|STY01|')

        assert isinstance(product, EskimoProduct)
        assert product.title == 'School Polo'
        assert product.skus[0].sku_code == 'POLO-M'
        assert product.skus[0].stock_amount == 4

    def test_empty_body_means_no_data(self, api, http):
        """Test that an empty body decodes to no records rather than an error."""
        http.post.return_value = http_response(text='')
        assert api.products_all(BatchRequest(1, 20)) == []

    def test_required_data_missing_raises(self, api, http):
        http.get.return_value = http_response(text='')
        with pytest.raises(RemoteDataError) as exc_info:
            api.categories_all()
        assert exc_info.value.message == "API Error: Could Not Retrieve REST data from API"

    def test_invalid_json_raises(self, api, http):
        http.get.return_value = http_response(text='<html>oops</html>')
        with pytest.raises(RemoteDataError):
            api.tax_codes_all()

    def test_server_error_raises(self, api, http):
        http.get.return_value = http_response(status=500, text='boom')
        with pytest.raises(RemoteDataError):
            api.shops_all()

    def test_transport_failure(self, api, http):
        http.get.side_effect = requests.exceptions.Timeout()
        with pytest.raises(TransportError) as exc_info:
            api.categories_all()
        assert exc_info.value.message == "API Error: Could Not Connect To API"

    def test_401_invalidates_token(self, api, http, auth):
        """Test that a rejected token is dropped so the next call re-authenticates."""
        http.get.return_value = http_response(status=401, text='')
        with pytest.raises(AuthError):
            api.categories_all()
        auth.invalidate.assert_called_once()

    def test_auth_failure_stops_before_request(self, api, http, auth):
        auth.ensure_authenticated.side_effect = AuthError()
        with pytest.raises(AuthError):
            api.categories_all()
        http.get.assert_not_called()


class TestWriteEndpoints:
    """Test write endpoints and single-record order and link lookups."""

    def test_update_cart_ids_returns_status(self, api, http):
        http.post.return_value = http_response(status=200, text='')
        mappings = [{'Eskimo_Category_ID': '10|product', 'Web_ID': '5'}]

        assert api.categories_update_cart_ids(mappings) == 200

        args, kwargs = http.post.call_args
        assert args[0] == 'https://epos.test/api/Categories/UpdateCartIDs'
        assert json.loads(kwargs['data']) == mappings
        assert kwargs['timeout'] == 10

    def test_update_cart_ids_failure_status(self, api, http):
        http.post.return_value = http_response(status=500, text='')
        assert api.products_update_cart_ids([]) == 500

    def test_customers_search_single_object(self, api, http):
        http.post.return_value = http_response(body={'ID': '77', 'EmailAddress': 'a@b.com'})
        assert api.customers_search({'EmailAddress': 'a@b.com'}) == [{'ID': '77', 'EmailAddress': 'a@b.com'}]

    def test_orders_insert_requires_body(self, api, http):
        http.post.return_value = http_response(text='')
        with pytest.raises(RemoteDataError):
            api.orders_insert({'ExternalIdentifier': 'WEB-1-1-1'})

    def test_orders_search_posts_criteria(self, api, http):
        http.post.return_value = http_response(body=[{'ExternalIdentifier': 'WEB-1-42'}])

        assert api.orders_search({'CustomerID': '900'}) == [{'ExternalIdentifier': 'WEB-1-42'}]
        assert http.post.call_args.args[0] == 'https://epos.test/api/Orders/Search'

    def test_orders_search_no_matches(self, api, http):
        http.post.return_value = http_response(body=[])
        assert api.orders_search({'CustomerID': '900'}) == []

    def test_website_order(self, api, http):
        http.get.return_value = http_response(body={'ExternalIdentifier': 'WEB-1-42', 'OrderType': 2})

        assert api.orders_website_order('WEB-1-42')['OrderType'] == 2
        assert http.get.call_args.args[0] == 'https://epos.test/api/Orders/WebsiteOrder/WEB-1-42'

    def test_website_order_missing(self, api, http):
        http.get.return_value = http_response(text='')
        with pytest.raises(RemoteDataError):
            api.orders_website_order('WEB-1-42')

    def test_category_products_decoded(self, api, http):
        http.post.return_value = http_response(body=[
            {'eskimo_category_id': '10|product', 'eskimo_product_identifier': '1|STY01|',
             'web_category_id': '5', 'web_product_id': ''},
        ])

        links = api.category_products_all(BatchRequest(start=1, count=20))

        assert links[0].eskimo_product_identifier == '1|STY01|'
        assert links[0].web_category_id == '5'
        assert http.post.call_args.args[0] == 'https://epos.test/api/CategoryProducts/All'
        assert links[0].product is None

    def test_category_products_embedded_product(self, api, http):
        http.post.return_value = http_response(body=[
            {'Eskimo_Category_ID': '10|product', 'Eskimo_Product_Identifier': '1|STY01|',
             'Web_Category_ID': '5', 'Web_Product_ID': '0',
             'product': {'eskimo_identifier': '1|STY01|', 'title': 'School Polo'}},
        ])

        link = api.category_products_all(BatchRequest(start=1, count=20))[0]

        assert link.web_product_id == '0'
        assert link.product.eskimo_identifier == '1|STY01|'
        assert link.product.title == 'School Polo'
