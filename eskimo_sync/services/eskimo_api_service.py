"""
Eskimo API Service - Integration with the Eskimo EPOS REST API

One method per remote endpoint. Every call authenticates first and decodes
the response into typed DTOs where the engine consumes them.
"""

import json
import logging
import requests
from typing import Any, Dict, List, Optional

from eskimo_sync.config import EskimoSettings
from eskimo_sync.services.batch_service import BatchRequest
from eskimo_sync.services.eskimo_auth_service import EskimoAuthService
from eskimo_sync.services.eskimo_models import (
    EskimoCategory, EskimoCategoryProduct, EskimoCustomer, EskimoProduct, EskimoSKU, decode_list
)
from eskimo_sync.services.error_handler import AuthError, RemoteDataError, TransportError

logger = logging.getLogger(__name__)

GET_TIMEOUT = 60
POST_TIMEOUT = 60
STATUS_TIMEOUT = 10
USER_AGENT = 'Eskimo/1.0'


class EskimoAPIService:
    """Service for interacting with the Eskimo EPOS API."""

    def __init__(self, settings: EskimoSettings, auth: EskimoAuthService,
                 http: Optional[requests.Session] = None):
        """Initialize the API service."""
        self.settings = settings
        self.auth = auth
        self.http = http or requests.Session()
        self.base_url = f"{settings.domain}api"

    def _get_headers(self, token: str, accept: str = 'application/json',
                     json_body: bool = False) -> Dict[str, str]:
        """Get API request headers."""
        headers = {
            'Accept': accept,
            'Authorization': f'Bearer {token}',
            'User-Agent': USER_AGENT
        }
        if json_body:
            headers['Content-Type'] = 'application/json'
        return headers

    def _request(self, method: str, endpoint: str, timeout: int,
                 json_data: Any = None, accept: str = 'application/json') -> requests.Response:
        """Authenticate, then send the request. Transport failures raise TransportError."""
        token = self.auth.ensure_authenticated()
        url = f"{self.base_url}/{endpoint}"
        headers = self._get_headers(token, accept=accept, json_body=method == 'POST')

        try:
            if method == 'GET':
                response = self.http.get(url, headers=headers, timeout=timeout)
            else:
                response = self.http.post(url, headers=headers, data=json.dumps(json_data),
                                          timeout=timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"API request failed for {endpoint}: {e}")
            raise TransportError()

        if response.status_code == 401:
            self.auth.invalidate()
            raise AuthError(f"API rejected access token for {endpoint}")
        return response

    def _decode(self, endpoint: str, response: requests.Response) -> Any:
        """Decode a JSON body. An empty body is the "no data" signal (None)."""
        if response.status_code >= 400:
            logger.error(f"API error {response.status_code} from {endpoint}")
            raise RemoteDataError(details_status=response.status_code)

        if not response.text or not response.text.strip():
            logger.warning(f"Empty response from {endpoint}")
            return None

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Failed to parse JSON response from {endpoint}: {e}")
            raise RemoteDataError()

    def _get_data(self, endpoint: str) -> Any:
        return self._decode(endpoint, self._request('GET', endpoint, GET_TIMEOUT))

    def _post_data(self, endpoint: str, json_data: Any) -> Any:
        return self._decode(endpoint, self._request('POST', endpoint, POST_TIMEOUT, json_data=json_data))

    def _post_status(self, endpoint: str, json_data: Any) -> int:
        """POST and return only the HTTP status; callers treat exactly 200 as success."""
        response = self._request('POST', endpoint, STATUS_TIMEOUT, json_data=json_data)
        logger.debug(f"{endpoint} returned status {response.status_code}")
        return response.status_code

    def _require(self, endpoint: str, data: Any) -> Any:
        if not data:
            raise RemoteDataError()
        return data

    # Categories

    def categories_all(self) -> List[EskimoCategory]:
        data = self._require('Categories/All', self._get_data('Categories/All'))
        return decode_list(data, EskimoCategory)

    def categories_specific_id(self, category_id: str) -> EskimoCategory:
        endpoint = f'Categories/SpecificID/{category_id}'
        return EskimoCategory.from_payload(self._require(endpoint, self._get_data(endpoint)))

    def categories_child_categories(self, category_id: str) -> List[EskimoCategory]:
        endpoint = f'Categories/ChildCategories/{category_id}'
        return decode_list(self._get_data(endpoint), EskimoCategory)

    def categories_update_cart_ids(self, mappings: List[Dict[str, str]]) -> int:
        return self._post_status('Categories/UpdateCartIDs', mappings)

    def category_products_all(self, batch: BatchRequest) -> List[EskimoCategoryProduct]:
        return decode_list(self._post_data('CategoryProducts/All', batch.to_payload()), EskimoCategoryProduct)

    # Products

    def products_all(self, batch: BatchRequest) -> List[EskimoProduct]:
        return decode_list(self._post_data('Products/All', batch.to_payload()), EskimoProduct)

    def products_specific_id(self, product_id: str) -> EskimoProduct:
        endpoint = f'Products/SpecificID/{product_id}'
        return EskimoProduct.from_payload(self._require(endpoint, self._get_data(endpoint)))

    def products_update_cart_ids(self, mappings: List[Dict[str, str]]) -> int:
        return self._post_status('Products/UpdateCartIDs', mappings)

    # SKUs

    def skus_all(self, batch: BatchRequest) -> List[EskimoSKU]:
        return decode_list(self._post_data('SKUs/All', batch.to_payload()), EskimoSKU)

    def skus_specific_code(self, code: str) -> EskimoSKU:
        endpoint = f'SKUs/SpecificSKUCode/{code}'
        return EskimoSKU.from_payload(self._require(endpoint, self._get_data(endpoint)))

    def skus_specific_identifier(self, identifier: str) -> List[EskimoSKU]:
        return decode_list(self._get_data(f'SKUs/SpecificIdentifier/{identifier}'), EskimoSKU)

    # Customers

    def customers_specific_id(self, customer_id: str) -> EskimoCustomer:
        endpoint = f'Customers/SpecificID/{customer_id}'
        return EskimoCustomer.from_payload(self._require(endpoint, self._get_data(endpoint)))

    def customers_search(self, criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
        data = self._post_data('Customers/Search', criteria)
        if isinstance(data, dict):
            return [data]
        return data or []

    def customers_insert(self, customer: Dict[str, Any]) -> Dict[str, Any]:
        return self._require('Customers/Insert', self._post_data('Customers/Insert', customer))

    def customers_update(self, customer: Dict[str, Any]) -> Dict[str, Any]:
        return self._require('Customers/Update', self._post_data('Customers/Update', customer))

    # Orders

    def orders_insert(self, order: Dict[str, Any]) -> Dict[str, Any]:
        return self._require('Orders/Insert', self._post_data('Orders/Insert', order))

    def orders_search(self, criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
        data = self._post_data('Orders/Search', criteria)
        if isinstance(data, dict):
            return [data]
        return data or []

    def orders_website_order(self, order_id: str) -> Dict[str, Any]:
        endpoint = f'Orders/WebsiteOrder/{order_id}'
        return self._require(endpoint, self._get_data(endpoint))

    def orders_fulfilment_methods(self) -> List[Dict[str, Any]]:
        return self._get_data('Orders/FulfilmentMethods') or []

    # Reference data

    def tax_codes_all(self) -> List[Dict[str, Any]]:
        return self._require('TaxCodes/All', self._get_data('TaxCodes/All'))

    def tax_codes_specific_id(self, tax_id: str) -> Dict[str, Any]:
        endpoint = f'TaxCodes/SpecificID/{tax_id}'
        return self._require(endpoint, self._get_data(endpoint))

    def shops_all(self) -> List[Dict[str, Any]]:
        return self._require('Shops/All', self._get_data('Shops/All'))

    def shops_specific_id(self, shop_id: str) -> Dict[str, Any]:
        endpoint = f'Shops/SpecificID/{shop_id}'
        return self._require(endpoint, self._get_data(endpoint))
