"""
Eskimo API Endpoints

REST endpoints that trigger EPOS sync operations. Every response has the
shape ``{"route", "params", "result"}``; engine errors are reported in
``result`` as ``"CODE: message"``.
"""

import re
import logging
from typing import Any, Callable, Dict

from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import jwt_required

from eskimo_sync.database import db_session_scope
from eskimo_sync.services.error_handler import EskimoSyncError, ValidationError
from eskimo_sync.services.sync_lock import SyncInProgressError
from eskimo_sync.services.sync_service import EskimoSyncService

# Create blueprint
eskimo_bp = Blueprint('eskimo', __name__, url_prefix='/api/eskimo')
logger = logging.getLogger(__name__)

IDENTIFIER = re.compile(r'^[A-Za-z0-9_-]+$')
NUMERIC = re.compile(r'^\d+$')
EMAIL = re.compile(r'^[^@/\s]+@[^@/\s]+\.[^@/\s]+$')
ROUTES = ('seconds', 'minutes', 'hours', 'days', 'weeks', 'months', 'timestamp')
PRODUCT_PATHS = ('stock', 'tax', 'price', 'category', 'categories', 'adjust', 'all')
SKU_PATHS = ('all', 'stock', 'price')


def _identifier(value: str, name: str = 'ID') -> str:
    if not IDENTIFIER.match(value or ''):
        raise ValidationError(f"Invalid {name}[{value}]")
    return value


def _numeric(value: str, name: str) -> int:
    if not NUMERIC.match(value or ''):
        raise ValidationError(f"Invalid {name}[{value}]")
    return int(value)


def _choice(value: str, choices, name: str) -> str:
    if value not in choices:
        raise ValidationError(f"Invalid {name}[{value}]")
    return value


def _get_service(session) -> EskimoSyncService:
    settings = current_app.config['ESKIMO_SETTINGS']
    redis_client = current_app.extensions.get('eskimo_redis')
    return EskimoSyncService.create(session, settings, redis_client=redis_client)


def _log() -> logging.Logger:
    """The app's 'rest' channel when configured, else the module logger."""
    return current_app.extensions.get('eskimo_rest_log') or logger


def _run(route: str, params: Dict[str, Any], operation: Callable[[EskimoSyncService], Any]):
    """Run an engine operation and convert the outcome to the route response shape."""
    try:
        with db_session_scope() as session:
            result = operation(_get_service(session))
        return jsonify({'route': route, 'params': params, 'result': result}), 200

    except SyncInProgressError as e:
        _log().warning(f"{route}: {e.message}")
        return jsonify({'route': route, 'params': params, 'result': e.to_result()}), 409
    except ValidationError as e:
        _log().warning(f"{route}: {e.message}")
        return jsonify({'route': route, 'params': params, 'result': e.to_result()}), 400
    except EskimoSyncError as e:
        _log().error(f"{route}: {e.to_result()}")
        return jsonify({'route': route, 'params': params, 'result': e.to_result()}), 200
    except Exception as e:
        _log().exception(f"{route} failed: {str(e)}")
        return jsonify({'route': route, 'params': params, 'result': f"INTERNAL_ERROR: {str(e)}"}), 500


def _reject(route: str, params: Dict[str, Any], error: ValidationError):
    _log().warning(f"{route}: {error.message}")
    return jsonify({'route': route, 'params': params, 'result': error.to_result()}), 400


# Categories

@eskimo_bp.route('/categories-all', methods=['GET'])
@jwt_required()
def categories_all():
    """Import every eligible EPOS product category."""
    return _run('categories-all', {}, lambda s: s.categories_all())


@eskimo_bp.route('/categories-new', methods=['GET'])
@jwt_required()
def categories_new():
    """Import EPOS product categories not yet held locally."""
    return _run('categories-new', {}, lambda s: s.categories_new())


@eskimo_bp.route('/categories-specific-id/<category_id>', methods=['GET'])
@jwt_required()
def category_specific_id(category_id):
    params = {'id': category_id}
    try:
        _identifier(category_id, 'Category ID')
    except ValidationError as e:
        return _reject('categories-specific-id', params, e)
    return _run('categories-specific-id', params, lambda s: s.category_by_id(category_id))


@eskimo_bp.route('/categories-child-categories/<category_id>', methods=['GET'])
@jwt_required()
def child_categories(category_id):
    params = {'id': category_id}
    try:
        _identifier(category_id, 'Category ID')
    except ValidationError as e:
        return _reject('categories-child-categories', params, e)
    return _run('categories-child-categories', params, lambda s: s.child_categories(category_id))


@eskimo_bp.route('/categories-cart-id', methods=['GET'])
@jwt_required()
def categories_cart_id():
    """Write local category Web_IDs back to the EPOS system."""
    return _run('categories-cart-id', {}, lambda s: s.categories_web_ids())


@eskimo_bp.route('/categories-cart-reset', methods=['GET'])
@jwt_required()
def categories_cart_reset():
    return _run('categories-cart-reset', {}, lambda s: s.categories_reset())


@eskimo_bp.route('/category-update/<category_id>', methods=['GET'])
@jwt_required()
def category_update(category_id):
    params = {'id': category_id}
    try:
        _identifier(category_id, 'Category ID')
    except ValidationError as e:
        return _reject('category-update', params, e)
    return _run('category-update', params, lambda s: s.category_update(category_id))


@eskimo_bp.route('/category-products', methods=['GET'])
@eskimo_bp.route('/category-products/<start>/<records>', methods=['GET'])
@jwt_required()
def category_products(start='1', records='20'):
    """Import products linked to already imported categories."""
    params = {'start': start, 'records': records}
    try:
        start_position = _numeric(start, 'Start')
        record_count = _numeric(records, 'Records')
    except ValidationError as e:
        return _reject('category-products', params, e)
    return _run('category-products', params, lambda s: s.category_products(start_position, record_count))


# Products

@eskimo_bp.route('/products', methods=['GET'])
@eskimo_bp.route('/products/<start>/<records>', methods=['GET'])
@jwt_required()
def products(start='1', records='20'):
    """Import a single page of EPOS products."""
    params = {'start': start, 'records': records}
    try:
        start_position = _numeric(start, 'Start')
        record_count = _numeric(records, 'Records')
    except ValidationError as e:
        return _reject('products', params, e)
    return _run('products', params, lambda s: s.products_range(start_position, record_count))


@eskimo_bp.route('/products-all', methods=['GET'])
@eskimo_bp.route('/products-all/<start>/<records>', methods=['GET'])
@jwt_required()
def products_all(start='1', records='20'):
    """Import every page of EPOS products."""
    params = {'start': start, 'records': records}
    try:
        start_position = _numeric(start, 'Start')
        record_count = _numeric(records, 'Records')
    except ValidationError as e:
        return _reject('products-all', params, e)
    return _run('products-all', params, lambda s: s.products_all(start_position, record_count))


@eskimo_bp.route('/products-new/<route>/<amount>', methods=['GET'])
@jwt_required()
def products_new(route, amount):
    params = {'route': route, 'amount': amount}
    try:
        _choice(route, ROUTES, 'Route')
        value = _numeric(amount, 'Amount')
    except ValidationError as e:
        return _reject('products-new', params, e)
    return _run('products-new', params, lambda s: s.products_new(route, value))


@eskimo_bp.route('/products-modified/<route>/<amount>', methods=['GET'])
@jwt_required()
def products_modified(route, amount):
    params = {'route': route, 'amount': amount}
    try:
        _choice(route, ROUTES, 'Route')
        value = _numeric(amount, 'Amount')
    except ValidationError as e:
        return _reject('products-modified', params, e)
    return _run('products-modified', params, lambda s: s.products_modified(route, value))


@eskimo_bp.route('/products-specific-id/<product_id>', methods=['GET'])
@jwt_required()
def product_specific_id(product_id):
    params = {'id': product_id}
    try:
        _identifier(product_id, 'Product ID')
    except ValidationError as e:
        return _reject('products-specific-id', params, e)
    return _run('products-specific-id', params, lambda s: s.product_by_id(product_id))


@eskimo_bp.route('/product-import/<path>/<product_id>', methods=['GET'])
@jwt_required()
def product_import(path, product_id):
    """Targeted re-import of one field group for an imported product."""
    params = {'path': path, 'id': product_id}
    try:
        _choice(path, PRODUCT_PATHS, 'Product Path')
        _identifier(product_id, 'Product ID')
    except ValidationError as e:
        return _reject('product-import', params, e)
    return _run('product-import', params, lambda s: s.product_import(path, product_id))


@eskimo_bp.route('/products-cart-id', methods=['GET'])
@jwt_required()
def products_cart_id():
    """Write local product Web_IDs back to the EPOS system."""
    return _run('products-cart-id', {}, lambda s: s.products_web_ids())


@eskimo_bp.route('/products-cart-reset', methods=['GET'])
@eskimo_bp.route('/products-cart-reset/<start>/<records>', methods=['GET'])
@jwt_required()
def products_cart_reset(start='1', records='50'):
    params = {'start': start, 'records': records}
    try:
        start_position = _numeric(start, 'Start')
        record_count = _numeric(records, 'Records')
    except ValidationError as e:
        return _reject('products-cart-reset', params, e)
    return _run('products-cart-reset', params, lambda s: s.products_reset(start_position, record_count))


@eskimo_bp.route('/product-update/<product_id>', methods=['GET'])
@jwt_required()
def product_update(product_id):
    params = {'id': product_id}
    try:
        _identifier(product_id, 'Product ID')
    except ValidationError as e:
        return _reject('product-update', params, e)
    return _run('product-update', params, lambda s: s.product_update(product_id))


# SKUs

@eskimo_bp.route('/skus/<start>/<records>', methods=['GET'])
@jwt_required()
def skus(start, records):
    params = {'start': start, 'records': records}
    try:
        start_position = _numeric(start, 'Start')
        record_count = _numeric(records, 'Records')
    except ValidationError as e:
        return _reject('skus', params, e)
    return _run('skus', params, lambda s: s.skus_range(start_position, record_count))


@eskimo_bp.route('/skus-modified/<path>/<route>/<amount>', methods=['GET'])
@eskimo_bp.route('/skus-modified/<path>/<route>/<amount>/<start>/<records>', methods=['GET'])
@jwt_required()
def skus_modified(path, route, amount, start='1', records='250'):
    """Re-import products whose SKUs changed since the watermark."""
    params = {'path': path, 'route': route, 'amount': amount, 'start': start, 'records': records}
    try:
        _choice(path, SKU_PATHS, 'SKU Path')
        _choice(route, ROUTES, 'Route')
        value = _numeric(amount, 'Amount')
        start_position = _numeric(start, 'Start')
        record_count = _numeric(records, 'Records')
    except ValidationError as e:
        return _reject('skus-modified', params, e)
    return _run('skus-modified', params,
                lambda s: s.skus_modified(path, route, value, start_position, record_count))


@eskimo_bp.route('/skus-orphan/<start>/<records>', methods=['GET'])
@jwt_required()
def skus_orphan(start, records):
    params = {'start': start, 'records': records}
    try:
        start_position = _numeric(start, 'Start')
        record_count = _numeric(records, 'Records')
    except ValidationError as e:
        return _reject('skus-orphan', params, e)
    return _run('skus-orphan', params, lambda s: s.skus_orphan(start_position, record_count))


@eskimo_bp.route('/skus-specific-code/<code>', methods=['GET'])
@jwt_required()
def sku_specific_code(code):
    params = {'code': code}
    try:
        _identifier(code, 'SKU Code')
    except ValidationError as e:
        return _reject('skus-specific-code', params, e)
    return _run('skus-specific-code', params, lambda s: s.sku_by_code(code))


@eskimo_bp.route('/skus-specific-id/<product_id>', methods=['GET'])
@jwt_required()
def sku_specific_id(product_id):
    params = {'id': product_id}
    try:
        _identifier(product_id, 'Product ID')
    except ValidationError as e:
        return _reject('skus-specific-id', params, e)
    return _run('skus-specific-id', params, lambda s: s.sku_by_id(product_id))


# Customers

@eskimo_bp.route('/customer-import/<customer_id>', methods=['GET'])
@jwt_required()
def customer_import(customer_id):
    params = {'id': customer_id}
    try:
        _identifier(customer_id, 'Customer ID')
    except ValidationError as e:
        return _reject('customer-import', params, e)
    return _run('customer-import', params, lambda s: s.customer_import(customer_id))


@eskimo_bp.route('/customer-exists/<email>', methods=['GET'])
@jwt_required()
def customer_exists(email):
    params = {'email': email}
    if not EMAIL.match(email):
        return _reject('customer-exists', params, ValidationError(f"Invalid Customer Email[{email}]"))
    return _run('customer-exists', params, lambda s: s.customer_exists(email))


@eskimo_bp.route('/customer-insert/<customer_id>', methods=['GET'])
@jwt_required()
def customer_insert(customer_id):
    params = {'id': customer_id}
    try:
        value = _numeric(customer_id, 'Customer ID')
    except ValidationError as e:
        return _reject('customer-insert', params, e)
    return _run('customer-insert', params, lambda s: s.customer_insert(value))


@eskimo_bp.route('/customer-update/<customer_id>', methods=['GET'])
@jwt_required()
def customer_update(customer_id):
    params = {'id': customer_id}
    try:
        value = _numeric(customer_id, 'Customer ID')
    except ValidationError as e:
        return _reject('customer-update', params, e)
    return _run('customer-update', params, lambda s: s.customer_update(value))


# Orders

@eskimo_bp.route('/order-insert/<order_id>', methods=['GET'])
@jwt_required()
def order_insert(order_id):
    """Export a processing or completed order to the EPOS system."""
    params = {'id': order_id}
    try:
        value = _numeric(order_id, 'Order ID')
    except ValidationError as e:
        return _reject('order-insert', params, e)
    return _run('order-insert', params, lambda s: s.order_export(value))


@eskimo_bp.route('/order-return/<order_id>/<refund_id>', methods=['GET'])
@jwt_required()
def order_return(order_id, refund_id):
    """Export an order refund to the EPOS system as a return."""
    params = {'id': order_id, 'refund_id': refund_id}
    try:
        order_value = _numeric(order_id, 'Order ID')
        refund_value = _numeric(refund_id, 'Refund ID')
    except ValidationError as e:
        return _reject('order-return', params, e)
    return _run('order-return', params, lambda s: s.return_export(order_value, refund_value))


@eskimo_bp.route('/order/<order_id>', methods=['GET'])
@jwt_required()
def order_lookup(order_id):
    """EPOS copy of a web order, by its external identifier."""
    params = {'id': order_id}
    try:
        _identifier(order_id, 'Order ID')
    except ValidationError as e:
        return _reject('order', params, e)
    return _run('order', params, lambda s: s.order_by_id(order_id))


@eskimo_bp.route('/orders-search/<customer_id>', methods=['GET'])
@jwt_required()
def orders_search(customer_id):
    params = {'customer_id': customer_id}
    try:
        _identifier(customer_id, 'Customer ID')
    except ValidationError as e:
        return _reject('orders-search', params, e)
    return _run('orders-search', params, lambda s: s.orders_search(customer_id))


@eskimo_bp.route('/fulfilment-methods', methods=['GET'])
@jwt_required()
def fulfilment_methods():
    return _run('fulfilment-methods', {}, lambda s: s.fulfilment_methods())


# Reference data

@eskimo_bp.route('/tax-codes', methods=['GET'])
@eskimo_bp.route('/tax-codes/<tax_id>', methods=['GET'])
@jwt_required()
def tax_codes(tax_id=None):
    params = {'id': tax_id}
    try:
        if tax_id is not None:
            _identifier(tax_id, 'Tax Code ID')
    except ValidationError as e:
        return _reject('tax-codes', params, e)
    return _run('tax-codes', params, lambda s: s.tax_codes(tax_id))


@eskimo_bp.route('/shops', methods=['GET'])
@eskimo_bp.route('/shops/<shop_id>', methods=['GET'])
@jwt_required()
def shops(shop_id=None):
    params = {'id': shop_id}
    try:
        if shop_id is not None:
            _identifier(shop_id, 'Shop ID')
    except ValidationError as e:
        return _reject('shops', params, e)
    return _run('shops', params, lambda s: s.shops(shop_id))
