"""Celery tasks for scheduled catalog sync and store event hooks."""
import logging
from typing import Any, Callable, Dict, List, Optional

import redis

from eskimo_sync import database
from eskimo_sync.celery_app import celery_app
from eskimo_sync.config import Config, EskimoSettings
from eskimo_sync.logging_config import get_channel_logger
from eskimo_sync.models import Customer, OrderStatus
from eskimo_sync.services.error_handler import EskimoSyncError
from eskimo_sync.services.sync_service import EskimoSyncService

logger = logging.getLogger(__name__)

EXPORT_STATUSES = (OrderStatus.PROCESSING.value, OrderStatus.COMPLETED.value)


def _channel(name: str) -> logging.Logger:
    try:
        return get_channel_logger(name, Config.LOG_PATH)
    except OSError as e:
        logger.warning(f"Log channel {name} unavailable: {e}")
        return logger


def _sync_service(session) -> EskimoSyncService:
    settings = EskimoSettings.from_config(Config)
    redis_client = redis.from_url(Config.REDIS_URL)
    return EskimoSyncService.create(session, settings, redis_client=redis_client)


def _ensure_database() -> None:
    if database.db_manager.engine is None:
        database.init_database()


def _run(task, channel: str, operation: str, fn: Callable[[EskimoSyncService], Any]) -> Dict[str, Any]:
    """Run a sync operation inside a session and report it in the route result shape."""
    log = _channel(channel)
    log.info(f"{operation}: started")

    if task.request.id:
        task.update_state(state='PROGRESS', meta={'status': f'Running {operation}...'})

    _ensure_database()
    try:
        with database.db_session_scope() as session:
            result = fn(_sync_service(session))
    except EskimoSyncError as e:
        log.error(f"{operation}: {e.to_result()}")
        return {'status': 'failed', 'operation': operation, 'result': e.to_result()}

    log.info(f"{operation}: completed")
    return {'status': 'completed', 'operation': operation, 'result': result}


# Scheduled catalog jobs

@celery_app.task(bind=True, name='eskimo.categories_new')
def categories_new_task(self):
    """Import EPOS product categories not yet held locally."""
    return _run(self, 'cron', 'categories_new', lambda s: s.categories_new())


@celery_app.task(bind=True, name='eskimo.products_new')
def products_new_task(self, route='days', created=7):
    """Import products created within the last ``created`` ``route`` units."""
    return _run(self, 'cron', 'products_new', lambda s: s.products_new(route, created))


@celery_app.task(bind=True, name='eskimo.skus_modified')
def skus_modified_task(self, path='all', route='hours', modified=1, start=1, records=250):
    """Re-import products whose SKUs changed within the window, one page of SKUs."""
    return _run(self, 'cron', 'skus_modified',
                lambda s: s.skus_modified(path, route, modified, start, records))


@celery_app.task(bind=True, name='eskimo.skus_modified_all')
def skus_modified_all_task(self, path='all', route='hours', modified=1):
    """Re-import products whose SKUs changed within the window, every page of SKUs."""
    return _run(self, 'cron', 'skus_modified_all', lambda s: s.skus_modified_all(path, route, modified))


@celery_app.task(bind=True, name='eskimo.skus_modified_products')
def skus_modified_products_task(self, product_ids: List[str]):
    return _run(self, 'cron', 'skus_modified_products', lambda s: s.skus_modified_products(product_ids))


@celery_app.task(bind=True, name='eskimo.orphan_variable_products')
def orphan_variable_products_task(self, delete=False):
    """Report, and optionally delete, variable products without variations."""
    return _run(self, 'cron', 'orphan_variable_products', lambda s: s.orphan_variable_products(delete))


# Store hooks

def _customer_created(service: EskimoSyncService, customer_id: int) -> str:
    customer = service.db_session.get(Customer, customer_id)
    if customer is None:
        return f"Invalid customer ID[{customer_id}]"
    if customer.role != 'customer':
        return f"Customer ID[{customer_id}] role [{customer.role}] not exported"
    if service.customer_exists(customer.email):
        return f"Customer ID[{customer_id}] Email[{customer.email}] Exists"
    return service.customer_insert(customer_id)


@celery_app.task(bind=True, name='eskimo.customer_created')
def customer_created_task(self, customer_id: Optional[int]):
    """Export a newly registered customer unless the EPOS system already has the email."""
    if not customer_id:
        _channel('cart').info("customer_created: guest checkout, nothing to export")
        return {'status': 'skipped', 'operation': 'customer_created', 'result': 'guest'}
    return _run(self, 'cart', 'customer_created', lambda s: _customer_created(s, int(customer_id)))


@celery_app.task(bind=True, name='eskimo.customer_updated')
def customer_updated_task(self, customer_id: int):
    return _run(self, 'cart', 'customer_updated', lambda s: s.customer_update(int(customer_id)))


@celery_app.task(bind=True, name='eskimo.order_status_changed')
def order_status_changed_task(self, order_id: int, status: str):
    """Export orders once they reach processing or completed."""
    if status not in EXPORT_STATUSES:
        _channel('cart').info(f"order_status_changed: order [{order_id}] status [{status}] ignored")
        return {'status': 'skipped', 'operation': 'order_status_changed', 'result': status}
    return _run(self, 'cart', 'order_status_changed', lambda s: s.order_export(int(order_id)))


@celery_app.task(bind=True, name='eskimo.order_refunded')
def order_refunded_task(self, order_id: int, refund_id: int):
    """Export an order refund as an EPOS return."""
    return _run(self, 'cart', 'order_refunded', lambda s: s.return_export(int(order_id), int(refund_id)))
