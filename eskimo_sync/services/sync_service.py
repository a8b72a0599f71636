"""
Eskimo Sync Service

Route-level operations: pull from the EPOS API, apply to the local store,
and write the resulting Web_IDs back.
"""

import time
import logging
from contextlib import nullcontext
from typing import Any, Callable, Dict, List, Optional

import redis
from sqlalchemy.orm import Session

from eskimo_sync.config import EskimoSettings
from eskimo_sync.services import batch_service
from eskimo_sync.services.batch_service import (
    BatchRequest, PaginationController, WriteBackResult, resolve_watermark
)
from eskimo_sync.services.catalog_import_service import CatalogImportService
from eskimo_sync.services.customer_sync_service import CustomerSyncService
from eskimo_sync.services.error_handler import (
    ErrorCollector, ReconciliationError, RemoteDataError, ValidationError
)
from eskimo_sync.services.eskimo_api_service import EskimoAPIService
from eskimo_sync.services.eskimo_auth_service import EskimoAuthService
from eskimo_sync.services.eskimo_models import (
    EskimoProduct, in_product_namespace, is_reconciled, route_to_identifier
)
from eskimo_sync.services.order_export_service import OrderExportService
from eskimo_sync.services.reconciliation_service import (
    IdentifierMapping, ReconciliationService, web_id_for
)
from eskimo_sync.services.sync_lock import SyncLock
from eskimo_sync.services.token_cache import MemoryTokenCache, RedisTokenCache

logger = logging.getLogger(__name__)

ITEM_ERRORS = (ReconciliationError, ValidationError, RemoteDataError)
SKU_PATHS = ('all', 'stock', 'price')


def _check_sku_path(path: str) -> None:
    if path not in SKU_PATHS:
        raise ValidationError(f"Invalid SKU Path[{path}]")


def _reimport_path(path: str) -> str:
    """Modified SKUs touch stock and price only, so 'all' re-imports via 'adjust'."""
    return 'adjust' if path == 'all' else path


def import_result(mappings: List[IdentifierMapping], errors: ErrorCollector,
                  write_back: Optional[WriteBackResult] = None) -> Dict[str, Any]:
    return {
        'imported': [mapping.to_payload() for mapping in mappings],
        'skipped': errors.to_list(),
        'write_back': (write_back or WriteBackResult()).to_dict(),
    }


class EskimoSyncService:
    """Orchestrates catalog, customer and order sync with the EPOS system."""

    def __init__(self, db_session: Session, settings: EskimoSettings, api: EskimoAPIService,
                 redis_client: Optional[redis.Redis] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 pagination: Optional[PaginationController] = None):
        self.db_session = db_session
        self.settings = settings
        self.api = api
        self.redis = redis_client
        self.sleep = sleep
        self.pagination = pagination or PaginationController()

        self.reconciliation = ReconciliationService(db_session, settings, api=api, sleep=sleep)
        self.catalog = CatalogImportService(db_session, settings, reconciliation=self.reconciliation)
        self.customers = CustomerSyncService(db_session, settings, api=api)
        self.orders = OrderExportService(db_session, settings, api=api)

    @classmethod
    def create(cls, db_session: Session, settings: EskimoSettings,
               redis_client: Optional[redis.Redis] = None, **kwargs) -> 'EskimoSyncService':
        """Wire the auth provider and API client for a settings instance."""
        cache = RedisTokenCache(redis_client) if redis_client is not None else MemoryTokenCache()
        auth = EskimoAuthService(settings, token_cache=cache)
        api = EskimoAPIService(settings, auth)
        return cls(db_session, settings, api, redis_client=redis_client, **kwargs)

    def _lock(self):
        if self.redis is None:
            return nullcontext()
        return SyncLock(self.redis, 'catalog', ttl=self.settings.sync_lock_ttl)

    def _commit(self) -> None:
        """Local rows are committed before their Web_IDs are written back."""
        self.db_session.commit()

    def _enrich(self, product: EskimoProduct) -> EskimoProduct:
        product.skus = self.api.skus_specific_identifier(product.eskimo_identifier)
        return product

    def _enrich_all(self, products: List[EskimoProduct], errors: ErrorCollector) -> List[EskimoProduct]:
        """Attach SKUs to each product; a failed lookup drops only that product."""
        enriched = []
        for product in products:
            try:
                enriched.append(self._enrich(product))
            except ITEM_ERRORS as e:
                errors.add(product.eskimo_identifier, e)
        return enriched

    # Categories

    def _import_categories(self, categories, errors: ErrorCollector, new_only: bool = False) -> Dict[str, Any]:
        if new_only:
            local = {c.eskimo_category_id for c in self.reconciliation.category_repo.get_mapped()}
            categories = [c for c in categories if c.eskimo_category_id not in local]

        with self._lock():
            mappings = self.catalog.import_categories(categories, errors)
            self._commit()
            write_back = self.reconciliation.push_categories(mappings)
        return import_result(mappings, errors, write_back)

    def categories_all(self) -> Dict[str, Any]:
        """Import every eligible product category."""
        return self._import_categories(self.api.categories_all(), ErrorCollector('categories_all'))

    def categories_new(self) -> Dict[str, Any]:
        """Import only product categories with no local counterpart."""
        return self._import_categories(self.api.categories_all(), ErrorCollector('categories_new'),
                                       new_only=True)

    def category_by_id(self, category_id: str) -> Dict[str, Any]:
        category = self.api.categories_specific_id(route_to_identifier(category_id))
        return self._import_categories([category], ErrorCollector('category_by_id'))

    def child_categories(self, category_id: str) -> Dict[str, Any]:
        categories = self.api.categories_child_categories(route_to_identifier(category_id))
        return self._import_categories(categories, ErrorCollector('child_categories'))

    def categories_web_ids(self) -> Dict[str, Any]:
        """Write the current local category mapping table back to the EPOS system."""
        with self._lock():
            mappings = self.reconciliation.project_category_mappings()
            write_back = self.reconciliation.push_categories(mappings)
        return import_result(mappings, ErrorCollector('categories_web_ids'), write_back)

    def categories_reset(self) -> Dict[str, Any]:
        with self._lock():
            mappings = self.reconciliation.reset_category_mappings(self.api.categories_all())
            write_back = self.reconciliation.push_categories(mappings)
        return import_result(mappings, ErrorCollector('categories_reset'), write_back)

    def category_update(self, category_id: str) -> Dict[str, Any]:
        """Write back the Web_ID of a single locally imported category."""
        identifier = route_to_identifier(category_id)
        category = self.reconciliation.category_repo.get_by_eskimo_id(identifier)
        if category is None:
            raise ReconciliationError(f"Category not found locally [{identifier}]")
        mappings = [IdentifierMapping.category(identifier, web_id_for(category.id, self.settings.category_prefix))]
        with self._lock():
            write_back = self.reconciliation.push_categories(mappings)
        return import_result(mappings, ErrorCollector('category_update'), write_back)

    # Category products

    def category_products(self, start: Any = 1, records: Any = None) -> Dict[str, Any]:
        """
        Import the products linked to one page of CategoryProducts.

        Only links whose category is already imported and whose product is not
        are followed. A product embedded in the link is used as is; otherwise it
        is fetched, once even when it sits in several categories.
        """
        errors = ErrorCollector('category_products')
        batch = BatchRequest.build(start, records, None, batch_service.CATEGORY_PRODUCTS)

        with self._lock():
            products = []
            seen = set()
            for link in self.api.category_products_all(batch):
                identifier = link.eskimo_product_identifier
                if not in_product_namespace(link.eskimo_category_id) or identifier in seen:
                    continue
                seen.add(identifier)
                if not is_reconciled(link.web_category_id):
                    errors.skip(identifier, f"Category not imported [{link.eskimo_category_id}]")
                    continue
                if is_reconciled(link.web_product_id):
                    errors.skip(identifier, f"Web_ID exists [{link.web_product_id}]")
                    continue
                try:
                    products.append(link.product or self.api.products_specific_id(identifier))
                except ITEM_ERRORS as e:
                    errors.add(identifier, e)

            mappings = self._import_products(products, errors)
            write_back = self.reconciliation.push_products(mappings)
        return import_result(mappings, errors, write_back)

    # Products

    def _import_products(self, products: List[EskimoProduct], errors: ErrorCollector) -> List[IdentifierMapping]:
        mappings = self.catalog.import_products(self._enrich_all(products, errors), errors)
        self._commit()
        return mappings

    def products_range(self, start: Any = 1, records: Any = None, since: Any = None) -> Dict[str, Any]:
        """Import a single page of products."""
        errors = ErrorCollector('products_range')
        batch = BatchRequest.build(start, records, since, batch_service.PRODUCTS)
        with self._lock():
            mappings = self._import_products(self.api.products_all(batch), errors)
            write_back = self.reconciliation.push_products(mappings)
        return import_result(mappings, errors, write_back)

    def products_all(self, start: Any = 1, records: Any = None, since: Any = None,
                     operation: str = 'products_all') -> Dict[str, Any]:
        """Import every page of products, writing back Web_IDs page by page."""
        errors = ErrorCollector(operation)
        batch = BatchRequest.build(start, records, since, batch_service.PRODUCTS)
        mappings: List[IdentifierMapping] = []
        write_back = WriteBackResult()

        with self._lock():
            for page in self.pagination.pull_all(self.api.products_all, batch):
                page_mappings = self._import_products(page, errors)
                mappings.extend(page_mappings)
                result = self.reconciliation.push_products(page_mappings)
                write_back.sent.extend(result.sent)
                write_back.failed.extend(result.failed)
                write_back.errors.extend(result.errors)
                write_back.batches += result.batches
        return import_result(mappings, errors, write_back)

    def products_new(self, route: str = 'days', amount: Any = 7) -> Dict[str, Any]:
        """Import products created since a relative or absolute watermark."""
        since = resolve_watermark(route, amount)
        logger.info(f"Importing new products since {since.isoformat()}")
        return self.products_all(1, None, since, operation='products_new')

    def products_modified(self, route: str = 'days', amount: Any = 1, path: str = 'all') -> Dict[str, Any]:
        """Re-apply ``path`` to imported products modified since the watermark."""
        errors = ErrorCollector('products_modified')
        since = resolve_watermark(route, amount)
        batch = BatchRequest.build(1, None, since, batch_service.PRODUCTS)
        updated = []

        with self._lock():
            for page in self.pagination.pull_all(self.api.products_all, batch):
                page = self._enrich_all(page, errors)
                for product in self.reconciliation.select_products(page, errors, require_imported=True):
                    try:
                        updated.append(self.catalog.update_product(product, path).to_payload())
                    except ITEM_ERRORS as e:
                        errors.add(product.eskimo_identifier, e)
                self._commit()
        return {'updated': updated, 'skipped': errors.to_list()}

    def product_by_id(self, product_id: str) -> Dict[str, Any]:
        errors = ErrorCollector('product_by_id')
        product = self.api.products_specific_id(route_to_identifier(product_id))
        with self._lock():
            mappings = self._import_products([product], errors)
            write_back = self.reconciliation.push_products(mappings)
        return import_result(mappings, errors, write_back)

    def _product_import(self, path: str, identifier: str, errors: ErrorCollector) -> Optional[Dict[str, str]]:
        product = self._enrich(self.api.products_specific_id(identifier))
        if not self.reconciliation.select_products([product], errors, require_imported=True):
            return None
        try:
            mapping = self.catalog.update_product(product, path)
        except (ReconciliationError, ValidationError) as e:
            errors.add(identifier, e)
            return None
        self._commit()
        return mapping.to_payload()

    def product_import(self, path: str, product_id: str) -> Dict[str, Any]:
        """Targeted re-import of ``path`` fields for one imported product."""
        errors = ErrorCollector('product_import')
        with self._lock():
            updated = self._product_import(path, route_to_identifier(product_id), errors)
        return {'updated': [updated] if updated else [], 'skipped': errors.to_list()}

    def products_web_ids(self) -> Dict[str, Any]:
        """Write the current local product mapping table back to the EPOS system."""
        with self._lock():
            mappings = self.reconciliation.project_product_mappings()
            write_back = self.reconciliation.push_products(mappings)
        return import_result(mappings, ErrorCollector('products_web_ids'), write_back)

    def products_reset(self, start: Any = 1, records: Any = None) -> Dict[str, Any]:
        batch = BatchRequest.build(start, records, None, batch_service.PRODUCT_WEB_IDS)
        with self._lock():
            products = self.pagination.collect(self.api.products_all, batch)
            mappings = self.reconciliation.reset_product_mappings(products)
            write_back = self.reconciliation.push_products(mappings)
        return import_result(mappings, ErrorCollector('products_reset'), write_back)

    def product_update(self, product_id: str) -> Dict[str, Any]:
        """Write back the Web_ID of a single locally imported product."""
        identifier = route_to_identifier(product_id)
        product = self.reconciliation.product_repo.get_by_eskimo_id(identifier)
        if product is None:
            raise ReconciliationError(f"Product not found locally [{identifier}]")
        mappings = [IdentifierMapping.product(identifier, web_id_for(product.id, self.settings.product_prefix))]
        with self._lock():
            write_back = self.reconciliation.push_products(mappings)
        return import_result(mappings, ErrorCollector('product_update'), write_back)

    # SKUs

    def skus_range(self, start: Any = 1, records: Any = None, since: Any = None) -> List[Dict[str, Any]]:
        batch = BatchRequest.build(start, records, since, batch_service.SKUS)
        return [sku.raw for sku in self.api.skus_all(batch)]

    def _reimport_products(self, identifiers: List[str], path: str, errors: ErrorCollector) -> List[Dict[str, str]]:
        """Re-import each product via ``path``, pausing between products."""
        updated = []
        for index, identifier in enumerate(identifiers):
            if index and self.settings.writeback_delay:
                self.sleep(self.settings.writeback_delay)
            try:
                result = self._product_import(path, identifier, errors)
            except RemoteDataError as e:
                errors.add(identifier, e)
                continue
            if result:
                updated.append(result)
        return updated

    @staticmethod
    def _product_identifiers(skus) -> List[str]:
        return list(dict.fromkeys(sku.eskimo_product_identifier for sku in skus if sku.eskimo_product_identifier))

    def skus_modified(self, path: str = 'all', route: str = 'hours', amount: Any = 1,
                      start: Any = 1, records: Any = None) -> Dict[str, Any]:
        """Re-import products whose SKUs changed since the watermark (one page of SKUs)."""
        _check_sku_path(path)
        errors = ErrorCollector('skus_modified')
        since = resolve_watermark(route, amount)
        batch = BatchRequest.build(start, records, since, batch_service.SKUS)

        with self._lock():
            identifiers = self._product_identifiers(self.api.skus_all(batch))
            logger.info(f"{len(identifiers)} product(s) with SKUs modified since {since.isoformat()}")
            updated = self._reimport_products(identifiers, _reimport_path(path), errors)
        return {'updated': updated, 'skipped': errors.to_list()}

    def skus_modified_all(self, path: str = 'all', route: str = 'hours', amount: Any = 1) -> Dict[str, Any]:
        """As ``skus_modified`` but pulls every page of modified SKUs."""
        _check_sku_path(path)
        errors = ErrorCollector('skus_modified_all')
        since = resolve_watermark(route, amount)
        batch = BatchRequest.build(1, batch_service.SKUS_BULK.default_count, since, batch_service.SKUS_BULK)

        with self._lock():
            identifiers = self._product_identifiers(self.pagination.collect(self.api.skus_all, batch))
            logger.info(f"{len(identifiers)} product(s) with SKUs modified since {since.isoformat()}")
            updated = self._reimport_products(identifiers, _reimport_path(path), errors)
        return {'updated': updated, 'skipped': errors.to_list()}

    def skus_modified_products(self, product_ids: List[str], path: str = 'adjust') -> Dict[str, Any]:
        errors = ErrorCollector('skus_modified_products')
        identifiers = list(dict.fromkeys(route_to_identifier(str(pid)) for pid in product_ids if pid))
        with self._lock():
            updated = self._reimport_products(identifiers, path, errors)
        return {'updated': updated, 'skipped': errors.to_list()}

    def skus_orphan(self, start: Any = 1, records: Any = None) -> List[Dict[str, Any]]:
        """SKUs whose product has not been imported locally."""
        batch = BatchRequest.build(start, records, None, batch_service.SKUS)
        repo = self.reconciliation.product_repo
        return [
            sku.raw for sku in self.api.skus_all(batch)
            if repo.get_by_eskimo_id(sku.eskimo_product_identifier) is None
        ]

    def sku_by_code(self, code: str) -> Dict[str, Any]:
        return self.api.skus_specific_code(code).raw

    def sku_by_id(self, product_id: str) -> List[Dict[str, Any]]:
        return [sku.raw for sku in self.api.skus_specific_identifier(route_to_identifier(product_id))]

    def orphan_variable_products(self, delete: bool = False, pause_every: int = 25) -> Dict[str, Any]:
        """Variable products left without variations, optionally deleted."""
        repo = self.reconciliation.product_repo
        orphans = repo.get_variable_without_variants()
        found = [{'id': p.id, 'eskimo_product_id': p.eskimo_product_id, 'name': p.name} for p in orphans]

        deleted = 0
        if delete:
            for product in orphans:
                repo.delete(product)
                deleted += 1
                if deleted % pause_every == 0 and self.settings.writeback_delay:
                    self._commit()
                    self.sleep(self.settings.writeback_delay)
            self._commit()
        logger.info(f"Orphan variable products: {len(found)} found, {deleted} deleted")
        return {'orphans': found, 'deleted': deleted}

    # Customers

    def customer_import(self, customer_id: str) -> str:
        customer = self.customers.import_customer(self.api.customers_specific_id(customer_id))
        self._commit()
        return f"User ID[{customer.id}] Username[{customer.username}]"

    def customer_exists(self, email: str) -> bool:
        return self.customers.customer_exists(email)

    def customer_insert(self, customer_id: int) -> str:
        epos_id = self.customers.export_customer(customer_id)
        self._commit()
        return f"ID[{customer_id}] EPOS ID[{epos_id}]"

    def customer_update(self, customer_id: int) -> str:
        epos_id = self.customers.export_customer(customer_id, update=True)
        self._commit()
        return f"ID[{customer_id}] EPOS ID[{epos_id}]"

    # Orders

    def order_export(self, order_id: int) -> str:
        web_order_id = self.orders.export_order(order_id)
        self._commit()
        return f"ID[{order_id}] EPOS WebOrder ID[{web_order_id}]"

    def return_export(self, order_id: int, refund_id: int) -> str:
        web_return_id = self.orders.export_return(order_id, refund_id)
        self._commit()
        return f"ID[{order_id}] Refund[{refund_id}] EPOS Return ID[{web_return_id}]"

    def orders_search(self, customer_id: str) -> List[Dict[str, Any]]:
        """EPOS orders placed by one EPOS customer."""
        return self.api.orders_search({'CustomerID': customer_id})

    def order_by_id(self, order_id: str) -> Dict[str, Any]:
        """EPOS copy of a web order, looked up by its ExternalIdentifier."""
        return self.api.orders_website_order(order_id)

    def fulfilment_methods(self) -> List[Dict[str, Any]]:
        return self.api.orders_fulfilment_methods()

    # Reference data

    def tax_codes(self, tax_id: Optional[str] = None) -> Any:
        return self.api.tax_codes_specific_id(tax_id) if tax_id else self.api.tax_codes_all()

    def shops(self, shop_id: Optional[str] = None) -> Any:
        return self.api.shops_specific_id(shop_id) if shop_id else self.api.shops_all()
