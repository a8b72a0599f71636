"""
Services package for the Eskimo sync engine.

This package contains the business logic services that handle:
- EPOS authentication and API access
- Pagination and Web_ID write-back
- Catalog import and identifier reconciliation
- Customer, order and return export
"""

from .catalog_import_service import CatalogImportService
from .customer_sync_service import CustomerSyncService
from .eskimo_api_service import EskimoAPIService
from .eskimo_auth_service import EskimoAuthService
from .order_export_service import OrderExportService
from .reconciliation_service import ReconciliationService
from .sync_service import EskimoSyncService

__all__ = [
    'CatalogImportService',
    'CustomerSyncService',
    'EskimoAPIService',
    'EskimoAuthService',
    'EskimoSyncService',
    'OrderExportService',
    'ReconciliationService'
]
