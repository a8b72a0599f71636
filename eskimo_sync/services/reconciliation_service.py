"""
Identifier Reconciliation Service

Decides which remote entities need importing, projects the current local
identifier mappings, and writes Web_IDs back to the EPOS system.
"""

import time
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from eskimo_sync.config import EskimoSettings
from eskimo_sync.repositories.category_repository import CategoryRepository
from eskimo_sync.repositories.product_repository import ProductRepository
from eskimo_sync.services.batch_service import WriteBackQueue, WriteBackResult
from eskimo_sync.services.error_handler import ErrorCollector
from eskimo_sync.services.eskimo_models import (
    EskimoCategory, EskimoProduct, in_product_namespace
)

logger = logging.getLogger(__name__)

CATEGORY_KEY = 'Eskimo_Category_ID'
PRODUCT_KEY = 'Eskimo_Identifier'
RESET_WEB_ID = '0'


@dataclass(frozen=True)
class IdentifierMapping:
    """(EskimoIdentifier, WebID) pair queued for write-back."""
    key: str
    eskimo_id: str
    web_id: str

    @classmethod
    def category(cls, eskimo_id: str, web_id: str) -> 'IdentifierMapping':
        return cls(CATEGORY_KEY, eskimo_id, str(web_id))

    @classmethod
    def product(cls, eskimo_id: str, web_id: str) -> 'IdentifierMapping':
        return cls(PRODUCT_KEY, eskimo_id, str(web_id))

    def to_payload(self) -> Dict[str, str]:
        return {self.key: self.eskimo_id, 'Web_ID': self.web_id}


def web_id_for(local_id: int, prefix: str = '') -> str:
    """Local ID as written back to the remote, optionally prefixed."""
    return f"{prefix}{local_id}" if prefix else str(local_id)


@dataclass
class CategoryPartition:
    """Categories needing import, split so parents are imported first."""
    parents: List[EskimoCategory] = field(default_factory=list)
    children: List[EskimoCategory] = field(default_factory=list)
    skipped: int = 0

    @property
    def ordered(self) -> List[EskimoCategory]:
        return self.parents + self.children


class ReconciliationService:
    """Keeps local and remote identifier mappings consistent."""

    def __init__(self, db_session: Session, settings: EskimoSettings, api=None,
                 sleep: Callable[[float], None] = time.sleep):
        self.db_session = db_session
        self.settings = settings
        self.api = api
        self.sleep = sleep
        self.category_repo = CategoryRepository(db_session)
        self.product_repo = ProductRepository(db_session)

    # Import direction

    def partition_categories(self, categories: List[EskimoCategory],
                             errors: Optional[ErrorCollector] = None) -> CategoryPartition:
        """Drop non-product and already-reconciled categories, then split parents from children."""
        partition = CategoryPartition()

        for category in categories:
            if not in_product_namespace(category.eskimo_category_id):
                partition.skipped += 1
                continue

            if category.reconciled:
                partition.skipped += 1
                if errors is not None:
                    errors.skip(category.eskimo_category_id, f"Web_ID exists [{category.web_id}]")
                continue

            if category.is_parent:
                partition.parents.append(category)
            else:
                partition.children.append(category)

        logger.info(f"Categories to import: {len(partition.parents)} parent(s), "
                    f"{len(partition.children)} child(ren), {partition.skipped} skipped")
        return partition

    def select_products(self, products: List[EskimoProduct], errors: ErrorCollector,
                        require_imported: bool = False) -> List[EskimoProduct]:
        """
        Filter products eligible for import, or for a targeted update when
        ``require_imported`` is set.
        """
        selected = []
        for product in products:
            identifier = product.eskimo_identifier

            if not in_product_namespace(product.eskimo_category_id):
                errors.skip(identifier, f"Not a product category [{product.eskimo_category_id}]")
                continue

            if not product.title:
                errors.skip(identifier, "Title not set")
                continue

            if not product.category_reconciled:
                errors.skip(identifier, f"Category not imported [{product.eskimo_category_id}]")
                continue

            if require_imported and not product.reconciled:
                errors.skip(identifier, "Web_ID not set")
                continue

            if not require_imported and product.reconciled:
                errors.skip(identifier, f"Web_ID exists [{product.web_id}]")
                continue

            if not product.skus:
                errors.skip(identifier, "Product SKU not set")
                continue

            selected.append(product)
        return selected

    # Export direction

    def project_category_mappings(self) -> List[IdentifierMapping]:
        """Fresh mapping table built from every locally mapped category."""
        return [
            IdentifierMapping.category(category.eskimo_category_id,
                                       web_id_for(category.id, self.settings.category_prefix))
            for category in self.category_repo.get_mapped()
        ]

    def project_product_mappings(self) -> List[IdentifierMapping]:
        """Fresh mapping table built from every locally mapped product."""
        return [
            IdentifierMapping.product(product.eskimo_product_id,
                                      web_id_for(product.id, self.settings.product_prefix))
            for product in self.product_repo.get_mapped()
        ]

    def reset_category_mappings(self, categories: List[EskimoCategory]) -> List[IdentifierMapping]:
        """Zero the Web_ID of every remotely mapped product category."""
        return [
            IdentifierMapping.category(category.eskimo_category_id, RESET_WEB_ID)
            for category in categories
            if in_product_namespace(category.eskimo_category_id) and category.reconciled
        ]

    def reset_product_mappings(self, products: List[EskimoProduct]) -> List[IdentifierMapping]:
        """Zero the Web_ID of every remotely mapped product."""
        return [
            IdentifierMapping.product(product.eskimo_identifier, RESET_WEB_ID)
            for product in products
            if in_product_namespace(product.eskimo_category_id)
            and product.category_reconciled and product.reconciled
        ]

    # Write-back

    def _queue(self, post_fn) -> WriteBackQueue:
        return WriteBackQueue(
            post_fn,
            batch_size=self.settings.writeback_batch_size,
            delay=self.settings.writeback_delay,
            retries=self.settings.writeback_retries,
            sleep=self.sleep
        )

    def push_categories(self, mappings: List[IdentifierMapping]) -> WriteBackResult:
        if not mappings:
            return WriteBackResult()
        return self._queue(self.api.categories_update_cart_ids).flush(mappings)

    def push_products(self, mappings: List[IdentifierMapping]) -> WriteBackResult:
        if not mappings:
            return WriteBackResult()
        return self._queue(self.api.products_update_cart_ids).flush(mappings)
