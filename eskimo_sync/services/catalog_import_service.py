"""
Catalog Import Service

Turns EPOS category, product and SKU payloads into local catalog rows:
parent-before-child category import, simple-vs-variable product selection,
colour/size attribute derivation, tax-class mapping and targeted field
updates for already-imported products.
"""

import re
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eskimo_sync.config import EskimoSettings
from eskimo_sync.models import Category, Product, ProductType, ProductVariant
from eskimo_sync.repositories.category_repository import CategoryRepository
from eskimo_sync.repositories.product_repository import ProductRepository
from eskimo_sync.services.error_handler import (
    ErrorCollector, LocalStoreError, ReconciliationError, ValidationError
)
from eskimo_sync.services.eskimo_models import EskimoCategory, EskimoProduct, EskimoSKU, in_product_namespace
from eskimo_sync.services.reconciliation_service import (
    IdentifierMapping, ReconciliationService, web_id_for
)

logger = logging.getLogger(__name__)

TAX_CLASSES = {
    '1': 'standard',
    '2': 'zero-rate',
    '3': 'reduced-rate',
}

UPDATE_PATHS = ('stock', 'tax', 'price', 'category', 'categories', 'adjust', 'all')


def tax_class_for(sku: EskimoSKU) -> str:
    """Map an EPOS TaxCodeID to a store tax class; unknown codes map to ''."""
    return TAX_CLASSES.get(sku.tax_code_id.strip(), '')


def product_type_for(product: EskimoProduct) -> Optional[str]:
    """One SKU makes a simple product, two or more a variable one."""
    count = len(product.skus)
    if count == 1:
        return ProductType.SIMPLE.value
    if count > 1:
        return ProductType.VARIABLE.value
    return None


def slugify(value: str) -> str:
    slug = re.sub(r'[^a-z0-9]+', '-', value.lower()).strip('-')
    return slug or 'category'


def _distinct(values: List[str]) -> List[str]:
    return list(dict.fromkeys(v for v in values if v))


def simple_attributes(sku: EskimoSKU) -> List[Dict[str, Any]]:
    return [
        {'name': 'colour', 'visible': True, 'variation': False, 'options': _distinct([sku.colour_name])},
        {'name': 'size', 'visible': True, 'variation': False, 'options': _distinct([sku.size])},
    ]


def variable_attributes(skus: List[EskimoSKU]) -> List[Dict[str, Any]]:
    return [
        {'name': 'colour', 'visible': True, 'variation': True,
         'options': _distinct([sku.colour_name for sku in skus])},
        {'name': 'size', 'visible': True, 'variation': True,
         'options': _distinct([sku.size for sku in skus])},
    ]


def default_attributes(skus: List[EskimoSKU]) -> List[Dict[str, str]]:
    first = skus[0]
    return [
        {'name': 'colour', 'option': first.colour_name},
        {'name': 'size', 'option': first.size},
    ]


def variation_attributes(sku: EskimoSKU) -> List[Dict[str, str]]:
    return [
        {'name': 'colour', 'option': sku.colour_name},
        {'name': 'size', 'option': sku.size},
    ]


class CatalogImportService:
    """Service for importing the EPOS catalog into the local store."""

    def __init__(self, db_session: Session, settings: EskimoSettings,
                 reconciliation: Optional[ReconciliationService] = None):
        self.db_session = db_session
        self.settings = settings
        self.category_repo = CategoryRepository(db_session)
        self.product_repo = ProductRepository(db_session)
        self.reconciliation = reconciliation or ReconciliationService(db_session, settings)

    def _isolated(self, identifier: str, import_fn: Callable[[], IdentifierMapping],
                  errors: ErrorCollector) -> Optional[IdentifierMapping]:
        """Run one item's import in a savepoint; a failure skips only that item."""
        try:
            with self.db_session.begin_nested():
                return import_fn()
        except ReconciliationError as e:
            errors.add(identifier, e)
        except SQLAlchemyError as e:
            logger.error(f"Local store rejected [{identifier}]: {e}")
            errors.add(identifier, LocalStoreError(str(getattr(e, 'orig', None) or e)))
        return None

    # Categories

    def import_categories(self, categories: List[EskimoCategory],
                          errors: Optional[ErrorCollector] = None) -> List[IdentifierMapping]:
        """Import every eligible category, parents strictly before children."""
        errors = errors if errors is not None else ErrorCollector('categories')
        partition = self.reconciliation.partition_categories(categories, errors)

        mappings = []
        for category in partition.ordered:
            mapping = self._isolated(category.eskimo_category_id,
                                     lambda: self.import_category(category), errors)
            if mapping:
                mappings.append(mapping)
        return mappings

    def import_category(self, category: EskimoCategory) -> IdentifierMapping:
        identifier = category.eskimo_category_id

        if not in_product_namespace(identifier):
            raise ReconciliationError(f"Not a product category [{identifier}]")
        if category.reconciled:
            raise ReconciliationError(f"Web_ID exists [{category.web_id}]")

        existing = self.category_repo.get_by_eskimo_id(identifier)
        if existing:
            logger.info(f"Category [{identifier}] already local as {existing.id}, re-emitting mapping")
            return IdentifierMapping.category(identifier, web_id_for(existing.id, self.settings.category_prefix))

        name = category.short_description.strip()
        if not name:
            raise ReconciliationError(f"Category [{identifier}] has no ShortDescription")

        parent = None
        if not category.is_parent:
            parent = self.category_repo.get_by_eskimo_id(category.parent_id)
            if parent is None:
                logger.warning(f"Orphan category [{identifier}]: parent [{category.parent_id}] "
                               f"not found, importing as top level")

        local = self.category_repo.create(
            name=name,
            slug=self.category_repo.unique_slug(slugify(name)),
            description=category.long_description or name.title(),
            parent=parent,
            eskimo_category_id=identifier
        )
        logger.info(f"Imported category [{identifier}] as {local.id}")
        return IdentifierMapping.category(identifier, web_id_for(local.id, self.settings.category_prefix))

    # Products

    def import_products(self, products: List[EskimoProduct],
                        errors: Optional[ErrorCollector] = None) -> List[IdentifierMapping]:
        """Import every eligible product; failures skip the item and continue."""
        errors = errors if errors is not None else ErrorCollector('products')
        mappings = []
        for product in self.reconciliation.select_products(products, errors):
            mapping = self._isolated(product.eskimo_identifier,
                                     lambda: self.import_product(product), errors)
            if mapping:
                mappings.append(mapping)
        return mappings

    def import_product(self, product: EskimoProduct) -> IdentifierMapping:
        identifier = product.eskimo_identifier

        existing = self.product_repo.get_by_eskimo_id(identifier)
        if existing:
            logger.info(f"Product [{identifier}] already local as {existing.id}, re-emitting mapping")
            return IdentifierMapping.product(identifier, web_id_for(existing.id, self.settings.product_prefix))

        product_type = product_type_for(product)
        if product_type == ProductType.SIMPLE.value:
            local = self._add_simple(product)
        elif product_type == ProductType.VARIABLE.value:
            local = self._add_variable(product)
        else:
            raise ReconciliationError(f"Product [{identifier}] has no SKUs")

        logger.info(f"Imported {product_type} product [{identifier}] as {local.id}")
        return IdentifierMapping.product(identifier, web_id_for(local.id, self.settings.product_prefix))

    def _resolve_category(self, product: EskimoProduct) -> Optional[Category]:
        category = self.category_repo.get_by_eskimo_id(product.eskimo_category_id)
        if category is None:
            logger.warning(f"Product [{product.eskimo_identifier}] category "
                           f"[{product.eskimo_category_id}] not found locally")
        return category

    def _sku_codes(self, product: EskimoProduct) -> List[str]:
        """SKU codes of the payload; each must be present and appear once."""
        codes = [sku.sku_code.strip() for sku in product.skus]
        if not all(codes):
            raise ReconciliationError(f"Product [{product.eskimo_identifier}] has a SKU without a code")
        repeated = sorted({code for code in codes if codes.count(code) > 1})
        if repeated:
            raise ReconciliationError(f"Repeated SKU code [{', '.join(repeated)}]")
        return codes

    def _add_simple(self, product: EskimoProduct) -> Product:
        sku = product.skus[0]
        self._sku_codes(product)
        if self.product_repo.sku_exists([sku.sku_code]):
            raise ReconciliationError(f"SKU exists [{sku.sku_code}]")

        return self.product_repo.create(
            name=product.title,
            product_type=ProductType.SIMPLE.value,
            description=product.description,
            short_description=product.short_description,
            regular_price=product.from_price,
            manage_stock=True,
            sku=sku.sku_code,
            stock_quantity=sku.stock_amount,
            tax_class=tax_class_for(sku),
            attributes=simple_attributes(sku),
            category=self._resolve_category(product),
            eskimo_category_id=product.eskimo_category_id,
            eskimo_product_id=product.eskimo_identifier
        )

    def _add_variable(self, product: EskimoProduct) -> Product:
        codes = self._sku_codes(product)
        if self.product_repo.sku_exists(codes):
            raise ReconciliationError(f"Variation SKU exists [{', '.join(codes)}]")

        parent = self.product_repo.create(
            name=product.title,
            product_type=ProductType.VARIABLE.value,
            description=product.description,
            short_description=product.short_description,
            manage_stock=False,
            stock_quantity=sum(sku.stock_amount for sku in product.skus),
            attributes=variable_attributes(product.skus),
            default_attributes=default_attributes(product.skus),
            category=self._resolve_category(product),
            eskimo_category_id=product.eskimo_category_id,
            eskimo_product_id=product.eskimo_identifier
        )

        for sku in product.skus:
            self.product_repo.create_variant(
                parent,
                name=product.title,
                description=product.description,
                sku=sku.sku_code,
                regular_price=sku.sell_price,
                manage_stock=True,
                stock_quantity=sku.stock_amount,
                tax_class=tax_class_for(sku),
                attributes=variation_attributes(sku)
            )
        return parent

    # Targeted updates

    def update_product(self, product: EskimoProduct, path: str) -> IdentifierMapping:
        """Rewrite only the fields named by ``path`` on an already-imported product."""
        if path not in UPDATE_PATHS:
            raise ValidationError(f"Invalid Product Path[{path}]")

        product_type = product_type_for(product)
        if product_type == ProductType.SIMPLE.value:
            self._update_simple(product, path)
        elif product_type == ProductType.VARIABLE.value:
            self._update_variable(product, path)
        else:
            raise ReconciliationError(f"Product [{product.eskimo_identifier}] has no SKUs")

        logger.info(f"Updated product [{product.eskimo_identifier}] path [{path}]")
        return IdentifierMapping.product(product.eskimo_identifier, product.web_id)

    def _update_simple(self, product: EskimoProduct, path: str) -> Product:
        sku = product.skus[0]
        local = self.product_repo.get_simple_by_sku(sku.sku_code)
        if local is None:
            raise ReconciliationError(f"Product SKU not found locally [{sku.sku_code}]")

        fields: Dict[str, Any] = {}
        if path == 'all':
            fields.update(
                name=product.title,
                product_type=ProductType.SIMPLE.value,
                description=product.description,
                short_description=product.short_description,
                regular_price=product.from_price,
                manage_stock=True,
                sku=sku.sku_code,
                stock_quantity=sku.stock_amount,
                tax_class=tax_class_for(sku),
                attributes=simple_attributes(sku),
                category=self._resolve_category(product)
            )
        if path in ('stock', 'adjust'):
            fields['stock_quantity'] = sku.stock_amount
        if path == 'tax':
            fields['tax_class'] = tax_class_for(sku)
        if path in ('price', 'adjust'):
            fields['regular_price'] = product.from_price
        if path in ('category', 'categories'):
            fields['category'] = self._resolve_category(product)

        return self.product_repo.update(local, **fields)

    def _update_variable(self, product: EskimoProduct, path: str) -> Product:
        local = self.product_repo.get_by_eskimo_id(product.eskimo_identifier)
        if local is None:
            raise ReconciliationError(f"Product not found locally [{product.eskimo_identifier}]")

        fields: Dict[str, Any] = {}
        if path == 'all':
            fields.update(
                name=product.title,
                product_type=ProductType.VARIABLE.value,
                description=product.description,
                short_description=product.short_description
            )
        if path in ('all', 'category', 'categories'):
            fields['category'] = self._resolve_category(product)
        if path in ('stock', 'adjust', 'all'):
            fields['stock_quantity'] = sum(sku.stock_amount for sku in product.skus)
        self.product_repo.update(local, **fields)

        for sku in product.skus:
            variant = self.product_repo.get_variant_by_sku(sku.sku_code)
            if variant is None or variant.product_id != local.id:
                logger.warning(f"Variation SKU [{sku.sku_code}] not found for product {local.id}")
                continue
            self._update_variation(variant, product, sku, path)
        return local

    def _update_variation(self, variant: ProductVariant, product: EskimoProduct,
                          sku: EskimoSKU, path: str) -> ProductVariant:
        fields: Dict[str, Any] = {}
        if path == 'all':
            fields.update(
                name=product.title,
                description=product.description,
                manage_stock=True,
                attributes=variation_attributes(sku)
            )
        if path in ('stock', 'adjust', 'all'):
            fields['stock_quantity'] = sku.stock_amount
        if path in ('tax', 'all'):
            fields['tax_class'] = tax_class_for(sku)
        if path in ('price', 'adjust', 'all'):
            fields['regular_price'] = sku.sell_price

        for key, value in fields.items():
            setattr(variant, key, value)
        self.db_session.flush()
        return variant
