"""
Product Repository for managing product and variant database operations.
"""

import logging
from typing import Iterable, List, Optional
from sqlalchemy.orm import Session

from eskimo_sync.models import Product, ProductVariant, ProductType
from .base import BaseRepository

logger = logging.getLogger(__name__)


class ProductRepository(BaseRepository):
    """Repository for Product and ProductVariant operations."""

    def __init__(self, session: Session):
        super().__init__(Product, session)

    def get_by_eskimo_id(self, eskimo_product_id: str) -> Optional[Product]:
        """Exact-match lookup by EPOS product identifier."""
        if not eskimo_product_id:
            return None
        return self.get_by(eskimo_product_id=eskimo_product_id)

    def get_simple_by_sku(self, sku: str) -> Optional[Product]:
        """Simple product holding the SKU code."""
        return self.session.query(Product).filter(
            Product.sku == sku,
            Product.product_type == ProductType.SIMPLE.value
        ).first()

    def get_variant_by_sku(self, sku: str) -> Optional[ProductVariant]:
        return self.session.query(ProductVariant).filter(ProductVariant.sku == sku).first()

    def sku_exists(self, codes: Iterable[str]) -> bool:
        """True if any of the SKU codes is already held by a product or variant."""
        codes = [code for code in codes if code]
        if not codes:
            return False
        if self.session.query(Product.id).filter(Product.sku.in_(codes)).first():
            return True
        return self.session.query(ProductVariant.id).filter(ProductVariant.sku.in_(codes)).first() is not None

    def create_variant(self, product: Product, **kwargs) -> ProductVariant:
        variant = ProductVariant(product=product, **kwargs)
        self.session.add(variant)
        self.session.flush()
        return variant

    def get_mapped(self) -> List[Product]:
        """All products that carry an EPOS identifier."""
        return self.session.query(Product).filter(
            Product.eskimo_product_id.isnot(None),
            Product.eskimo_product_id != ''
        ).order_by(Product.id).all()

    def get_variable_without_variants(self) -> List[Product]:
        """Published variable products with no variations."""
        return self.session.query(Product).filter(
            Product.product_type == ProductType.VARIABLE.value,
            Product.status == 'publish',
            ~Product.variants.any()
        ).order_by(Product.id).all()

    def delete(self, product: Product) -> None:
        self.session.delete(product)
        self.session.flush()
