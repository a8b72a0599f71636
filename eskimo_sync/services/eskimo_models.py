"""
Typed DTOs for Eskimo EPOS payloads.

Remote JSON is decoded once at the client boundary into these dataclasses;
the rest of the engine never touches raw dictionaries.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

IDENTIFIER_DELIMITER = '|'
PRODUCT_NAMESPACE = re.compile(r'product$')


def to_decimal(value) -> Decimal:
    if value is None or value == '':
        return Decimal('0')
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal('0')


def to_int(value) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def to_str(value) -> str:
    return '' if value is None else str(value)


def is_reconciled(web_id) -> bool:
    """A non-empty, non-"0" Web_ID marks a remote entity as already imported."""
    value = to_str(web_id).strip()
    return value not in ('', '0')


def in_product_namespace(category_id) -> bool:
    return bool(PRODUCT_NAMESPACE.search(to_str(category_id)))


def route_to_identifier(value: str) -> str:
    """Convert a URL-safe identifier ("12-STY_") to its remote form ("12|STY|")."""
    return re.sub(r'[-_]', IDENTIFIER_DELIMITER, value)


def identifier_parts(identifier: str) -> List[str]:
    return to_str(identifier).split(IDENTIFIER_DELIMITER)


def _pick(payload: Dict[str, Any], *keys, default=None):
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return default


@dataclass
class EskimoCategory:
    """Remote category record."""
    eskimo_category_id: str
    parent_id: str = ''
    short_description: str = ''
    long_description: str = ''
    web_id: str = ''
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'EskimoCategory':
        return cls(
            eskimo_category_id=to_str(_pick(payload, 'Eskimo_Category_ID', 'eskimo_category_id')),
            parent_id=to_str(_pick(payload, 'ParentID', 'parent_id')),
            short_description=to_str(_pick(payload, 'ShortDescription', 'short_description')),
            long_description=to_str(_pick(payload, 'LongDescription', 'long_description')),
            web_id=to_str(_pick(payload, 'Web_ID', 'web_id')),
            raw=payload
        )

    @property
    def is_parent(self) -> bool:
        return self.parent_id.strip() == ''

    @property
    def reconciled(self) -> bool:
        return is_reconciled(self.web_id)


@dataclass
class EskimoSKU:
    """Remote SKU record."""
    sku_code: str
    eskimo_product_identifier: str = ''
    stock_amount: int = 0
    sell_price: Decimal = Decimal('0')
    colour_name: str = ''
    size: str = ''
    tax_code_id: str = ''
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'EskimoSKU':
        return cls(
            sku_code=to_str(_pick(payload, 'sku_code', 'SKUCode', 'SkuCode')),
            eskimo_product_identifier=to_str(_pick(payload, 'Eskimo_Product_Identifier',
                                                   'eskimo_product_identifier')),
            stock_amount=to_int(_pick(payload, 'StockAmount', 'stock_amount')),
            sell_price=to_decimal(_pick(payload, 'SellPrice', 'sell_price')),
            colour_name=to_str(_pick(payload, 'ColourName', 'colour_name')),
            size=to_str(_pick(payload, 'Size', 'size')),
            tax_code_id=to_str(_pick(payload, 'TaxCodeID', 'tax_code_id')),
            raw=payload
        )


@dataclass
class EskimoProduct:
    """Remote product record, optionally enriched with its SKUs."""
    eskimo_identifier: str
    eskimo_category_id: str = ''
    title: str = ''
    short_description: str = ''
    long_description: str = ''
    from_price: Decimal = Decimal('0')
    web_category_id: str = ''
    web_id: str = ''
    skus: List[EskimoSKU] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'EskimoProduct':
        skus = _pick(payload, 'sku', 'skus', default=[]) or []
        return cls(
            eskimo_identifier=to_str(_pick(payload, 'eskimo_identifier', 'Eskimo_Identifier')),
            eskimo_category_id=to_str(_pick(payload, 'eskimo_category_id', 'Eskimo_Category_ID')),
            title=to_str(_pick(payload, 'title', 'Title')).strip(),
            short_description=to_str(_pick(payload, 'short_description', 'ShortDescription')),
            long_description=to_str(_pick(payload, 'long_description', 'LongDescription')),
            from_price=to_decimal(_pick(payload, 'from_price', 'FromPrice')),
            web_category_id=to_str(_pick(payload, 'web_category_id', 'Web_Category_ID')),
            web_id=to_str(_pick(payload, 'web_id', 'Web_ID')),
            skus=[sku if isinstance(sku, EskimoSKU) else EskimoSKU.from_payload(sku) for sku in skus],
            raw=payload
        )

    @property
    def description(self) -> str:
        return self.long_description or self.short_description

    @property
    def reconciled(self) -> bool:
        return is_reconciled(self.web_id)

    @property
    def category_reconciled(self) -> bool:
        return is_reconciled(self.web_category_id)


@dataclass
class EskimoCategoryProduct:
    """Link between a remote category and one of its products."""
    eskimo_category_id: str
    eskimo_product_identifier: str = ''
    web_category_id: str = ''
    web_product_id: str = ''
    product: Optional[EskimoProduct] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'EskimoCategoryProduct':
        embedded = _pick(payload, 'product', 'Product')
        return cls(
            eskimo_category_id=to_str(_pick(payload, 'eskimo_category_id', 'Eskimo_Category_ID')),
            eskimo_product_identifier=to_str(_pick(payload, 'eskimo_product_identifier',
                                                   'Eskimo_Product_Identifier')),
            web_category_id=to_str(_pick(payload, 'web_category_id', 'Web_Category_ID')),
            web_product_id=to_str(_pick(payload, 'web_product_id', 'Web_Product_ID')),
            product=EskimoProduct.from_payload(embedded) if isinstance(embedded, dict) else None,
            raw=payload
        )


@dataclass
class EskimoCustomer:
    """Remote customer record."""
    id: str
    email: str = ''
    forename: str = ''
    surname: str = ''
    company_name: str = ''
    address: str = ''
    postcode: str = ''
    telephone: str = ''
    mobile: str = ''
    notes: str = ''
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'EskimoCustomer':
        return cls(
            id=to_str(_pick(payload, 'ID', 'id')),
            email=to_str(_pick(payload, 'EmailAddress', 'email')).strip(),
            forename=to_str(_pick(payload, 'Forename')),
            surname=to_str(_pick(payload, 'Surname')),
            company_name=to_str(_pick(payload, 'CompanyName')),
            address=to_str(_pick(payload, 'Address')),
            postcode=to_str(_pick(payload, 'PostCode', 'Postcode')),
            telephone=to_str(_pick(payload, 'Telephone')),
            mobile=to_str(_pick(payload, 'Mobile')),
            notes=to_str(_pick(payload, 'Notes')),
            raw=payload
        )


def decode_list(payload, dto) -> List[Any]:
    """Decode a list payload (or a single object) into DTOs."""
    if payload is None:
        return []
    if isinstance(payload, dict):
        payload = [payload]
    return [dto.from_payload(item) for item in payload if isinstance(item, dict)]
