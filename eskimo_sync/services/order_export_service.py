"""
Order Export Service

Assembles EPOS web orders and returns from local orders and refunds.
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from eskimo_sync.config import EskimoSettings
from eskimo_sync.models import Customer, DiscountType, Order, OrderCoupon, OrderStatus, Refund
from eskimo_sync.repositories.customer_repository import CustomerRepository
from eskimo_sync.repositories.order_repository import OrderRepository
from eskimo_sync.services.error_handler import ReconciliationError, ValidationError
from eskimo_sync.services.eskimo_models import to_decimal, to_str

logger = logging.getLogger(__name__)

EXPORTABLE_STATUSES = (OrderStatus.PROCESSING.value, OrderStatus.COMPLETED.value)
COUPON_MODES = ('sequential', 'independent')

WEB_ORDER = 2
WEB_RETURN = 3
SHIPPING_RATE_ID = 1


def quantize(value: Decimal, decimals: int = 2) -> Decimal:
    return to_decimal(value).quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)


def format_amount(value: Decimal, decimals: int = 2) -> str:
    return str(quantize(value, decimals))


def percent_discount(price: Decimal, percent: Decimal, decimals: int = 2) -> Decimal:
    """Percentage of ``price`` rounded in integer minor units."""
    scale = Decimal(10) ** decimals
    minor = (to_decimal(price) * scale).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    discount = (minor * to_decimal(percent) / 100).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return discount / scale


def apply_coupons(price: Decimal, coupons: List[OrderCoupon], mode: str = 'sequential',
                  decimals: int = 2) -> Decimal:
    """
    Discounted unit price after every coupon.

    In sequential mode each percentage is taken off the already reduced price;
    in independent mode always off the original price. Fixed amounts subtract.
    """
    if mode not in COUPON_MODES:
        raise ValidationError(f"Invalid coupon mode [{mode}]")

    original = to_decimal(price)
    current = original
    for coupon in coupons:
        if coupon.discount_type == DiscountType.PERCENT.value:
            base = current if mode == 'sequential' else original
            discount = percent_discount(base, coupon.amount, decimals)
        else:
            discount = to_decimal(coupon.amount)
        current = max(current - discount, Decimal('0'))
    return quantize(current, decimals)


def address_block(details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    details = details or {}
    name = f"{to_str(details.get('first_name'))} {to_str(details.get('last_name'))}".strip()
    return {
        'FAO': name,
        'AddressLine1': to_str(details.get('address_1')),
        'AddressLine2': to_str(details.get('address_2')),
        'AddressLine3': None,
        'PostalTown': to_str(details.get('city')),
        'County': to_str(details.get('state')),
        'CountryCode': to_str(details.get('country')),
        'PostCode': to_str(details.get('postcode')),
    }


def same_address(billing: Dict[str, Any], shipping: Dict[str, Any]) -> bool:
    return (billing['FAO'], billing['AddressLine1']) == (shipping['FAO'], shipping['AddressLine1'])


class OrderExportService:
    """Service for exporting orders and returns to the EPOS system."""

    def __init__(self, db_session: Session, settings: EskimoSettings, api=None):
        self.db_session = db_session
        self.settings = settings
        self.api = api
        self.order_repo = OrderRepository(db_session)
        self.customer_repo = CustomerRepository(db_session)

    def _get_order(self, order_id: int) -> Order:
        if not order_id or int(order_id) <= 0:
            raise ValidationError(f"Invalid Order ID[{order_id}]")
        order = self.order_repo.get(int(order_id))
        if order is None:
            raise ReconciliationError(f"Invalid Order ID[{order_id}]")
        return order

    def _resolve_customer(self, order: Order) -> Tuple[Customer, str]:
        customer = order.customer
        if customer is None:
            customer = self.customer_repo.get_by_email(self.settings.guest_email)
            if customer is None:
                raise ReconciliationError(f"No guest user for this order[{order.id}]")

        if not customer.epos_id:
            raise ReconciliationError(f"No EPOS customer for order[{order.id}] customer[{customer.id}]")
        return customer, customer.epos_id

    def external_identifier(self, order: Order, customer: Customer) -> str:
        return f"{self.settings.customer_prefix}{customer.epos_id}-{customer.id}-{order.id}"

    def _addresses(self, order: Order) -> Dict[str, Any]:
        billing = address_block(order.billing)
        shipping = address_block(order.shipping)
        addresses = {'InvoiceAddress': billing}
        if not same_address(billing, shipping):
            addresses['DeliveryAddress'] = shipping
        return addresses

    def build_order_payload(self, order: Order) -> Dict[str, Any]:
        """EPOS web order payload for a local order."""
        customer, epos_id = self._resolve_customer(order)
        decimals = self.settings.price_decimals

        cart_total = Decimal('0')
        discount_total = Decimal('0')
        items = []
        for order_item in order.items:
            sku = order_item.sku
            if not sku:
                logger.warning(f"Order [{order.id}] item [{order_item.id}] has no SKU, skipped")
                continue

            price = quantize(order_item.price, decimals)
            unit_price = apply_coupons(price, order.coupons, self.settings.coupon_mode, decimals)
            discount = price - unit_price

            cart_total += unit_price * order_item.quantity
            discount_total += discount * order_item.quantity

            items.append({
                'sku_code': sku,
                'qty_purchased': order_item.quantity,
                'unit_price': format_amount(unit_price, decimals),
                'line_discount_amount': format_amount(discount * order_item.quantity, decimals),
                'item_note': order_item.note,
            })

        shipping_total = quantize(order.shipping_total or 0, decimals)
        total = format_amount(cart_total + shipping_total, decimals)
        order_date = order.date_completed or order.created_at or datetime.utcnow()

        logger.debug(f"Order [{order.id}] cart {cart_total} discount {discount_total} shipping {shipping_total}")

        payload = {
            'order_id': order.id,
            'eskimo_customer_id': epos_id,
            'order_date': order_date.strftime('%Y-%m-%d %H:%M:%S'),
            'invoice_amount': total,
            'amount_paid': total,
            'OrderType': WEB_ORDER,
            'ExternalIdentifier': self.external_identifier(order, customer),
            'OrderedItems': items,
            'CustomerReference': None,
            'DeliveryNotes': order.customer_note or '',
            'ShippingRateID': SHIPPING_RATE_ID,
            'ShippingAmountGross': format_amount(shipping_total, decimals),
        }
        payload.update(self._addresses(order))
        return payload

    def export_order(self, order_id: int) -> str:
        """Insert a local order into the EPOS system and store its ExternalIdentifier."""
        order = self._get_order(order_id)

        if order.web_order_id:
            raise ReconciliationError(
                f"EPOS Order exists ID[{order.id}] EPOS Web Order ID[{order.web_order_id}]"
            )
        if order.status not in EXPORTABLE_STATUSES:
            raise ReconciliationError(f"Order [{order.id}] status [{order.status}] is not exportable")

        payload = self.build_order_payload(order)
        if not payload['OrderedItems']:
            raise ReconciliationError(f"Order [{order.id}] has no items with a SKU")

        response = self.api.orders_insert(payload)
        web_order_id = to_str(response.get('ExternalIdentifier')) if isinstance(response, dict) else ''
        web_order_id = web_order_id or payload['ExternalIdentifier']

        self.order_repo.update(order, web_order_id=web_order_id)
        logger.info(f"Exported order [{order.id}] as EPOS web order [{web_order_id}]")
        return web_order_id

    def build_return_payload(self, order: Order, refund: Refund) -> Dict[str, Any]:
        """EPOS return payload for the refunded lines of an order."""
        customer, epos_id = self._resolve_customer(order)
        decimals = self.settings.price_decimals

        items = []
        refund_total = Decimal('0')
        for refund_item in refund.items:
            if refund_item.quantity <= 0:
                continue

            order_item = refund_item.order_item
            sku = order_item.sku if order_item is not None else None
            if not sku:
                logger.warning(f"Refund [{refund.id}] item [{refund_item.id}] has no SKU, skipped")
                continue

            line_total = abs(to_decimal(refund_item.refund_total))
            if not line_total:
                line_total = to_decimal(order_item.price) * refund_item.quantity
            refund_total += line_total

            items.append({
                'sku_code': sku,
                'qty_purchased': refund_item.quantity,
                'unit_price': format_amount(line_total / refund_item.quantity, decimals),
                'line_discount_amount': format_amount(Decimal('0'), decimals),
                'item_note': refund.reason,
            })

        if not items:
            raise ReconciliationError(f"Order [{order.id}] refund [{refund.id}]: no returns to process")

        total = format_amount(refund_total, decimals)
        created = refund.created_at or datetime.utcnow()
        payload = {
            'order_id': order.id,
            'eskimo_customer_id': epos_id,
            'order_date': created.strftime('%Y-%m-%d %H:%M:%S'),
            'invoice_amount': total,
            'amount_paid': total,
            'OrderType': WEB_RETURN,
            'ExternalIdentifier': f"{self.external_identifier(order, customer)}-R{refund.id}",
            'OrderedItems': items,
            'CustomerReference': None,
            'DeliveryNotes': refund.reason or '',
            'ShippingRateID': SHIPPING_RATE_ID,
            'ShippingAmountGross': format_amount(Decimal('0'), decimals),
        }
        payload.update(self._addresses(order))
        return payload

    def export_return(self, order_id: int, refund_id: int) -> str:
        """Insert a refund into the EPOS system as a return and store its ExternalIdentifier."""
        order = self._get_order(order_id)
        refund = self.order_repo.get_refund(order.id, int(refund_id))
        if refund is None:
            raise ReconciliationError(f"Invalid Refund ID[{refund_id}] for Order ID[{order.id}]")
        if refund.web_return_id:
            raise ReconciliationError(f"EPOS Return exists ID[{refund.id}] [{refund.web_return_id}]")

        payload = self.build_return_payload(order, refund)
        response = self.api.orders_insert(payload)
        web_return_id = to_str(response.get('ExternalIdentifier')) if isinstance(response, dict) else ''
        web_return_id = web_return_id or payload['ExternalIdentifier']

        refund.web_return_id = web_return_id
        self.db_session.flush()
        logger.info(f"Exported refund [{refund.id}] of order [{order.id}] as [{web_return_id}]")
        return web_return_id
