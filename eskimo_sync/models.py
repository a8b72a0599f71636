"""
Database Models for the Eskimo Sync Service

Local store entities. Remote identifiers are held on the rows that were
imported from, or exported to, the Eskimo EPOS system.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Numeric, JSON, Index
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.sql import func
import enum

Base = declarative_base()


class ProductType(enum.Enum):
    SIMPLE = "simple"
    VARIABLE = "variable"


class OrderStatus(enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class DiscountType(enum.Enum):
    PERCENT = "percent"
    FIXED_CART = "fixed_cart"
    FIXED_PRODUCT = "fixed_product"


class Category(Base):
    """Product category with hierarchy support."""
    __tablename__ = 'categories'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text)
    parent_id = Column(Integer, ForeignKey('categories.id'), index=True)

    # Eskimo EPOS reference, e.g. "12|product"
    eskimo_category_id = Column(String(100), unique=True, index=True)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    parent = relationship("Category", remote_side=[id], backref="children")
    products = relationship("Product", back_populates="category")

    @validates('name')
    def validate_name(self, key, name):
        if not name or len(name.strip()) == 0:
            raise ValueError("Category name cannot be empty")
        return name.strip()

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}', eskimo_category_id='{self.eskimo_category_id}')>"


class Product(Base):
    """Simple or variable product."""
    __tablename__ = 'products'

    id = Column(Integer, primary_key=True)
    name = Column(String(500), nullable=False)
    product_type = Column(String(20), default=ProductType.SIMPLE.value, nullable=False)
    status = Column(String(20), default='publish', nullable=False)
    description = Column(Text)
    short_description = Column(Text)

    # Simple products carry price, stock and SKU directly
    sku = Column(String(100), unique=True, index=True)
    regular_price = Column(Numeric(10, 2))
    manage_stock = Column(Boolean, default=False, nullable=False)
    stock_quantity = Column(Integer)
    tax_class = Column(String(50), default='')

    attributes = Column(JSON)
    default_attributes = Column(JSON)

    category_id = Column(Integer, ForeignKey('categories.id'), index=True)

    # Eskimo EPOS references, e.g. "1234|STY01|"
    eskimo_product_id = Column(String(100), unique=True, index=True)
    eskimo_category_id = Column(String(100), index=True)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    category = relationship("Category", back_populates="products")
    variants = relationship("ProductVariant", back_populates="product", cascade="all, delete-orphan",
                            order_by="ProductVariant.id")

    __table_args__ = (
        Index('idx_product_type_status', 'product_type', 'status'),
    )

    @validates('product_type')
    def validate_product_type(self, key, value):
        if value not in (ProductType.SIMPLE.value, ProductType.VARIABLE.value):
            raise ValueError(f"Invalid product type: {value}")
        return value

    def __repr__(self):
        return f"<Product(id={self.id}, type='{self.product_type}', eskimo_product_id='{self.eskimo_product_id}')>"


class ProductVariant(Base):
    """Variation of a variable product, one per remote SKU."""
    __tablename__ = 'product_variants'

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey('products.id'), nullable=False, index=True)
    name = Column(String(500))
    description = Column(Text)
    sku = Column(String(100), unique=True, nullable=False, index=True)
    regular_price = Column(Numeric(10, 2))
    manage_stock = Column(Boolean, default=True, nullable=False)
    stock_quantity = Column(Integer)
    tax_class = Column(String(50), default='')
    attributes = Column(JSON)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    product = relationship("Product", back_populates="variants")

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, sku='{self.sku}')>"


class Customer(Base):
    """Store customer account."""
    __tablename__ = 'customers'

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(255), unique=True)
    role = Column(String(50), default='customer', nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))

    # Address blocks: first_name, last_name, company, address_1, address_2,
    # city, state, postcode, country, email, phone, mobile
    billing = Column(JSON, default=dict)
    shipping = Column(JSON, default=dict)

    # Eskimo EPOS customer reference
    epos_id = Column(String(100), index=True)
    epos_notes = Column(Text)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    orders = relationship("Order", back_populates="customer")

    @validates('email')
    def validate_email(self, key, email):
        if not email or '@' not in email:
            raise ValueError("Invalid customer email")
        return email.strip().lower()

    def __repr__(self):
        return f"<Customer(id={self.id}, email='{self.email}', epos_id='{self.epos_id}')>"


class Order(Base):
    """Store order."""
    __tablename__ = 'orders'

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey('customers.id'), index=True)
    status = Column(String(20), default=OrderStatus.PENDING.value, nullable=False, index=True)
    shipping_total = Column(Numeric(10, 2), default=0)
    total = Column(Numeric(10, 2), default=0)
    customer_note = Column(Text)
    billing = Column(JSON, default=dict)
    shipping = Column(JSON, default=dict)

    # ExternalIdentifier of the exported EPOS order
    web_order_id = Column(String(255), index=True)

    date_completed = Column(DateTime)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan",
                         order_by="OrderItem.id")
    coupons = relationship("OrderCoupon", back_populates="order", cascade="all, delete-orphan",
                           order_by="OrderCoupon.id")
    refunds = relationship("Refund", back_populates="order", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Order(id={self.id}, status='{self.status}', web_order_id='{self.web_order_id}')>"


class OrderItem(Base):
    """Order line."""
    __tablename__ = 'order_items'

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey('orders.id'), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey('products.id'))
    variant_id = Column(Integer, ForeignKey('product_variants.id'))
    name = Column(String(500))
    quantity = Column(Integer, default=1, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    note = Column(Text)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")
    variant = relationship("ProductVariant")

    @property
    def sku(self):
        if self.variant is not None:
            return self.variant.sku
        if self.product is not None:
            return self.product.sku
        return None

    def __repr__(self):
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, quantity={self.quantity})>"


class OrderCoupon(Base):
    """Coupon applied to an order."""
    __tablename__ = 'order_coupons'

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey('orders.id'), nullable=False, index=True)
    code = Column(String(100), nullable=False)
    discount_type = Column(String(20), default=DiscountType.PERCENT.value, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="coupons")

    def __repr__(self):
        return f"<OrderCoupon(code='{self.code}', type='{self.discount_type}', amount={self.amount})>"


class Refund(Base):
    """Refund raised against an order."""
    __tablename__ = 'refunds'

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey('orders.id'), nullable=False, index=True)
    reason = Column(Text)
    amount = Column(Numeric(10, 2), default=0)

    # ExternalIdentifier of the exported EPOS return
    web_return_id = Column(String(255), index=True)

    created_at = Column(DateTime, default=func.now(), nullable=False)

    order = relationship("Order", back_populates="refunds")
    items = relationship("RefundItem", back_populates="refund", cascade="all, delete-orphan",
                         order_by="RefundItem.id")

    def __repr__(self):
        return f"<Refund(id={self.id}, order_id={self.order_id})>"


class RefundItem(Base):
    """Refunded quantity of an order line."""
    __tablename__ = 'refund_items'

    id = Column(Integer, primary_key=True)
    refund_id = Column(Integer, ForeignKey('refunds.id'), nullable=False, index=True)
    order_item_id = Column(Integer, ForeignKey('order_items.id'), nullable=False)
    quantity = Column(Integer, default=0, nullable=False)
    refund_total = Column(Numeric(10, 2), default=0)

    refund = relationship("Refund", back_populates="items")
    order_item = relationship("OrderItem")

    def __repr__(self):
        return f"<RefundItem(refund_id={self.refund_id}, order_item_id={self.order_item_id}, quantity={self.quantity})>"
