"""
Repository modules for database operations
"""

from .base import BaseRepository
from .category_repository import CategoryRepository
from .customer_repository import CustomerRepository
from .order_repository import OrderRepository
from .product_repository import ProductRepository

__all__ = [
    'BaseRepository',
    'CategoryRepository',
    'CustomerRepository',
    'OrderRepository',
    'ProductRepository'
]
