"""
Order Repository for managing order and refund database operations.
"""

import logging
from typing import Optional
from sqlalchemy.orm import Session

from eskimo_sync.models import Order, Refund
from .base import BaseRepository

logger = logging.getLogger(__name__)


class OrderRepository(BaseRepository):
    """Repository for Order model operations."""

    def __init__(self, session: Session):
        super().__init__(Order, session)

    def get_refund(self, order_id: int, refund_id: int) -> Optional[Refund]:
        """Refund belonging to the given order."""
        return self.session.query(Refund).filter(
            Refund.id == refund_id,
            Refund.order_id == order_id
        ).first()
