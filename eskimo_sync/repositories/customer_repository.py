"""
Customer Repository for managing customer database operations.
"""

import logging
from typing import Optional
from sqlalchemy.orm import Session

from eskimo_sync.models import Customer
from .base import BaseRepository

logger = logging.getLogger(__name__)


class CustomerRepository(BaseRepository):
    """Repository for Customer model operations."""

    def __init__(self, session: Session):
        super().__init__(Customer, session)

    def get_by_email(self, email: str) -> Optional[Customer]:
        if not email:
            return None
        return self.get_by(email=email.strip().lower())

    def username_taken(self, username: str) -> bool:
        return self.exists(username=username)
