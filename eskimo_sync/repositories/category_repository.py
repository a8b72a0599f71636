"""
Category Repository for managing category database operations.
"""

import logging
from typing import List, Optional
from sqlalchemy.orm import Session

from eskimo_sync.models import Category
from .base import BaseRepository

logger = logging.getLogger(__name__)


class CategoryRepository(BaseRepository):
    """Repository for Category model operations."""

    def __init__(self, session: Session):
        super().__init__(Category, session)

    def get_by_eskimo_id(self, eskimo_category_id: str) -> Optional[Category]:
        """Exact-match lookup by EPOS category identifier."""
        if not eskimo_category_id:
            return None
        return self.get_by(eskimo_category_id=eskimo_category_id)

    def get_mapped(self) -> List[Category]:
        """All categories that carry an EPOS identifier."""
        return self.session.query(Category).filter(
            Category.eskimo_category_id.isnot(None),
            Category.eskimo_category_id != ''
        ).order_by(Category.id).all()

    def unique_slug(self, base: str) -> str:
        """Return ``base`` or ``base-N`` so that the slug is unused."""
        slug = base
        suffix = 2
        while self.exists(slug=slug):
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug
