"""
Base repository shared by the local store repositories.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eskimo_sync.models import Base

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=Base)


class BaseRepository:
    """Exact-match lookups and flush-on-write helpers for one model."""

    def __init__(self, model: Type[T], session: Session):
        self.model = model
        self.session = session

    @contextmanager
    def _logged(self, action: str, detail: Any = '') -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            logger.error(f"{self.model.__name__} {action} failed {detail}: {e}")
            raise

    def get(self, id: int) -> Optional[T]:
        with self._logged('get', id):
            return self.session.get(self.model, id)

    def get_by(self, **kwargs) -> Optional[T]:
        """First row whose columns equal ``kwargs``, lowest id first."""
        with self._logged('lookup', kwargs):
            return (
                self.session.query(self.model)
                .filter_by(**kwargs)
                .order_by(self.model.id)
                .first()
            )

    def exists(self, **kwargs) -> bool:
        with self._logged('exists', kwargs):
            query = self.session.query(self.model).filter_by(**kwargs)
            return self.session.query(query.exists()).scalar()

    def create(self, **kwargs) -> T:
        """Add a row and flush so its id is available to the caller."""
        instance = self.model(**kwargs)
        with self._logged('create'):
            self.session.add(instance)
            self.session.flush()
        return instance

    def update(self, instance: T, **kwargs) -> T:
        """Set known attributes on ``instance`` and flush; unknown keys are ignored."""
        for key, value in kwargs.items():
            if hasattr(instance, key):
                setattr(instance, key, value)
        with self._logged('update', instance.id):
            self.session.flush()
        return instance
