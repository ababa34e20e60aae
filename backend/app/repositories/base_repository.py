# backend/app/repositories/base_repository.py
"""
Base Repository Pattern for the scheduling core.

Provides the foundation for all repository classes with:
- Lookup by id and single/bulk creation
- Type safety with generics
- Version-guarded conditional updates
- Driver errors translated into RepositoryException with a retry flag

Repositories never commit or roll back: transaction boundaries belong to
the TransactionCoordinator, which decides what to do with a failed unit
of work based on the translated error.
"""

from abc import ABC, abstractmethod
import logging
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..database.errors import translate_db_error

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)


class IRepository(ABC, Generic[T]):
    """
    Abstract repository interface defining core data access methods.
    """

    @abstractmethod
    def get_by_id(self, id: str, populate_existing: bool = False) -> Optional[T]:
        """
        Retrieve an entity by its primary key.

        Args:
            id: The primary key value
            populate_existing: Overwrite any copy already held by the session

        Returns:
            The entity if found, None otherwise
        """

    @abstractmethod
    def create(self, **kwargs) -> T:
        """
        Create a new entity.

        Raises:
            RepositoryException: If creation fails
        """


class IVersionedRepository(IRepository[T]):
    """Repository for models carrying an integer ``version`` column."""

    @abstractmethod
    def conditional_update(self, id: str, expected_version: int, values: Dict[str, Any]) -> int:
        """
        Apply ``values`` only if the stored version equals ``expected_version``.

        The version is incremented in the same statement.

        Returns:
            Number of rows changed (0 or 1)
        """


class BaseRepository(IRepository[T]):
    """
    Concrete base repository implementation with common data access patterns.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        """
        Initialize repository with database session and model.

        Args:
            db: SQLAlchemy session (managed by service layer)
            model: SQLAlchemy model class
        """
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def get_by_id(self, id: str, populate_existing: bool = False) -> Optional[T]:
        try:
            query = self.db.query(self.model)
            if populate_existing:
                query = query.populate_existing()
            return query.filter(self.model.id == id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {self.model.__name__} by id {id}: {str(e)}")
            raise translate_db_error(e, f"get {self.model.__name__}")

    def create(self, **kwargs) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.
        """
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()  # Get ID and surface constraint violations now
            return entity
        except SQLAlchemyError as e:
            self.logger.warning(f"Error creating {self.model.__name__}: {str(e)}")
            raise translate_db_error(e, f"create {self.model.__name__}")

    def bulk_create(self, entities: List[Dict[str, Any]]) -> List[T]:
        """
        Create multiple entities with a single flush.

        Args:
            entities: List of entity data dictionaries

        Returns:
            List of created entities
        """
        if not entities:
            return []
        try:
            db_entities = [self.model(**data) for data in entities]
            self.db.add_all(db_entities)
            self.db.flush()
            return db_entities
        except SQLAlchemyError as e:
            self.logger.warning(f"Error bulk creating {self.model.__name__}: {str(e)}")
            raise translate_db_error(e, f"bulk create {self.model.__name__}")

    # Protected helper methods for use by subclasses

    def _execute_query(self, query: Query) -> List[T]:
        """Execute query with error handling."""
        try:
            return query.all()
        except SQLAlchemyError as e:
            self.logger.error(f"Query execution error: {str(e)}")
            raise translate_db_error(e, f"query {self.model.__name__}")


class VersionedRepository(BaseRepository[T], IVersionedRepository[T]):
    """BaseRepository with compare-and-set updates on the ``version`` column."""

    def conditional_update(self, id: str, expected_version: int, values: Dict[str, Any]) -> int:
        values = {key: value for key, value in values.items() if key != "version"}
        stmt = (
            update(self.model)
            .where(self.model.id == id, self.model.version == expected_version)
            .values(version=self.model.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.warning(f"Conditional update of {self.model.__name__} {id} failed: {str(e)}")
            raise translate_db_error(e, f"conditional update {self.model.__name__}")
        return result.rowcount
