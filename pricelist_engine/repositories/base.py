"""
Base repository for the SQL template store.

Provides common database operations with error handling, structured logging
and revision-checked updates.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

import structlog
from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger(__name__)

ModelType = TypeVar("ModelType", bound=BaseModel)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored values are UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RepositoryError(Exception):
    """Base exception for repository operations"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class DuplicateEntityError(RepositoryError):
    """Raised when an insert hits an existing primary key"""


class BaseRepository(Generic[ModelType], ABC):
    """
    Abstract repository over one table keyed by a string primary key.

    Subclasses convert between table rows and frozen domain models.
    """

    key_column: str = "id"

    def __init__(self, session: AsyncSession, table_class: type, model_class: type[ModelType]) -> None:
        self.session = session
        self.table_class = table_class
        self.model_class = model_class
        self.logger = logger.bind(repository=self.__class__.__name__, table=table_class.__name__)

    @property
    def _key(self):
        return getattr(self.table_class, self.key_column)

    async def get_by_id(self, entity_id: str) -> Optional[ModelType]:
        """
        Get entity by primary key.

        Raises:
            RepositoryError: If database operation fails
        """
        try:
            result = await self.session.execute(select(self.table_class).where(self._key == entity_id))
            db_entity = result.scalar_one_or_none()
            if db_entity is None:
                return None
            return self._to_domain_model(db_entity)

        except Exception as e:
            self.logger.error("Failed to get entity by ID", entity_id=entity_id, error=str(e))
            raise RepositoryError(f"Failed to get entity by ID: {e}", e) from e

    async def list_all(
        self,
        limit: int = 100,
        offset: int = 0,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[ModelType]:
        """
        List entities with pagination and optional equality filters.

        Raises:
            RepositoryError: If database operation fails
        """
        try:
            query = select(self.table_class)
            if filters:
                query = self._apply_filters(query, filters)
            query = query.order_by(self._key).limit(limit).offset(offset)

            result = await self.session.execute(query)
            return [self._to_domain_model(entity) for entity in result.scalars().all()]

        except Exception as e:
            self.logger.error("Failed to list entities", filters=filters, error=str(e))
            raise RepositoryError(f"Failed to list entities: {e}", e) from e

    async def create(self, entity: ModelType) -> ModelType:
        """
        Insert a new entity.

        Raises:
            DuplicateEntityError: If the key is already taken
            RepositoryError: If creation fails
        """
        try:
            db_entity = self._to_database_model(entity)
            self.session.add(db_entity)
            await self.session.flush()
            return self._to_domain_model(db_entity)

        except IntegrityError as e:
            await self.session.rollback()
            self.logger.warning("Entity already exists", entity_type=type(entity).__name__, error=str(e))
            raise DuplicateEntityError(f"Entity already exists: {e}", e) from e

        except Exception as e:
            await self.session.rollback()
            self.logger.error("Failed to create entity", entity_type=type(entity).__name__, error=str(e))
            raise RepositoryError(f"Failed to create entity: {e}", e) from e

    async def update_if_revision(self, entity_id: str, expected_revision: int, values: dict[str, Any]) -> bool:
        """
        Update a row only if its stored revision still equals ``expected_revision``.

        Returns:
            True if the row was updated, False on a revision mismatch or missing row

        Raises:
            RepositoryError: If the update fails
        """
        try:
            statement = (
                update(self.table_class)
                .where(self._key == entity_id)
                .where(self.table_class.revision == expected_revision)
                .values(**values)
            )
            result = await self.session.execute(statement)
            return result.rowcount == 1

        except Exception as e:
            await self.session.rollback()
            self.logger.error(
                "Failed to update entity",
                entity_id=entity_id,
                expected_revision=expected_revision,
                error=str(e),
            )
            raise RepositoryError(f"Failed to update entity: {e}", e) from e

    async def current_revision(self, entity_id: str) -> Optional[int]:
        result = await self.session.execute(
            select(self.table_class.revision).where(self._key == entity_id)
        )
        return result.scalar_one_or_none()

    def _apply_filters(self, query: Any, filters: dict[str, Any]) -> Any:
        for field, value in filters.items():
            if hasattr(self.table_class, field):
                query = query.where(getattr(self.table_class, field) == value)
        return query

    @abstractmethod
    def _to_domain_model(self, db_entity: Any) -> ModelType:
        """Convert a table row to a domain model"""

    @abstractmethod
    def _to_database_model(self, domain_entity: ModelType) -> Any:
        """Convert a domain model to a table row"""


class DatabaseSession:
    """Commit on success, roll back on error, always close"""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.logger = logger.bind(component="database_session")

    async def __aenter__(self) -> AsyncSession:
        return self.session

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is not None:
            await self.session.rollback()
            self.logger.debug(
                "Transaction rolled back",
                exception_type=exc_type.__name__,
                exception_message=str(exc_val) if exc_val else None,
            )
        else:
            try:
                await self.session.commit()
            except Exception as e:
                await self.session.rollback()
                self.logger.error("Failed to commit transaction", error=str(e))
                raise
            finally:
                await self.session.close()
            return

        await self.session.close()
