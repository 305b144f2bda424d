"""
Supplier profile repository for database operations.
"""
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pricelist_engine.core.exceptions import TemplateConflictError
from pricelist_engine.models.database import SupplierProfileTable
from pricelist_engine.models.domain import SupplierProfile
from pricelist_engine.repositories.base import BaseRepository, DuplicateEntityError, as_utc

logger = structlog.get_logger(__name__)


class SupplierProfileRepository(BaseRepository[SupplierProfile]):
    """Supplier profiles keyed by supplier, written with revision checks"""

    key_column = "supplier_key"

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, SupplierProfileTable, SupplierProfile)
        self.logger = logger.bind(repository="supplier_profile")

    async def save(self, profile: SupplierProfile, expected_revision: Optional[int]) -> SupplierProfile:
        """
        Insert a new profile (``expected_revision`` None) or replace the stored one.

        Raises:
            TemplateConflictError: If the stored revision moved on
            RepositoryError: If the write fails
        """
        if expected_revision is None:
            existing = await self.current_revision(profile.supplier_key)
            if existing is not None:
                raise TemplateConflictError(
                    f"Profile {profile.supplier_key} already exists",
                    record_id=profile.supplier_key,
                    expected_revision=None,
                    actual_revision=existing,
                )
            try:
                return await self.create(profile.model_copy(update={"revision": 1}))
            except DuplicateEntityError as e:
                raise TemplateConflictError(
                    f"Profile {profile.supplier_key} was created concurrently",
                    record_id=profile.supplier_key,
                ) from e

        stored = profile.model_copy(update={"revision": expected_revision + 1})
        row = self._to_database_model(stored)
        values = {
            column.name: getattr(row, column.name)
            for column in SupplierProfileTable.__table__.columns
            if column.name not in ("supplier_key", "created_at")
        }
        if await self.update_if_revision(profile.supplier_key, expected_revision, values):
            return stored

        raise TemplateConflictError(
            f"Profile {profile.supplier_key} changed concurrently",
            record_id=profile.supplier_key,
            expected_revision=expected_revision,
            actual_revision=await self.current_revision(profile.supplier_key),
        )

    def _to_domain_model(self, db_entity: SupplierProfileTable) -> SupplierProfile:
        return SupplierProfile.model_validate(
            {
                "supplier_key": db_entity.supplier_key,
                "revision": db_entity.revision,
                "processing_history": db_entity.processing_history or {},
                "template_success_rates": db_entity.template_success_rates or {},
                "common_patterns": db_entity.common_patterns or {},
                "quality_metrics": db_entity.quality_metrics or {},
                "learning_preferences": db_entity.learning_preferences or {},
                "created_at": as_utc(db_entity.created_at),
                "updated_at": as_utc(db_entity.updated_at),
            }
        )

    def _to_database_model(self, domain_entity: SupplierProfile) -> SupplierProfileTable:
        data = domain_entity.model_dump(mode="json")
        return SupplierProfileTable(
            supplier_key=domain_entity.supplier_key,
            revision=domain_entity.revision,
            processing_history=data["processing_history"],
            template_success_rates=data["template_success_rates"],
            common_patterns=data["common_patterns"],
            quality_metrics=data["quality_metrics"],
            learning_preferences=data["learning_preferences"],
            created_at=domain_entity.created_at,
            updated_at=domain_entity.updated_at,
        )
