"""
Template repository for database operations.
"""
import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pricelist_engine.core.exceptions import TemplateConflictError
from pricelist_engine.models.database import TemplateTable
from pricelist_engine.models.domain import GENERIC_SUPPLIER, LayoutType, Template
from pricelist_engine.repositories.base import BaseRepository, RepositoryError, as_utc

logger = structlog.get_logger(__name__)


class TemplateRepository(BaseRepository[Template]):
    """Templates keyed by id, written with revision checks"""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, TemplateTable, Template)
        self.logger = logger.bind(repository="template")

    async def list_candidates(self, supplier_key: str, layout_type: LayoutType) -> list[Template]:
        """
        Templates of the supplier or the generic supplier whose layout type
        matches or is generic.

        Raises:
            RepositoryError: If the query fails
        """
        try:
            query = (
                select(TemplateTable)
                .where(TemplateTable.supplier_key.in_([supplier_key, GENERIC_SUPPLIER]))
                .where(
                    or_(
                        TemplateTable.layout_type == layout_type.value,
                        TemplateTable.layout_type == LayoutType.GENERIC.value,
                    )
                )
                .order_by(TemplateTable.id)
            )
            result = await self.session.execute(query)
            return [self._to_domain_model(row) for row in result.scalars().all()]

        except Exception as e:
            self.logger.error(
                "Failed to list candidate templates",
                supplier_key=supplier_key,
                layout_type=layout_type.value,
                error=str(e),
            )
            raise RepositoryError(f"Failed to list candidate templates: {e}", e) from e

    async def compare_and_swap(self, template: Template, expected_revision: int) -> Template:
        """
        Replace the stored template if its revision is still ``expected_revision``.

        Returns:
            The stored template with its revision incremented

        Raises:
            TemplateConflictError: If another writer got there first
            RepositoryError: If the update fails
        """
        stored = template.model_copy(update={"revision": expected_revision + 1})
        row = self._to_database_model(stored)
        values = {
            column.name: getattr(row, column.name)
            for column in TemplateTable.__table__.columns
            if column.name not in ("id", "created_at")
        }

        if await self.update_if_revision(template.id, expected_revision, values):
            return stored

        actual = await self.current_revision(template.id)
        raise TemplateConflictError(
            f"Template {template.id} changed concurrently",
            record_id=template.id,
            expected_revision=expected_revision,
            actual_revision=actual,
        )

    def _to_domain_model(self, db_entity: TemplateTable) -> Template:
        return Template.model_validate(
            {
                "id": db_entity.id,
                "name": db_entity.name,
                "supplier_key": db_entity.supplier_key,
                "document_kind": db_entity.document_kind,
                "layout_type": db_entity.layout_type,
                "subtype": db_entity.subtype,
                "version": db_entity.version,
                "revision": db_entity.revision,
                "base_template_id": db_entity.base_template_id,
                "is_adaptive": db_entity.is_adaptive,
                "config": db_entity.config or {},
                "performance": db_entity.performance or {},
                "learning_history": db_entity.learning_history or [],
                "created_at": as_utc(db_entity.created_at),
                "updated_at": as_utc(db_entity.updated_at),
            }
        )

    def _to_database_model(self, domain_entity: Template) -> TemplateTable:
        data = domain_entity.model_dump(mode="json")
        return TemplateTable(
            id=domain_entity.id,
            name=domain_entity.name,
            supplier_key=domain_entity.supplier_key,
            document_kind=domain_entity.document_kind.value,
            layout_type=domain_entity.layout_type.value,
            subtype=domain_entity.subtype,
            version=domain_entity.version,
            revision=domain_entity.revision,
            base_template_id=domain_entity.base_template_id,
            is_adaptive=domain_entity.is_adaptive,
            config=data["config"],
            performance=data["performance"],
            learning_history=data["learning_history"],
            created_at=domain_entity.created_at,
            updated_at=domain_entity.updated_at,
        )
