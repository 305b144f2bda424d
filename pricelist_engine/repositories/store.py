"""
Template and supplier profile store.

The store is the only durable state of the engine. Every write of an existing
record is a compare-and-swap on its ``revision``: the caller passes the
revision it read, and a ``TemplateConflictError`` tells it that another
writer got there first and the record must be re-read.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from pricelist_engine.config.settings import DatabaseSettings
from pricelist_engine.core.exceptions import TemplateConflictError
from pricelist_engine.models.database import create_engine_from_settings, create_session_factory, create_tables
from pricelist_engine.models.domain import GENERIC_SUPPLIER, LayoutType, SupplierProfile, Template
from pricelist_engine.repositories.base import DatabaseSession, DuplicateEntityError
from pricelist_engine.repositories.profile_repository import SupplierProfileRepository
from pricelist_engine.repositories.template_repository import TemplateRepository

logger = structlog.get_logger(__name__)


class TemplateStore(ABC):
    """Async key-value contract for templates and supplier profiles"""

    @abstractmethod
    async def get_template(self, template_id: str) -> Optional[Template]:
        ...

    @abstractmethod
    async def list_candidate_templates(self, supplier_key: str, layout_type: LayoutType) -> list[Template]:
        """Templates of the supplier or generic, with the layout type or generic"""

    @abstractmethod
    async def create_template(self, template: Template) -> Template:
        """Persist a new template with revision 1. Raises TemplateConflictError if the id exists."""

    @abstractmethod
    async def compare_and_swap_template(self, template: Template, expected_revision: int) -> Template:
        """Replace a template whose stored revision equals ``expected_revision``."""

    @abstractmethod
    async def list_templates(self, supplier_key: Optional[str] = None) -> list[Template]:
        ...

    @abstractmethod
    async def get_profile(self, supplier_key: str) -> Optional[SupplierProfile]:
        ...

    @abstractmethod
    async def save_profile(
        self, profile: SupplierProfile, expected_revision: Optional[int]
    ) -> SupplierProfile:
        """Insert (``expected_revision`` None) or compare-and-swap a supplier profile."""


def _is_candidate(template: Template, supplier_key: str, layout_type: LayoutType) -> bool:
    return template.supplier_key in (supplier_key, GENERIC_SUPPLIER) and template.layout_type in (
        layout_type,
        LayoutType.GENERIC,
    )


class InMemoryTemplateStore(TemplateStore):
    """
    Process-local store.

    Values are deep-copied on the way in and out so callers never share
    nested state with the stored records.
    """

    def __init__(self) -> None:
        self._templates: dict[str, Template] = {}
        self._profiles: dict[str, SupplierProfile] = {}
        self._lock = asyncio.Lock()
        self.logger = logger.bind(component="memory_store")

    async def get_template(self, template_id: str) -> Optional[Template]:
        async with self._lock:
            template = self._templates.get(template_id)
            return template.model_copy(deep=True) if template is not None else None

    async def list_candidate_templates(self, supplier_key: str, layout_type: LayoutType) -> list[Template]:
        async with self._lock:
            return [
                template.model_copy(deep=True)
                for key, template in sorted(self._templates.items())
                if _is_candidate(template, supplier_key, layout_type)
            ]

    async def create_template(self, template: Template) -> Template:
        async with self._lock:
            if template.id in self._templates:
                raise TemplateConflictError(
                    f"Template {template.id} already exists",
                    record_id=template.id,
                    actual_revision=self._templates[template.id].revision,
                )
            stored = template.model_copy(update={"revision": 1}, deep=True)
            self._templates[template.id] = stored
            self.logger.debug("Template created", template_id=template.id)
            return stored.model_copy(deep=True)

    async def compare_and_swap_template(self, template: Template, expected_revision: int) -> Template:
        async with self._lock:
            current = self._templates.get(template.id)
            if current is None or current.revision != expected_revision:
                raise TemplateConflictError(
                    f"Template {template.id} changed concurrently",
                    record_id=template.id,
                    expected_revision=expected_revision,
                    actual_revision=current.revision if current is not None else None,
                )
            stored = template.model_copy(update={"revision": expected_revision + 1}, deep=True)
            self._templates[template.id] = stored
            return stored.model_copy(deep=True)

    async def list_templates(self, supplier_key: Optional[str] = None) -> list[Template]:
        async with self._lock:
            return [
                template.model_copy(deep=True)
                for key, template in sorted(self._templates.items())
                if supplier_key is None or template.supplier_key == supplier_key
            ]

    async def get_profile(self, supplier_key: str) -> Optional[SupplierProfile]:
        async with self._lock:
            profile = self._profiles.get(supplier_key)
            return profile.model_copy(deep=True) if profile is not None else None

    async def save_profile(
        self, profile: SupplierProfile, expected_revision: Optional[int]
    ) -> SupplierProfile:
        async with self._lock:
            current = self._profiles.get(profile.supplier_key)
            current_revision = current.revision if current is not None else None
            if current_revision != expected_revision:
                raise TemplateConflictError(
                    f"Profile {profile.supplier_key} changed concurrently",
                    record_id=profile.supplier_key,
                    expected_revision=expected_revision,
                    actual_revision=current_revision,
                )
            stored = profile.model_copy(update={"revision": (expected_revision or 0) + 1}, deep=True)
            self._profiles[profile.supplier_key] = stored
            return stored.model_copy(deep=True)


class SqlTemplateStore(TemplateStore):
    """Store backed by SQLAlchemy async sessions, one transaction per call"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        self.session_factory = session_factory
        self.engine = engine
        self.logger = logger.bind(component="sql_store")

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> "SqlTemplateStore":
        engine = create_engine_from_settings(settings)
        return cls(create_session_factory(engine), engine=engine)

    async def initialize(self) -> None:
        """Create tables if missing"""
        if self.engine is None:
            raise RuntimeError("SqlTemplateStore.initialize requires an engine")
        await create_tables(self.engine)
        self.logger.info("Template store initialized")

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()

    async def get_template(self, template_id: str) -> Optional[Template]:
        async with DatabaseSession(self.session_factory()) as session:
            return await TemplateRepository(session).get_by_id(template_id)

    async def list_candidate_templates(self, supplier_key: str, layout_type: LayoutType) -> list[Template]:
        async with DatabaseSession(self.session_factory()) as session:
            return await TemplateRepository(session).list_candidates(supplier_key, layout_type)

    async def create_template(self, template: Template) -> Template:
        async with DatabaseSession(self.session_factory()) as session:
            repository = TemplateRepository(session)
            existing = await repository.current_revision(template.id)
            if existing is not None:
                raise TemplateConflictError(
                    f"Template {template.id} already exists",
                    record_id=template.id,
                    actual_revision=existing,
                )
            try:
                created = await repository.create(template.model_copy(update={"revision": 1}))
            except DuplicateEntityError as e:
                raise TemplateConflictError(
                    f"Template {template.id} was created concurrently", record_id=template.id
                ) from e
            self.logger.debug("Template created", template_id=template.id)
            return created

    async def compare_and_swap_template(self, template: Template, expected_revision: int) -> Template:
        async with DatabaseSession(self.session_factory()) as session:
            return await TemplateRepository(session).compare_and_swap(template, expected_revision)

    async def list_templates(self, supplier_key: Optional[str] = None) -> list[Template]:
        filters = {"supplier_key": supplier_key} if supplier_key is not None else None
        async with DatabaseSession(self.session_factory()) as session:
            return await TemplateRepository(session).list_all(limit=10_000, filters=filters)

    async def get_profile(self, supplier_key: str) -> Optional[SupplierProfile]:
        async with DatabaseSession(self.session_factory()) as session:
            return await SupplierProfileRepository(session).get_by_id(supplier_key)

    async def save_profile(
        self, profile: SupplierProfile, expected_revision: Optional[int]
    ) -> SupplierProfile:
        async with DatabaseSession(self.session_factory()) as session:
            return await SupplierProfileRepository(session).save(profile, expected_revision)
