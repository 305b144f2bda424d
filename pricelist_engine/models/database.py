"""
SQLAlchemy tables for the template and supplier profile store.

Nested template state (config, performance, learning history) is stored as
JSON documents, using JSONB on PostgreSQL. The ``revision`` column backs the
compare-and-swap writes of the repositories.
"""
from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from pricelist_engine.config.settings import DatabaseSettings

Base = declarative_base()

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class TemplateTable(Base):
    """Versioned extraction templates"""

    __tablename__ = "templates"

    id = Column(String(128), primary_key=True)
    name = Column(String(200), nullable=False)
    supplier_key = Column(String(200), nullable=False, index=True)
    document_kind = Column(String(20), nullable=False)
    layout_type = Column(String(30), nullable=False, index=True)
    subtype = Column(String(100), nullable=False, default="generic")

    version = Column(String(20), nullable=False, default="1.0.0")
    revision = Column(Integer, nullable=False, default=0)
    base_template_id = Column(String(128), index=True)
    is_adaptive = Column(Boolean, nullable=False, default=False)

    config = Column(JSONDocument, nullable=False, default=dict)
    performance = Column(JSONDocument, nullable=False, default=dict)
    learning_history = Column(JSONDocument, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    __table_args__ = (
        Index("idx_templates_supplier_layout", "supplier_key", "layout_type"),
    )

    def __repr__(self):
        return f"<Template(id={self.id}, supplier={self.supplier_key}, version={self.version})>"


class SupplierProfileTable(Base):
    """Learned per-supplier processing profiles"""

    __tablename__ = "supplier_profiles"

    supplier_key = Column(String(200), primary_key=True)
    revision = Column(Integer, nullable=False, default=0)

    processing_history = Column(JSONDocument, nullable=False, default=dict)
    template_success_rates = Column(JSONDocument, nullable=False, default=dict)
    common_patterns = Column(JSONDocument, nullable=False, default=dict)
    quality_metrics = Column(JSONDocument, nullable=False, default=dict)
    learning_preferences = Column(JSONDocument, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    def __repr__(self):
        return f"<SupplierProfile(supplier={self.supplier_key}, revision={self.revision})>"


def create_engine_from_settings(settings: DatabaseSettings) -> AsyncEngine:
    """Create the async engine; pool sizing applies to PostgreSQL only."""
    options = {"echo": settings.database_echo}
    if settings.database_url.startswith("postgresql"):
        options["pool_size"] = settings.database_pool_size
    return create_async_engine(settings.database_url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
