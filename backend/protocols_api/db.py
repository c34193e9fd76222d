"""
SQLAlchemy tables for the protocols API.

Protocols, templates and activity templates are stored as documents: scalar
metadata in columns, nested collections (visits, activities, clinical rules)
in JSON columns (JSONB on PostgreSQL). A protocol row carries a version
counter used for optimistic concurrency.
"""

from datetime import datetime
from typing import Iterator

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Index, Integer, String, Text, create_engine
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from protocols_api.config import settings


Base = declarative_base()

# JSON everywhere, JSONB on PostgreSQL
DocumentJSON = JSON().with_variant(JSONB(), "postgresql")


class ProtocolRecord(Base):
    """Protocol aggregate root with nested visits and clinical rules."""

    __tablename__ = "protocols"

    id = Column(String(24), primary_key=True)
    name = Column(String(255), nullable=False)
    code = Column(String(100), nullable=False, unique=True)
    sponsor = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="draft")
    visits = Column(DocumentJSON, nullable=False, default=list)
    clinical_rules = Column(DocumentJSON, nullable=False, default=list)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)


class TemplateRecord(Base):
    """Reusable form template (field prototypes with their own ids)."""

    __tablename__ = "templates"

    id = Column(String(24), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    activities = Column(DocumentJSON, nullable=False, default=list)
    # Well-known key for system templates (e.g. the basic visit template)
    system_key = Column(String(50), nullable=True, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)


class ActivityTemplateRecord(Base):
    """Activity template applied to visits as a bulk copy."""

    __tablename__ = "activity_templates"

    id = Column(String(24), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    activities = Column(DocumentJSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)


class UserRecord(Base):
    """User account."""

    __tablename__ = "users"

    id = Column(String(24), primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    license_number = Column(String(50), nullable=True)
    seal_signature_photo = Column(Text, nullable=True)  # base64 data URL
    role = Column(String(50), nullable=False, default="medico")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)


# Indexes
Index("idx_protocols_status", ProtocolRecord.status)
Index("idx_protocols_created_at", ProtocolRecord.created_at)
Index("idx_templates_name", TemplateRecord.name)
Index("idx_templates_created_at", TemplateRecord.created_at)
Index("idx_activity_templates_created_at", ActivityTemplateRecord.created_at)
Index("idx_users_role", UserRecord.role)


# Database engine and session factory
_engine = None
_SessionLocal = None


def build_engine(database_url: str, echo: bool = False):
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)
    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=300,
        pool_pre_ping=True,  # Test connection before using (auto-reconnect)
        echo=echo,
    )


def get_engine():
    """Get or create database engine."""
    global _engine
    if _engine is None:
        _engine = build_engine(settings.database_url, echo=settings.debug)
    return _engine


def get_session_factory():
    """Get or create session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine()
        )
    return _SessionLocal


def get_db() -> Iterator[Session]:
    """Get database session (dependency injection)."""
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_schema(engine=None):
    """Initialize database schema (create tables if not exist)."""
    Base.metadata.create_all(bind=engine or get_engine())


def drop_schema(engine=None):
    """Drop all tables (use with caution)."""
    Base.metadata.drop_all(bind=engine or get_engine())
