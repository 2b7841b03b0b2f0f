"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support
- Table definitions (SQLAlchemy Core)
"""
from typing import Optional
from contextlib import contextmanager
import logging
import os

from sqlalchemy import (
    create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text,
    Index, ForeignKey, UniqueConstraint, CheckConstraint, Float, text,
)
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func

from folio.core.config import settings

logger = logging.getLogger(__name__)

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour
SQLITE_BUSY_TIMEOUT = 30

# Engine cache
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # SQLite serialises writers; waiting writers block up to the busy timeout.
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            pool_pre_ping=True,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session(session_factory=None):
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = session_factory or get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    engine = get_engine()
    metadata.drop_all(bind=engine)


def reset_database():
    """
    Reset the database by dropping and recreating all tables.

    WARNING: This is destructive! Only use in tests.
    """
    drop_all_tables()
    create_all_tables()


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Entitlement accounts: one row per user, mutated only through conditional updates
entitlement_accounts = Table(
    'entitlement_accounts',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('tier', String(20), nullable=False, server_default='FREE'),
    Column('ai_credits', Integer, nullable=False, server_default='0'),
    Column('lifetime_credits', Integer, nullable=False, server_default='0'),
    Column('active_projects', Integer, nullable=False, server_default='0'),
    Column('exports_this_period', Integer, nullable=False, server_default='0'),
    Column('period_start', DateTime(timezone=True), nullable=False),
    Column('subscription_expires_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    CheckConstraint('ai_credits >= 0', name='ck_entitlement_accounts_credits_non_negative'),
    CheckConstraint('lifetime_credits >= 0', name='ck_entitlement_accounts_lifetime_non_negative'),
    CheckConstraint('active_projects >= 0', name='ck_entitlement_accounts_projects_non_negative'),
    CheckConstraint('exports_this_period >= 0', name='ck_entitlement_accounts_exports_non_negative'),
    Index('idx_entitlement_accounts_tier', 'tier'),
)

# Append-only credit journal
credit_ledger = Table(
    'credit_ledger',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), ForeignKey('entitlement_accounts.user_id'), nullable=False),
    Column('event_type', String(20), nullable=False),  # CONSUME, REFUND, GRANT, TOPUP
    Column('amount', Integer, nullable=False),  # signed delta applied to ai_credits
    Column('balance_after', Integer, nullable=False),
    Column('reason_code', String(100), nullable=False),
    Column('reference_id', String(200), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_credit_ledger_user_created', 'user_id', 'created_at'),
    Index('idx_credit_ledger_reference', 'reference_id'),
)

# Idempotency keys table
idempotency_keys = Table(
    'idempotency_keys',
    metadata,
    Column('key', String(255), primary_key=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('scope', String(100), nullable=True, index=True),
    Index('idx_idempotency_keys_scope_created', 'scope', 'created_at'),
)

# Projects
projects = Table(
    'projects',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('title', Text, nullable=False),
    Column('description', Text, nullable=True),
    Column('genre', String(100), nullable=False),
    Column('language', String(50), nullable=False, server_default='English'),
    Column('cover_image', Text, nullable=True),
    Column('metadata_json', JSON, nullable=True),  # ProjectMetadata, versioned
    Column('outline_json', JSON, nullable=True),  # ProjectOutline, versioned
    # Monotonic chapter order counter; never decremented
    Column('next_chapter_order', Integer, nullable=False, server_default='1'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_projects_user_created', 'user_id', 'created_at'),
)

# Chapters
chapters = Table(
    'chapters',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('project_id', Integer, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True),
    Column('title', Text, nullable=False),
    Column('content', Text, nullable=False, server_default=''),
    Column('order', Integer, nullable=False),
    Column('status', String(20), nullable=False, server_default='draft'),
    Column('word_count', Integer, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    UniqueConstraint('project_id', 'order', name='uq_chapters_project_order'),
    Index('idx_chapters_project_order', 'project_id', 'order'),
)

# Style templates
templates = Table(
    'templates',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('name', String(200), nullable=False, unique=True),
    Column('description', Text, nullable=True),
    Column('category', String(50), nullable=True),
    Column('style_json', JSON, nullable=False),  # StyleParameters, versioned
    Column('preview_url', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Export artifacts: insert-only
export_artifacts = Table(
    'export_artifacts',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('project_id', Integer, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
    Column('user_id', String(100), nullable=False),
    Column('format', String(10), nullable=False),
    Column('object_key', Text, nullable=False, unique=True),
    Column('file_url', Text, nullable=False),
    Column('content_type', String(100), nullable=False),
    Column('status', String(20), nullable=False),
    Column('template_id', Integer, ForeignKey('templates.id'), nullable=True),
    Column('watermarked', Boolean, nullable=False),
    Column('generated_at', DateTime(timezone=True), nullable=False),
    Index('idx_export_artifacts_project_generated', 'project_id', 'generated_at'),
    Index('idx_export_artifacts_template', 'template_id'),
)

# Readability scores (recomputed by the analysis worker)
readability_scores = Table(
    'readability_scores',
    metadata,
    Column('chapter_id', Integer, ForeignKey('chapters.id', ondelete='CASCADE'), primary_key=True),
    Column('content_hash', String(64), nullable=False),
    Column('word_count', Integer, nullable=False),
    Column('sentence_count', Integer, nullable=False),
    Column('syllable_count', Integer, nullable=False),
    Column('avg_sentence_length', Float, nullable=False),
    Column('avg_word_length', Float, nullable=False),
    Column('flesch_reading_ease', Float, nullable=False),
    Column('flesch_kincaid_grade', Float, nullable=False),
    Column('grade_level', Integer, nullable=False),
    Column('calculated_at', DateTime(timezone=True), nullable=False),
)
