"""Database session factory and configuration.

Provides database connectivity and session management for the BizFlow backend.
Includes the multi-tenant global query scope: every ORM SELECT issued from a
session that carries a tenant id is filtered to that tenant, and new rows
inherit the session's tenant on flush.
"""

from contextlib import contextmanager
from typing import Generator, Optional
from uuid import UUID

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session, with_loader_criteria

from config import settings
from models.base import Base, TenantScopedMixin

DATABASE_URL = settings.DATABASE_URL

# Create engine with connection pooling
# Pool settings only apply to PostgreSQL (not SQLite)
_engine_kwargs = {
    "pool_pre_ping": True,  # Verify connections before using
    "echo": False,
}

if not DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["pool_size"] = settings.DB_POOL_SIZE
    _engine_kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW

engine = create_engine(DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

TENANT_INFO_KEY = "tenant_id"
SKIP_TENANT_SCOPE = "skip_tenant_scope"


class TenantMismatchError(Exception):
    """Raised when a flush would write a row into a foreign tenant."""

    def __init__(self, model_name: str, expected: UUID, actual: UUID):
        self.model_name = model_name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{model_name} belongs to tenant {actual}, session is scoped to tenant {expected}"
        )


@contextmanager
def get_db_session(tenant_id: Optional[UUID] = None) -> Generator[Session, None, None]:
    """Context manager for database sessions.

    Usage:
        with get_db_session(tenant.id) as session:
            session.query(Lead).all()

    Automatically commits on success, rolls back on exception.
    """
    session = SessionLocal()
    if tenant_id is not None:
        set_session_tenant(session, tenant_id)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI endpoints.

    Usage:
        @router.get("/leads")
        def list_leads(db: Session = Depends(get_db)):
            return db.query(Lead).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def set_session_tenant(session: Session, tenant_id: Optional[UUID]) -> Session:
    """Attach (or clear, with None) the tenant scope of an existing session."""
    if tenant_id is None:
        session.info.pop(TENANT_INFO_KEY, None)
    else:
        session.info[TENANT_INFO_KEY] = tenant_id
    return session


def get_session_tenant(session: Session) -> Optional[UUID]:
    return session.info.get(TENANT_INFO_KEY)


def tenant_scoped_session(tenant_id: UUID) -> Session:
    """Create a database session scoped to a specific tenant.

    Background jobs and console commands run outside the HTTP request cycle,
    so they open their own sessions. The tenant id is stored in
    session.info["tenant_id"]; every tenant-scoped SELECT from this session
    is filtered to that tenant.

    Args:
        tenant_id: Tenant UUID to scope this session to

    Returns:
        Session: SQLAlchemy session with tenant context

    Example:
        session = tenant_scoped_session(tenant.id)
        try:
            leads = session.query(Lead).all()  # only this tenant's leads
            session.commit()
        finally:
            session.close()
    """
    session = SessionLocal()
    session.info[TENANT_INFO_KEY] = tenant_id
    return session


@event.listens_for(Session, "do_orm_execute")
def apply_tenant_scope(execute_state):
    """Inject tenant criteria into every ORM SELECT.

    Relationship and column loads inherit the criteria from the top-level
    statement. Platform-level code can opt out per statement with
    ``.execution_options(skip_tenant_scope=True)``.
    """
    if (
        not execute_state.is_select
        or execute_state.is_column_load
        or execute_state.is_relationship_load
    ):
        return

    if execute_state.execution_options.get(SKIP_TENANT_SCOPE, False):
        return

    tenant_id = execute_state.session.info.get(TENANT_INFO_KEY)
    if tenant_id is None:
        return

    execute_state.statement = execute_state.statement.options(
        with_loader_criteria(
            TenantScopedMixin,
            lambda cls: cls.tenant_id == tenant_id,
            include_aliases=True,
        )
    )


@event.listens_for(Session, "before_flush")
def auto_populate_tenant_id(session, flush_context, instances):
    """Populate tenant_id on new rows and refuse cross-tenant writes.

    New tenant-scoped objects without a tenant_id inherit the session's
    tenant. An object carrying a different tenant_id than the session raises
    TenantMismatchError before anything reaches the database.
    """
    tenant_id = session.info.get(TENANT_INFO_KEY)
    if tenant_id is None:
        return

    for instance in session.new:
        if isinstance(instance, TenantScopedMixin) and instance.tenant_id is None:
            instance.tenant_id = tenant_id

    for instance in list(session.new) + list(session.dirty):
        if not isinstance(instance, TenantScopedMixin) or instance.tenant_id is None:
            continue
        if instance.tenant_id != tenant_id:
            raise TenantMismatchError(type(instance).__name__, tenant_id, instance.tenant_id)


def init_db(bind=None) -> None:
    """Create all tables (development and tests; production uses migrations)."""
    import models  # noqa: F401  registers every mapper on Base.metadata

    Base.metadata.create_all(bind=bind or engine)
