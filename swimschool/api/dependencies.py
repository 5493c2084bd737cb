"""
FastAPI dependency injection.

Dependencies provide instances of services, repositories, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden in tests
- Configuration is centralized
- Resource lifecycle (connections) is managed properly

Each dependency is a function that FastAPI calls when needed.
"""

import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Annotated, Callable, ContextManager, Generator, Optional

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.progress.badges import BadgeService
from ..core.progress.catalog import (
    BadgeCatalog,
    SkillCatalog,
    load_badge_catalog,
    load_skill_catalog,
)
from ..core.progress.repositories import StudentLocks
from ..core.progress.tracking import ProgressTracker
from ..infrastructure.snowflake.client import (
    MockSnowflakeConnection,
    SnowflakeConfig,
    SnowflakeConnection,
    create_snowflake_connection,
)
from ..infrastructure.snowflake.repositories import (
    SnowflakeCountersRepository,
    SnowflakeSkillProgressRepository,
)

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Shared mock connection so data persists across requests in mock mode
_mock_snowflake_connection: Optional[MockSnowflakeConnection] = None

# One lock registry per process; see StudentLocks
_student_locks = StudentLocks()


# ---------------------------------------------------------------------------
# Authentication and tenancy
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8]}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


def get_tenant_id(
    settings: Annotated[Settings, Depends(get_settings)],
    x_tenant_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """The swim school this request acts for."""
    tenant_id = (x_tenant_id or "").strip()
    return tenant_id or settings.default_tenant_id


# ---------------------------------------------------------------------------
# Catalogs
# ---------------------------------------------------------------------------

@lru_cache()
def _cached_skill_catalog(path: Optional[str]) -> SkillCatalog:
    return load_skill_catalog(path)


@lru_cache()
def _cached_badge_catalog(path: Optional[str]) -> BadgeCatalog:
    return load_badge_catalog(path)


def get_skill_catalog(
    settings: Annotated[Settings, Depends(get_settings)],
) -> SkillCatalog:
    """Skill catalog, loaded once per path per process."""
    return _cached_skill_catalog(settings.skill_catalog_path)


def get_badge_catalog(
    settings: Annotated[Settings, Depends(get_settings)],
) -> BadgeCatalog:
    return _cached_badge_catalog(settings.badge_catalog_path)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

ConnectionFactory = Callable[[], ContextManager[SnowflakeConnection]]


@contextmanager
def _shared_mock_connection() -> Generator[SnowflakeConnection, None, None]:
    global _mock_snowflake_connection

    if _mock_snowflake_connection is None:
        _mock_snowflake_connection = MockSnowflakeConnection()
        logger.info("Created shared mock Snowflake connection")
    yield _mock_snowflake_connection


def get_connection_factory(
    settings: Annotated[Settings, Depends(get_settings)],
) -> ConnectionFactory:
    """
    Provide a callable that opens a Snowflake connection.

    Nothing is opened here, so a caller that must survive a failed connect
    (the readiness check) can open it inside its own try block.
    """
    if settings.snowflake_mock_mode:
        return _shared_mock_connection

    config = SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        private_key_base64=settings.snowflake_private_key_base64,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )
    return lambda: create_snowflake_connection(config=config)


def get_snowflake_connection(
    connect: Annotated[ConnectionFactory, Depends(get_connection_factory)],
) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide a Snowflake connection for the duration of a request.

    This is a generator function so FastAPI closes the connection after
    the response is sent. In mock mode, we reuse the same connection
    across requests so that data persists during the session.
    """
    with connect() as conn:
        logger.debug("Opened Snowflake connection for request")
        yield conn


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_student_locks() -> StudentLocks:
    return _student_locks


def get_progress_tracker(
    connection: Annotated[SnowflakeConnection, Depends(get_snowflake_connection)],
    catalog: Annotated[SkillCatalog, Depends(get_skill_catalog)],
    tenant_id: Annotated[str, Depends(get_tenant_id)],
) -> ProgressTracker:
    """
    Provide a ProgressTracker scoped to the request's tenant.

    The tracker is stateless, so we create a new instance per request.
    """
    return ProgressTracker(
        repository=SnowflakeSkillProgressRepository(connection),
        catalog=catalog,
        tenant_id=tenant_id,
    )


def get_badge_service(
    connection: Annotated[SnowflakeConnection, Depends(get_snowflake_connection)],
    catalog: Annotated[BadgeCatalog, Depends(get_badge_catalog)],
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    locks: Annotated[StudentLocks, Depends(get_student_locks)],
) -> BadgeService:
    """Provide a BadgeService scoped to the request's tenant."""
    return BadgeService(
        repository=SnowflakeCountersRepository(connection),
        catalog=catalog,
        tenant_id=tenant_id,
        locks=locks,
    )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
TenantId = Annotated[str, Depends(get_tenant_id)]
SkillCatalogDep = Annotated[SkillCatalog, Depends(get_skill_catalog)]
BadgeCatalogDep = Annotated[BadgeCatalog, Depends(get_badge_catalog)]
ConnectionFactoryDep = Annotated[ConnectionFactory, Depends(get_connection_factory)]
ProgressTrackerDep = Annotated[ProgressTracker, Depends(get_progress_tracker)]
BadgeServiceDep = Annotated[BadgeService, Depends(get_badge_service)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
