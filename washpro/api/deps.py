"""
Shared FastAPI dependencies for the WashPro backend.

Provides the async database session dependency used by all route handlers,
and authentication dependencies that resolve the caller from a JWT Bearer
token: staff users (admin, company admin, cleaner) and phone-login
customers carry different tokens and resolve to different models.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from washpro.core.config import settings
from washpro.models import Cleaner, Customer, User, UserRole

# ---------------------------------------------------------------------------
# Async engine & session factory
# ---------------------------------------------------------------------------
# The engine is created once at module import time.  The session factory
# produces lightweight ``AsyncSession`` instances that are scoped to a single
# request via the ``get_db`` dependency below.
# ---------------------------------------------------------------------------

engine = create_async_engine(
    settings.database_url,
    echo=settings.sql_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session that is committed when the request
    succeeds and rolled back when it raises.

    Usage in a route::

        @router.get("/items")
        async def list_items(db: DBSession):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ---------------------------------------------------------------------------
# Annotated type alias for convenience
# ---------------------------------------------------------------------------
DBSession = Annotated[AsyncSession, Depends(get_db)]


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

_bearer_scheme = HTTPBearer(auto_error=True)
_bearer_scheme_optional = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
    db: DBSession,
) -> User:
    """Extract and validate a staff Bearer token.

    Returns the authenticated ``User`` ORM instance.  Raises 401 if the
    token is missing, expired, a customer token, or belongs to an inactive
    account.
    """
    from washpro.services import auth_service

    try:
        return await auth_service.get_current_user(db, credentials.credentials)
    except ValueError as exc:
        raise _unauthorized(str(exc))


async def get_optional_user(
    credentials: Annotated[
        Optional[HTTPAuthorizationCredentials], Depends(_bearer_scheme_optional)
    ],
    db: DBSession,
) -> Optional[User]:
    """Like ``get_current_user`` but returns ``None`` when no valid staff
    token is provided."""
    if credentials is None:
        return None

    from washpro.services import auth_service

    try:
        return await auth_service.get_current_user(db, credentials.credentials)
    except ValueError:
        return None


async def get_current_customer(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
    db: DBSession,
) -> Customer:
    from washpro.services import auth_service

    try:
        return await auth_service.get_current_customer(db, credentials.credentials)
    except ValueError as exc:
        raise _unauthorized(str(exc))


async def get_optional_customer(
    credentials: Annotated[
        Optional[HTTPAuthorizationCredentials], Depends(_bearer_scheme_optional)
    ],
    db: DBSession,
) -> Optional[Customer]:
    """Customer behind the token, or ``None`` for guests and staff tokens.

    Booking works without logging in; a customer token only links the job
    to the customer's history.
    """
    if credentials is None:
        return None

    from washpro.services import auth_service

    try:
        return await auth_service.get_current_customer(db, credentials.credentials)
    except ValueError:
        return None


def require_roles(*roles: UserRole):
    """Dependency factory: the staff user must hold one of ``roles``."""

    async def _checker(user: Annotated[User, Depends(get_current_user)]) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have access to this resource.",
            )
        return user

    return _checker


async def get_company_admin(
    user: Annotated[User, Depends(require_roles(UserRole.COMPANY_ADMIN))],
) -> User:
    if user.company_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No company is linked to this account.",
        )
    return user


async def get_current_cleaner(
    user: Annotated[User, Depends(require_roles(UserRole.CLEANER))],
    db: DBSession,
) -> Cleaner:
    """The cleaner profile of the calling cleaner user."""
    from washpro.services import cleanerService

    try:
        cleaner = await cleanerService.get_cleaner_by_user(db, user.id)
    except cleanerService.CleanerNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Cleaner profile not found.",
        )
    if not cleaner.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This cleaner account has been deactivated.",
        )
    return cleaner


# Convenience type aliases for route signatures
CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[Optional[User], Depends(get_optional_user)]
CurrentCustomer = Annotated[Customer, Depends(get_current_customer)]
OptionalCustomer = Annotated[Optional[Customer], Depends(get_optional_customer)]
AdminUser = Annotated[User, Depends(require_roles(UserRole.ADMIN))]
CompanyAdmin = Annotated[User, Depends(get_company_admin)]
CurrentCleaner = Annotated[Cleaner, Depends(get_current_cleaner)]
