"""
FastAPI Dependencies

Common dependencies for request identity and the planner repository.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import get_db
from app.db.repository import SqlPlannerRepository
from app.services.planner.ports import PlannerRepository

# Identity header set by the authenticating gateway
user_id_header = APIKeyHeader(name="X-User-Id", auto_error=False)


async def get_current_user_id(
    user_id: str | None = Depends(user_id_header),
) -> str:
    """
    Resolve the requesting user from the X-User-Id header.

    Authentication happens upstream; this only requires that an identity
    was forwarded.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if not user_id or not user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity. Provide X-User-Id header.",
        )
    return user_id.strip()


async def get_repository(
    db: AsyncSession = Depends(get_db),
) -> PlannerRepository:
    """Get a planner repository bound to the request's session."""
    return SqlPlannerRepository(db)
