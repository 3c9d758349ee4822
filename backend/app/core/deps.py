from functools import lru_cache
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import decode_token
from app.db.session import get_session
from app.models.reimbursement import Reimbursement
from app.services.notifier import notify
from app.services.role_sequence import flow_table_from_settings
from app.services.routing import RoutingEngine

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

# Sees every reimbursement and every user's listings
ADMIN_ROLE = "Admin"


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_session)],
):
    """Validate JWT and return the User ORM object."""
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        if payload.get("type") != "access":
            raise credentials_exc
        user_id: str = payload.get("sub")
        if not user_id:
            raise credentials_exc
        user_uuid = UUID(user_id)
    except (JWTError, ValueError):
        raise credentials_exc

    from app.models.user import User

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active or user.deleted_at is not None:
        raise credentials_exc
    return user


def get_visible_reimbursement(db: Session, reimbursement_id: UUID, user) -> Reimbursement:
    """Load a reimbursement the caller may see: submitter, Admin, or a role on its route."""
    reimbursement = db.get(Reimbursement, reimbursement_id)
    if reimbursement is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reimbursement not found.")

    visible = (
        reimbursement.user_id == user.id
        or user.role == ADMIN_ROLE
        or user.role in (reimbursement.approval_route or [])
    )
    if not visible:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not permitted to view this reimbursement.")
    return reimbursement


@lru_cache
def get_routing_engine() -> RoutingEngine:
    """Process-wide routing engine configured from settings."""
    return RoutingEngine(
        flow_table_from_settings(),
        sap_scoped_roles=settings.sap_scoped_roles_set,
        lock_timeout_ms=settings.ROUTING_LOCK_TIMEOUT_MS,
        notifier=notify,
    )
