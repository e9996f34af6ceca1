from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from eventhub.db.session import get_session
from sqlalchemy.ext.asyncio import AsyncSession
from eventhub.core.errors import NotAuthenticatedError, NotAuthorizedError, NotFoundError
from eventhub.core.security import decode_token
from eventhub.db.models.user import User
from eventhub.db.repositories import get_user

# auto_error=False so a missing header becomes our 401 instead of FastAPI's default
security = HTTPBearer(auto_error=False)


async def user_from_token(session: AsyncSession, token: Optional[str]) -> User:
    """
    Resolve a bearer token to the user it was issued for.

    Raises:
        NotAuthenticatedError: If the token is absent, invalid, not an access
            token, or names a user that no longer exists
    """
    if not token:
        raise NotAuthenticatedError("Not authenticated")

    try:
        payload = decode_token(token)
    except ValueError:
        raise NotAuthenticatedError("Could not validate credentials")

    if payload.get("type") != "access":
        raise NotAuthenticatedError("Invalid token type")

    try:
        user = await get_user(session, payload.get("sub"))
    except NotFoundError:
        user = None
    if user is None:
        raise NotAuthenticatedError("Could not validate credentials")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: AsyncSession = Depends(get_session)
) -> User:
    """
    Get current user from the Authorization header.

    Every role, guests included, is accepted here.
    """
    return await user_from_token(session, credentials.credentials if credentials else None)


def role_required(*roles: str):
    """
    Dependency to require one of ``roles`` for endpoint access. Admins always pass.
    """
    async def role_checker(user: User = Depends(get_current_user)) -> User:
        role = getattr(user, "role", None)
        role = getattr(role, "value", role)
        if role not in roles and role != "admin":
            raise NotAuthorizedError("Forbidden")
        return user
    return role_checker
