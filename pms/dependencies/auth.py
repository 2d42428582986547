from collections.abc import Callable, Mapping
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pms.core.config import get_settings
from pms.tickets.access import Actor
from pms.tickets.state import Role


class User:
    """Authenticated caller as asserted by the identity provider."""

    def __init__(self, user_id: str, role: Role):
        self.user_id = user_id
        self.role = role

    @property
    def actor(self) -> Actor:
        return Actor(id=self.user_id, role=self.role)

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles


bearer_scheme = HTTPBearer(auto_error=False)


def _parse_identity(value: str) -> User:
    user_id, _, role = value.partition(":")
    try:
        return User(user_id=user_id.strip(), role=Role(role.strip().lower()))
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials") from exc


def resolve_user_from_token(token: str | None, tokens: Mapping[str, str] | None = None) -> User | None:
    """Return the user bound to ``token``, ``None`` when no token was supplied."""

    if token is None:
        return None

    if tokens is None:
        tokens = get_settings().auth_tokens
    if token not in tokens:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    return _parse_identity(tokens[token])


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> User:
    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    token = credentials.credentials if credentials is not None else None
    user = resolve_user_from_token(token)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    request.state.user = user
    return user


def role_required(*roles: Role) -> Callable[[User], User]:
    """Dependency factory ensuring the current user holds one of ``roles``."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.has_role(*roles):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


CurrentUser = Annotated[User, Depends(get_current_user)]
