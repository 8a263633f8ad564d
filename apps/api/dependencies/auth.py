from collections.abc import Callable
from enum import Enum
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from apps.api.core.config import get_settings


class Role(str, Enum):
    """Supported roles."""

    ADMIN = "admin"
    HANDLER = "handler"
    VIEWER = "viewer"


class User:
    """Acting user resolved from a bearer token."""

    def __init__(self, username: str, roles: tuple[Role, ...]):
        self.username = username
        self.roles = roles

    def has_role(self, role: Role) -> bool:
        return role in self.roles


def parse_token_map(raw: str) -> dict[str, tuple[str, tuple[Role, ...]]]:
    """Parse ``token=username:role|role`` entries separated by commas."""

    tokens: dict[str, tuple[str, tuple[Role, ...]]] = {}
    for item in raw.split(","):
        token, sep, identity = item.strip().partition("=")
        if not sep or not token:
            continue
        username, _, role_names = identity.partition(":")
        roles = tuple(Role(name.strip()) for name in role_names.split("|") if name.strip())
        tokens[token.strip()] = (username.strip(), roles or (Role.VIEWER,))
    return tokens


@lru_cache
def get_token_map() -> dict[str, tuple[str, tuple[Role, ...]]]:
    return parse_token_map(get_settings().api_tokens)


bearer_scheme = HTTPBearer(auto_error=False)


def resolve_user_from_token(token: str | None) -> User:
    """Return a user instance associated with the provided bearer token."""

    if token is None:
        raise HTTPException(status_code=401, detail="Missing authentication credentials")

    token_map = get_token_map()
    if token not in token_map:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    username, roles = token_map[token]
    return User(username=username, roles=roles)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> User:
    """Resolve the acting user; every claim mutation is attributed to it."""

    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    token = credentials.credentials if credentials is not None else None
    user = resolve_user_from_token(token)
    request.state.user = user
    return user


def role_required(role: Role) -> Callable[[User], User]:
    """Dependency factory ensuring the current user has the requested role."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.has_role(role):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


CurrentUser = Annotated[User, Depends(get_current_user)]
