# identitydb/routes.py
from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from identitydb.errors import (
    ExpiredSessionError,
    InvalidSessionError,
    UserAuthenticationError,
    UserInvalidError,
)
from identitydb.identity import Identity
from identitydb.session import Session
from identitydb.user import User

logger = logging.getLogger(__name__)

# auto_error=False so a missing header surfaces as InvalidSessionError
bearer_scheme = HTTPBearer(auto_error=False)

Condition = Callable[[Request, User], bool]


def get_session_from_request(
    identity: Identity,
    creds: Optional[HTTPAuthorizationCredentials],
) -> Session:
    if creds is None:
        raise InvalidSessionError("Missing or non-bearer authorization header.")

    token = creds.credentials.strip()
    if not token:
        raise InvalidSessionError("Missing session token.")

    return identity.session.open(token)


def require_session(
    identity: Identity,
    *,
    status_code: int = status.HTTP_401_UNAUTHORIZED,
    headers: Optional[Dict[str, str]] = None,
) -> Callable[..., Session]:
    """
    Dependency that opens the bearer session and stores it on
    `request.state.session`.
    """

    def dependency(
        request: Request,
        creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    ) -> Session:
        try:
            session = get_session_from_request(identity, creds)
        except InvalidSessionError:
            raise HTTPException(status_code=status_code, detail="session-invalid", headers=headers)
        except ExpiredSessionError:
            raise HTTPException(status_code=status_code, detail="session-expired", headers=headers)

        request.state.session = session
        return session

    return dependency


def require_login(
    identity: Identity,
    *,
    status_code: int = status.HTTP_403_FORBIDDEN,
    headers: Optional[Dict[str, str]] = None,
) -> Callable[..., User]:
    """
    Dependency that resolves the user logged in with the bearer session and
    stores it on `request.state.user`.
    """
    session_guard = require_session(identity, status_code=status_code, headers=headers)

    def dependency(request: Request, session: Session = Depends(session_guard)) -> User:
        try:
            user = identity.user.from_session(session)
        except (UserInvalidError, UserAuthenticationError):
            raise HTTPException(status_code=status_code, detail="user-invalid", headers=headers)

        request.state.user = user
        return user

    return dependency


def require_condition(
    identity: Identity,
    condition: Condition,
    *,
    status_code: int = status.HTTP_403_FORBIDDEN,
    detail: str = "condition-failed",
    headers: Optional[Dict[str, str]] = None,
) -> Callable[..., User]:
    login_guard = require_login(identity, headers=headers)

    def dependency(request: Request, user: User = Depends(login_guard)) -> User:
        if not condition(request, user):
            logger.debug("Condition guard rejected user %s", user.username)
            raise HTTPException(status_code=status_code, detail=detail, headers=headers)
        return user

    return dependency


def require_any_group(
    identity: Identity,
    groups: Iterable[str],
    *,
    status_code: int = status.HTTP_403_FORBIDDEN,
    detail: str = "group-invalid",
    headers: Optional[Dict[str, str]] = None,
) -> Callable[..., User]:
    wanted = set(groups)
    return require_condition(
        identity,
        lambda request, user: bool(wanted.intersection(user.groups)),
        status_code=status_code,
        detail=detail,
        headers=headers,
    )


def require_all_groups(
    identity: Identity,
    groups: Iterable[str],
    *,
    status_code: int = status.HTTP_403_FORBIDDEN,
    detail: str = "group-invalid",
    headers: Optional[Dict[str, str]] = None,
) -> Callable[..., User]:
    wanted = set(groups)
    return require_condition(
        identity,
        lambda request, user: wanted.issubset(user.groups),
        status_code=status_code,
        detail=detail,
        headers=headers,
    )
