# identitydb/main.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy import text

from identitydb.config import LOG_LEVEL, SEED_EXAMPLE_ACCOUNTS
from identitydb.errors import (
    GroupExistsError,
    GroupHasMemberError,
    GroupNotAMemberError,
    SessionRenewalError,
    UserAuthenticationError,
    UserExistsError,
    UserInvalidError,
)
from identitydb.identity import Identity
from identitydb.lifetime import Lifetime
from identitydb.routes import (
    require_all_groups,
    require_any_group,
    require_condition,
    require_login,
    require_session,
)
from identitydb.session import Session
from identitydb.user import User

logger = logging.getLogger(__name__)

SESSION_LIFETIME = Lifetime(days=3)
SESSION_RENEWAL_PERIOD = Lifetime(days=30)

ADMIN_GROUP = "administrators"
USER_GROUP = "users"
LOG_GROUP = "log"
BANNED_GROUP = "banned"


class SessionResponse(BaseModel):
    success: bool = True
    session_token: str
    renewal_token: Optional[str]
    expires: Optional[datetime]


class RenewRequest(BaseModel):
    session_token: str
    renewal_token: str


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=32)
    password: str = Field(min_length=8, max_length=128)


class LoginRequest(BaseModel):
    username: str
    password: str


class UsernameRequest(BaseModel):
    username: str


class LogRequest(BaseModel):
    message: str = Field(min_length=1, max_length=1000)


class ProfileResponse(BaseModel):
    user_id: int
    username: str
    groups: list[str]


def seed_example_accounts(identity: Identity) -> None:
    """Create the example admin/user accounts and groups if they are missing."""

    def seed(atomic: Identity) -> None:
        for name in (ADMIN_GROUP, USER_GROUP, LOG_GROUP, BANNED_GROUP):
            if not atomic.group.exists(name):
                atomic.group.create(name)

        for username, password, groups in (
            ("admin", "password", (ADMIN_GROUP,)),
            ("user", "guest-password", (USER_GROUP, LOG_GROUP)),
        ):
            if atomic.user.exists(username):
                continue
            user = atomic.user.create(username)
            user.set_password(password)
            for name in groups:
                atomic.group.get(name).add_member(user)

    identity.atomic_operation(seed)
    logger.info("Example accounts initialized")


def _session_response(session: Session) -> SessionResponse:
    return SessionResponse(
        session_token=session.token,
        renewal_token=session.renewal_token,
        expires=session.expires,
    )


def build_router(identity: Identity) -> APIRouter:
    router = APIRouter(tags=["identity"])

    session_required = require_session(identity)
    login_required = require_login(identity)
    not_banned = require_condition(
        identity,
        lambda request, user: BANNED_GROUP not in user.groups,
        detail="user-banned",
    )
    may_log = require_any_group(identity, [ADMIN_GROUP, LOG_GROUP])
    admin_required = require_all_groups(identity, [ADMIN_GROUP], detail="not-an-admin")

    @router.get("/")
    def index() -> dict:
        return {"api": "Identity Example API"}

    # ----------------------------
    # Sessions
    # ----------------------------

    @router.post("/session", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
    def start_session() -> SessionResponse:
        session = identity.session.create(SESSION_LIFETIME, SESSION_RENEWAL_PERIOD)
        return _session_response(session)

    @router.put("/session", response_model=SessionResponse)
    def renew_session(payload: RenewRequest) -> SessionResponse:
        try:
            session = identity.session.renew(
                payload.session_token,
                SESSION_LIFETIME,
                payload.renewal_token,
                SESSION_RENEWAL_PERIOD,
            )
        except SessionRenewalError:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="session-renewal-failed")
        return _session_response(session)

    @router.delete("/session")
    def destroy_session(session: Session = Depends(session_required)) -> dict:
        session.destroy()
        return {"success": True}

    # ----------------------------
    # Accounts
    # ----------------------------

    @router.post("/register", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
    def register(payload: RegisterRequest) -> ProfileResponse:
        def create_account(atomic: Identity) -> ProfileResponse:
            user = atomic.user.create(payload.username)
            user.set_password(payload.password)
            if not atomic.group.exists(USER_GROUP):
                atomic.group.create(USER_GROUP)
            atomic.group.get(USER_GROUP).add_member(user)
            user = atomic.user.get(payload.username)
            return ProfileResponse(user_id=user.id, username=user.username, groups=user.groups)

        try:
            return identity.atomic_operation(create_account)
        except (UserExistsError, GroupExistsError):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="username-taken")

    @router.post("/login")
    def login(payload: LoginRequest, session: Session = Depends(session_required)) -> dict:
        try:
            user = identity.user.get(payload.username)
            user.login(session, payload.password)
        except UserInvalidError:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="username-invalid")
        except UserAuthenticationError:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="password-invalid")
        return {"success": True}

    @router.post("/logout")
    def logout(request: Request, user: User = Depends(login_required)) -> dict:
        user.logout(request.state.session)
        return {"success": True}

    @router.get("/profile", response_model=ProfileResponse)
    def profile(user: User = Depends(not_banned)) -> ProfileResponse:
        return ProfileResponse(user_id=user.id, username=user.username, groups=user.groups)

    @router.post("/log")
    def write_log(payload: LogRequest, user: User = Depends(may_log)) -> dict:
        logger.info("%s says: %s", user.username, payload.message)
        return {"success": True}

    # ----------------------------
    # Administration
    # ----------------------------

    @router.get("/admin/users/{username}", response_model=ProfileResponse)
    def get_user(username: str, admin: User = Depends(admin_required)) -> ProfileResponse:
        try:
            user = identity.user.get(username)
        except UserInvalidError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user-invalid")
        return ProfileResponse(user_id=user.id, username=user.username, groups=user.groups)

    @router.post("/admin/ban-user")
    def ban_user(payload: UsernameRequest, admin: User = Depends(admin_required)) -> dict:
        def ban(atomic: Identity) -> bool:
            user = atomic.user.get(payload.username)
            try:
                atomic.group.get(BANNED_GROUP).add_member(user)
            except GroupHasMemberError:
                return False
            return True

        try:
            banned = identity.atomic_operation(ban)
        except UserInvalidError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user-invalid")

        logger.info("%s banned %s", admin.username, payload.username)
        return {"success": True, "changed": banned}

    @router.post("/admin/unban-user")
    def unban_user(payload: UsernameRequest, admin: User = Depends(admin_required)) -> dict:
        def unban(atomic: Identity) -> bool:
            user = atomic.user.get(payload.username)
            try:
                atomic.group.get(BANNED_GROUP).remove_member(user)
            except GroupNotAMemberError:
                return False
            return True

        try:
            unbanned = identity.atomic_operation(unban)
        except UserInvalidError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user-invalid")

        return {"success": True, "changed": unbanned}

    @router.post("/purge")
    def purge_sessions(admin: User = Depends(admin_required)) -> dict:
        return {"success": True, "purged": identity.session.purge()}

    return router


def create_app(identity: Optional[Identity] = None, *, seed: Optional[bool] = None) -> FastAPI:
    """
    Build the example service. Run with:

        uvicorn identitydb.main:create_app --factory
    """
    if identity is None:
        logging.basicConfig(level=LOG_LEVEL)
        identity = Identity.from_url()

    identity.build()
    if SEED_EXAMPLE_ACCOUNTS if seed is None else seed:
        seed_example_accounts(identity)

    app = FastAPI(title="identitydb example", version="0.2.0")
    app.state.identity = identity
    app.include_router(build_router(identity))

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/db-ping")
    def db_ping() -> dict:
        with identity.db.engine.connect() as conn:
            result = conn.execute(text("SELECT 1")).scalar_one()
        return {"db": "ok", "select_1": result}

    return app
