"""
Login and bearer-token handling.

Tokens are HS256 JWTs carrying the caller's identity claims; the dashboard
and submission paths trust ``teamId``/``group`` from a verified token
without touching the store again.
"""

from __future__ import annotations

import hmac
import logging
import time
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError

from datasprint.config import Settings
from datasprint.db import ROLE_ADMIN, DbClient
from datasprint.dependencies import get_app_settings
from datasprint.errors import AuthError, PermissionDeniedError, UpstreamUnavailable

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    username: str
    role: str
    team_id: Optional[str] = None
    group: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def as_dict(self) -> dict:
        return {
            "id": self.user_id,
            "username": self.username,
            "role": self.role,
            "teamId": self.team_id,
            "group": self.group,
        }


def issue_token(
    claims: TokenClaims, secret: str, expires_hours: int, now: float | None = None
) -> str:
    issued_at = int(now if now is not None else time.time())
    payload = {
        "userId": claims.user_id,
        "username": claims.username,
        "role": claims.role,
        "teamId": claims.team_id,
        "group": claims.group,
        "iat": issued_at,
        "exp": issued_at + expires_hours * 3600,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def verify_token(token: str, secret: str) -> TokenClaims:
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("Invalid token") from exc
    try:
        return TokenClaims(
            user_id=payload["userId"],
            username=payload["username"],
            role=payload["role"],
            team_id=payload.get("teamId"),
            group=payload.get("group"),
        )
    except KeyError as exc:
        raise AuthError("Token is missing identity claims") from exc


def login(db: DbClient, settings: Settings, username: str, password: str) -> tuple[str, TokenClaims]:
    """Check credentials and return ``(token, claims)``."""
    logger.info("Login attempt for %s", username)
    try:
        user = db.get_user_by_username(username)
        team = db.get_team(user.team_id) if user and user.team_id else None
    except SQLAlchemyError as exc:
        raise UpstreamUnavailable("Could not read user records") from exc
    if user is None or not hmac.compare_digest(
        user.password.encode("utf-8"), password.encode("utf-8")
    ):
        raise AuthError("Invalid credentials")

    claims = TokenClaims(
        user_id=user.user_id,
        username=user.username,
        role=user.role,
        team_id=user.team_id,
        group=team.group if team else None,
    )
    token = issue_token(claims, settings.jwt_secret, settings.jwt_expires_hours)
    return token, claims


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(get_app_settings),
) -> TokenClaims:
    if credentials is None or not credentials.credentials:
        raise AuthError("Missing bearer token")
    return verify_token(credentials.credentials, settings.jwt_secret)


def require_admin(user: TokenClaims = Depends(get_current_user)) -> TokenClaims:
    if not user.is_admin:
        raise PermissionDeniedError("Admin access required")
    return user
