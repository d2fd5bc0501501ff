"""Caller identity for HTTP and WebSocket endpoints.

Production verifies a Firebase ID token with ``firebase_admin.auth``. With
``AUTH_DISABLED`` (the default under ``APP_ENV=test``) the ``X-User-Id`` header is trusted
as-is, with optional ``X-User-Name`` / ``X-User-Avatar``.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from firebase_admin import auth
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.exceptions import AuthenticationException, InvalidTokenException
from app.core.logging_config import bind_request_context
from app.core.store.firestore import initialize_firebase_app
from app.modules.users import UserIdentity

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token", auto_error=False)


def verify_firebase_token(token: str) -> UserIdentity:
    """Verify a Firebase ID token and map its claims to a UserIdentity."""
    try:
        app = initialize_firebase_app(
            settings.firebase_project_id, settings.firebase_credentials_path
        )
        claims = auth.verify_id_token(token, app=app)
    except (
        auth.InvalidIdTokenError,
        auth.ExpiredIdTokenError,
        auth.RevokedIdTokenError,
        ValueError,
    ) as exc:
        logger.warning(f"ID token rejected: {exc}")
        raise InvalidTokenException()
    return UserIdentity(
        uid=claims["uid"],
        display_name=claims.get("name") or "",
        photo_url=claims.get("picture"),
    )


def identity_from_headers(request: Request) -> Optional[UserIdentity]:
    uid = request.headers.get("X-User-Id")
    if not uid:
        return None
    return UserIdentity(
        uid=uid,
        display_name=request.headers.get("X-User-Name", ""),
        photo_url=request.headers.get("X-User-Avatar"),
    )


async def get_current_user(
    request: Request, token: Optional[str] = Depends(oauth2_scheme)
) -> UserIdentity:
    """Return the authenticated caller or raise AuthenticationException."""
    if settings.auth_disabled:
        identity = identity_from_headers(request)
        if identity is None:
            raise AuthenticationException(message="Missing X-User-Id header")
    else:
        if not token:
            raise AuthenticationException(message="Missing bearer token")
        # verify_id_token may fetch signing certificates over HTTP.
        identity = await run_in_threadpool(verify_firebase_token, token)
    request.state.user = identity
    bind_request_context(user_id=identity.uid)
    return identity
