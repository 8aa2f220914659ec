"""
Identity binding for WebSocket handshakes.

Tokens are issued by an external collaborator (the login service) and signed
with the shared SECRET_JWT_KEY. This module only verifies them and extracts
the identity; create_access_token exists for that collaborator and for tests.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from starlette.requests import HTTPConnection

from chatrelay.config import settings
from chatrelay.errors import InvalidCredential, MissingCredential

logger = logging.getLogger(__name__)

# Cookie name used by the login service
TOKEN_COOKIE = "access_token"


def extract_credential(conn: HTTPConnection) -> Optional[str]:
    """
    Find the raw credential presented with a handshake.

    Looked up in order: the access_token cookie, an Authorization: Bearer
    header, then the token query parameter.

    Returns:
        Token string, or None if nothing was presented
    """
    token = conn.cookies.get(TOKEN_COOKIE)
    if token:
        return token

    auth_header = conn.headers.get("authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token

    token = conn.query_params.get("token")
    return token or None


def bind_identity(token: Optional[str]) -> str:
    """
    Validate a credential and return the identity it grants.

    Args:
        token: Raw JWT, or None when nothing was presented

    Returns:
        Identity string (the 'sub' claim, or 'username' for older tokens)

    Raises:
        MissingCredential: no credential material at all
        InvalidCredential: bad signature, expired, or no identity claim
    """
    if not token:
        logger.warning("Handshake rejected: no credential provided")
        raise MissingCredential("no credential provided")

    try:
        payload = jwt.decode(
            token,
            settings.SECRET_JWT_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Handshake rejected: token has expired")
        raise InvalidCredential("token has expired")
    except JWTError as e:
        logger.warning(f"Handshake rejected: invalid token: {e}")
        raise InvalidCredential("invalid token") from e

    identity = payload.get("sub") or payload.get("username")
    if not identity or not isinstance(identity, str):
        logger.warning("Handshake rejected: token carries no identity claim")
        raise InvalidCredential("token carries no identity")

    logger.debug(f"Credential verified for {identity}")
    return identity


def create_access_token(identity: str, expires_minutes: Optional[float] = None) -> str:
    """Sign a token granting `identity`, valid for the configured lifetime."""
    if expires_minutes is None:
        expires_minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    claims = {"sub": identity, "username": identity, "exp": expire}
    return jwt.encode(claims, settings.SECRET_JWT_KEY, algorithm=settings.JWT_ALGORITHM)
