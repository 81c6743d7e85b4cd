from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import Depends, Header
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import settings
from .db import User, get_session
from .errors import Forbidden, Unauthorized
from .models import AuthenticatedUser
from .utils import fallback_email_for_sub, parse_bearer

logger = logging.getLogger(__name__)


def decode_token(token: str) -> dict:
    """Verify ``token`` and return its claims.

    Issuer and audience are only checked when configured.
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"verify_aud": settings.jwt_audience is not None},
        )
    except JWTError as exc:
        logger.warning("JWT verification failed: %s", exc)
        raise Unauthorized("Invalid or expired access token.") from exc


def insert_user(session: Session, sub: str, email: Optional[str]) -> User:
    user = User(sub=sub, email=email or fallback_email_for_sub(sub))
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        # A concurrent first request for the same sub won the insert.
        session.rollback()
        logger.info("User %s was created concurrently", sub)
        return session.scalars(select(User).where(User.sub == sub)).one()
    return user


def upsert_user(session: Session, sub: str, email: Optional[str]) -> User:
    user = session.scalars(select(User).where(User.sub == sub)).first()
    if user is None:
        user = insert_user(session, sub, email)
    elif email and user.email != email:
        user.email = email
        session.commit()
    return user


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    session: Session = Depends(get_session),
) -> AuthenticatedUser:
    token = parse_bearer(authorization)
    if token is None:
        raise Unauthorized("Missing bearer access token.")
    claims = decode_token(token)
    sub = claims.get("sub")
    if not isinstance(sub, str) or not sub:
        logger.warning("JWT is missing a valid sub claim")
        raise Unauthorized("Token does not contain a valid subject claim.")
    email = claims.get("email") if isinstance(claims.get("email"), str) else None
    user = upsert_user(session, sub, email)
    return AuthenticatedUser(id=user.id, sub=user.sub, email=user.email, role=user.role)


def require_role(*roles: str) -> Callable[..., AuthenticatedUser]:
    def guard(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if user.role not in roles:
            raise Forbidden()
        return user

    return guard
