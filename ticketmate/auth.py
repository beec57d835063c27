"""
JWT issuing and verification plus the route decorators that use them.
"""
from datetime import datetime, timedelta, UTC
from typing import Optional, Tuple

import jwt
from flask import current_app, g, request

from .errors import Forbidden, Unauthorized
from .extensions import get_storage
from .models import User


def make_jwt(user: User) -> str:
    now = datetime.now(UTC)
    claims = {
        "userId": user.user_id,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(days=current_app.config["JWT_EXPIRES_DAYS"]),
    }
    return jwt.encode(claims, current_app.config["JWT_SECRET"], algorithm=current_app.config["JWT_ALGORITHM"])


def verify_token(token: str) -> Tuple[Optional[dict], Optional[str]]:
    """Verify JWT token and return claims."""
    try:
        claims = jwt.decode(
            token,
            key=current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except jwt.ExpiredSignatureError:
        return None, "Token has expired"
    except jwt.InvalidTokenError:
        return None, "Invalid or expired token"
    if not claims.get("userId"):
        return None, "Invalid token"
    return claims, None


def verify_authorization_header(auth_header: Optional[str]) -> Tuple[Optional[dict], Optional[str]]:
    """Verify Authorization header and return claims."""
    if not auth_header or not auth_header.lower().startswith("bearer "):
        return None, "Access token is required"
    token = auth_header.split(" ", 1)[1].strip()
    return verify_token(token)


def _load_user() -> User:
    claims, error = verify_authorization_header(request.headers.get("Authorization"))
    if error:
        raise Unauthorized(error)
    user = get_storage().users.get(claims["userId"])
    if not user:
        raise Unauthorized("Invalid token")
    return user


def require_auth(f):
    def wrapper(*args, **kwargs):
        g.user = _load_user()
        return f(*args, **kwargs)

    wrapper.__name__ = f.__name__
    return wrapper


def require_admin(f):
    def wrapper(*args, **kwargs):
        g.user = _load_user()
        if g.user.role != "admin":
            raise Forbidden()
        return f(*args, **kwargs)

    wrapper.__name__ = f.__name__
    return wrapper


def optional_auth(f):
    """Attach g.user when a valid token is sent; anonymous otherwise."""
    def wrapper(*args, **kwargs):
        g.user = None
        if request.headers.get("Authorization"):
            try:
                g.user = _load_user()
            except Unauthorized:
                g.user = None
        return f(*args, **kwargs)

    wrapper.__name__ = f.__name__
    return wrapper
