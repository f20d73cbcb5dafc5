"""
Admin authentication: salted password hashes and signed bearer tokens.
"""

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Header, HTTPException
from jwt.exceptions import InvalidTokenError

import config

_PBKDF2_ITERATIONS = 200_000


def hash_password(password: str, salt: Optional[str] = None) -> str:
    """Hash a password as 'pbkdf2_sha256$<iterations>$<salt>$<hex digest>'."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), _PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${_PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored_hash: str) -> bool:
    try:
        scheme, iterations, salt, expected = stored_hash.split("$", 3)
    except ValueError:
        return False
    if scheme != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def create_access_token(admin_id: int, username: str, expires_hours: int = config.JWT_EXPIRES_HOURS) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "id": admin_id,
        "username": username,
        "iat": now,
        "exp": now + timedelta(hours=expires_hours),
    }
    return jwt.encode(payload, config.get_jwt_secret(), algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decode and verify an admin token.

    Raises:
        InvalidTokenError: bad signature, malformed or expired token
    """
    return jwt.decode(token, config.get_jwt_secret(), algorithms=[config.JWT_ALGORITHM])


def require_admin(authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    """FastAPI dependency: the decoded admin token from 'Authorization: Bearer <token>'."""
    token = None
    if authorization:
        parts = authorization.split(" ", 1)
        token = parts[1].strip() if len(parts) == 2 else None
    if not token:
        raise HTTPException(status_code=401, detail="No token provided")
    try:
        return decode_access_token(token)
    except InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")
