import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt


def create_access_token(
    user: Dict[str, Any],
    secret: str,
    algorithm: str = "HS256",
    expires_minutes: int = 60,
) -> str:
    """
    Generate an access token for a user.

    Args:
        user: User row (needs id, email, name)
        secret: Signing secret
        algorithm: JWT algorithm
        expires_minutes: Token lifetime

    Returns:
        Encoded JWT string
    """
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": str(user["id"]),
        "email": user.get("email"),
        "name": user.get("name"),
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(token: str, secret: str, algorithm: str = "HS256") -> Optional[Dict[str, Any]]:
    """
    Validate a token and return its payload.

    Returns:
        Decoded payload, or None if the token is expired, malformed or
        carries no user_id
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
    if not payload.get("user_id"):
        return None
    return payload


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token of an 'Authorization: Bearer <token>' header value."""
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


def generate_refresh_token() -> str:
    """Opaque refresh token; only its digest is stored."""
    return secrets.token_urlsafe(48)


def hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()
