"""
Identity tokens: JWT encoding and decoding.

Login, signup and session handling belong to the identity provider, not to
this service. What reaches the ledger is a signed JWT whose claims give the
caller's identity:

  - "sub":   the owner id that scopes every query
  - "email": the caller's email address
  - "role":  optional; "admin" unlocks administrative cleanup routes
  - "exp":   expiration timestamp, after which the token is rejected

The token is signed with SECRET_KEY using HS256 (HMAC-SHA256).
create_access_token() exists for the identity provider's side of the
contract and for tests.
"""

from datetime import datetime, timedelta, timezone

from jose import jwt

from ledger.config import settings


def create_access_token(
    owner_id: str,
    email: str | None = None,
    role: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed JWT access token for an owner.

    Args:
        owner_id: Stable owner identifier, stored as the "sub" claim.
        email: Optional email claim.
        role: Optional role claim ("admin" for administrative access).
        expires_delta: Optional custom expiration time. Defaults to
                       ACCESS_TOKEN_EXPIRE_MINUTES from settings.

    Returns:
        An encoded JWT string.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    claims = {"sub": owner_id, "exp": datetime.now(timezone.utc) + expires_delta}
    if email is not None:
        claims["email"] = email
    if role is not None:
        claims["role"] = role
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify a JWT access token.

    Raises:
        JWTError: If the token is expired, tampered with, or invalid.

    Returns:
        The decoded payload dictionary (contains "sub", "exp", etc.).
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
