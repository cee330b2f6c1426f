"""
FastAPI dependencies for identity and shared per-process state.

  get_current_owner (Bearer JWT -> OwnerIdentity)
      └── require_admin (OwnerIdentity with role "admin")

  get_read_cache -> the process-wide OwnerReadCache

The ledger trusts the identity provider's token: the "sub" claim is the
owner id used to scope every query. No user table is consulted.
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from ledger.cache import OwnerReadCache
from ledger.config import settings
from ledger.security import decode_access_token


bearer_scheme = HTTPBearer(auto_error=False)

_read_cache = OwnerReadCache(ttl_seconds=settings.READ_CACHE_TTL_SECONDS)


@dataclass(frozen=True)
class OwnerIdentity:
    """The caller, as vouched for by the identity provider."""
    owner_id: str
    email: str | None = None
    role: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_current_owner(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> OwnerIdentity:
    """
    Validate the Bearer token and return the caller's identity.

    Raises:
        HTTPException 401: If the token is missing, invalid, expired, or has no subject.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError:
        raise credentials_exception

    owner_id = payload.get("sub")
    if not owner_id:
        raise credentials_exception

    return OwnerIdentity(
        owner_id=str(owner_id),
        email=payload.get("email"),
        role=payload.get("role"),
    )


async def require_admin(
    owner: OwnerIdentity = Depends(get_current_owner),
) -> OwnerIdentity:
    """
    Require the "admin" role claim.

    Raises:
        HTTPException 403: If the caller is not an admin.
    """
    if not owner.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return owner


def get_read_cache() -> OwnerReadCache:
    return _read_cache
