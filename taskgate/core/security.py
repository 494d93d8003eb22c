"""Identity extraction from bearer tokens and permission dependencies.

Authentication happens upstream; we only verify the signed token it hands out
and read the identity claims from it.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from taskgate.core.config import settings
from taskgate.core.exceptions import AuthenticationError, AuthorizationError
from taskgate.db.session import get_db

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The already-authenticated caller."""

    user_id: int
    email: str
    legacy_role: Optional[str] = None
    tenant_id: Optional[int] = None


def create_access_token(identity: Identity, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a token for ``identity``. Used by tooling and tests."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    )
    claims = {
        "sub": str(identity.user_id),
        "email": identity.email,
        "legacy_role": identity.legacy_role,
        "tenant_id": identity.tenant_id,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[Identity]:
    """Decode a bearer token into an Identity, or None if it is invalid."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None

    sub = payload.get("sub")
    email = payload.get("email")
    if sub is None or not email:
        return None
    try:
        user_id = int(sub)
        tenant_id = payload.get("tenant_id")
        tenant_id = int(tenant_id) if tenant_id is not None else None
    except (TypeError, ValueError):
        return None
    return Identity(
        user_id=user_id,
        email=email,
        legacy_role=payload.get("legacy_role"),
        tenant_id=tenant_id,
    )


def identity_from_request(request: Request) -> Optional[Identity]:
    """Identity provider used by the audit layer: never raises."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return decode_token(token.strip())


async def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> Optional[Identity]:
    if credentials is None:
        return None
    return decode_token(credentials.credentials)


async def get_current_identity(
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> Identity:
    """Require an identity on the request."""
    if identity is None:
        raise AuthenticationError("Not authenticated")
    return identity


class RequirePermission:
    """Dependency that checks the caller holds a catalog permission."""

    def __init__(self, permission: str):
        self.permission = permission

    def check(self, db: Session, identity: Identity) -> Identity:
        from taskgate.services.permission_service import permission_service

        if not permission_service.has_permission(db, identity.user_id, self.permission):
            raise AuthorizationError(f"Missing permission '{self.permission}'")
        return identity

    async def __call__(
        self,
        identity: Identity = Depends(get_current_identity),
        db: Session = Depends(get_db),
    ) -> Identity:
        return self.check(db, identity)
