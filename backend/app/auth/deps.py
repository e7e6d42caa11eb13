from dataclasses import dataclass

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.auth.security import JWTError, decode_token
from app.core.errors import Forbidden, NotAuthenticated

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The caller as described by a verified session token."""

    user_id: str
    tenant_id: str
    role: str
    email: str | None = None
    display_name: str | None = None


def principal_from_claims(claims: dict) -> Principal:
    app_meta = claims.get("app_metadata") or {}
    user_meta = claims.get("user_metadata") or {}
    user_id = claims.get("sub")
    tenant_id = app_meta.get("tenant_id")
    if not user_id or not tenant_id:
        raise NotAuthenticated("Invalid token payload")
    return Principal(
        user_id=user_id,
        tenant_id=tenant_id,
        role=app_meta.get("role") or "viewer",
        email=claims.get("email"),
        display_name=user_meta.get("display_name"),
    )


def get_principal(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> Principal:
    if not creds:
        raise NotAuthenticated("Missing token")

    try:
        claims = decode_token(creds.credentials)
    except JWTError:
        raise NotAuthenticated("Invalid or expired token")

    return principal_from_claims(claims)


def require_roles(*allowed_roles: str):
    def checker(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in allowed_roles:
            raise Forbidden("Insufficient permissions")
        return principal

    return checker
