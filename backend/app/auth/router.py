import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.auth import service
from app.auth.deps import Principal, get_principal, principal_from_claims
from app.auth.login_guard import login_guard
from app.auth.schemas import SignupRequest, TokenRequest, UserUpdateRequest
from app.auth.security import JWTError, decode_token_ignoring_expiry
from app.core.errors import GatewayError, InvalidGrant, NotAuthenticated, TooManyAttempts, ValidationFailed
from app.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


def _issue_password_grant(payload: TokenRequest, request: Request, db: Session) -> dict:
    if not payload.email or not payload.password:
        raise ValidationFailed("email and password are required")

    client_ip = request.client.host if request.client else "unknown"
    login_key = f"{service.resolve_login_email(payload.email)}:{client_ip}"
    locked_until = login_guard.is_locked(login_key)
    if locked_until:
        raise TooManyAttempts(f"Too many failed attempts. Retry after {locked_until.isoformat()}")

    try:
        session = service.password_grant(db, payload.email, payload.password)
    except InvalidGrant:
        new_lock = login_guard.register_failure(login_key)
        if new_lock:
            raise TooManyAttempts(f"Too many failed attempts. Retry after {new_lock.isoformat()}")
        raise

    login_guard.clear(login_key)
    return session


def _issue_refresh_grant(payload: TokenRequest, db: Session) -> dict:
    if not payload.refresh_token:
        raise ValidationFailed("refresh_token is required")
    try:
        claims = decode_token_ignoring_expiry(payload.refresh_token)
        principal = principal_from_claims(claims)
    except (JWTError, NotAuthenticated):
        raise InvalidGrant("Invalid refresh token", status_code=401)
    return service.refresh_grant(db, principal.user_id)


@router.post("/token")
def token(
    payload: TokenRequest,
    request: Request,
    grant_type: str = Query(default="password"),
    db: Session = Depends(get_db),
):
    if grant_type == "refresh_token":
        return _issue_refresh_grant(payload, db)
    if grant_type != "password":
        raise InvalidGrant(f"Unsupported grant_type: {grant_type}")
    return _issue_password_grant(payload, request, db)


@router.get("/user")
def get_user(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    account = service.load_account(db, principal.user_id)
    if not account:
        raise GatewayError("User not found", code="user_not_found", status_code=404)
    return service.build_user_object(*account)


@router.put("/user")
def update_user(
    payload: UserUpdateRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    profile, role = service.update_own_account(
        db, principal.user_id, password=payload.password, data=payload.data
    )
    return service.build_user_object(profile, role)


@router.post("/logout")
def logout():
    # Stateless tokens: nothing to revoke server-side, they expire naturally.
    return {}


@router.post("/signup", status_code=201)
def signup(
    payload: SignupRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    profile, role = service.create_account(
        db,
        actor_id=principal.user_id,
        tenant_id=principal.tenant_id,
        identifier=payload.email,
        password=payload.password,
        display_name=payload.data.display_name,
        role=payload.data.role,
    )
    logger.info("User %s created in tenant %s by %s", profile.id, principal.tenant_id, principal.user_id)
    return service.build_user_object(profile, role)


legacy_router = APIRouter()


@legacy_router.post("/auth/login")
def legacy_login(payload: TokenRequest, request: Request, db: Session = Depends(get_db)):
    return _issue_password_grant(payload, request, db)
