import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.audit.service import write_audit_log
from app.auth.models import APP_ROLES, AuthUser, Profile, UserRole
from app.auth.security import create_access_token, hash_password, verify_password
from app.core.config import settings
from app.core.errors import Conflict, Forbidden, InvalidGrant, ValidationFailed

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("display_name", "avatar_url", "phone", "job_title", "language")


def resolve_login_email(identifier: str) -> str:
    value = (identifier or "").strip().lower()
    if "@" in value:
        return value
    return f"{value}@{settings.LOCAL_EMAIL_DOMAIN}"


def load_account(db: Session, user_id: str) -> tuple[Profile, str] | None:
    profile = db.get(Profile, user_id)
    if not profile:
        return None
    return profile, current_role(db, user_id, profile.tenant_id) or "viewer"


def build_user_object(profile: Profile, role: str) -> dict:
    return {
        "id": profile.id,
        "email": profile.email,
        "role": "authenticated",
        "aud": "authenticated",
        "app_metadata": {"tenant_id": profile.tenant_id, "role": role},
        "user_metadata": {
            "display_name": profile.display_name,
            "avatar_url": profile.avatar_url,
            "phone": profile.phone,
            "job_title": profile.job_title,
            "language": profile.language,
        },
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
    }


def mint_session(profile: Profile, role: str) -> dict:
    token, expires_at = create_access_token(
        {
            "sub": profile.id,
            "email": profile.email,
            "role": "authenticated",
            "app_metadata": {"tenant_id": profile.tenant_id, "role": role},
            "user_metadata": {"display_name": profile.display_name},
        }
    )
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_in": settings.JWT_EXPIRY_SECONDS,
        "expires_at": int((expires_at - datetime(1970, 1, 1)).total_seconds()),
        # no separate refresh secret: the access token is refreshable
        "refresh_token": token,
        "user": build_user_object(profile, role),
    }


def password_grant(db: Session, identifier: str, password: str) -> dict:
    email = resolve_login_email(identifier)
    user = db.execute(select(AuthUser).where(AuthUser.email == email)).scalar_one_or_none()

    password_ok = False
    if user:
        try:
            password_ok = verify_password(password, user.encrypted_password)
        except ValueError:
            password_ok = False

    account = load_account(db, user.id) if user and password_ok else None
    if not account:
        raise InvalidGrant("Invalid login credentials")

    profile, role = account
    return mint_session(profile, role)


def refresh_grant(db: Session, user_id: str) -> dict:
    # Role and tenant are re-read so permission changes apply on refresh.
    account = load_account(db, user_id)
    if not account:
        raise InvalidGrant("Invalid refresh token", status_code=401)
    profile, role = account
    return mint_session(profile, role)


def update_own_account(db: Session, user_id: str, *, password: str | None, data: dict | None) -> tuple[Profile, str]:
    account = load_account(db, user_id)
    if not account:
        raise InvalidGrant("User not found", status_code=401)
    profile, role = account

    if password:
        user = db.get(AuthUser, user_id)
        try:
            user.encrypted_password = hash_password(password)
        except ValueError as e:
            raise ValidationFailed(str(e))
        db.add(user)

    ignored = []
    for key, value in (data or {}).items():
        if key in PROFILE_FIELDS:
            setattr(profile, key, value)
        else:
            ignored.append(key)
    if ignored:
        logger.info("Ignored non-editable profile fields for user %s: %s", user_id, sorted(ignored))

    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile, role


def current_role(db: Session, user_id: str, tenant_id: str) -> str | None:
    """Most privileged role the user holds in the tenant, ``None`` without any."""
    roles = db.execute(
        select(UserRole.role).where(UserRole.user_id == user_id, UserRole.tenant_id == tenant_id)
    ).scalars().all()
    ranked = [r for r in APP_ROLES if r in roles]
    return ranked[0] if ranked else None


def create_account(
    db: Session,
    *,
    actor_id: str,
    tenant_id: str,
    identifier: str,
    password: str,
    display_name: str | None,
    role: str,
) -> tuple[Profile, str]:
    if current_role(db, actor_id, tenant_id) != "admin":
        raise Forbidden("Only admins can create users")
    if role not in APP_ROLES:
        raise ValidationFailed(f"Invalid role. Allowed: {list(APP_ROLES)}")

    email = resolve_login_email(identifier)
    try:
        pw_hash = hash_password(password)
    except ValueError as e:
        raise ValidationFailed(str(e))

    # credential, profile and role assignment commit together or not at all
    try:
        user = AuthUser(email=email, encrypted_password=pw_hash)
        db.add(user)
        db.flush()

        profile = Profile(
            id=user.id,
            tenant_id=tenant_id,
            display_name=display_name or email.split("@")[0],
            email=email,
        )
        db.add(profile)
        db.flush()

        db.add(UserRole(user_id=user.id, tenant_id=tenant_id, role=role))
        write_audit_log(
            db,
            tenant_id=tenant_id,
            user_id=actor_id,
            action="user.created",
            entity_type="profile",
            entity_id=user.id,
            details={"email": email, "role": role},
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("User already exists", code="user_exists")
    except Exception:
        db.rollback()
        raise

    db.refresh(profile)
    return profile, role
