import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.crud.crud_provider import service_provider as provider_crud
from marketplace.crud.crud_user import user as user_crud
from marketplace.database import get_db
from marketplace.models.admin import Admin
from marketplace.models.service_provider import APPROVAL_APPROVED, TOTAL_STEPS, ServiceProvider
from marketplace.models.user import STATUS_ACTIVE, USER_TYPE_PROVIDER, USER_TYPE_USER, User
from marketplace.services.auth_service import token_service
from marketplace.services.onboarding_service import STEP_TITLES
from marketplace.utils.errors import ForbiddenError, ValidationFailed

logger = logging.getLogger(__name__)

AUDIENCE_ADMIN = "admin"
AUDIENCE_PROVIDER = USER_TYPE_PROVIDER
AUDIENCE_USER = USER_TYPE_USER
AUDIENCE_PASSWORD_RESET = "password_reset"


@dataclass
class AuthContext:
    token: str
    claims: dict


@dataclass
class AdminContext(AuthContext):
    admin: Admin


@dataclass
class UserContext(AuthContext):
    user: User


@dataclass
class ProviderContext(AuthContext):
    user: User
    provider: Optional[ServiceProvider]


def _get_token_claims(
    credentials: Optional[HTTPAuthorizationCredentials],
    db: Session,
) -> AuthContext:
    if credentials is None or not credentials.credentials:
        raise ForbiddenError("Authorization token is required", "TOKEN_REQUIRED")

    token = credentials.credentials
    claims = token_service.verify(db, token)
    if claims is None:
        raise ForbiddenError("Invalid or expired token", "INVALID_TOKEN")
    return AuthContext(token=token, claims=claims)


def _require_audience(context: AuthContext, audience: str) -> int:
    if context.claims.get("userType") != audience:
        raise ForbiddenError("Token is not valid for this resource", "INVALID_TOKEN_AUDIENCE")
    subject_id = context.claims.get("id")
    if subject_id is None:
        raise ForbiddenError("Invalid token payload", "INVALID_TOKEN")
    return subject_id


def get_current_token(
    credentials: HTTPAuthorizationCredentials = Depends(settings.bearer_scheme),
    db: Session = Depends(get_db),
) -> AuthContext:
    """Any valid access token, whatever its audience."""
    return _get_token_claims(credentials, db)


def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Depends(settings.bearer_scheme),
    db: Session = Depends(get_db),
) -> AdminContext:
    context = _get_token_claims(credentials, db)
    admin_id = _require_audience(context, AUDIENCE_ADMIN)

    admin = db.query(Admin).filter(Admin.id == admin_id).first()
    if admin is None:
        raise ForbiddenError("Admin not found", "ADMIN_NOT_FOUND")
    if admin.role is None:
        raise ForbiddenError("Admin role not found", "ADMIN_ROLE_NOT_FOUND")
    if admin.status != STATUS_ACTIVE:
        raise ForbiddenError("Your account has been deactivated", "ACCOUNT_INACTIVE")

    return AdminContext(token=context.token, claims=context.claims, admin=admin)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(settings.bearer_scheme),
    db: Session = Depends(get_db),
) -> UserContext:
    context = _get_token_claims(credentials, db)
    user_id = _require_audience(context, AUDIENCE_USER)

    user = user_crud.get(db, user_id)
    if user is None or user.user_type != USER_TYPE_USER:
        raise ForbiddenError("User not found", "USER_NOT_FOUND")
    if user.status != STATUS_ACTIVE:
        raise ForbiddenError("Your account has been deactivated", "ACCOUNT_INACTIVE")

    return UserContext(token=context.token, claims=context.claims, user=user)


def _load_provider_context(credentials: Optional[HTTPAuthorizationCredentials], db: Session) -> ProviderContext:
    context = _get_token_claims(credentials, db)
    user_id = _require_audience(context, AUDIENCE_PROVIDER)

    user = user_crud.get(db, user_id)
    if user is None or user.user_type != USER_TYPE_PROVIDER:
        raise ForbiddenError("Provider not found", "PROVIDER_NOT_FOUND")
    if user.status != STATUS_ACTIVE:
        raise ForbiddenError("Your account has been deactivated", "ACCOUNT_INACTIVE")

    # The provider row only exists once onboarding has started.
    provider = provider_crud.get_by_user_id(db, user.id)
    return ProviderContext(token=context.token, claims=context.claims, user=user, provider=provider)


def get_current_provider(
    credentials: HTTPAuthorizationCredentials = Depends(settings.bearer_scheme),
    db: Session = Depends(get_db),
) -> ProviderContext:
    context = _load_provider_context(credentials, db)
    provider = context.provider
    if provider is not None:
        if provider.status != STATUS_ACTIVE:
            raise ForbiddenError("Your provider profile has been deactivated", "ACCOUNT_INACTIVE")
        if (
            provider.step_completed == TOTAL_STEPS
            and provider.is_approved != APPROVAL_APPROVED
            and provider_crud.has_service_list(db, provider.id)
        ):
            logger.info("Provider %s blocked pending admin verification", provider.id)
            raise ForbiddenError(
                "Wait for the admin to verify your profile",
                "PENDING_ADMIN_VERIFICATION",
                is_approved=provider.is_approved,
                rejection_reason=provider.rejection_reason,
            )

    return context


def get_current_onboarding_provider(
    credentials: HTTPAuthorizationCredentials = Depends(settings.bearer_scheme),
    db: Session = Depends(get_db),
) -> ProviderContext:
    """Provider context without the approval gate.

    Onboarding endpoints stay reachable while the profile waits for review so
    a provider can read progress and fix rejected steps.
    """
    return _load_provider_context(credentials, db)


def require_step(step: int):
    """Dependency factory: the caller must have finished ``step - 1``."""
    previous = step - 1

    def dependency(
        context: ProviderContext = Depends(get_current_onboarding_provider),
    ) -> ProviderContext:
        completed = context.provider.step_completed if context.provider else 0
        if previous >= 1 and (completed or 0) < previous:
            raise ValidationFailed(
                f"Please complete step {previous} ({STEP_TITLES[previous]}) first",
                "STEP_PREREQUISITE",
                required_step=previous,
                step_completed=completed or 0,
            )
        return context

    return dependency
