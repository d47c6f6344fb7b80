import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.database import get_db
from marketplace.models.admin import Admin
from marketplace.models.user import STATUS_ACTIVE
from marketplace.schemas.auth import AdminLoginRequest
from marketplace.services.auth_middleware import AUDIENCE_ADMIN, AdminContext, get_current_admin
from marketplace.services.auth_service import create_access_token, verify_password
from marketplace.utils.errors import ForbiddenError, ValidationFailed
from marketplace.utils.response import create_response, handle_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


def serialize_admin(admin: Admin) -> dict:
    return {
        "id": admin.id,
        "first_name": admin.first_name,
        "last_name": admin.last_name,
        "full_name": admin.full_name,
        "email": admin.email,
        "phone_code": admin.phone_code,
        "phone_number": admin.phone_number,
        "profile_image": admin.profile_image,
        "status": admin.status,
        "role": {"id": admin.role.id, "title": admin.role.title} if admin.role else None,
    }


@router.post("/login")
def admin_login(body: AdminLoginRequest, db: Session = Depends(get_db)):
    try:
        admin = db.query(Admin).filter(Admin.email == body.email.lower()).first()
        if admin is None or not verify_password(body.password, admin.password):
            raise ValidationFailed("Invalid credentials", "INVALID_CREDENTIALS")
        if admin.status != STATUS_ACTIVE:
            raise ForbiddenError("Your account has been deactivated", "ACCOUNT_INACTIVE")

        token = create_access_token(db, {"id": admin.id, "userType": AUDIENCE_ADMIN, "email": admin.email})
        logger.info("Admin %s logged in", admin.id)
        return create_response(
            message="Login successfully",
            data={"access_token": token, "token_type": "bearer", "admin": serialize_admin(admin)},
        )
    except Exception as exc:
        return handle_exception(exc)


@router.get("/profile")
def admin_profile(context: AdminContext = Depends(get_current_admin)):
    try:
        return create_response(message="Admin profile retrieved successfully", data=serialize_admin(context.admin))
    except Exception as exc:
        return handle_exception(exc)
