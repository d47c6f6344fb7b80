from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from marketplace.crud.crud_base import CRUDBase
from marketplace.models.user import STATUS_ACTIVE, User


class CRUDUser(CRUDBase[User]):
    def get_by_phone(
        self,
        db: Session,
        phone_code: str,
        phone_number: str,
        user_type: Optional[str] = None,
    ) -> Optional[User]:
        query = self.query(db).filter(
            User.phone_code == phone_code,
            User.phone_number == phone_number,
        )
        if user_type:
            query = query.filter(User.user_type == user_type)
        return query.first()

    def get_by_email(self, db: Session, email: str) -> Optional[User]:
        return self.query(db).filter(User.email == email).first()

    def mark_verified(self, db: Session, user: User) -> User:
        user.is_verified = 1
        user.verified_at = datetime.utcnow()
        user.status = STATUS_ACTIVE
        db.commit()
        db.refresh(user)
        return user

    def soft_delete(self, db: Session, obj: User, commit: bool = True) -> User:
        # Release the unique phone/email so the number can register again.
        stamp = int(datetime.utcnow().timestamp())
        obj.phone_number = f"{obj.phone_number}_deleted_{stamp}"
        if obj.email:
            obj.email = f"{obj.email}.deleted.{stamp}"
        return super().soft_delete(db, obj, commit=commit)


user = CRUDUser(User)
