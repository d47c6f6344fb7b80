from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from marketplace.models.otp_verification import OtpVerification


class CRUDOtpVerification:
    def invalidate_scope(self, db: Session, entity_type: str, entity_id: int, purpose: str) -> int:
        """Mark every unconsumed OTP of the scope as consumed."""
        return (
            db.query(OtpVerification)
            .filter(
                OtpVerification.entity_type == entity_type,
                OtpVerification.entity_id == entity_id,
                OtpVerification.purpose == purpose,
                OtpVerification.is_verified == False,
            )
            .update({OtpVerification.is_verified: True}, synchronize_session=False)
        )

    def create(
        self,
        db: Session,
        entity_type: str,
        entity_id: int,
        phone_number: str,
        purpose: str,
        otp_code: str,
        expires_at: datetime,
    ) -> OtpVerification:
        record = OtpVerification(
            entity_type=entity_type,
            entity_id=entity_id,
            phone_number=phone_number,
            purpose=purpose,
            otp_code=otp_code,
            expires_at=expires_at,
        )
        db.add(record)
        return record

    def find_live(
        self,
        db: Session,
        entity_type: str,
        entity_id: int,
        purpose: str,
        now: datetime,
    ) -> Optional[OtpVerification]:
        return (
            db.query(OtpVerification)
            .filter(
                OtpVerification.entity_type == entity_type,
                OtpVerification.entity_id == entity_id,
                OtpVerification.purpose == purpose,
                OtpVerification.is_verified == False,
                OtpVerification.expires_at > now,
            )
            .order_by(OtpVerification.created_at.desc())
            .first()
        )

    def delete_stale(self, db: Session, now: datetime) -> int:
        """Drop consumed and expired codes; live ones are left alone."""
        deleted = (
            db.query(OtpVerification)
            .filter(or_(OtpVerification.is_verified == True, OtpVerification.expires_at <= now))
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted

    def count_live(self, db: Session, entity_type: str, entity_id: int, purpose: str, now: datetime) -> int:
        return (
            db.query(OtpVerification)
            .filter(
                OtpVerification.entity_type == entity_type,
                OtpVerification.entity_id == entity_id,
                OtpVerification.purpose == purpose,
                OtpVerification.is_verified == False,
                OtpVerification.expires_at > now,
            )
            .count()
        )


otp_verification = CRUDOtpVerification()
