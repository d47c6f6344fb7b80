from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from marketplace.models.token import Token


class CRUDToken:
    def create(
        self,
        db: Session,
        token: str,
        jti: str,
        expires_at: datetime,
        subject_type: Optional[str] = None,
        subject_id: Optional[int] = None,
    ) -> Token:
        record = Token(
            token=token,
            jti=jti,
            expires_at=expires_at,
            subject_type=subject_type,
            subject_id=subject_id,
        )
        db.add(record)
        db.commit()
        return record

    def get_by_jti(self, db: Session, jti: str) -> Optional[Token]:
        return db.query(Token).filter(Token.jti == jti).first()

    def delete_by_jti(self, db: Session, jti: str) -> int:
        deleted = db.query(Token).filter(Token.jti == jti).delete(synchronize_session=False)
        db.commit()
        return deleted

    def delete_for_subject(self, db: Session, subject_type: str, subject_id: int) -> int:
        deleted = (
            db.query(Token)
            .filter(Token.subject_type == subject_type, Token.subject_id == subject_id)
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted

    def delete_expired(self, db: Session, now: datetime) -> int:
        deleted = db.query(Token).filter(Token.expires_at <= now).delete(synchronize_session=False)
        db.commit()
        return deleted


token = CRUDToken()
