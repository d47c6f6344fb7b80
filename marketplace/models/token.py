from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from marketplace.database import Base


class Token(Base):
    """Ledger of issued access tokens; deleting a row revokes the token."""

    __tablename__ = "tokens"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(Text, nullable=False)
    jti = Column(String(36), unique=True, nullable=False, index=True)
    subject_type = Column(String(32), nullable=True)
    subject_id = Column(Integer, nullable=True, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
