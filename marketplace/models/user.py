from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from marketplace.database import Base

USER_TYPE_USER = "user"
USER_TYPE_PROVIDER = "provider"

STATUS_INACTIVE = 0
STATUS_ACTIVE = 1


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("phone_code", "phone_number", name="uq_users_phone"),)

    id = Column(Integer, primary_key=True, index=True)

    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=True)
    full_name = Column(String, nullable=True)
    email = Column(String, unique=True, index=True, nullable=True)
    user_type = Column(String(20), nullable=False, default=USER_TYPE_USER)

    phone_code = Column(String(8), nullable=False)
    phone_number = Column(String(64), nullable=False)
    password = Column(String, nullable=False)

    gender = Column(Integer, nullable=True)  # 1 male, 2 female, 3 other
    terms_and_condition = Column(Integer, nullable=False, default=1)
    country_id = Column(Integer, ForeignKey("countries.id"), nullable=True)
    city_id = Column(Integer, ForeignKey("cities.id"), nullable=True)

    is_verified = Column(Integer, nullable=False, default=0)
    verified_at = Column(DateTime, nullable=True)
    # 1 active, 0 inactive, 2+ banned
    status = Column(Integer, nullable=False, default=STATUS_ACTIVE)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    @property
    def full_phone_number(self) -> str:
        return f"{self.phone_code}{self.phone_number}"
