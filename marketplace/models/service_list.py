from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from marketplace.database import Base


class ServiceList(Base):
    __tablename__ = "service_lists"

    id = Column(Integer, primary_key=True, index=True)
    service_provider_id = Column(
        Integer,
        ForeignKey("service_providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    sub_category_id = Column(Integer, ForeignKey("sub_categories.id"), nullable=True)
    title = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    image = Column(String, nullable=True)
    status = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    service_provider = relationship("ServiceProvider", back_populates="services")
    service = relationship("Service")
    category = relationship("Category")
    sub_category = relationship("SubCategory")
