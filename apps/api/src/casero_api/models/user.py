from enum import Enum

from sqlalchemy import Column, DateTime, String

from casero_api.core.clock import utcnow
from casero_api.db.base import Base, new_document_id


class UserTypeEnum(str, Enum):
    CUSTOMER = "customer"
    BUSINESS = "business"


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=new_document_id)
    email = Column(String, nullable=False, unique=True, index=True)
    display_name = Column(String, nullable=False, default="")
    user_type = Column(String(length=16), nullable=False, default=UserTypeEnum.CUSTOMER.value)
    profile_image = Column(String, nullable=True)
    push_token = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
