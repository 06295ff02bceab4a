from enum import Enum
from sqlalchemy import Column, String, Enum as SAEnum
from src.database import Base
from src.shared.models import CreatedMixin


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    LEGAL = "LEGAL"
    USER = "USER"


class User(Base, CreatedMixin):
    __tablename__ = "users"

    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    role = Column(SAEnum(UserRole), default=UserRole.USER, nullable=False)
