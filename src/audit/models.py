from enum import Enum
from sqlalchemy import Column, String, Text, ForeignKey
from sqlalchemy.orm import relationship
from src.database import Base
from src.shared.models import CreatedMixin


class ActivityAction(str, Enum):
    CREATED = "CREATED"
    ADDED_VERSION = "ADDED_VERSION"
    COMMENTED = "COMMENTED"
    ASSIGNED = "ASSIGNED"
    UPDATED_STATUS = "UPDATED_STATUS"
    FINALIZED = "FINALIZED"
    EDITED = "EDITED"
    EXECUTED = "EXECUTED"


class ActivityLog(Base, CreatedMixin):
    __tablename__ = "activity_logs"

    contract_id = Column(ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(ForeignKey("users.id"), nullable=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=False, default="")

    contract = relationship("src.contracts.models.Contract")
    user = relationship("src.auth.models.User")
