from enum import Enum
from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import relationship
from src.database import Base
from src.shared.models import AuditMixin, CreatedMixin


class ContractStatus(str, Enum):
    DRAFT = "DRAFT"
    REVIEW = "REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    FINALIZED = "FINALIZED"
    EXECUTED = "EXECUTED"


class Contract(Base, AuditMixin):
    __tablename__ = "contracts"

    title = Column(String(200), nullable=False)
    category = Column(String, default="General", nullable=False)
    status = Column(SAEnum(ContractStatus), default=ContractStatus.DRAFT, nullable=False)

    author_id = Column(ForeignKey("users.id"), nullable=False)
    assigned_to_id = Column(ForeignKey("users.id"), nullable=True)

    signature = Column(Text, nullable=True)  # data URL of the drawn signature
    signed_at = Column(DateTime, nullable=True)
    signature_hash = Column(String(64), nullable=True)  # SHA-256 of the signed version

    author = relationship("src.auth.models.User", foreign_keys=[author_id])
    assigned_to = relationship("src.auth.models.User", foreign_keys=[assigned_to_id])

    versions = relationship(
        "ContractVersion",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="desc(ContractVersion.version_number)",
    )


class ContractVersion(Base, CreatedMixin):
    __tablename__ = "contract_versions"
    __table_args__ = (
        UniqueConstraint("contract_id", "version_number", name="uq_contract_versions_number"),
    )

    contract_id = Column(ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    content = Column(Text, nullable=True)  # null when the version is an uploaded file
    file_url = Column(String, nullable=True)
    file_name = Column(String, nullable=True)
    author_id = Column(ForeignKey("users.id"), nullable=False)

    contract = relationship("Contract", back_populates="versions")
    author = relationship("src.auth.models.User")
    comments = relationship(
        "Comment",
        back_populates="version",
        cascade="all, delete-orphan",
        order_by="Comment.created_at",
    )


class Comment(Base, CreatedMixin):
    __tablename__ = "comments"

    version_id = Column(ForeignKey("contract_versions.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)

    version = relationship("ContractVersion", back_populates="comments")
    author = relationship("src.auth.models.User")
