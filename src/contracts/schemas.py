from datetime import datetime
from uuid import UUID
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from src.contracts.models import ContractStatus

COMMENT_MAX_LENGTH = 2000
TITLE_MAX_LENGTH = 200
DEFAULT_CATEGORY = "General"

# Statuses a reviewer may set by hand; EXECUTED only comes from signing.
REVIEWABLE_STATUSES = (
    ContractStatus.DRAFT,
    ContractStatus.REVIEW,
    ContractStatus.APPROVED,
    ContractStatus.REJECTED,
    ContractStatus.FINALIZED,
)


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class ContractCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    category: str = DEFAULT_CATEGORY
    content: str = ""
    template_id: Optional[UUID] = None

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, value):
        return _blank_to_none(value) or DEFAULT_CATEGORY

    @field_validator("template_id", mode="before")
    @classmethod
    def blank_template(cls, value):
        return _blank_to_none(value)


class VersionCreate(BaseModel):
    content: str = ""


class VersionDraft(BaseModel):
    """Content of a version about to be written, before it gets an id and number."""
    content: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None


class CommentCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    content: str = Field(min_length=1, max_length=COMMENT_MAX_LENGTH)


class StatusUpdate(BaseModel):
    status: ContractStatus
    override: bool = False

    @field_validator("status")
    @classmethod
    def reviewable(cls, value: ContractStatus) -> ContractStatus:
        if value not in REVIEWABLE_STATUSES:
            raise ValueError(f"Status must be one of {', '.join(s.value for s in REVIEWABLE_STATUSES)}")
        return value


class AssignRequest(BaseModel):
    user_id: UUID


class ContentUpdate(BaseModel):
    content: str


class SignatureSubmit(BaseModel):
    signature: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Records (what stores return)
# ---------------------------------------------------------------------------

class CommentRead(BaseModel):
    id: UUID
    contract_id: UUID
    version_id: UUID
    author_id: UUID
    author_name: str = "Unknown"
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VersionRead(BaseModel):
    id: UUID
    contract_id: UUID
    version_number: int
    content: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    author_id: UUID
    created_at: datetime
    comments: List[CommentRead] = []

    model_config = ConfigDict(from_attributes=True)


class ContractRead(BaseModel):
    id: UUID
    title: str
    category: str = DEFAULT_CATEGORY
    status: ContractStatus = ContractStatus.DRAFT
    author_id: UUID
    author_name: str = "Unknown"
    assigned_to_id: Optional[UUID] = None
    assigned_to_name: Optional[str] = None
    version_count: int = 0
    signature: Optional[str] = None
    signed_at: Optional[datetime] = None
    signature_hash: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    versions: List[VersionRead] = []

    model_config = ConfigDict(from_attributes=True)

    @property
    def current_version(self) -> Optional[VersionRead]:
        if not self.versions:
            return None
        return max(self.versions, key=lambda v: v.version_number)


class SignatureReceipt(BaseModel):
    contract_id: UUID
    status: ContractStatus
    signed_at: datetime
    signature_hash: str


class DiffPart(BaseModel):
    value: str
    added: bool = False
    removed: bool = False


class VersionComparison(BaseModel):
    contract_id: UUID
    base_version: int
    compared_version: int
    parts: List[DiffPart]


class RenderedVersion(BaseModel):
    version_id: UUID
    version_number: int
    is_latest: bool
    source: str  # "content" | "file" | "empty"
    html: str
