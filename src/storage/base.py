from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from src.auth.schemas import UserRead
from src.audit.schemas import ActivityLogRead
from src.contracts.models import ContractStatus
from src.contracts.schemas import CommentRead, ContractRead, VersionRead
from src.templates.schemas import TemplateRead


class StorageMode(str, Enum):
    RELATIONAL = "relational"
    DOCUMENT = "document"
    MIRRORED = "mirrored"


class ContractStore(ABC):
    """
    Persistence boundary for contracts and everything they own.

    Records arrive fully formed (ids and timestamps assigned by the service),
    so the same write can be replayed on another store under the same identity.
    Reads return contracts without versions; versions come from list_versions.
    """

    mode: StorageMode

    # --- users ---

    @abstractmethod
    async def get_user(self, user_id: UUID) -> Optional[UserRead]: ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[UserRead]: ...

    @abstractmethod
    async def get_or_create_user(self, user: UserRead) -> UserRead:
        """Insert `user` unless one with the same email exists; return the stored one."""

    @abstractmethod
    async def list_users(self) -> List[UserRead]: ...

    # --- contracts ---

    @abstractmethod
    async def list_contracts(self) -> List[ContractRead]:
        """All contracts, newest first."""

    @abstractmethod
    async def get_contract(self, contract_id: UUID) -> Optional[ContractRead]: ...

    @abstractmethod
    async def create_contract(self, contract: ContractRead, first_version: VersionRead) -> None:
        """Write a contract and its first version together or not at all."""

    @abstractmethod
    async def append_version(self, version: VersionRead, status: ContractStatus, updated_at: datetime) -> None: ...

    @abstractmethod
    async def update_version_content(
        self, contract_id: UUID, version_id: UUID, content: str, updated_at: datetime
    ) -> None: ...

    @abstractmethod
    async def set_status(self, contract_id: UUID, status: ContractStatus, updated_at: datetime) -> None: ...

    @abstractmethod
    async def assign(self, contract_id: UUID, user: UserRead, updated_at: datetime) -> None: ...

    @abstractmethod
    async def record_signature(
        self, contract_id: UUID, signature: str, signed_at: datetime, signature_hash: str
    ) -> None:
        """Store the signature and move the contract to EXECUTED."""

    # --- versions & comments ---

    @abstractmethod
    async def list_versions(self, contract_id: UUID) -> List[VersionRead]:
        """Versions newest first, each carrying its own comments oldest first."""

    @abstractmethod
    async def get_version(self, contract_id: UUID, version_id: UUID) -> Optional[VersionRead]: ...

    @abstractmethod
    async def insert_comment(self, comment: CommentRead) -> None: ...

    @abstractmethod
    async def recent_comments(self, limit: int = 5) -> List[CommentRead]: ...

    # --- templates ---

    @abstractmethod
    async def list_templates(self) -> List[TemplateRead]: ...

    @abstractmethod
    async def get_template(self, template_id: UUID) -> Optional[TemplateRead]: ...

    @abstractmethod
    async def insert_template(self, template: TemplateRead) -> None: ...

    @abstractmethod
    async def delete_template(self, template_id: UUID) -> bool:
        """Return False when there was nothing to delete."""

    # --- activity ---

    @abstractmethod
    async def insert_activity(self, log: ActivityLogRead) -> None: ...

    @abstractmethod
    async def list_activity(self, contract_id: UUID) -> List[ActivityLogRead]:
        """Activity for one contract, newest first."""

    def drain_warnings(self) -> List[str]:
        """Degraded-mirror warnings collected since the last call."""
        return []
