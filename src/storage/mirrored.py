import logging
from collections import Counter
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from src.auth.schemas import UserRead
from src.audit.schemas import ActivityLogRead
from src.contracts.models import ContractStatus
from src.contracts.schemas import CommentRead, ContractRead, VersionRead
from src.storage.base import ContractStore, StorageMode
from src.templates.schemas import TemplateRead

logger = logging.getLogger(__name__)

# Process-wide count of failed mirror writes per store operation, shown on /health
mirror_failures: Counter = Counter()


def mirror_failure_counts() -> dict:
    return dict(mirror_failures)


class MirroredStore(ContractStore):
    """
    Primary store is the source of truth; every write is replayed on the secondary.

    Reads only touch the primary. A failed primary write propagates. A failed
    secondary write is logged, counted and kept as a warning for the caller to
    drain; the primary write is never undone.
    """

    mode = StorageMode.MIRRORED

    def __init__(self, primary: ContractStore, secondary: ContractStore):
        self.primary = primary
        self.secondary = secondary
        self._warnings: List[str] = []

    def drain_warnings(self) -> List[str]:
        warnings, self._warnings = self._warnings, []
        return warnings

    async def _mirror(self, operation: str, *args) -> None:
        try:
            await getattr(self.secondary, operation)(*args)
        except Exception as e:
            mirror_failures[operation] += 1
            logger.warning(f"Mirror write '{operation}' failed, secondary store is behind: {e}", exc_info=True)
            self._warnings.append(f"Mirror write '{operation}' failed: {e}")

    # --- users ---

    async def get_user(self, user_id: UUID) -> Optional[UserRead]:
        return await self.primary.get_user(user_id)

    async def get_user_by_email(self, email: str) -> Optional[UserRead]:
        return await self.primary.get_user_by_email(email)

    async def get_or_create_user(self, user: UserRead) -> UserRead:
        # Runs on every request for the acting user; only a new user is mirrored
        existing = await self.primary.get_user_by_email(user.email)
        if existing:
            return existing
        stored = await self.primary.get_or_create_user(user)
        await self._mirror("get_or_create_user", stored)
        return stored

    async def list_users(self) -> List[UserRead]:
        return await self.primary.list_users()

    # --- contracts ---

    async def list_contracts(self) -> List[ContractRead]:
        return await self.primary.list_contracts()

    async def get_contract(self, contract_id: UUID) -> Optional[ContractRead]:
        return await self.primary.get_contract(contract_id)

    async def create_contract(self, contract: ContractRead, first_version: VersionRead) -> None:
        await self.primary.create_contract(contract, first_version)
        await self._mirror("create_contract", contract, first_version)

    async def append_version(self, version: VersionRead, status: ContractStatus, updated_at: datetime) -> None:
        await self.primary.append_version(version, status, updated_at)
        await self._mirror("append_version", version, status, updated_at)

    async def update_version_content(
        self, contract_id: UUID, version_id: UUID, content: str, updated_at: datetime
    ) -> None:
        await self.primary.update_version_content(contract_id, version_id, content, updated_at)
        await self._mirror("update_version_content", contract_id, version_id, content, updated_at)

    async def set_status(self, contract_id: UUID, status: ContractStatus, updated_at: datetime) -> None:
        await self.primary.set_status(contract_id, status, updated_at)
        await self._mirror("set_status", contract_id, status, updated_at)

    async def assign(self, contract_id: UUID, user: UserRead, updated_at: datetime) -> None:
        await self.primary.assign(contract_id, user, updated_at)
        await self._mirror("assign", contract_id, user, updated_at)

    async def record_signature(
        self, contract_id: UUID, signature: str, signed_at: datetime, signature_hash: str
    ) -> None:
        await self.primary.record_signature(contract_id, signature, signed_at, signature_hash)
        await self._mirror("record_signature", contract_id, signature, signed_at, signature_hash)

    # --- versions & comments ---

    async def list_versions(self, contract_id: UUID) -> List[VersionRead]:
        return await self.primary.list_versions(contract_id)

    async def get_version(self, contract_id: UUID, version_id: UUID) -> Optional[VersionRead]:
        return await self.primary.get_version(contract_id, version_id)

    async def insert_comment(self, comment: CommentRead) -> None:
        await self.primary.insert_comment(comment)
        await self._mirror("insert_comment", comment)

    async def recent_comments(self, limit: int = 5) -> List[CommentRead]:
        return await self.primary.recent_comments(limit)

    # --- templates ---

    async def list_templates(self) -> List[TemplateRead]:
        return await self.primary.list_templates()

    async def get_template(self, template_id: UUID) -> Optional[TemplateRead]:
        return await self.primary.get_template(template_id)

    async def insert_template(self, template: TemplateRead) -> None:
        await self.primary.insert_template(template)
        await self._mirror("insert_template", template)

    async def delete_template(self, template_id: UUID) -> bool:
        deleted = await self.primary.delete_template(template_id)
        if deleted:
            await self._mirror("delete_template", template_id)
        return deleted

    # --- activity ---

    async def insert_activity(self, log: ActivityLogRead) -> None:
        await self.primary.insert_activity(log)
        await self._mirror("insert_activity", log)

    async def list_activity(self, contract_id: UUID) -> List[ActivityLogRead]:
        return await self.primary.list_activity(contract_id)
