import hashlib
import logging
import uuid
from typing import List, Optional
from uuid import UUID

from src.auth.models import UserRole
from src.auth.schemas import UserRead
from src.audit.logger import ActivityLogger
from src.audit.models import ActivityAction
from src.audit.schemas import ActivityLogRead
from src.contracts.diff import diff_lines
from src.contracts.models import ContractStatus
from src.contracts.schemas import (
    CommentCreate,
    CommentRead,
    ContractCreate,
    ContractRead,
    SignatureReceipt,
    VersionComparison,
    VersionDraft,
    VersionRead,
)
from src.contracts.templating import fill_placeholders
from src.shared.exceptions import InvalidStateError, NotFoundError, ValidationError
from src.shared.models import utcnow
from src.shared.schemas import Persisted
from src.shared.validation import validate_payload
from src.storage.base import ContractStore
from src.templates.schemas import TemplateCreate, TemplateRead

logger = logging.getLogger(__name__)

# Fixed namespace so the same email always maps to the same user id in every store
USER_NAMESPACE = uuid.UUID("6f1d2c3e-8a47-4b5e-9c0d-2e7f4a9b1c58")

# No new versions or content edits once a contract reaches these
LOCKED_STATUSES = (ContractStatus.FINALIZED, ContractStatus.EXECUTED)

STATUS_TRANSITIONS = {
    ContractStatus.DRAFT: [ContractStatus.REVIEW, ContractStatus.APPROVED, ContractStatus.REJECTED],
    ContractStatus.REVIEW: [ContractStatus.DRAFT, ContractStatus.APPROVED, ContractStatus.REJECTED],
    ContractStatus.APPROVED: [ContractStatus.REVIEW, ContractStatus.REJECTED, ContractStatus.FINALIZED],
    ContractStatus.REJECTED: [ContractStatus.DRAFT, ContractStatus.REVIEW],
    ContractStatus.FINALIZED: [],
    ContractStatus.EXECUTED: [],
}


def user_id_for(email: str) -> UUID:
    return uuid.uuid5(USER_NAMESPACE, email.strip().lower())


def signature_digest(contract_id: UUID, version: Optional[VersionRead]) -> str:
    """SHA-256 over the contract id and the signed version's number, content and file."""
    h = hashlib.sha256()
    h.update(str(contract_id).encode())
    if version is not None:
        for part in (str(version.version_number), version.content or "", version.file_url or ""):
            h.update(b"\x1f")
            h.update(part.encode())
    return h.hexdigest()


class ContractService:
    def __init__(self, store: ContractStore, actor: Optional[UserRead] = None):
        self.store = store
        self.actor = actor
        self.activity = ActivityLogger(store)

    def _result(self, data, log_warnings: Optional[List[str]] = None) -> Persisted:
        return Persisted.of(data, self.store.drain_warnings() + list(log_warnings or []))

    async def _author(self, author_id: Optional[UUID]) -> UserRead:
        if author_id is None:
            if self.actor is None:
                raise InvalidStateError("No acting user for this operation")
            return self.actor
        if self.actor is not None and self.actor.id == author_id:
            return self.actor
        user = await self.store.get_user(author_id)
        if not user:
            raise NotFoundError("User", author_id)
        return user

    async def _contract(self, contract_id: UUID) -> ContractRead:
        contract = await self.store.get_contract(contract_id)
        if not contract:
            raise NotFoundError("Contract", contract_id)
        return contract

    def _ensure_editable(self, contract: ContractRead, action: str) -> None:
        if contract.status in LOCKED_STATUSES:
            raise InvalidStateError(f"Cannot {action} a {contract.status.value.lower()} contract")

    async def ensure_editable(self, contract_id: UUID, action: str = "add versions to") -> ContractRead:
        """Fail before any side effect (e.g. an upload) when the contract is missing or locked."""
        contract = await self._contract(contract_id)
        self._ensure_editable(contract, action)
        return contract

    async def resolve_template(self, template_id: Optional[UUID]) -> Optional[TemplateRead]:
        return await self.get_template(template_id) if template_id else None

    # --- users ---

    async def get_or_create_user_by_email(
        self, email: str, default_name: str, role: UserRole = UserRole.ADMIN
    ) -> Persisted[UserRead]:
        candidate = validate_payload(UserRead, {
            "id": user_id_for(email),
            "email": email.strip().lower(),
            "name": default_name,
            "role": role,
            "created_at": utcnow(),
        })
        user = await self.store.get_or_create_user(candidate)
        return self._result(user)

    async def list_users(self) -> List[UserRead]:
        return await self.store.list_users()

    # --- contracts ---

    async def get_contracts(self) -> List[ContractRead]:
        return await self.store.list_contracts()

    async def get_contract_by_id(self, contract_id: UUID) -> ContractRead:
        contract = await self._contract(contract_id)
        versions = await self.store.list_versions(contract_id)
        return contract.model_copy(update={"versions": versions})

    async def _seed_version(
        self, data: ContractCreate, author: UserRead, upload: Optional[VersionDraft]
    ) -> VersionDraft:
        content = data.content
        file_url = file_name = None
        has_upload = upload is not None and bool(upload.file_url)

        # An unknown template is an error even when the upload takes precedence
        template = await self.resolve_template(data.template_id)
        if template is not None and not has_upload:
            content = template.content or ""
            if template.file_url:
                file_url, file_name = template.file_url, f"Template: {template.name}"

        content = fill_placeholders(
            content or "",
            title=data.title,
            author=author.name or "Admin",
            category=data.category,
        )
        if has_upload:
            file_url, file_name = upload.file_url, upload.file_name
        return VersionDraft(content=content, file_url=file_url, file_name=file_name)

    async def create_contract(
        self,
        data: ContractCreate,
        author_id: Optional[UUID] = None,
        upload: Optional[VersionDraft] = None,
    ) -> Persisted[ContractRead]:
        author = await self._author(author_id)
        seed = await self._seed_version(data, author, upload)
        now = utcnow()

        contract = ContractRead(
            id=uuid.uuid4(),
            title=data.title,
            category=data.category,
            status=ContractStatus.DRAFT,
            author_id=author.id,
            author_name=author.display_name,
            version_count=1,
            created_at=now,
            updated_at=now,
        )
        first = VersionRead(
            id=uuid.uuid4(),
            contract_id=contract.id,
            version_number=1,
            content=seed.content,
            file_url=seed.file_url,
            file_name=seed.file_name,
            author_id=author.id,
            created_at=now,
        )
        await self.store.create_contract(contract, first)
        logger.info(f"Created contract {contract.id} '{contract.title}'")

        warnings = await self.activity.log(
            contract.id, ActivityAction.CREATED, f"Contract created under category {contract.category}", author
        )
        return self._result(contract.model_copy(update={"versions": [first]}), warnings)

    async def create_version(
        self, contract_id: UUID, data: VersionDraft, author_id: Optional[UUID] = None
    ) -> Persisted[VersionRead]:
        author = await self._author(author_id)
        contract = await self._contract(contract_id)
        self._ensure_editable(contract, "add versions to")

        existing = await self.store.list_versions(contract_id)
        now = utcnow()
        version = VersionRead(
            id=uuid.uuid4(),
            contract_id=contract_id,
            version_number=len(existing) + 1,
            content=data.content,
            file_url=data.file_url,
            file_name=data.file_name,
            author_id=author.id,
            created_at=now,
        )
        # Any resubmission sends the contract back to review
        await self.store.append_version(version, ContractStatus.REVIEW, now)

        warnings = await self.activity.log(
            contract_id, ActivityAction.ADDED_VERSION, f"New version v{version.version_number} added", author
        )
        return self._result(version, warnings)

    async def get_version(self, contract_id: UUID, version_id: UUID) -> VersionRead:
        version = await self.store.get_version(contract_id, version_id)
        if not version:
            raise NotFoundError("Version", version_id)
        return version

    async def add_comment(
        self, contract_id: UUID, version_id: UUID, content: str, author_id: Optional[UUID] = None
    ) -> Persisted[CommentRead]:
        data = validate_payload(CommentCreate, {"content": content})
        author = await self._author(author_id)
        version = await self.get_version(contract_id, version_id)

        comment = CommentRead(
            id=uuid.uuid4(),
            contract_id=contract_id,
            version_id=version.id,
            author_id=author.id,
            author_name=author.display_name,
            content=data.content,
            created_at=utcnow(),
        )
        await self.store.insert_comment(comment)

        warnings = await self.activity.log(
            contract_id, ActivityAction.COMMENTED, f"Comment added to v{version.version_number}", author
        )
        return self._result(comment, warnings)

    async def update_status(
        self, contract_id: UUID, new_status: ContractStatus, override: bool = False
    ) -> Persisted[ContractRead]:
        if new_status == ContractStatus.EXECUTED:
            raise InvalidStateError("A contract becomes EXECUTED only by being signed")

        contract = await self._contract(contract_id)
        current = contract.status
        if new_status == current:
            return self._result(contract)

        if not override and new_status not in STATUS_TRANSITIONS.get(current, []):
            raise InvalidStateError(f"Invalid transition from {current.value} to {new_status.value}")

        now = utcnow()
        await self.store.set_status(contract_id, new_status, now)

        if new_status == ContractStatus.FINALIZED:
            action, details = ActivityAction.FINALIZED, "Contract finalized and locked for editing"
        else:
            action, details = ActivityAction.UPDATED_STATUS, f"Status changed from {current.value} to {new_status.value}"
        if override:
            details += " (manual override)"
            logger.info(f"Status override on contract {contract_id}: {current.value} -> {new_status.value}")

        warnings = await self.activity.log(contract_id, action, details, self.actor)
        return self._result(contract.model_copy(update={"status": new_status, "updated_at": now}), warnings)

    async def finalize_contract(self, contract_id: UUID) -> Persisted[ContractRead]:
        return await self.update_status(contract_id, ContractStatus.FINALIZED)

    async def assign_contract(self, contract_id: UUID, user_id: UUID) -> Persisted[ContractRead]:
        contract = await self._contract(contract_id)
        assignee = await self.store.get_user(user_id)
        if not assignee:
            raise NotFoundError("User", user_id)

        now = utcnow()
        await self.store.assign(contract_id, assignee, now)

        warnings = await self.activity.log(
            contract_id, ActivityAction.ASSIGNED, f"Contract assigned to {assignee.display_name}", self.actor
        )
        return self._result(
            contract.model_copy(update={
                "assigned_to_id": assignee.id,
                "assigned_to_name": assignee.name,
                "updated_at": now,
            }),
            warnings,
        )

    async def update_contract_content(self, contract_id: UUID, content: str) -> Persisted[VersionRead]:
        """Overwrite the current version's content in place. No new version is created."""
        contract = await self._contract(contract_id)
        self._ensure_editable(contract, "edit")

        versions = await self.store.list_versions(contract_id)
        if not versions:
            raise InvalidStateError(f"Contract {contract_id} has no version to edit")
        current = max(versions, key=lambda v: v.version_number)

        await self.store.update_version_content(contract_id, current.id, content, utcnow())

        warnings = await self.activity.log(
            contract_id, ActivityAction.EDITED, f"Content of v{current.version_number} updated from the editor", self.actor
        )
        return self._result(current.model_copy(update={"content": content}), warnings)

    async def sign_contract(self, contract_id: UUID, signature: str) -> Persisted[SignatureReceipt]:
        if not signature or not signature.strip():
            raise ValidationError([{"field": "signature", "message": "Signature is required"}])

        contract = await self._contract(contract_id)
        if contract.status != ContractStatus.FINALIZED:
            logger.warning(f"Signing contract {contract_id} in status {contract.status.value}, expected FINALIZED")

        versions = await self.store.list_versions(contract_id)
        current = max(versions, key=lambda v: v.version_number) if versions else None
        digest = signature_digest(contract_id, current)
        signed_at = utcnow()

        await self.store.record_signature(contract_id, signature, signed_at, digest)

        warnings = await self.activity.log(
            contract_id,
            ActivityAction.EXECUTED,
            f"Contract signed electronically. Integrity hash: {digest}",
            self.actor,
        )
        receipt = SignatureReceipt(
            contract_id=contract_id,
            status=ContractStatus.EXECUTED,
            signed_at=signed_at,
            signature_hash=digest,
        )
        return self._result(receipt, warnings)

    async def compare_versions(
        self, contract_id: UUID, base_id: Optional[UUID] = None, compared_id: Optional[UUID] = None
    ) -> VersionComparison:
        """Line diff between two versions; defaults to previous vs current."""
        contract = await self.get_contract_by_id(contract_id)
        if len(contract.versions) < 2:
            raise NotFoundError("Second version of contract", contract_id)

        by_id = {v.id: v for v in contract.versions}
        base = by_id.get(base_id) if base_id else contract.versions[1]
        compared = by_id.get(compared_id) if compared_id else contract.versions[0]
        if base is None or compared is None:
            raise NotFoundError("Version", base_id if base is None else compared_id)

        return VersionComparison(
            contract_id=contract_id,
            base_version=base.version_number,
            compared_version=compared.version_number,
            parts=diff_lines(base.content or "", compared.content or ""),
        )

    # --- templates ---

    async def list_templates(self) -> List[TemplateRead]:
        return await self.store.list_templates()

    async def get_template(self, template_id: UUID) -> TemplateRead:
        template = await self.store.get_template(template_id)
        if not template:
            raise NotFoundError("Template", template_id)
        return template

    async def create_template(self, data: TemplateCreate, file_url: Optional[str] = None) -> Persisted[TemplateRead]:
        template = TemplateRead(
            id=uuid.uuid4(),
            name=data.name,
            description=data.description,
            content=data.content,
            file_url=file_url,
            created_at=utcnow(),
        )
        await self.store.insert_template(template)
        return self._result(template)

    async def delete_template(self, template_id: UUID) -> Persisted[UUID]:
        if not await self.store.delete_template(template_id):
            raise NotFoundError("Template", template_id)
        return self._result(template_id)

    # --- activity ---

    async def log_activity(self, contract_id: UUID, action: ActivityAction, details: str) -> List[str]:
        return await self.activity.log(contract_id, action, details, self.actor)

    async def get_activity_logs(self, contract_id: UUID) -> List[ActivityLogRead]:
        await self._contract(contract_id)
        return await self.activity.history(contract_id)
