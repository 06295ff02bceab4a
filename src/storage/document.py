import logging
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from google.api_core.exceptions import AlreadyExists, GoogleAPIError
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from pydantic import ValidationError as PydanticValidationError

from src.auth.models import UserRole
from src.auth.schemas import UserRead
from src.audit.schemas import ActivityLogRead
from src.contracts.models import ContractStatus
from src.contracts.schemas import CommentRead, ContractRead, VersionRead, DEFAULT_CATEGORY
from src.shared.exceptions import InvalidStateError, StorageError
from src.shared.models import utcnow
from src.storage.base import ContractStore, StorageMode
from src.templates.schemas import TemplateRead

logger = logging.getLogger(__name__)

DESCENDING = firestore.Query.DESCENDING

CONTRACTS = "contracts"
VERSIONS = "versions"
# One document per taken version number; create() on it fails if the number is taken
VERSION_NUMBERS = "versionNumbers"
COMMENTS = "comments"
ACTIVITY_LOGS = "activityLogs"
USERS = "users"
TEMPLATES = "templates"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _id(value) -> Optional[str]:
    return str(value) if value is not None else None


@contextmanager
def _guard(action: str):
    try:
        yield
    except GoogleAPIError as e:
        logger.error(f"Document store failed to {action}: {e}")
        raise StorageError(f"Could not {action}") from e


# ---------------------------------------------------------------------------
# Snapshot -> record. Missing fields get defaults so one bad document
# does not take a whole listing down.
# ---------------------------------------------------------------------------

def _contract_from_doc(doc_id: str, data: dict) -> ContractRead:
    now = utcnow()
    return ContractRead(
        id=doc_id,
        title=data.get("title") or "Untitled",
        category=data.get("category") or DEFAULT_CATEGORY,
        status=data.get("status") or ContractStatus.DRAFT,
        author_id=data.get("authorId"),
        author_name=data.get("authorName") or "Unknown",
        assigned_to_id=data.get("assignedToId"),
        assigned_to_name=data.get("assignedToName"),
        version_count=data.get("versionCount") or 1,
        signature=data.get("signature"),
        signed_at=data.get("signedAt"),
        signature_hash=data.get("signatureHash"),
        created_at=data.get("createdAt") or now,
        updated_at=data.get("updatedAt") or data.get("createdAt") or now,
    )


def _version_from_doc(doc_id: str, data: dict, contract_id: UUID, comments: List[CommentRead]) -> VersionRead:
    return VersionRead(
        id=doc_id,
        contract_id=contract_id,
        version_number=data.get("versionNumber"),
        content=data.get("content"),
        file_url=data.get("fileUrl"),
        file_name=data.get("fileName"),
        author_id=data.get("authorId"),
        created_at=data.get("createdAt") or utcnow(),
        comments=comments,
    )


def _comment_from_doc(doc_id: str, data: dict) -> CommentRead:
    return CommentRead(
        id=doc_id,
        contract_id=data.get("contractId"),
        version_id=data.get("versionId"),
        author_id=data.get("authorId"),
        author_name=data.get("authorName") or "Unknown",
        content=data.get("content") or "",
        created_at=data.get("createdAt") or utcnow(),
    )


def _user_from_doc(doc_id: str, data: dict) -> UserRead:
    return UserRead(
        id=doc_id,
        email=data.get("email"),
        name=data.get("name"),
        role=data.get("role") or UserRole.USER,
        created_at=data.get("createdAt") or utcnow(),
    )


def _template_from_doc(doc_id: str, data: dict) -> TemplateRead:
    return TemplateRead(
        id=doc_id,
        name=data.get("name") or "Untitled",
        description=data.get("description"),
        content=data.get("content"),
        file_url=data.get("fileUrl"),
        created_at=data.get("createdAt") or utcnow(),
    )


def _activity_from_doc(doc_id: str, data: dict, contract_id: UUID) -> ActivityLogRead:
    return ActivityLogRead(
        id=doc_id,
        contract_id=contract_id,
        action=data.get("action") or "",
        details=data.get("details") or "",
        user_id=data.get("userId"),
        user_name=data.get("userName") or "System",
        created_at=data.get("createdAt") or utcnow(),
    )


def _user_doc(user: UserRead) -> dict:
    return {
        "email": user.email,
        "name": user.name,
        "role": user.role.value,
        "createdAt": _iso(user.created_at),
    }


def _version_doc(version: VersionRead) -> dict:
    return {
        "contractId": _id(version.contract_id),
        "versionNumber": version.version_number,
        "content": version.content,
        "fileUrl": version.file_url,
        "fileName": version.file_name,
        "authorId": _id(version.author_id),
        "createdAt": _iso(version.created_at),
    }


class FirestoreStore(ContractStore):
    """
    Secondary store on Cloud Firestore.

    contracts/{id} holds the flattened contract plus versionCount; versions,
    their comments and the activity log live in subcollections. Author and
    actor names are copied in at write time and never refreshed.
    """

    mode = StorageMode.DOCUMENT

    def __init__(self, client: firestore.AsyncClient):
        self.client = client

    def _contract_ref(self, contract_id):
        return self.client.collection(CONTRACTS).document(str(contract_id))

    def _version_ref(self, contract_id, version_id):
        return self._contract_ref(contract_id).collection(VERSIONS).document(str(version_id))

    # --- users ---

    async def get_user(self, user_id: UUID) -> Optional[UserRead]:
        with _guard("read user"):
            snapshot = await self.client.collection(USERS).document(str(user_id)).get()
        if not snapshot.exists:
            return None
        return _user_from_doc(snapshot.id, snapshot.to_dict() or {})

    async def get_user_by_email(self, email: str) -> Optional[UserRead]:
        query = self.client.collection(USERS).where(filter=FieldFilter("email", "==", email)).limit(1)
        with _guard("query users"):
            async for snapshot in query.stream():
                return _user_from_doc(snapshot.id, snapshot.to_dict() or {})
        return None

    async def get_or_create_user(self, user: UserRead) -> UserRead:
        existing = await self.get_user_by_email(user.email)
        if existing:
            return existing

        ref = self.client.collection(USERS).document(str(user.id))
        with _guard("create user"):
            try:
                # create() fails if the document exists, so two racing calls yield one user
                await ref.create(_user_doc(user))
            except AlreadyExists:
                snapshot = await ref.get()
                return _user_from_doc(snapshot.id, snapshot.to_dict() or {})
        return user

    async def list_users(self) -> List[UserRead]:
        users = []
        with _guard("list users"):
            async for snapshot in self.client.collection(USERS).stream():
                try:
                    users.append(_user_from_doc(snapshot.id, snapshot.to_dict() or {}))
                except PydanticValidationError as e:
                    logger.warning(f"Skipping malformed user document {snapshot.id}: {e}")
        return sorted(users, key=lambda u: (u.name or "").lower())

    # --- contracts ---

    async def list_contracts(self) -> List[ContractRead]:
        query = self.client.collection(CONTRACTS).order_by("createdAt", direction=DESCENDING)
        contracts = []
        with _guard("list contracts"):
            async for snapshot in query.stream():
                try:
                    contracts.append(_contract_from_doc(snapshot.id, snapshot.to_dict() or {}))
                except PydanticValidationError as e:
                    logger.warning(f"Skipping malformed contract document {snapshot.id}: {e}")
        return contracts

    async def get_contract(self, contract_id: UUID) -> Optional[ContractRead]:
        with _guard("read contract"):
            snapshot = await self._contract_ref(contract_id).get()
        if not snapshot.exists:
            return None
        try:
            return _contract_from_doc(snapshot.id, snapshot.to_dict() or {})
        except PydanticValidationError as e:
            raise StorageError(f"Contract document {contract_id} is malformed") from e

    async def create_contract(self, contract: ContractRead, first_version: VersionRead) -> None:
        contract_ref = self._contract_ref(contract.id)
        batch = self.client.batch()
        batch.set(contract_ref, {
            "title": contract.title,
            "status": contract.status.value,
            "category": contract.category,
            "authorId": _id(contract.author_id),
            "authorName": contract.author_name,
            "assignedToId": None,
            "versionCount": 1,
            "createdAt": _iso(contract.created_at),
            "updatedAt": _iso(contract.updated_at),
        })
        batch.create(self._version_number_ref(first_version), {"versionId": _id(first_version.id)})
        batch.set(self._version_ref(contract.id, first_version.id), _version_doc(first_version))
        with _guard("create contract"):
            await batch.commit()

    def _version_number_ref(self, version: VersionRead):
        return (
            self._contract_ref(version.contract_id)
            .collection(VERSION_NUMBERS)
            .document(str(version.version_number))
        )

    async def append_version(self, version: VersionRead, status: ContractStatus, updated_at: datetime) -> None:
        batch = self.client.batch()
        batch.create(self._version_number_ref(version), {"versionId": _id(version.id)})
        batch.set(self._version_ref(version.contract_id, version.id), _version_doc(version))
        batch.update(self._contract_ref(version.contract_id), {
            "status": status.value,
            "versionCount": version.version_number,
            "updatedAt": _iso(updated_at),
        })
        with _guard("create version"):
            try:
                await batch.commit()
            except AlreadyExists as e:
                raise InvalidStateError(
                    f"Version {version.version_number} was created concurrently; reload and resubmit"
                ) from e

    async def update_version_content(
        self, contract_id: UUID, version_id: UUID, content: str, updated_at: datetime
    ) -> None:
        batch = self.client.batch()
        batch.update(self._version_ref(contract_id, version_id), {"content": content})
        batch.update(self._contract_ref(contract_id), {"updatedAt": _iso(updated_at)})
        with _guard("update contract content"):
            await batch.commit()

    async def set_status(self, contract_id: UUID, status: ContractStatus, updated_at: datetime) -> None:
        with _guard("update status"):
            await self._contract_ref(contract_id).update({"status": status.value, "updatedAt": _iso(updated_at)})

    async def assign(self, contract_id: UUID, user: UserRead, updated_at: datetime) -> None:
        with _guard("assign contract"):
            await self._contract_ref(contract_id).update({
                "assignedToId": _id(user.id),
                "assignedToName": user.name,
                "updatedAt": _iso(updated_at),
            })

    async def record_signature(
        self, contract_id: UUID, signature: str, signed_at: datetime, signature_hash: str
    ) -> None:
        with _guard("sign contract"):
            await self._contract_ref(contract_id).update({
                "status": ContractStatus.EXECUTED.value,
                "signature": signature,
                "signedAt": _iso(signed_at),
                "signatureHash": signature_hash,
                "updatedAt": _iso(signed_at),
            })

    # --- versions & comments ---

    async def _comments_of(self, version_ref) -> List[CommentRead]:
        comments = []
        async for snapshot in version_ref.collection(COMMENTS).order_by("createdAt").stream():
            try:
                comments.append(_comment_from_doc(snapshot.id, snapshot.to_dict() or {}))
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed comment document {snapshot.id}: {e}")
        return comments

    async def list_versions(self, contract_id: UUID) -> List[VersionRead]:
        query = self._contract_ref(contract_id).collection(VERSIONS).order_by("versionNumber", direction=DESCENDING)
        versions = []
        with _guard("list versions"):
            async for snapshot in query.stream():
                comments = await self._comments_of(snapshot.reference)
                try:
                    versions.append(_version_from_doc(snapshot.id, snapshot.to_dict() or {}, contract_id, comments))
                except PydanticValidationError as e:
                    logger.warning(f"Skipping malformed version document {snapshot.id}: {e}")
        return versions

    async def get_version(self, contract_id: UUID, version_id: UUID) -> Optional[VersionRead]:
        ref = self._version_ref(contract_id, version_id)
        with _guard("read version"):
            snapshot = await ref.get()
            if not snapshot.exists:
                return None
            comments = await self._comments_of(ref)
        try:
            return _version_from_doc(snapshot.id, snapshot.to_dict() or {}, contract_id, comments)
        except PydanticValidationError as e:
            raise StorageError(f"Version document {version_id} is malformed") from e

    async def insert_comment(self, comment: CommentRead) -> None:
        ref = self._version_ref(comment.contract_id, comment.version_id).collection(COMMENTS).document(str(comment.id))
        with _guard("add comment"):
            await ref.set({
                "contractId": _id(comment.contract_id),
                "versionId": _id(comment.version_id),
                "authorId": _id(comment.author_id),
                "authorName": comment.author_name,
                "content": comment.content,
                "createdAt": _iso(comment.created_at),
            })

    async def recent_comments(self, limit: int = 5) -> List[CommentRead]:
        query = self.client.collection_group(COMMENTS).order_by("createdAt", direction=DESCENDING).limit(limit)
        comments = []
        with _guard("list recent comments"):
            async for snapshot in query.stream():
                try:
                    comments.append(_comment_from_doc(snapshot.id, snapshot.to_dict() or {}))
                except PydanticValidationError as e:
                    logger.warning(f"Skipping malformed comment document {snapshot.id}: {e}")
        return comments

    # --- templates ---

    async def list_templates(self) -> List[TemplateRead]:
        query = self.client.collection(TEMPLATES).order_by("createdAt", direction=DESCENDING)
        templates = []
        with _guard("list templates"):
            async for snapshot in query.stream():
                try:
                    templates.append(_template_from_doc(snapshot.id, snapshot.to_dict() or {}))
                except PydanticValidationError as e:
                    logger.warning(f"Skipping malformed template document {snapshot.id}: {e}")
        return templates

    async def get_template(self, template_id: UUID) -> Optional[TemplateRead]:
        with _guard("read template"):
            snapshot = await self.client.collection(TEMPLATES).document(str(template_id)).get()
        if not snapshot.exists:
            return None
        try:
            return _template_from_doc(snapshot.id, snapshot.to_dict() or {})
        except PydanticValidationError as e:
            raise StorageError(f"Template document {template_id} is malformed") from e

    async def insert_template(self, template: TemplateRead) -> None:
        with _guard("create template"):
            await self.client.collection(TEMPLATES).document(str(template.id)).set({
                "name": template.name,
                "description": template.description,
                "content": template.content,
                "fileUrl": template.file_url,
                "createdAt": _iso(template.created_at),
            })

    async def delete_template(self, template_id: UUID) -> bool:
        ref = self.client.collection(TEMPLATES).document(str(template_id))
        with _guard("delete template"):
            snapshot = await ref.get()
            if not snapshot.exists:
                return False
            await ref.delete()
        return True

    # --- activity ---

    async def insert_activity(self, log: ActivityLogRead) -> None:
        ref = self._contract_ref(log.contract_id).collection(ACTIVITY_LOGS).document(str(log.id))
        with _guard("write activity log"):
            await ref.set({
                "contractId": _id(log.contract_id),
                "action": log.action,
                "details": log.details,
                "userId": _id(log.user_id),
                "userName": log.user_name,
                "createdAt": _iso(log.created_at),
            })

    async def list_activity(self, contract_id: UUID) -> List[ActivityLogRead]:
        query = self._contract_ref(contract_id).collection(ACTIVITY_LOGS).order_by("createdAt", direction=DESCENDING)
        logs = []
        with _guard("list activity"):
            async for snapshot in query.stream():
                try:
                    logs.append(_activity_from_doc(snapshot.id, snapshot.to_dict() or {}, contract_id))
                except PydanticValidationError as e:
                    logger.warning(f"Skipping malformed activity document {snapshot.id}: {e}")
        return logs
