import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Select, select, update, desc, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.auth.models import User
from src.auth.schemas import UserRead
from src.audit.models import ActivityLog
from src.audit.schemas import ActivityLogRead
from src.contracts.models import Contract, ContractVersion, Comment, ContractStatus
from src.contracts.schemas import CommentRead, ContractRead, VersionRead, DEFAULT_CATEGORY
from src.shared.exceptions import InvalidStateError, StorageError
from src.storage.base import ContractStore, StorageMode
from src.templates.models import Template
from src.templates.schemas import TemplateRead

logger = logging.getLogger(__name__)


def _name_of(user: Optional[User], fallback: str = "Unknown") -> str:
    return user.name if user is not None and user.name else fallback


def _contract_record(contract: Contract, version_count: int) -> ContractRead:
    return ContractRead(
        id=contract.id,
        title=contract.title,
        category=contract.category or DEFAULT_CATEGORY,
        status=contract.status,
        author_id=contract.author_id,
        author_name=_name_of(contract.author),
        assigned_to_id=contract.assigned_to_id,
        assigned_to_name=_name_of(contract.assigned_to) if contract.assigned_to is not None else None,
        version_count=version_count,
        signature=contract.signature,
        signed_at=contract.signed_at,
        signature_hash=contract.signature_hash,
        created_at=contract.created_at,
        updated_at=contract.updated_at,
    )


def _comment_record(comment: Comment, contract_id: UUID) -> CommentRead:
    return CommentRead(
        id=comment.id,
        contract_id=contract_id,
        version_id=comment.version_id,
        author_id=comment.author_id,
        author_name=_name_of(comment.author),
        content=comment.content,
        created_at=comment.created_at,
    )


def _version_record(version: ContractVersion, with_comments: bool = True) -> VersionRead:
    return VersionRead(
        id=version.id,
        contract_id=version.contract_id,
        version_number=version.version_number,
        content=version.content,
        file_url=version.file_url,
        file_name=version.file_name,
        author_id=version.author_id,
        created_at=version.created_at,
        comments=[_comment_record(c, version.contract_id) for c in version.comments] if with_comments else [],
    )


class SQLAlchemyStore(ContractStore):
    """Primary store: one AsyncSession per request, one commit per mutation."""

    mode = StorageMode.RELATIONAL

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _execute(self, stmt):
        if isinstance(stmt, Select):
            # Rows already in the identity map must reflect writes made since they were loaded
            stmt = stmt.execution_options(populate_existing=True)
        try:
            return await self.db.execute(stmt)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Relational store query failed: {e}")
            raise StorageError("Primary store is unavailable") from e

    async def _commit(self, action: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Relational store failed to {action}: {e}")
            raise StorageError(f"Could not {action}") from e

    # --- users ---

    async def get_user(self, user_id: UUID) -> Optional[UserRead]:
        result = await self._execute(select(User).where(User.id == user_id))
        user = result.scalars().first()
        return UserRead.model_validate(user) if user else None

    async def get_user_by_email(self, email: str) -> Optional[UserRead]:
        result = await self._execute(select(User).where(User.email == email))
        user = result.scalars().first()
        return UserRead.model_validate(user) if user else None

    async def get_or_create_user(self, user: UserRead) -> UserRead:
        existing = await self.get_user_by_email(user.email)
        if existing:
            return existing

        self.db.add(User(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            created_at=user.created_at,
        ))
        try:
            await self.db.commit()
        except IntegrityError:
            # Another request inserted the same email first; the unique index decides.
            await self.db.rollback()
            winner = await self.get_user_by_email(user.email)
            if winner is None:
                raise StorageError(f"Could not create user {user.email}")
            return winner
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageError(f"Could not create user {user.email}") from e
        return user

    async def list_users(self) -> List[UserRead]:
        result = await self._execute(select(User).order_by(User.name))
        return [UserRead.model_validate(u) for u in result.scalars().all()]

    # --- contracts ---

    async def _version_counts(self, contract_id: Optional[UUID] = None) -> dict:
        stmt = select(ContractVersion.contract_id, func.count(ContractVersion.id)).group_by(ContractVersion.contract_id)
        if contract_id is not None:
            stmt = stmt.where(ContractVersion.contract_id == contract_id)
        result = await self._execute(stmt)
        return {row[0]: row[1] for row in result.fetchall()}

    def _contract_query(self):
        return select(Contract).options(
            selectinload(Contract.author),
            selectinload(Contract.assigned_to),
        )

    async def list_contracts(self) -> List[ContractRead]:
        result = await self._execute(self._contract_query().order_by(desc(Contract.created_at)))
        counts = await self._version_counts()

        records = []
        for contract in result.scalars().all():
            try:
                records.append(_contract_record(contract, counts.get(contract.id, 0)))
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed contract row {contract.id}: {e}")
        return records

    async def get_contract(self, contract_id: UUID) -> Optional[ContractRead]:
        result = await self._execute(self._contract_query().where(Contract.id == contract_id))
        contract = result.scalars().first()
        if not contract:
            return None
        counts = await self._version_counts(contract_id)
        return _contract_record(contract, counts.get(contract_id, 0))

    async def create_contract(self, contract: ContractRead, first_version: VersionRead) -> None:
        self.db.add(Contract(
            id=contract.id,
            title=contract.title,
            category=contract.category,
            status=contract.status,
            author_id=contract.author_id,
            created_at=contract.created_at,
            updated_at=contract.updated_at,
        ))
        try:
            await self.db.flush()  # contract row first, same transaction
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageError("Could not create contract") from e

        self.db.add(self._version_row(first_version))
        await self._commit("create contract")

    @staticmethod
    def _version_row(version: VersionRead) -> ContractVersion:
        return ContractVersion(
            id=version.id,
            contract_id=version.contract_id,
            version_number=version.version_number,
            content=version.content,
            file_url=version.file_url,
            file_name=version.file_name,
            author_id=version.author_id,
            created_at=version.created_at,
        )

    async def append_version(self, version: VersionRead, status: ContractStatus, updated_at: datetime) -> None:
        try:
            self.db.add(self._version_row(version))
            await self.db.execute(
                update(Contract)
                .where(Contract.id == version.contract_id)
                .values(status=status, updated_at=updated_at)
            )
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise InvalidStateError(
                f"Version {version.version_number} was created concurrently; reload and resubmit"
            ) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageError("Could not create version") from e

    async def update_version_content(
        self, contract_id: UUID, version_id: UUID, content: str, updated_at: datetime
    ) -> None:
        await self._execute(
            update(ContractVersion)
            .where(ContractVersion.id == version_id, ContractVersion.contract_id == contract_id)
            .values(content=content)
        )
        await self._execute(update(Contract).where(Contract.id == contract_id).values(updated_at=updated_at))
        await self._commit("update contract content")

    async def set_status(self, contract_id: UUID, status: ContractStatus, updated_at: datetime) -> None:
        await self._execute(
            update(Contract).where(Contract.id == contract_id).values(status=status, updated_at=updated_at)
        )
        await self._commit("update status")

    async def assign(self, contract_id: UUID, user: UserRead, updated_at: datetime) -> None:
        await self._execute(
            update(Contract).where(Contract.id == contract_id).values(assigned_to_id=user.id, updated_at=updated_at)
        )
        await self._commit("assign contract")

    async def record_signature(
        self, contract_id: UUID, signature: str, signed_at: datetime, signature_hash: str
    ) -> None:
        await self._execute(
            update(Contract)
            .where(Contract.id == contract_id)
            .values(
                status=ContractStatus.EXECUTED,
                signature=signature,
                signed_at=signed_at,
                signature_hash=signature_hash,
                updated_at=signed_at,
            )
        )
        await self._commit("sign contract")

    # --- versions & comments ---

    async def list_versions(self, contract_id: UUID) -> List[VersionRead]:
        result = await self._execute(
            select(ContractVersion)
            .where(ContractVersion.contract_id == contract_id)
            .options(selectinload(ContractVersion.comments).selectinload(Comment.author))
            .order_by(desc(ContractVersion.version_number))
        )
        return [_version_record(v) for v in result.scalars().all()]

    async def get_version(self, contract_id: UUID, version_id: UUID) -> Optional[VersionRead]:
        result = await self._execute(
            select(ContractVersion)
            .where(ContractVersion.id == version_id, ContractVersion.contract_id == contract_id)
            .options(selectinload(ContractVersion.comments).selectinload(Comment.author))
        )
        version = result.scalars().first()
        return _version_record(version) if version else None

    async def insert_comment(self, comment: CommentRead) -> None:
        self.db.add(Comment(
            id=comment.id,
            version_id=comment.version_id,
            author_id=comment.author_id,
            content=comment.content,
            created_at=comment.created_at,
        ))
        await self._commit("add comment")

    async def recent_comments(self, limit: int = 5) -> List[CommentRead]:
        result = await self._execute(
            select(Comment, ContractVersion.contract_id)
            .join(ContractVersion, Comment.version_id == ContractVersion.id)
            .options(selectinload(Comment.author))
            .order_by(desc(Comment.created_at))
            .limit(limit)
        )
        return [_comment_record(comment, contract_id) for comment, contract_id in result.all()]

    # --- templates ---

    async def list_templates(self) -> List[TemplateRead]:
        result = await self._execute(select(Template).order_by(desc(Template.created_at)))
        return [TemplateRead.model_validate(t) for t in result.scalars().all()]

    async def get_template(self, template_id: UUID) -> Optional[TemplateRead]:
        result = await self._execute(select(Template).where(Template.id == template_id))
        template = result.scalars().first()
        return TemplateRead.model_validate(template) if template else None

    async def insert_template(self, template: TemplateRead) -> None:
        self.db.add(Template(**template.model_dump()))
        await self._commit("create template")

    async def delete_template(self, template_id: UUID) -> bool:
        result = await self._execute(select(Template).where(Template.id == template_id))
        template = result.scalars().first()
        if not template:
            return False
        await self.db.delete(template)
        await self._commit("delete template")
        return True

    # --- activity ---

    async def insert_activity(self, log: ActivityLogRead) -> None:
        self.db.add(ActivityLog(
            id=log.id,
            contract_id=log.contract_id,
            user_id=log.user_id,
            action=log.action,
            details=log.details,
            created_at=log.created_at,
        ))
        await self._commit("write activity log")

    async def list_activity(self, contract_id: UUID) -> List[ActivityLogRead]:
        result = await self._execute(
            select(ActivityLog)
            .where(ActivityLog.contract_id == contract_id)
            .options(selectinload(ActivityLog.user))
            .order_by(desc(ActivityLog.created_at))
        )
        return [
            ActivityLogRead(
                id=log.id,
                contract_id=log.contract_id,
                action=log.action,
                details=log.details or "",
                user_id=log.user_id,
                user_name=_name_of(log.user, "System"),
                created_at=log.created_at,
            )
            for log in result.scalars().all()
        ]
