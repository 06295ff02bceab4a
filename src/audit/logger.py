import logging
import uuid
from typing import List, Optional
from uuid import UUID

from src.auth.schemas import UserRead
from src.audit.models import ActivityAction
from src.audit.schemas import ActivityLogRead
from src.shared.models import utcnow
from src.storage.base import ContractStore

logger = logging.getLogger(__name__)


class ActivityLogger:
    """
    Writes one activity entry per state-changing contract operation.

    A failed write never undoes the operation it describes. It is logged at
    ERROR and handed back as a warning so the caller reports a degraded result.
    """

    def __init__(self, store: ContractStore):
        self.store = store

    async def log(
        self,
        contract_id: UUID,
        action: ActivityAction,
        details: str,
        actor: Optional[UserRead] = None,
    ) -> List[str]:
        entry = ActivityLogRead(
            id=uuid.uuid4(),
            contract_id=contract_id,
            action=action.value,
            details=details,
            user_id=actor.id if actor else None,
            user_name=actor.display_name if actor else "System",
            created_at=utcnow(),
        )
        try:
            await self.store.insert_activity(entry)
        except Exception as e:
            logger.error(f"Activity log write failed for contract {contract_id} ({action.value}): {e}", exc_info=True)
            return [f"Activity log entry '{action.value}' was not recorded"]
        return []

    async def history(self, contract_id: UUID) -> List[ActivityLogRead]:
        return await self.store.list_activity(contract_id)
