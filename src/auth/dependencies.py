from fastapi import Depends

from src.auth.schemas import UserRead
from src.config import settings
from src.contracts.service import ContractService
from src.storage.base import ContractStore
from src.storage.factory import get_store


async def get_current_actor(store: ContractStore = Depends(get_store)) -> UserRead:
    """
    The user every action is attributed to.

    There is no login yet: the configured admin identity is created on first
    use and returned for every request. Real authentication replaces only
    this dependency.
    """
    service = ContractService(store)
    result = await service.get_or_create_user_by_email(
        settings.DEFAULT_ACTOR_EMAIL, settings.DEFAULT_ACTOR_NAME
    )
    return result.data
