from typing import List
from fastapi import APIRouter, Depends

from src.auth.dependencies import get_current_actor
from src.auth.schemas import UserRead
from src.contracts.service import ContractService
from src.storage.base import ContractStore
from src.storage.factory import get_store

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=List[UserRead])
async def list_users(
    actor: UserRead = Depends(get_current_actor),
    store: ContractStore = Depends(get_store),
):
    """Users a contract can be assigned to."""
    service = ContractService(store, actor)
    return await service.list_users()


@router.get("/me", response_model=UserRead)
async def read_current_user(actor: UserRead = Depends(get_current_actor)):
    return actor
