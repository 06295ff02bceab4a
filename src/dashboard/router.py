from fastapi import APIRouter, Depends

from src.core.cache import ViewCache, get_view_cache
from src.dashboard.schemas import DashboardSummary
from src.dashboard.service import DashboardService
from src.storage.base import ContractStore
from src.storage.factory import get_store

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardSummary)
async def get_dashboard(
    store: ContractStore = Depends(get_store),
    cache: ViewCache = Depends(get_view_cache),
):
    cached = cache.get("/dashboard")
    if cached is not None:
        return cached
    summary = await DashboardService(store).summary()
    cache.set("/dashboard", summary)
    return summary
