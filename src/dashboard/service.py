from src.contracts.models import ContractStatus
from src.dashboard.schemas import DashboardSummary
from src.storage.base import ContractStore

DASHBOARD_LIST_SIZE = 5


class DashboardService:
    def __init__(self, store: ContractStore):
        self.store = store

    async def summary(self) -> DashboardSummary:
        contracts = await self.store.list_contracts()
        counts = {status.value: 0 for status in ContractStatus}
        for contract in contracts:
            counts[contract.status.value] += 1

        return DashboardSummary(
            total=len(contracts),
            status_counts=counts,
            recent_contracts=contracts[:DASHBOARD_LIST_SIZE],
            in_review=[c for c in contracts if c.status == ContractStatus.REVIEW][:DASHBOARD_LIST_SIZE],
            recent_comments=await self.store.recent_comments(DASHBOARD_LIST_SIZE),
        )
