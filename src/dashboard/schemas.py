from typing import Dict, List
from pydantic import BaseModel
from src.contracts.schemas import CommentRead, ContractRead


class DashboardSummary(BaseModel):
    total: int
    status_counts: Dict[str, int]
    recent_contracts: List[ContractRead]
    in_review: List[ContractRead]
    recent_comments: List[CommentRead]
