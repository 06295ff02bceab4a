from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ActivityLogRead(BaseModel):
    id: UUID
    contract_id: UUID
    action: str
    details: str = ""
    user_id: Optional[UUID] = None
    user_name: str = "System"
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
