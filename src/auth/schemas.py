from datetime import datetime
from uuid import UUID
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr
from src.auth.models import UserRole


class UserRead(BaseModel):
    id: UUID
    email: EmailStr
    name: Optional[str] = None
    role: UserRole = UserRole.USER
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def display_name(self) -> str:
        return self.name or "Unknown"
