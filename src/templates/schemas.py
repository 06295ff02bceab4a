from datetime import datetime
from uuid import UUID
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class TemplateCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    description: str = ""
    content: str = ""


class TemplateRead(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    content: Optional[str] = None
    file_url: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
