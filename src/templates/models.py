from sqlalchemy import Column, String, Text
from src.database import Base
from src.shared.models import CreatedMixin


class Template(Base, CreatedMixin):
    """Reusable seed content for new contracts. Copied, never linked."""
    __tablename__ = "templates"

    name = Column(String(100), nullable=False)
    description = Column(String, nullable=True)
    content = Column(Text, nullable=True)  # may contain {{PLACEHOLDER}} tokens
    file_url = Column(String, nullable=True)
