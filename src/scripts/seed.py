import asyncio
import logging

from src.auth.models import UserRole
from src.contracts.service import ContractService
from src.core.logging import configure_logging
from src.database import AsyncSessionLocal
from src.storage.factory import build_store

# Import all models so relationships resolve
from src.audit.models import ActivityLog
from src.templates.models import Template

logger = logging.getLogger(__name__)

SEED_USERS = (
    ("admin@example.com", "Admin User", UserRole.ADMIN),
    ("legal@example.com", "Legal Reviewer", UserRole.LEGAL),
)


async def seed_data():
    async with AsyncSessionLocal() as session:
        service = ContractService(build_store(session))
        for email, name, role in SEED_USERS:
            result = await service.get_or_create_user_by_email(email, name, role)
            print(f"User ready: {result.data.email} ({result.data.role.value})")
            for warning in result.warnings:
                logger.warning(warning)
    print("Seeding complete.")

if __name__ == "__main__":
    configure_logging()
    asyncio.run(seed_data())
