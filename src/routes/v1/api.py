from fastapi import APIRouter

from src.auth.router import router as users_router
from src.contracts.router import router as contracts_router
from src.dashboard.router import router as dashboard_router
from src.setup.router import router as setup_router
from src.templates.router import router as templates_router

api_router = APIRouter()

api_router.include_router(contracts_router)
api_router.include_router(templates_router)
api_router.include_router(users_router)
api_router.include_router(dashboard_router)
api_router.include_router(setup_router)
