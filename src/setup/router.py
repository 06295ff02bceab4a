from fastapi import APIRouter

from src.setup.schemas import FirebaseSetupRequest, FirebaseSetupStatus
from src.setup.service import FirebaseSetupService

router = APIRouter(prefix="/setup", tags=["setup"])


@router.get("/firebase", response_model=FirebaseSetupStatus)
async def firebase_status():
    service = FirebaseSetupService()
    return FirebaseSetupStatus(
        configured=service.is_configured(),
        web_config=service.current_web_config(),
        env_file=str(service.env_path),
    )


@router.post("/firebase", response_model=FirebaseSetupStatus)
async def save_firebase_config(body: FirebaseSetupRequest):
    """One-time write of the Firebase environment file. Refused once configured."""
    service = FirebaseSetupService()
    path = service.save(body.web_config, body.service_account)
    return FirebaseSetupStatus(configured=True, web_config=body.web_config, env_file=str(path))
