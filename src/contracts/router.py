from typing import List, Optional, Tuple
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile

from src.auth.dependencies import get_current_actor
from src.auth.schemas import UserRead
from src.audit.schemas import ActivityLogRead
from src.contracts.schemas import (
    AssignRequest,
    CommentCreate,
    CommentRead,
    ContentUpdate,
    ContractCreate,
    ContractRead,
    RenderedVersion,
    SignatureReceipt,
    SignatureSubmit,
    StatusUpdate,
    VersionComparison,
    VersionCreate,
    VersionDraft,
    VersionRead,
)
from src.contracts.service import ContractService
from src.core.cache import ViewCache, get_view_cache
from src.ingestion.service import DocumentRenderer
from src.shared.exceptions import ContractOSError
from src.shared.schemas import ActionResponse, Persisted
from src.shared.validation import parse_form, validate_payload
from src.storage.base import ContractStore
from src.storage.factory import get_store
from src.uploads.service import FileStorage, get_file_storage

router = APIRouter(prefix="/contracts", tags=["contracts"])


async def read_submission(request: Request) -> Tuple[dict, Optional[UploadFile]]:
    """Text fields and the optional `file` part of a form post (JSON bodies carry no file)."""
    if request.headers.get("content-type", "").startswith("application/json"):
        body = await request.json()
        return (body if isinstance(body, dict) else {}), None

    form = await request.form()
    upload = form.get("file")
    return dict(form), upload if isinstance(upload, UploadFile) else None


def revalidate(cache: ViewCache, contract_id: Optional[UUID] = None) -> None:
    paths = ["/contracts", "/dashboard"]
    if contract_id is not None:
        paths.append(f"/contracts/{contract_id}")
    cache.invalidate(*paths)


def action_response(result: Persisted, redirect_to: str) -> ActionResponse:
    return ActionResponse(
        data=result.data,
        outcome=result.outcome,
        warnings=result.warnings,
        redirect_to=redirect_to,
    )


@router.get("", response_model=List[ContractRead])
async def list_contracts(
    store: ContractStore = Depends(get_store),
    cache: ViewCache = Depends(get_view_cache),
):
    cached = cache.get("/contracts")
    if cached is not None:
        return cached
    contracts = await ContractService(store).get_contracts()
    cache.set("/contracts", contracts)
    return contracts


@router.post("", response_model=ActionResponse[ContractRead])
async def create_contract(
    request: Request,
    actor: UserRead = Depends(get_current_actor),
    store: ContractStore = Depends(get_store),
    files: FileStorage = Depends(get_file_storage),
    cache: ViewCache = Depends(get_view_cache),
):
    fields, upload = await read_submission(request)
    data = parse_form(ContractCreate, fields)

    service = ContractService(store, actor)
    await service.resolve_template(data.template_id)
    stored = await files.save(upload)
    try:
        result = await service.create_contract(data, actor.id, stored)
    except ContractOSError:
        await files.discard(stored)
        raise

    revalidate(cache, result.data.id)
    return action_response(result, f"/contracts/{result.data.id}")


@router.get("/{contract_id}", response_model=ContractRead)
async def get_contract(
    contract_id: UUID,
    store: ContractStore = Depends(get_store),
    cache: ViewCache = Depends(get_view_cache),
):
    path = f"/contracts/{contract_id}"
    cached = cache.get(path)
    if cached is not None:
        return cached
    contract = await ContractService(store).get_contract_by_id(contract_id)
    cache.set(path, contract)
    return contract


@router.get("/{contract_id}/activity", response_model=List[ActivityLogRead])
async def list_activity(contract_id: UUID, store: ContractStore = Depends(get_store)):
    return await ContractService(store).get_activity_logs(contract_id)


@router.post("/{contract_id}/versions", response_model=ActionResponse[VersionRead])
async def create_version(
    contract_id: UUID,
    request: Request,
    actor: UserRead = Depends(get_current_actor),
    store: ContractStore = Depends(get_store),
    files: FileStorage = Depends(get_file_storage),
    cache: ViewCache = Depends(get_view_cache),
):
    fields, upload = await read_submission(request)
    data = parse_form(VersionCreate, fields)

    service = ContractService(store, actor)
    # Reject missing or locked contracts before anything is uploaded
    await service.ensure_editable(contract_id)
    stored = await files.save(upload)

    draft = VersionDraft(
        content=data.content,
        file_url=stored.file_url if stored else None,
        file_name=stored.file_name if stored else None,
    )
    try:
        result = await service.create_version(contract_id, draft, actor.id)
    except ContractOSError:
        await files.discard(stored)
        raise

    revalidate(cache, contract_id)
    return action_response(result, f"/contracts/{contract_id}")


@router.post("/{contract_id}/versions/{version_id}/comments", response_model=ActionResponse[CommentRead])
async def add_comment(
    contract_id: UUID,
    version_id: UUID,
    request: Request,
    actor: UserRead = Depends(get_current_actor),
    store: ContractStore = Depends(get_store),
    cache: ViewCache = Depends(get_view_cache),
):
    fields, _ = await read_submission(request)
    data = parse_form(CommentCreate, fields)

    service = ContractService(store, actor)
    result = await service.add_comment(contract_id, version_id, data.content, actor.id)

    revalidate(cache, contract_id)
    return action_response(result, f"/contracts/{contract_id}")


@router.get("/{contract_id}/versions/{version_id}/render", response_model=RenderedVersion)
async def render_version(
    contract_id: UUID,
    version_id: UUID,
    store: ContractStore = Depends(get_store),
    files: FileStorage = Depends(get_file_storage),
):
    service = ContractService(store)
    version = await service.get_version(contract_id, version_id)
    latest = (await service.get_contract_by_id(contract_id)).current_version
    return await DocumentRenderer(files).render(version, latest is not None and latest.id == version.id)


@router.get("/{contract_id}/compare", response_model=VersionComparison)
async def compare_versions(
    contract_id: UUID,
    v1: Optional[UUID] = None,
    v2: Optional[UUID] = None,
    store: ContractStore = Depends(get_store),
):
    return await ContractService(store).compare_versions(contract_id, v1, v2)


@router.post("/{contract_id}/assign", response_model=ActionResponse[ContractRead])
async def assign_contract(
    contract_id: UUID,
    request: Request,
    actor: UserRead = Depends(get_current_actor),
    store: ContractStore = Depends(get_store),
    cache: ViewCache = Depends(get_view_cache),
):
    fields, _ = await read_submission(request)
    data = parse_form(AssignRequest, fields)

    result = await ContractService(store, actor).assign_contract(contract_id, data.user_id)

    revalidate(cache, contract_id)
    return action_response(result, f"/contracts/{contract_id}")


@router.post("/{contract_id}/status", response_model=ActionResponse[ContractRead])
async def update_status(
    contract_id: UUID,
    request: Request,
    actor: UserRead = Depends(get_current_actor),
    store: ContractStore = Depends(get_store),
    cache: ViewCache = Depends(get_view_cache),
):
    fields, _ = await read_submission(request)
    data = validate_payload(StatusUpdate, fields)

    result = await ContractService(store, actor).update_status(contract_id, data.status, data.override)

    revalidate(cache, contract_id)
    return action_response(result, f"/contracts/{contract_id}")


@router.post("/{contract_id}/finalize", response_model=ActionResponse[ContractRead])
async def finalize_contract(
    contract_id: UUID,
    actor: UserRead = Depends(get_current_actor),
    store: ContractStore = Depends(get_store),
    cache: ViewCache = Depends(get_view_cache),
):
    result = await ContractService(store, actor).finalize_contract(contract_id)

    revalidate(cache, contract_id)
    return action_response(result, f"/contracts/{contract_id}")


@router.put("/{contract_id}/content", response_model=ActionResponse[VersionRead])
async def update_content(
    contract_id: UUID,
    body: ContentUpdate,
    actor: UserRead = Depends(get_current_actor),
    store: ContractStore = Depends(get_store),
    cache: ViewCache = Depends(get_view_cache),
):
    result = await ContractService(store, actor).update_contract_content(contract_id, body.content)

    revalidate(cache, contract_id)
    return action_response(result, f"/contracts/{contract_id}")


@router.post("/{contract_id}/sign", response_model=ActionResponse[SignatureReceipt])
async def sign_contract(
    contract_id: UUID,
    body: SignatureSubmit,
    actor: UserRead = Depends(get_current_actor),
    store: ContractStore = Depends(get_store),
    cache: ViewCache = Depends(get_view_cache),
):
    result = await ContractService(store, actor).sign_contract(contract_id, body.signature)

    revalidate(cache, contract_id)
    return action_response(result, f"/contracts/{contract_id}")
