from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from src.auth.dependencies import get_current_actor
from src.auth.schemas import UserRead
from src.contracts.router import action_response, read_submission
from src.contracts.service import ContractService
from src.core.cache import ViewCache, get_view_cache
from src.shared.schemas import ActionResponse
from src.shared.validation import parse_form
from src.storage.base import ContractStore
from src.storage.factory import get_store
from src.templates.schemas import TemplateCreate, TemplateRead
from src.uploads.service import FileStorage, get_file_storage

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("", response_model=List[TemplateRead])
async def list_templates(store: ContractStore = Depends(get_store)):
    return await ContractService(store).list_templates()


@router.post("", response_model=ActionResponse[TemplateRead])
async def create_template(
    request: Request,
    actor: UserRead = Depends(get_current_actor),
    store: ContractStore = Depends(get_store),
    files: FileStorage = Depends(get_file_storage),
    cache: ViewCache = Depends(get_view_cache),
):
    fields, upload = await read_submission(request)
    data = parse_form(TemplateCreate, fields)
    stored = await files.save(upload)

    result = await ContractService(store, actor).create_template(data, stored.file_url if stored else None)

    cache.invalidate("/templates")
    return action_response(result, "/templates")


@router.get("/{template_id}", response_model=TemplateRead)
async def get_template(template_id: UUID, store: ContractStore = Depends(get_store)):
    return await ContractService(store).get_template(template_id)


@router.delete("/{template_id}", response_model=ActionResponse[UUID])
async def delete_template(
    template_id: UUID,
    actor: UserRead = Depends(get_current_actor),
    store: ContractStore = Depends(get_store),
    cache: ViewCache = Depends(get_view_cache),
):
    result = await ContractService(store, actor).delete_template(template_id)

    cache.invalidate("/templates")
    return action_response(result, "/templates")
