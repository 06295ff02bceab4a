from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import TYPE_CHECKING, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database import get_db
from src.shared.exceptions import StorageError
from src.storage.base import ContractStore, StorageMode
from src.storage.relational import SQLAlchemyStore

if TYPE_CHECKING:
    from google.cloud.firestore import AsyncClient
    from google.cloud.storage import Bucket

logger = logging.getLogger(__name__)

# Module-level client cache, cleared when the configuration is rewritten
_client_cache: dict[str, object] = {}


def clear_client_cache() -> None:
    """Drop cached Google clients and the resolved mode so both are rebuilt on next use."""
    _client_cache.clear()
    resolve_storage_mode.cache_clear()


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

def load_service_account(raw: Optional[str]) -> Optional[dict]:
    """
    Parse the FIREBASE_SERVICE_ACCOUNT value.

    Env loaders sometimes keep the single quotes the value was written with,
    and the private key usually arrives with escaped newlines. Returns None
    (and logs) when the value is missing or unusable.
    """
    if not raw or not raw.strip():
        return None

    cleaned = raw.strip()
    if len(cleaned) >= 2 and cleaned.startswith("'") and cleaned.endswith("'"):
        cleaned = cleaned[1:-1]

    try:
        info = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"FIREBASE_SERVICE_ACCOUNT is not valid JSON: {e}")
        return None

    if not isinstance(info, dict):
        logger.error("FIREBASE_SERVICE_ACCOUNT must be a JSON object")
        return None

    if isinstance(info.get("private_key"), str):
        info["private_key"] = info["private_key"].replace("\\n", "\n")
    return info


def _credentials(info: dict):
    from google.oauth2 import service_account

    return service_account.Credentials.from_service_account_info(info)


# ---------------------------------------------------------------------------
# Mode selection
# ---------------------------------------------------------------------------

@lru_cache
def resolve_storage_mode() -> StorageMode:
    """Pick the storage mode once; explicit STORAGE_MODE wins over credential sniffing."""
    account = load_service_account(settings.FIREBASE_SERVICE_ACCOUNT)

    if settings.STORAGE_MODE:
        try:
            mode = StorageMode(settings.STORAGE_MODE.strip().lower())
        except ValueError:
            valid = ", ".join(m.value for m in StorageMode)
            raise ValueError(f"Unknown STORAGE_MODE '{settings.STORAGE_MODE}'. Must be one of: {valid}")

        if mode == StorageMode.DOCUMENT and account is None:
            raise ValueError("STORAGE_MODE=document requires a valid FIREBASE_SERVICE_ACCOUNT")
        if mode == StorageMode.MIRRORED and account is None:
            logger.error("STORAGE_MODE=mirrored without a usable service account, mirroring disabled")
            return StorageMode.RELATIONAL
        return mode

    return StorageMode.MIRRORED if account is not None else StorageMode.RELATIONAL


# ---------------------------------------------------------------------------
# Google clients (lazy imports so relational-only deployments never load them)
# ---------------------------------------------------------------------------

def get_firestore_client() -> AsyncClient:
    if "firestore" not in _client_cache:
        info = load_service_account(settings.FIREBASE_SERVICE_ACCOUNT)
        if info is None:
            raise StorageError("Document store is not configured")

        from google.cloud import firestore

        try:
            _client_cache["firestore"] = firestore.AsyncClient(
                project=info.get("project_id"),
                credentials=_credentials(info),
            )
        except ValueError as e:
            logger.error(f"Could not build Firestore client: {e}")
            raise StorageError("Document store credentials are invalid") from e
    return _client_cache["firestore"]


def get_bucket() -> Optional[Bucket]:
    """The upload bucket, or None when no service account is configured."""
    if "bucket" not in _client_cache:
        bucket = None
        info = load_service_account(settings.FIREBASE_SERVICE_ACCOUNT)
        if info is not None:
            from google.cloud import storage

            name = settings.FIREBASE_STORAGE_BUCKET or f"{info.get('project_id')}.appspot.com"
            try:
                client = storage.Client(project=info.get("project_id"), credentials=_credentials(info))
                bucket = client.bucket(name)
            except ValueError as e:
                logger.error(f"Could not build storage client, uploads stay local: {e}")
        _client_cache["bucket"] = bucket
    return _client_cache["bucket"]


# ---------------------------------------------------------------------------
# Request dependency
# ---------------------------------------------------------------------------

def build_store(db: AsyncSession, mode: Optional[StorageMode] = None) -> ContractStore:
    mode = mode or resolve_storage_mode()

    if mode == StorageMode.RELATIONAL:
        return SQLAlchemyStore(db)

    from src.storage.document import FirestoreStore

    document = FirestoreStore(get_firestore_client())
    if mode == StorageMode.DOCUMENT:
        return document

    from src.storage.mirrored import MirroredStore

    return MirroredStore(SQLAlchemyStore(db), document)


async def get_store(db: AsyncSession = Depends(get_db)) -> ContractStore:
    return build_store(db)
