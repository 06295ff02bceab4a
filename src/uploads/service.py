import logging
import os
import time
from pathlib import Path
from typing import Optional
from urllib.parse import unquote

from fastapi.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from src.config import settings
from src.contracts.schemas import VersionDraft

logger = logging.getLogger(__name__)

REMOTE_PREFIX = "uploads"
LOCAL_URL_PREFIX = "/uploads"


def storage_key(filename: str, now_ms: Optional[int] = None) -> str:
    """`{epoch-millis}-{basename}`; directory parts of the client filename are dropped."""
    basename = os.path.basename((filename or "").replace("\\", "/")) or "upload"
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{now_ms}-{basename}"


class FileStorage:
    """
    Stores uploaded contract and template files.

    Writes go to the bucket when one is configured; any remote failure, or no
    bucket at all, falls back to the local upload directory served at /uploads.
    """

    def __init__(self, upload_dir: str = settings.UPLOAD_DIR, bucket=None):
        self.upload_dir = Path(upload_dir)
        self.bucket = bucket

    async def save(self, upload: Optional[UploadFile]) -> Optional[VersionDraft]:
        """Persist the upload and return its url and display name, or None for an empty part."""
        if upload is None or not upload.filename:
            return None
        data = await upload.read()
        if not data:
            return None

        key = storage_key(upload.filename)
        url = None
        if self.bucket is not None:
            url = await self._save_remote(key, data, upload.content_type)
        if url is None:
            url = await run_in_threadpool(self._save_local, key, data)

        return VersionDraft(file_url=url, file_name=upload.filename)

    async def _save_remote(self, key: str, data: bytes, content_type: Optional[str]) -> Optional[str]:
        try:
            blob = self.bucket.blob(f"{REMOTE_PREFIX}/{key}")
            await run_in_threadpool(blob.upload_from_string, data, content_type=content_type or "application/octet-stream")
            return blob.public_url
        except Exception as e:
            logger.error(f"Remote upload of {key} failed, falling back to local storage: {e}", exc_info=True)
            return None

    def _save_local(self, key: str, data: bytes) -> str:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        (self.upload_dir / key).write_bytes(data)
        logger.info(f"Stored upload {key} in {self.upload_dir}")
        return f"{LOCAL_URL_PREFIX}/{key}"

    async def discard(self, stored: Optional[VersionDraft]) -> None:
        """Remove a file saved for a write that was then rejected."""
        if stored is None or not stored.file_url:
            return
        path = self.local_path(stored.file_url)
        try:
            if path is not None:
                await run_in_threadpool(path.unlink, missing_ok=True)
            elif self.bucket is not None:
                key = unquote(stored.file_url.rsplit("/", 1)[-1])
                await run_in_threadpool(self.bucket.blob(f"{REMOTE_PREFIX}/{key}").delete)
        except Exception as e:
            logger.warning(f"Could not discard orphaned upload {stored.file_url}: {e}")

    def local_path(self, url: str) -> Optional[Path]:
        """Filesystem path for a url this storage handed out locally."""
        if not url.startswith(f"{LOCAL_URL_PREFIX}/"):
            return None
        key = os.path.basename(url[len(LOCAL_URL_PREFIX) + 1:])
        return self.upload_dir / key


def get_file_storage() -> FileStorage:
    from src.storage.factory import get_bucket

    return FileStorage(settings.UPLOAD_DIR, get_bucket())
