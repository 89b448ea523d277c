import bisect
import hashlib
import shutil
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote, unquote

import aiofiles
import structlog
from core.config import LocalSettings
from core.exceptions import BackendError
from domain.interfaces import ObjectStorage
from domain.models import BucketRecord, ObjectRecord, Page

logger = structlog.get_logger()


def _page_of(names: List[str], limit: int, start_at: Optional[str]):
    """Sorted keys, OSS style: the cursor is the first key of the next page."""
    start = bisect.bisect_left(names, start_at) if start_at else 0
    chunk = names[start : start + limit]
    following = start + limit
    cursor = names[following] if following < len(names) else None
    return chunk, cursor


class LocalObjectStorage(ObjectStorage):
    """
    Buckets are directories, objects are files.
    Lets the whole upload/list/delete flow run without APS credentials.
    """

    def __init__(self, settings: LocalSettings):
        self.base_path: Path = settings.LOCAL_STORAGE_PATH / "buckets"
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _bucket_path(self, bucket_key: str) -> Path:
        path = (self.base_path / bucket_key).resolve()
        if path.parent != self.base_path.resolve():
            raise BackendError(400, {"reason": f"Invalid bucket key '{bucket_key}'"})
        return path

    def _existing_bucket(self, bucket_key: str) -> Path:
        path = self._bucket_path(bucket_key)
        if not path.is_dir():
            raise BackendError(404, {"reason": f"Bucket '{bucket_key}' does not exist"})
        return path

    def _object_record(self, bucket_key: str, object_key: str, path: Path) -> ObjectRecord:
        return ObjectRecord(
            bucket_key=bucket_key,
            object_key=object_key,
            object_id=f"urn:adsk.objects:os.object:{bucket_key}/{object_key}",
            size=path.stat().st_size,
            location=path.resolve().as_uri(),
        )

    async def get_bucket_details(self, bucket_key: str) -> BucketRecord:
        self._existing_bucket(bucket_key)
        return BucketRecord(bucket_key=bucket_key, policy_key="persistent")

    async def create_bucket(self, bucket_key: str) -> BucketRecord:
        path = self._bucket_path(bucket_key)
        try:
            path.mkdir(parents=False, exist_ok=False)
        except FileExistsError:
            raise BackendError(409, {"reason": "Bucket already exists"})
        logger.info("local_bucket_created", bucket=bucket_key, path=str(path))
        return BucketRecord(bucket_key=bucket_key, policy_key="persistent")

    async def delete_bucket(self, bucket_key: str) -> None:
        path = self._existing_bucket(bucket_key)
        if any(path.iterdir()):
            raise BackendError(409, {"reason": "Bucket is not empty"})
        shutil.rmtree(path)

    async def list_buckets_page(self, limit: int, start_at: Optional[str] = None) -> Page[BucketRecord]:
        names = sorted(p.name for p in self.base_path.iterdir() if p.is_dir())
        chunk, cursor = _page_of(names, limit, start_at)
        return Page(items=[BucketRecord(bucket_key=name, policy_key="persistent") for name in chunk], next_cursor=cursor)

    async def list_objects_page(
        self, bucket_key: str, limit: int, start_at: Optional[str] = None
    ) -> Page[ObjectRecord]:
        bucket = self._existing_bucket(bucket_key)
        keys = sorted(unquote(p.name) for p in bucket.iterdir() if p.is_file())
        chunk, cursor = _page_of(keys, limit, start_at)
        items = [self._object_record(bucket_key, key, bucket / quote(key, safe="")) for key in chunk]
        return Page(items=items, next_cursor=cursor)

    async def upload_object(self, bucket_key: str, object_key: str, data: bytes) -> ObjectRecord:
        bucket = self._existing_bucket(bucket_key)
        file_path = bucket / quote(object_key, safe="")

        async with aiofiles.open(file_path, "wb") as f:
            await f.write(data)

        record = self._object_record(bucket_key, object_key, file_path)
        record.sha1 = hashlib.sha1(data).hexdigest()
        logger.info("local_object_stored", bucket=bucket_key, object=object_key, size=len(data))
        return record

    async def delete_object(self, bucket_key: str, object_key: str) -> None:
        file_path = self._existing_bucket(bucket_key) / quote(object_key, safe="")
        if not file_path.exists():
            raise BackendError(404, {"reason": f"Object '{object_key}' does not exist"})
        file_path.unlink()
