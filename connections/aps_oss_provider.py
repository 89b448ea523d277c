import math
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
import structlog
from connections.aps_http import INTERNAL_SCOPES, aps_request, bearer, next_cursor
from core.config import ProductionSettings
from domain.interfaces import CredentialProvider, ObjectStorage
from domain.models import BucketRecord, ObjectRecord, Page

logger = structlog.get_logger()

UPLOAD_CHUNK_SIZE = 100 * 1024 * 1024  # bytes per signed part
MAX_URLS_PER_REQUEST = 25  # OSS limit for one signeds3upload call


def _bucket_path(bucket_key: str) -> str:
    # Keys are escaped so a "/" can never address another resource
    return f"/oss/v2/buckets/{quote(bucket_key, safe='')}"


def _bucket_record(item: Dict[str, Any]) -> BucketRecord:
    return BucketRecord(
        bucket_key=item["bucketKey"],
        policy_key=item.get("policyKey"),
        created_date=item.get("createdDate"),
    )


def _object_record(item: Dict[str, Any]) -> ObjectRecord:
    return ObjectRecord(
        bucket_key=item["bucketKey"],
        object_key=item["objectKey"],
        object_id=item["objectId"],
        size=item.get("size"),
        sha1=item.get("sha1"),
        location=item.get("location"),
    )


class ApsObjectStorage(ObjectStorage):
    """OSS v2 buckets and objects."""

    def __init__(
        self,
        settings: ProductionSettings,
        credentials: CredentialProvider,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.base_url = settings.APS_BASE_URL
        self.region = settings.APS_REGION
        self.timeout = settings.HTTP_TIMEOUT
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def _headers(self) -> dict:
        token = await self.credentials.get_token(INTERNAL_SCOPES)
        return bearer(token.access_token)

    async def get_bucket_details(self, bucket_key: str) -> BucketRecord:
        headers = await self._headers()
        async with self._client() as client:
            response = await aps_request(client, "GET", f"{_bucket_path(bucket_key)}/details", headers=headers)
        return _bucket_record(response.json())

    async def create_bucket(self, bucket_key: str) -> BucketRecord:
        headers = await self._headers()
        headers["x-ads-region"] = self.region
        async with self._client() as client:
            response = await aps_request(
                client,
                "POST",
                "/oss/v2/buckets",
                headers=headers,
                json={"bucketKey": bucket_key, "policyKey": "persistent"},
            )
        logger.info("oss_bucket_created", bucket=bucket_key, region=self.region)
        return _bucket_record(response.json())

    async def delete_bucket(self, bucket_key: str) -> None:
        headers = await self._headers()
        async with self._client() as client:
            await aps_request(client, "DELETE", _bucket_path(bucket_key), headers=headers)

    async def list_buckets_page(self, limit: int, start_at: Optional[str] = None) -> Page[BucketRecord]:
        headers = await self._headers()
        params: Dict[str, Any] = {"limit": limit}
        if start_at:
            params["startAt"] = start_at
        async with self._client() as client:
            response = await aps_request(client, "GET", "/oss/v2/buckets", headers=headers, params=params)

        data = response.json()
        return Page(
            items=[_bucket_record(item) for item in data.get("items", [])],
            next_cursor=next_cursor(data.get("next")),
        )

    async def list_objects_page(
        self, bucket_key: str, limit: int, start_at: Optional[str] = None
    ) -> Page[ObjectRecord]:
        headers = await self._headers()
        params: Dict[str, Any] = {"limit": limit}
        if start_at:
            params["startAt"] = start_at
        async with self._client() as client:
            response = await aps_request(
                client, "GET", f"{_bucket_path(bucket_key)}/objects", headers=headers, params=params
            )

        data = response.json()
        return Page(
            items=[_object_record(item) for item in data.get("items", [])],
            next_cursor=next_cursor(data.get("next")),
        )

    async def upload_object(self, bucket_key: str, object_key: str, data: bytes) -> ObjectRecord:
        """
        Signed S3 upload: ask OSS for part URLs, PUT each part straight to S3,
        then complete the upload with the returned upload key.
        """
        headers = await self._headers()
        path = f"{_bucket_path(bucket_key)}/objects/{quote(object_key, safe='')}/signeds3upload"
        total_parts = max(1, math.ceil(len(data) / UPLOAD_CHUNK_SIZE))
        upload_key: Optional[str] = None

        logger.info("oss_upload_started", bucket=bucket_key, object=object_key, size=len(data), parts=total_parts)

        async with self._client() as client:
            part = 1
            while part <= total_parts:
                count = min(MAX_URLS_PER_REQUEST, total_parts - part + 1)
                params: Dict[str, Any] = {"parts": count, "firstPart": part}
                if upload_key:
                    params["uploadKey"] = upload_key

                signed = (await aps_request(client, "GET", path, headers=headers, params=params)).json()
                upload_key = signed["uploadKey"]

                for offset, url in enumerate(signed["urls"]):
                    start = (part - 1 + offset) * UPLOAD_CHUNK_SIZE
                    # Signed URLs carry their own credentials
                    await aps_request(client, "PUT", url, content=data[start : start + UPLOAD_CHUNK_SIZE])

                part += count

            response = await aps_request(client, "POST", path, headers=headers, json={"uploadKey": upload_key})

        record = _object_record(response.json())
        logger.info("oss_upload_completed", bucket=bucket_key, object=object_key, object_id=record.object_id)
        return record

    async def delete_object(self, bucket_key: str, object_key: str) -> None:
        headers = await self._headers()
        async with self._client() as client:
            await aps_request(
                client,
                "DELETE",
                f"{_bucket_path(bucket_key)}/objects/{quote(object_key, safe='')}",
                headers=headers,
            )
