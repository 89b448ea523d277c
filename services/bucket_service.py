import random
import re
import time
from typing import List, Optional

import structlog
from core.exceptions import (
    BackendError,
    BackendUnavailableError,
    ClientInputError,
    NameConflictError,
    NotFoundError,
    PermissionDeniedError,
    ViewerError,
)
from domain.interfaces import ObjectStorage
from domain.models import DeleteBucketResult, NamedUrn
from services.pagination import collect_pages
from services.urn import encode_urn

logger = structlog.get_logger()

MIN_BUCKET_NAME_LENGTH = 3
MAX_BUCKET_NAME_LENGTH = 128

# OSS bucket key rule; keys that fail it never reach a storage backend
_BUCKET_KEY_PATTERN = re.compile(r"^[-_.a-z0-9]{3,128}$")


def sanitize_bucket_name(bucket_name: str) -> str:
    """
    Lowercases and squeezes a user supplied name into an OSS bucket key:
    runs of invalid characters become a single '-', edges must be alphanumeric.
    """
    name = re.sub(r"[^a-z0-9-]+", "-", bucket_name.lower())
    name = re.sub(r"^[^a-z0-9]+|[^a-z0-9]+$", "", name)

    if len(name) < MIN_BUCKET_NAME_LENGTH:
        raise ClientInputError(
            f"Bucket name must be at least {MIN_BUCKET_NAME_LENGTH} characters long after sanitization."
        )

    if len(name) > MAX_BUCKET_NAME_LENGTH:
        name = re.sub(r"[^a-z0-9]+$", "", name[:MAX_BUCKET_NAME_LENGTH])

    return name


def validate_bucket_key(bucket_key: str) -> str:
    if not isinstance(bucket_key, str) or not _BUCKET_KEY_PATTERN.fullmatch(bucket_key):
        raise ClientInputError(f"Invalid bucket key '{bucket_key}'.")
    return bucket_key


def suggest_alternative_bucket_names(bucket_name: str) -> List[str]:
    timestamp = str(int(time.time() * 1000))[-6:]
    return [
        f"{bucket_name}-{timestamp}",
        f"{bucket_name}-v2",
        f"{bucket_name}-new",
        f"{bucket_name}-{random.randint(0, 999)}",
    ]


class BucketService:
    def __init__(self, storage: ObjectStorage, default_bucket: str, page_size: int = 64):
        self.storage = storage
        self.default_bucket = default_bucket
        self.page_size = page_size

    async def list_buckets(self) -> List[NamedUrn]:
        buckets = await collect_pages(
            lambda cursor: self.storage.list_buckets_page(self.page_size, cursor), label="buckets"
        )
        logger.info("buckets_listed", count=len(buckets))
        return [NamedUrn(name=b.bucket_key, urn=encode_urn(b.bucket_key)) for b in buckets]

    async def ensure_bucket_exists(self, bucket_key: Optional[str] = None) -> str:
        """
        Check-then-create. Not atomic against concurrent creators, so a 409 from
        the create call after a 404 from the check means someone else won the race.
        """
        bucket_key = bucket_key or self.default_bucket
        try:
            await self.storage.get_bucket_details(bucket_key)
            return bucket_key
        except BackendError as e:
            if e.status_code != 404:
                raise

        try:
            await self.storage.create_bucket(bucket_key)
            logger.info("bucket_provisioned", bucket=bucket_key)
        except BackendError as e:
            if e.status_code != 409:
                raise
            logger.info("bucket_provisioned_concurrently", bucket=bucket_key)

        return bucket_key

    async def create_bucket(self, bucket_name: Optional[str]) -> NamedUrn:
        if not bucket_name or not bucket_name.strip():
            raise ClientInputError("Bucket name is required.")

        bucket_key = sanitize_bucket_name(bucket_name)

        try:
            await self.storage.create_bucket(bucket_key)
        except BackendError as e:
            if e.status_code == 409:
                raise await self._explain_conflict(bucket_key, e)
            raise

        logger.info("bucket_created", bucket=bucket_key, requested=bucket_name)
        return NamedUrn(name=bucket_key, urn=encode_urn(bucket_key))

    async def _explain_conflict(self, bucket_key: str, conflict: BackendError) -> NameConflictError:
        suggestions = suggest_alternative_bucket_names(bucket_key)
        try:
            await self.storage.get_bucket_details(bucket_key)
            message = f"Bucket name '{bucket_key}' already exists and is accessible. Please choose a different name."
        except BackendError as details_error:
            if details_error.status_code == 404:
                message = (
                    f"Bucket name '{bucket_key}' was recently deleted and is temporarily unavailable. "
                    "Please wait a few minutes and try again, or choose a different name."
                )
            elif details_error.status_code == 403:
                message = (
                    f"Bucket name '{bucket_key}' is already in use by another application or user. "
                    "Please choose a different name."
                )
            else:
                message = f"Bucket name '{bucket_key}' conflicts with an existing bucket. Please choose a different name."

        logger.warning("bucket_name_conflict", bucket=bucket_key, reason=message)
        return NameConflictError(message, suggestions=suggestions, original_error=conflict)

    async def delete_bucket(self, bucket_name: Optional[str]) -> DeleteBucketResult:
        if not bucket_name:
            raise ClientInputError("Bucket name is required.")

        validate_bucket_key(bucket_name)
        await self._clear_bucket_objects(bucket_name)

        try:
            logger.info("bucket_delete_attempt", bucket=bucket_name)
            await self.storage.delete_bucket(bucket_name)
        except BackendError as e:
            logger.error("bucket_delete_failed", bucket=bucket_name, status=e.status_code, body=e.body)
            raise self._deletion_error(e, bucket_name)

        return DeleteBucketResult(success=True, message=f"Bucket '{bucket_name}' deleted successfully.")

    async def _clear_bucket_objects(self, bucket_name: str) -> None:
        """Best effort: failures are logged and the bucket delete is still attempted."""
        try:
            objects = await collect_pages(
                lambda cursor: self.storage.list_objects_page(bucket_name, self.page_size, cursor),
                label="objects",
            )
        except BackendError as e:
            logger.warning("bucket_listing_failed", bucket=bucket_name, status=e.status_code, error=str(e))
            return

        if not objects:
            logger.info("bucket_empty", bucket=bucket_name)
            return

        logger.info("bucket_clearing", bucket=bucket_name, objects=len(objects))
        for obj in objects:
            try:
                await self.storage.delete_object(bucket_name, obj.object_key)
            except BackendError as e:
                logger.error("object_delete_failed", bucket=bucket_name, object=obj.object_key, error=str(e))

    @staticmethod
    def _deletion_error(error: BackendError, bucket_name: str) -> ViewerError:
        status = error.status_code

        if status == 404:
            return NotFoundError(f"Bucket '{bucket_name}' not found.", original_error=error)

        if status == 403:
            message = f"Permission denied. Cannot delete bucket '{bucket_name}'. "
            if error.reason == "Bucket owner mismatch":
                message += "This bucket was created by a different application or user."
            elif error.error_code == "AUTH-003":
                message += "Your access token doesn't have sufficient permissions."
            else:
                message += (
                    "Common causes: 1) Bucket created by another app, 2) Missing delete permissions, "
                    "3) Hidden objects exist."
                )
            return PermissionDeniedError(message, original_error=error)

        if status == 409:
            return NameConflictError(
                f"Bucket '{bucket_name}' is not empty or has active operations.", original_error=error
            )

        return BackendUnavailableError(
            f"Failed to delete bucket '{bucket_name}': {error}", status_code=status, original_error=error
        )
