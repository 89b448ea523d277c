from typing import Any, Dict, List, Optional

import structlog
from core.exceptions import ClientInputError
from domain.interfaces import ObjectStorage, TranslationService
from domain.models import NamedUrn, TranslationState, TranslationStatus
from services.bucket_service import BucketService, validate_bucket_key
from services.pagination import collect_pages
from services.urn import decode_urn, encode_urn

logger = structlog.get_logger()

ARCHIVE_SUFFIXES = (".zip",)


def flatten_manifest_messages(manifest: Dict[str, Any]) -> List[Any]:
    """
    Derivative messages in manifest order: each derivative's own messages,
    then the messages of its direct children.
    """
    messages: List[Any] = []
    for derivative in manifest.get("derivatives") or []:
        messages.extend(derivative.get("messages") or [])
        for child in derivative.get("children") or []:
            messages.extend(child.get("messages") or [])
    return messages


def is_archive(filename: str) -> bool:
    return filename.lower().endswith(ARCHIVE_SUFFIXES)


class ModelService:
    def __init__(
        self,
        storage: ObjectStorage,
        translator: TranslationService,
        buckets: BucketService,
        page_size: int = 64,
    ):
        self.storage = storage
        self.translator = translator
        self.buckets = buckets
        self.page_size = page_size

    async def list_models(self, bucket_urn: Optional[str] = None) -> List[NamedUrn]:
        bucket_key = validate_bucket_key(decode_urn(bucket_urn)) if bucket_urn else None
        bucket_key = await self.buckets.ensure_bucket_exists(bucket_key)

        objects = await collect_pages(
            lambda cursor: self.storage.list_objects_page(bucket_key, self.page_size, cursor),
            label="objects",
        )
        logger.info("models_listed", bucket=bucket_key, count=len(objects))
        return [NamedUrn(name=obj.object_key, urn=encode_urn(obj.object_id)) for obj in objects]

    async def get_status(self, urn: str) -> TranslationStatus:
        manifest = await self.translator.get_manifest(urn)
        if manifest is None:
            return TranslationStatus(status=TranslationState.NOT_AVAILABLE.value)

        status = manifest.get("status", "")
        result = TranslationStatus(status=status)
        if status == TranslationState.IN_PROGRESS.value:
            result.progress = manifest.get("progress")
        elif status == TranslationState.FAILED.value:
            result.messages = flatten_manifest_messages(manifest)
        return result

    async def upload_model(
        self,
        filename: Optional[str],
        data: Optional[bytes],
        bucket_urn: Optional[str] = None,
        zip_entrypoint: Optional[str] = None,
    ) -> NamedUrn:
        """
        Store the file, then queue its translation. Does not wait for the job;
        completion is observed through the status endpoint. Completed steps are
        not rolled back when a later one fails.
        """
        if data is None or not filename:
            raise ClientInputError("The required field 'model-file' is missing.")

        bucket_key = validate_bucket_key(decode_urn(bucket_urn)) if bucket_urn else None
        bucket_key = await self.buckets.ensure_bucket_exists(bucket_key)
        logger.info("model_upload_started", bucket=bucket_key, filename=filename, size=len(data))

        obj = await self.storage.upload_object(bucket_key, filename, data)
        urn = encode_urn(obj.object_id)

        root_filename = None
        if is_archive(filename):
            if zip_entrypoint:
                root_filename = zip_entrypoint
            else:
                logger.warning("archive_without_entrypoint", filename=filename)

        await self.translator.submit_job(urn, root_filename=root_filename)
        logger.info("model_upload_completed", bucket=bucket_key, object=obj.object_key, urn=urn)
        return NamedUrn(name=obj.object_key, urn=urn)
