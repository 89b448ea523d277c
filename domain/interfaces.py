from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from domain.models import AccessToken, BucketRecord, ObjectRecord, Page


class CredentialProvider(ABC):
    @abstractmethod
    async def get_token(self, scopes: List[str]) -> AccessToken:
        """Two-legged credential exchange for the given scopes"""
        pass


class ObjectStorage(ABC):
    @abstractmethod
    async def get_bucket_details(self, bucket_key: str) -> BucketRecord:
        """Raises BackendError(404) when the bucket does not exist"""
        pass

    @abstractmethod
    async def create_bucket(self, bucket_key: str) -> BucketRecord:
        """Raises BackendError(409) when the name is taken"""
        pass

    @abstractmethod
    async def delete_bucket(self, bucket_key: str) -> None:
        pass

    @abstractmethod
    async def list_buckets_page(self, limit: int, start_at: Optional[str] = None) -> Page[BucketRecord]:
        pass

    @abstractmethod
    async def list_objects_page(
        self, bucket_key: str, limit: int, start_at: Optional[str] = None
    ) -> Page[ObjectRecord]:
        pass

    @abstractmethod
    async def upload_object(self, bucket_key: str, object_key: str, data: bytes) -> ObjectRecord:
        pass

    @abstractmethod
    async def delete_object(self, bucket_key: str, object_key: str) -> None:
        pass


class TranslationService(ABC):
    @abstractmethod
    async def submit_job(self, urn: str, root_filename: Optional[str] = None) -> Dict[str, Any]:
        """Queues a translation job and returns the backend's job record"""
        pass

    @abstractmethod
    async def get_manifest(self, urn: str) -> Optional[Dict[str, Any]]:
        """Returns the translation manifest, or None if no job exists for the urn"""
        pass
