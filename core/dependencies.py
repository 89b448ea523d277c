from functools import lru_cache

from connections.aps_auth_provider import ApsCredentialProvider
from connections.aps_derivative_provider import ApsTranslationService
from connections.aps_oss_provider import ApsObjectStorage
from connections.local_storage_provider import LocalObjectStorage
from connections.local_translation_provider import LocalCredentialProvider, LocalTranslationService
from core.config import ProductionSettings, settings
from domain.interfaces import CredentialProvider, ObjectStorage, TranslationService
from services.auth_service import AuthService
from services.bucket_service import BucketService
from services.model_service import ModelService


@lru_cache()
def get_credentials() -> CredentialProvider:
    """
    Dependency Factory: APS two-legged OAuth in production, a placeholder locally.
    The providers hold configuration only, so one instance serves every request.
    """
    if isinstance(settings, ProductionSettings):
        return ApsCredentialProvider(settings)

    return LocalCredentialProvider()


@lru_cache()
def get_storage() -> ObjectStorage:
    """
    Dependency Factory: Returns the correct storage backend based on ENV.
    """
    if isinstance(settings, ProductionSettings):
        return ApsObjectStorage(settings, get_credentials())

    return LocalObjectStorage(settings)


@lru_cache()
def get_translator() -> TranslationService:
    """
    Dependency Factory: Returns the model translation backend.
    """
    if isinstance(settings, ProductionSettings):
        return ApsTranslationService(settings, get_credentials())

    return LocalTranslationService(settings)


def get_bucket_service() -> BucketService:
    return BucketService(get_storage(), default_bucket=settings.DEFAULT_BUCKET, page_size=settings.OSS_PAGE_SIZE)


def get_model_service() -> ModelService:
    return ModelService(get_storage(), get_translator(), get_bucket_service(), page_size=settings.OSS_PAGE_SIZE)


def get_auth_service() -> AuthService:
    return AuthService(get_credentials())
