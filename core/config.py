import os
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "APS Model Viewer"
    LOG_LEVEL: str = "INFO"
    PORT: int = 8080

    # Autodesk Platform Services
    APS_BASE_URL: str = "https://developer.api.autodesk.com"
    DEFAULT_BUCKET: str = "the-captain-basic-app"
    OSS_PAGE_SIZE: int = 64  # max page size accepted by OSS listings
    HTTP_TIMEOUT: float = 60.0  # seconds

    # Translation status polling (client side)
    POLLING_INTERVAL: float = 5.0  # seconds

    # Viewer page, mounted at "/" when the directory exists
    STATIC_DIR: Path = Path("wwwroot")

    ENABLE_TRACING: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class LocalSettings(Settings):
    ENV: str = "dev"
    LOCAL_STORAGE_PATH: Path = Field(default=Path("local_storage"))


class ProductionSettings(Settings):
    ENV: str = "production"
    APS_CLIENT_ID: str = Field(..., validation_alias="APS_CLIENT_ID")
    APS_CLIENT_SECRET: str = Field(..., validation_alias="APS_CLIENT_SECRET")
    APS_REGION: str = Field(default="US", validation_alias="APS_REGION")


class ClientSettings(BaseSettings):
    """Settings for the command line viewer (VIEWER_* env vars)."""

    SERVER_URL: str = "http://localhost:8080"
    # Page the viewer hand-off opens; the selected urn is appended as fragment
    VIEWER_URL: Optional[str] = None
    FRAGMENT_FILE: Path = Field(default=Path.home() / ".aps-model-viewer" / "fragment")
    POLLING_INTERVAL: float = 5.0
    HTTP_TIMEOUT: float = 60.0

    model_config = SettingsConfigDict(env_prefix="VIEWER_", env_file=".env", extra="ignore")


# Factory to choose the right config
def get_settings():
    env = os.getenv("ENV", "local")
    print(f"Loading settings for environment: {env}")
    if env == "production":
        return ProductionSettings()  # type: ignore
    return LocalSettings()


settings = get_settings()
