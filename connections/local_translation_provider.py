import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
import structlog
from core.config import LocalSettings
from domain.interfaces import CredentialProvider, TranslationService
from domain.models import AccessToken

logger = structlog.get_logger()


class LocalTranslationService(TranslationService):
    """
    Records a finished manifest as soon as a job is submitted.
    Manifests are JSON files keyed by urn.
    """

    def __init__(self, settings: LocalSettings):
        self.base_path: Path = settings.LOCAL_STORAGE_PATH / "manifests"
        self.base_path.mkdir(parents=True, exist_ok=True)

    async def submit_job(self, urn: str, root_filename: Optional[str] = None) -> Dict[str, Any]:
        manifest = {
            "type": "manifest",
            "urn": urn,
            "status": "success",
            "progress": "complete",
            "hasThumbnail": "false",
            "derivatives": [],
        }
        async with aiofiles.open(self.base_path / f"{urn}.json", "w") as f:
            await f.write(json.dumps(manifest))

        logger.info("local_translation_recorded", urn=urn, root_filename=root_filename)
        return {"result": "created", "urn": urn}

    async def get_manifest(self, urn: str) -> Optional[Dict[str, Any]]:
        path = self.base_path / f"{urn}.json"
        if not path.exists():
            return None
        async with aiofiles.open(path, "r") as f:
            return json.loads(await f.read())


class LocalCredentialProvider(CredentialProvider):
    """Hands out a placeholder token; local backends never check it."""

    async def get_token(self, scopes: List[str]) -> AccessToken:
        return AccessToken(access_token="local-development-token", expires_in=3599, scopes=list(scopes))
