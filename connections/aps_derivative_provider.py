from typing import Any, Dict, Optional

import httpx
import structlog
from connections.aps_http import INTERNAL_SCOPES, aps_request, bearer
from core.config import ProductionSettings
from core.exceptions import BackendError
from domain.interfaces import CredentialProvider, TranslationService

logger = structlog.get_logger()


class ApsTranslationService(TranslationService):
    """Model Derivative v2: SVF2 translation jobs and their manifests."""

    def __init__(
        self,
        settings: ProductionSettings,
        credentials: CredentialProvider,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.base_url = settings.APS_BASE_URL
        self.timeout = settings.HTTP_TIMEOUT
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def submit_job(self, urn: str, root_filename: Optional[str] = None) -> Dict[str, Any]:
        token = await self.credentials.get_token(INTERNAL_SCOPES)

        job_input: Dict[str, Any] = {"urn": urn, "compressedUrn": bool(root_filename)}
        if root_filename:
            job_input["rootFilename"] = root_filename

        payload = {
            "input": job_input,
            "output": {"formats": [{"type": "svf2", "views": ["2d", "3d"]}]},
        }

        async with self._client() as client:
            response = await aps_request(
                client,
                "POST",
                "/modelderivative/v2/designdata/job",
                headers=bearer(token.access_token),
                json=payload,
            )

        job = response.json()
        logger.info("translation_job_submitted", urn=urn, result=job.get("result"), compressed=bool(root_filename))
        return job

    async def get_manifest(self, urn: str) -> Optional[Dict[str, Any]]:
        token = await self.credentials.get_token(INTERNAL_SCOPES)
        async with self._client() as client:
            try:
                response = await aps_request(
                    client,
                    "GET",
                    f"/modelderivative/v2/designdata/{urn}/manifest",
                    headers=bearer(token.access_token),
                )
            except BackendError as e:
                if e.status_code == 404:
                    return None
                raise

        return response.json()
