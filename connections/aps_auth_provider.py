from typing import List, Optional

import httpx
import structlog
from connections.aps_http import aps_request
from core.config import ProductionSettings
from domain.interfaces import CredentialProvider
from domain.models import AccessToken

logger = structlog.get_logger()


class ApsCredentialProvider(CredentialProvider):
    """Two-legged OAuth (client credentials) against APS Authentication v2."""

    def __init__(self, settings: ProductionSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.client_id = settings.APS_CLIENT_ID
        self.client_secret = settings.APS_CLIENT_SECRET
        self.base_url = settings.APS_BASE_URL
        self.timeout = settings.HTTP_TIMEOUT
        self.transport = transport

    async def get_token(self, scopes: List[str]) -> AccessToken:
        # No token cache: each request exchanges credentials on its own
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            response = await aps_request(
                client,
                "POST",
                "/authentication/v2/token",
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials", "scope": " ".join(scopes)},
            )

        data = response.json()
        logger.debug("aps_token_issued", scopes=scopes, expires_in=data.get("expires_in"))
        return AccessToken(
            access_token=data["access_token"],
            expires_in=int(data["expires_in"]),
            token_type=data.get("token_type", "Bearer"),
            scopes=list(scopes),
        )
