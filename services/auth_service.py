import structlog
from connections.aps_http import VIEWER_SCOPES
from domain.interfaces import CredentialProvider
from domain.models import ViewerToken

logger = structlog.get_logger()


class AuthService:
    def __init__(self, credentials: CredentialProvider):
        self.credentials = credentials

    async def get_viewer_token(self) -> ViewerToken:
        """Read-only viewables token for the browser viewer."""
        token = await self.credentials.get_token(VIEWER_SCOPES)
        logger.debug("viewer_token_issued", expires_in=token.expires_in)
        return ViewerToken(access_token=token.access_token, expires_in=token.expires_in)
