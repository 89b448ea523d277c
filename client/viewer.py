import webbrowser
from abc import ABC, abstractmethod
from enum import IntEnum
from pathlib import Path
from typing import Any, Callable, List, Optional

import structlog
from client.api_client import ApiRequestError, ViewerApiClient
from domain.models import ViewerToken

logger = structlog.get_logger()


class LoadErrorCode(IntEnum):
    UNKNOWN_FAILURE = 1
    NETWORK_FAILURE = 4
    NETWORK_ACCESS_DENIED = 5
    VIEWER_UNAVAILABLE = 13


class DocumentLoadError(Exception):
    """The viewer could not be initialized or could not open a model."""

    def __init__(self, code: LoadErrorCode, message: Optional[str] = None, errors: Optional[List[Any]] = None):
        super().__init__(message or f"Document load failed with code: {int(code)}")
        self.code = code
        self.errors = errors or []


class ModelViewer(ABC):
    @abstractmethod
    async def initialize(self) -> None:
        pass

    @abstractmethod
    async def load_model(self, urn: str) -> None:
        """Raises DocumentLoadError when the model cannot be shown."""
        pass


class PollerView(ABC):
    """Where the poller and the session surface state to the user."""

    @abstractmethod
    def show_notice(self, message: str) -> None:
        pass

    @abstractmethod
    def clear_notice(self) -> None:
        pass

    @abstractmethod
    def show_failure(self, messages: List[Any]) -> None:
        pass

    @abstractmethod
    def show_error(self, message: str, detail: Optional[Exception] = None) -> None:
        pass


class FragmentStore(ABC):
    """Persisted reference to the selected model, like a page's location fragment."""

    @abstractmethod
    def read(self) -> Optional[str]:
        pass

    @abstractmethod
    def write(self, urn: str) -> None:
        pass


class FileFragmentStore(FragmentStore):
    def __init__(self, path: Path):
        self.path = path

    def read(self) -> Optional[str]:
        if not self.path.exists():
            return None
        return self.path.read_text().strip() or None

    def write(self, urn: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(urn)


class BrowserModelViewer(ModelViewer):
    """
    Hands a ready model over to the web viewer page in the system browser.
    initialize() mirrors the page start-up: it must obtain a viewer token first.
    """

    def __init__(self, api: ViewerApiClient, viewer_url: str, opener: Callable[[str], bool] = webbrowser.open):
        self.api = api
        self.viewer_url = viewer_url.rstrip("/")
        self.opener = opener
        self.token: Optional[ViewerToken] = None

    async def initialize(self) -> None:
        try:
            self.token = await self.api.get_viewer_token()
        except ApiRequestError as e:
            code = LoadErrorCode.NETWORK_ACCESS_DENIED if e.status_code in (401, 403) else LoadErrorCode.NETWORK_FAILURE
            raise DocumentLoadError(code, "Could not obtain access token.", [e.message]) from e
        logger.debug("viewer_initialized", expires_in=self.token.expires_in)

    async def load_model(self, urn: str) -> None:
        if self.token is None:
            await self.initialize()

        url = f"{self.viewer_url}/#{urn}"
        if not self.opener(url):
            raise DocumentLoadError(LoadErrorCode.VIEWER_UNAVAILABLE, "No browser available to open the viewer.", [url])
        logger.info("viewer_opened", urn=urn, url=url)
