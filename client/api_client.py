from pathlib import Path
from typing import Any, List, Optional, Type, TypeVar

import aiofiles
import httpx
import structlog
from domain.models import DeleteBucketResult, NamedUrn, TranslationStatus, ViewerToken
from pydantic import BaseModel, ValidationError

logger = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)


class ApiRequestError(Exception):
    """A call to the viewer API failed: transport error or non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _parse(model: Type[M], data: Any) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ApiRequestError(f"Unexpected {model.__name__} payload: {e.error_count()} invalid field(s)") from e


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or str(body)
    return str(body)


class ViewerApiClient:
    """Async client for the /api surface of the viewer server."""

    def __init__(self, base_url: str, timeout: float = 60.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.http = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self.http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("api_transport_error", method=method, path=path, error=str(e))
            raise ApiRequestError(f"Request {method} {path} failed: {e}") from e

        if response.is_error:
            raise ApiRequestError(_error_message(response), status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            logger.error("api_invalid_body", method=method, path=path, status=response.status_code)
            raise ApiRequestError(f"Invalid response body from {method} {path}", status_code=response.status_code) from e

    async def list_buckets(self) -> List[NamedUrn]:
        return [_parse(NamedUrn, item) for item in await self._request("GET", "/api/buckets")]

    async def create_bucket(self, bucket_name: str) -> NamedUrn:
        return _parse(NamedUrn, await self._request("POST", "/api/buckets", json={"bucketName": bucket_name}))

    async def delete_bucket(self, bucket_name: str) -> DeleteBucketResult:
        data = await self._request("DELETE", "/api/buckets", json={"bucketName": bucket_name})
        return _parse(DeleteBucketResult, data)

    async def list_models(self, bucket_urn: Optional[str] = None) -> List[NamedUrn]:
        params = {"bucket": bucket_urn} if bucket_urn else None
        return [_parse(NamedUrn, item) for item in await self._request("GET", "/api/models", params=params)]

    async def get_model_status(self, urn: str) -> TranslationStatus:
        return _parse(TranslationStatus, await self._request("GET", f"/api/models/{urn}/status"))

    async def upload_model(
        self, file_path: Path, bucket_urn: Optional[str] = None, zip_entrypoint: Optional[str] = None
    ) -> NamedUrn:
        async with aiofiles.open(file_path, "rb") as f:
            content = await f.read()

        form = {}
        if bucket_urn:
            form["bucket-urn"] = bucket_urn
        if zip_entrypoint:
            form["model-zip-entrypoint"] = zip_entrypoint

        data = await self._request(
            "POST", "/api/models", files={"model-file": (file_path.name, content)}, data=form
        )
        return _parse(NamedUrn, data)

    async def get_viewer_token(self) -> ViewerToken:
        return _parse(ViewerToken, await self._request("GET", "/api/auth/token"))
