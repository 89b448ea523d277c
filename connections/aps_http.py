from typing import Any, Optional

import httpx
import structlog
from core.exceptions import BackendError
from core.telemetry import tracer

logger = structlog.get_logger()

# Scopes used by the server for its own OSS and Model Derivative calls
INTERNAL_SCOPES = [
    "data:read",
    "data:create",
    "data:write",
    "bucket:create",
    "bucket:read",
    "bucket:delete",
    "bucket:update",
]

# The only scope handed to browsers
VIEWER_SCOPES = ["viewables:read"]


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


async def aps_request(client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
    """
    Sends one request and turns every failure into a BackendError.
    Transport failures carry status_code=None.
    """
    with tracer.start_as_current_span("aps.request") as span:
        span.set_attribute("http.method", method)
        span.set_attribute("http.url", url)
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("aps_transport_error", method=method, url=url, error=str(e))
            raise BackendError(None, str(e), message=f"APS request {method} {url} failed: {e}") from e

        span.set_attribute("http.status_code", response.status_code)
        if response.is_error:
            body = _response_body(response)
            logger.warning("aps_request_rejected", method=method, url=url, status=response.status_code, body=body)
            raise BackendError(response.status_code, body)

        return response


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def next_cursor(next_url: Optional[str]) -> Optional[str]:
    """OSS listings return the next page as a full URL; the cursor is its startAt param."""
    if not next_url:
        return None
    return httpx.URL(next_url).params.get("startAt")
