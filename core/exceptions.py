from typing import Any, List, Optional


class ViewerError(Exception):
    """
    Base class for all application-specific exceptions.
    Captures the original exception for debugging if needed.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


# --- Client Exceptions (Bad Input) ---


class ClientInputError(ViewerError):
    """
    Raised when a required field is missing or invalid (e.g. no 'model-file').
    Maps to HTTP 400. Raised before any backend call is made.
    """

    pass


class DecodeError(ViewerError):
    """
    Raised when a urn token is not valid URL-safe base64 of a UTF-8 identifier.
    Maps to HTTP 400.
    """

    pass


# --- Backend Exceptions (Classified APS Failures) ---


class NameConflictError(ViewerError):
    """
    Raised when a bucket name is unavailable, or a bucket cannot be deleted
    because it still has content. Maps to HTTP 409.
    """

    def __init__(
        self,
        message: str,
        suggestions: Optional[List[str]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, original_error)
        self.suggestions = suggestions or []


class NotFoundError(ViewerError):
    """
    Raised when the bucket to delete does not exist.
    Maps to HTTP 404.
    """

    pass


class PermissionDeniedError(ViewerError):
    """
    Raised when APS rejects an operation because of bucket ownership or token scope.
    Maps to HTTP 403.
    """

    pass


class BackendUnavailableError(ViewerError):
    """
    Raised for any other APS failure that a service has classified.
    Maps to HTTP 502.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, original_error: Optional[Exception] = None):
        super().__init__(message, original_error)
        self.status_code = status_code


# --- Infrastructure Exceptions (Adapter Boundary) ---


class BackendError(Exception):
    """
    Normalized failure of an external collaborator call.
    Adapters raise this so services never look at transport-specific shapes.
    """

    def __init__(self, status_code: Optional[int], body: Any = None, message: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"Backend request failed with status {status_code}: {body}")

    @property
    def reason(self) -> Optional[str]:
        if isinstance(self.body, dict):
            return self.body.get("reason")
        return None

    @property
    def error_code(self) -> Optional[str]:
        if isinstance(self.body, dict):
            return self.body.get("errorCode")
        return None
