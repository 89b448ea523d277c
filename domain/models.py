from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


# --- Backend Records ---


@dataclass
class Page(Generic[T]):
    """One page of an OSS listing. next_cursor is None on the last page."""

    items: List[T]
    next_cursor: Optional[str] = None


@dataclass
class BucketRecord:
    bucket_key: str
    policy_key: Optional[str] = None
    created_date: Optional[int] = None


@dataclass
class ObjectRecord:
    bucket_key: str
    object_key: str
    object_id: str
    size: Optional[int] = None
    sha1: Optional[str] = None
    location: Optional[str] = None


@dataclass
class AccessToken:
    access_token: str
    expires_in: int
    token_type: str = "Bearer"
    scopes: List[str] = field(default_factory=list)


class TranslationState(str, Enum):
    NOT_AVAILABLE = "n/a"
    PENDING = "pending"
    IN_PROGRESS = "inprogress"
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


# --- API Schemas ---


class NamedUrn(BaseModel):
    """A bucket or model as exposed to clients: display name plus urn token."""

    name: str
    urn: str


class TranslationStatus(BaseModel):
    # Kept as str: unknown states coming from APS must pass through untouched
    status: str
    progress: Optional[str] = None
    messages: Optional[List[Any]] = None


class BucketNameRequest(BaseModel):
    bucketName: Optional[str] = None


class DeleteBucketResult(BaseModel):
    success: bool
    message: str


class ViewerToken(BaseModel):
    access_token: str
    expires_in: int


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    suggestions: List[str] = Field(default_factory=list)
