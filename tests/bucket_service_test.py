from unittest.mock import AsyncMock

import pytest

from connections.local_storage_provider import LocalObjectStorage
from core.config import LocalSettings
from core.exceptions import (
    BackendError,
    BackendUnavailableError,
    ClientInputError,
    NameConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from domain.models import BucketRecord, ObjectRecord, Page
from services.bucket_service import (
    BucketService,
    sanitize_bucket_name,
    suggest_alternative_bucket_names,
    validate_bucket_key,
)
from services.urn import encode_urn


def _object(key: str) -> ObjectRecord:
    return ObjectRecord(bucket_key="demo", object_key=key, object_id=f"urn:adsk.objects:os.object:demo/{key}")


@pytest.fixture
def storage():
    storage = AsyncMock()
    storage.list_objects_page.return_value = Page(items=[])
    return storage


@pytest.fixture
def service(storage):
    return BucketService(storage, default_bucket="default-bucket", page_size=64)


# --- Sanitization ---


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("My Bucket!", "my-bucket"),
        ("already-valid", "already-valid"),
        ("  --Leading and trailing--  ", "leading-and-trailing"),
        ("UPPER_case.dots", "upper-case-dots"),
    ],
)
def test_sanitize_bucket_name(raw, expected):
    assert sanitize_bucket_name(raw) == expected


def test_sanitize_truncates_long_names():
    name = sanitize_bucket_name("a" * 127 + "-b" + "c" * 10)
    assert len(name) <= 128
    assert name[-1].isalnum()


def test_suggestions_are_derived_from_the_name():
    suggestions = suggest_alternative_bucket_names("demo")
    assert len(suggestions) == 4
    assert all(s.startswith("demo-") for s in suggestions)
    assert "demo-v2" in suggestions and "demo-new" in suggestions


@pytest.mark.parametrize("key", ["demo", "team.bucket_01", "a" * 128])
def test_valid_bucket_keys(key):
    assert validate_bucket_key(key) == key


@pytest.mark.parametrize("key", ["../..", "..", "foo/objects/bar", "Upper", "ab", "a" * 129, "demo\n"])
def test_invalid_bucket_keys(key):
    with pytest.raises(ClientInputError):
        validate_bucket_key(key)


# --- Creation ---


@pytest.mark.asyncio
async def test_create_bucket_returns_sanitized_name_and_urn(service, storage):
    bucket = await service.create_bucket("My Bucket!")

    storage.create_bucket.assert_awaited_once_with("my-bucket")
    assert bucket.name == "my-bucket"
    assert bucket.urn == encode_urn("my-bucket")


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["ab", "!!", "", None])
async def test_create_bucket_rejects_short_names_before_backend_call(service, storage, name):
    with pytest.raises(ClientInputError):
        await service.create_bucket(name)

    storage.create_bucket.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "details_outcome, expected_fragment",
    [
        (BucketRecord(bucket_key="taken"), "already exists and is accessible"),
        (BackendError(404, {"reason": "Bucket not found"}), "recently deleted"),
        (BackendError(403, {"reason": "Bucket owner mismatch"}), "another application or user"),
        (BackendError(500, "boom"), "conflicts with an existing bucket"),
    ],
)
async def test_create_conflict_is_explained(service, storage, details_outcome, expected_fragment):
    """
    Scenario: OSS answers 409 to the create call.
    Expectation: The details lookup decides the message; always a NameConflictError with suggestions.
    """
    storage.create_bucket.side_effect = BackendError(409, {"reason": "Bucket already exists"})
    if isinstance(details_outcome, Exception):
        storage.get_bucket_details.side_effect = details_outcome
    else:
        storage.get_bucket_details.return_value = details_outcome

    with pytest.raises(NameConflictError) as exc_info:
        await service.create_bucket("taken")

    assert expected_fragment in exc_info.value.message
    assert len(exc_info.value.suggestions) == 4


@pytest.mark.asyncio
async def test_create_other_backend_failure_propagates(service, storage):
    storage.create_bucket.side_effect = BackendError(500, "boom")

    with pytest.raises(BackendError):
        await service.create_bucket("valid-name")


# --- Ensure exists ---


@pytest.mark.asyncio
async def test_ensure_bucket_exists_keeps_existing_bucket(service, storage):
    storage.get_bucket_details.return_value = BucketRecord(bucket_key="default-bucket")

    assert await service.ensure_bucket_exists() == "default-bucket"
    storage.create_bucket.assert_not_awaited()


@pytest.mark.asyncio
async def test_ensure_bucket_exists_creates_missing_bucket(service, storage):
    storage.get_bucket_details.side_effect = BackendError(404, {})

    assert await service.ensure_bucket_exists("fresh") == "fresh"
    storage.create_bucket.assert_awaited_once_with("fresh")


@pytest.mark.asyncio
async def test_ensure_bucket_exists_tolerates_concurrent_creation(service, storage):
    """
    Scenario: Check says 404, but another request creates the bucket before us.
    Expectation: The 409 from create is a success.
    """
    storage.get_bucket_details.side_effect = BackendError(404, {})
    storage.create_bucket.side_effect = BackendError(409, {"reason": "Bucket already exists"})

    assert await service.ensure_bucket_exists() == "default-bucket"


@pytest.mark.asyncio
async def test_ensure_bucket_exists_reraises_other_errors(service, storage):
    storage.get_bucket_details.side_effect = BackendError(403, {})

    with pytest.raises(BackendError):
        await service.ensure_bucket_exists()
    storage.create_bucket.assert_not_awaited()


# --- Listing ---


@pytest.mark.asyncio
async def test_list_buckets_walks_all_pages(service, storage):
    storage.list_buckets_page.side_effect = [
        Page(items=[BucketRecord(bucket_key="a"), BucketRecord(bucket_key="b")], next_cursor="c"),
        Page(items=[BucketRecord(bucket_key="c")]),
    ]

    buckets = await service.list_buckets()

    assert [b.name for b in buckets] == ["a", "b", "c"]
    assert buckets[2].urn == encode_urn("c")
    assert storage.list_buckets_page.await_args_list[1].args == (64, "c")


# --- Deletion ---


@pytest.mark.asyncio
async def test_delete_clears_objects_best_effort(service, storage):
    """
    Scenario: Two objects, deleting the first fails.
    Expectation: Second object still deleted, bucket delete still attempted, success returned.
    """
    storage.list_objects_page.return_value = Page(items=[_object("a.rvt"), _object("b.rvt")])
    storage.delete_object.side_effect = [BackendError(500, "boom"), None]

    result = await service.delete_bucket("demo")

    assert storage.delete_object.await_count == 2
    storage.delete_bucket.assert_awaited_once_with("demo")
    assert result.success is True
    assert result.message == "Bucket 'demo' deleted successfully."


@pytest.mark.asyncio
async def test_delete_still_attempted_when_listing_fails(service, storage):
    storage.list_objects_page.side_effect = BackendError(500, "listing down")

    await service.delete_bucket("demo")

    storage.delete_object.assert_not_awaited()
    storage.delete_bucket.assert_awaited_once_with("demo")


@pytest.mark.asyncio
async def test_delete_requires_a_name(service, storage):
    with pytest.raises(ClientInputError):
        await service.delete_bucket(None)
    storage.delete_bucket.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "backend_error, expected_type, fragment",
    [
        (BackendError(404, {}), NotFoundError, "not found"),
        (BackendError(403, {"reason": "Bucket owner mismatch"}), PermissionDeniedError, "different application"),
        (BackendError(403, {"errorCode": "AUTH-003"}), PermissionDeniedError, "sufficient permissions"),
        (BackendError(403, {}), PermissionDeniedError, "Common causes"),
        (BackendError(409, {}), NameConflictError, "not empty"),
        (BackendError(500, "boom"), BackendUnavailableError, "Failed to delete bucket"),
    ],
)
async def test_delete_failures_are_classified(service, storage, backend_error, expected_type, fragment):
    storage.delete_bucket.side_effect = backend_error

    with pytest.raises(expected_type) as exc_info:
        await service.delete_bucket("demo")

    assert fragment in exc_info.value.message


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["../..", "foo/objects/bar"])
async def test_delete_rejects_keys_outside_oss_rules(service, storage, name):
    with pytest.raises(ClientInputError):
        await service.delete_bucket(name)

    storage.list_objects_page.assert_not_awaited()
    storage.delete_object.assert_not_awaited()
    storage.delete_bucket.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_cannot_reach_files_outside_local_storage(tmp_path):
    """
    Scenario: A delete request names a relative path instead of a bucket.
    Expectation: Rejected as client input; files next to the storage directory survive.
    """
    app_dir = tmp_path / "app"
    victim = app_dir / "important.txt"
    app_dir.mkdir()
    victim.write_text("keep me")
    storage = LocalObjectStorage(LocalSettings(LOCAL_STORAGE_PATH=app_dir / "local_storage"))
    service = BucketService(storage, default_bucket="default-bucket")

    with pytest.raises(ClientInputError):
        await service.delete_bucket("../..")

    assert victim.exists()
