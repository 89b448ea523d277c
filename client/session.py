from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

import structlog
from client.api_client import ApiRequestError, ViewerApiClient
from client.status_poller import StatusPoller
from client.viewer import PollerView
from domain.models import DeleteBucketResult, NamedUrn
from services.model_service import is_archive

logger = structlog.get_logger()


class ViewerSession:
    """
    The viewer page as a component: bucket list, model list of the selected
    bucket, and the status poller for the selected model.
    Mutating actions disable the controls while their request is in flight.
    """

    def __init__(self, api: ViewerApiClient, poller: StatusPoller, view: PollerView):
        self.api = api
        self.poller = poller
        self.view = view

        self.buckets: List[NamedUrn] = []
        self.models: List[NamedUrn] = []
        self.selected_bucket: Optional[NamedUrn] = None
        self.controls_enabled = True

    async def start(self) -> None:
        """Loads the buckets and restores the model remembered from the last run."""
        await self.load_buckets(preferred_model=self.poller.fragment.read())

    async def refresh_buckets(self, selected_urn: Optional[str] = None) -> Optional[NamedUrn]:
        """Reloads the bucket list; keeps selected_urn selected, else the first bucket."""
        try:
            self.buckets = await self.api.list_buckets()
        except ApiRequestError as e:
            self.view.show_error("Could not list buckets.", e)
            return None

        if not self.buckets:
            self.selected_bucket = None
            self.view.show_notice("No buckets available")
            return None

        self.selected_bucket = next((b for b in self.buckets if b.urn == selected_urn), self.buckets[0])
        return self.selected_bucket

    async def load_buckets(self, selected_urn: Optional[str] = None, preferred_model: Optional[str] = None) -> None:
        bucket = await self.refresh_buckets(selected_urn)
        if bucket is not None:
            await self.select_bucket(bucket, preferred_model=preferred_model)

    async def select_bucket(self, bucket: NamedUrn, preferred_model: Optional[str] = None) -> None:
        self.selected_bucket = bucket
        try:
            self.models = await self.api.list_models(bucket.urn)
        except ApiRequestError as e:
            self.view.show_error("Could not list models for this bucket.", e)
            return

        if preferred_model:
            # Deep links may point outside the listed bucket; urns are global
            await self.poller.select(preferred_model)
        elif not self.models:
            self.poller.cancel()
            self.view.show_notice("No models found in this bucket.")
        else:
            self.view.clear_notice()
            await self.poller.select(self.models[0].urn)

    @asynccontextmanager
    async def _controls_disabled(self, action: str):
        self.controls_enabled = False
        logger.debug("controls_disabled", action=action)
        try:
            yield
        finally:
            self.controls_enabled = True
            logger.debug("controls_enabled", action=action)

    def _accepting(self, action: str) -> bool:
        if not self.controls_enabled:
            logger.warning("action_ignored_while_busy", action=action)
            return False
        return True

    async def create_bucket(self, bucket_name: str) -> Optional[NamedUrn]:
        bucket_name = bucket_name.strip()
        if not bucket_name:
            self.view.show_error("Please enter a bucket name.")
            return None
        if not self._accepting("create_bucket"):
            return None

        async with self._controls_disabled("create_bucket"):
            self.view.show_notice(f"Creating bucket {bucket_name}. Please wait...")
            try:
                bucket = await self.api.create_bucket(bucket_name)
            except ApiRequestError as e:
                self.view.show_error(f"Could not create bucket {bucket_name}: {e.message}", e)
                return None
            finally:
                self.view.clear_notice()

        await self.load_buckets(selected_urn=bucket.urn)
        return bucket

    async def delete_bucket(self, bucket_name: str) -> Optional[DeleteBucketResult]:
        if not self._accepting("delete_bucket"):
            return None

        async with self._controls_disabled("delete_bucket"):
            self.view.show_notice(f"Deleting bucket {bucket_name}...")
            try:
                result = await self.api.delete_bucket(bucket_name)
            except ApiRequestError as e:
                self.view.show_error(e.message, e)
                return None
            finally:
                self.view.clear_notice()

        await self.load_buckets()
        self.view.show_notice(f'Bucket "{bucket_name}" deleted successfully.')
        return result

    async def upload_model(
        self, file_path: Path, zip_entrypoint: Optional[str] = None, select_uploaded: bool = True
    ) -> Optional[NamedUrn]:
        if self.selected_bucket is None:
            self.view.show_error("Please select a bucket before uploading a model.")
            return None
        if is_archive(file_path.name) and not zip_entrypoint:
            self.view.show_error("Please enter the filename of the main design inside the archive.")
            return None
        if not self._accepting("upload_model"):
            return None

        bucket = self.selected_bucket
        async with self._controls_disabled("upload_model"):
            self.view.show_notice(f"Uploading model {file_path.name} to bucket {bucket.name}. Do not interrupt.")
            try:
                model = await self.api.upload_model(file_path, bucket.urn, zip_entrypoint)
            except ApiRequestError as e:
                self.view.show_error(f"Could not upload model {file_path.name}.", e)
                return None
            finally:
                self.view.clear_notice()

        if select_uploaded:
            await self.select_bucket(bucket, preferred_model=model.urn)
        return model
