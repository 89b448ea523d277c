import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

import structlog
from client.api_client import ApiRequestError, ViewerApiClient
from client.scheduler import AsyncioScheduler
from client.session import ViewerSession
from client.status_poller import PollState, StatusPoller
from client.viewer import BrowserModelViewer, FileFragmentStore, PollerView
from core.config import ClientSettings
from core.logging import configure_logging

logger = structlog.get_logger()


class ConsoleView(PollerView):
    """Prints what the web page would show in its overlay or alert box."""

    def show_notice(self, message: str) -> None:
        print(f"ℹ️  {message}")

    def clear_notice(self) -> None:
        pass

    def show_failure(self, messages: List[Any]) -> None:
        print("❌ Translation failed.")
        for msg in messages:
            print(f"   - {json.dumps(msg)}")

    def show_error(self, message: str, detail: Optional[Exception] = None) -> None:
        print(f"⚠️  {message}", file=sys.stderr)
        if detail is not None:
            logger.error("viewer_error", message=message, detail=str(detail))


def build_session(api: ViewerApiClient, settings: ClientSettings, view: PollerView) -> ViewerSession:
    viewer = BrowserModelViewer(api, settings.VIEWER_URL or settings.SERVER_URL)
    poller = StatusPoller(
        api,
        view,
        viewer,
        FileFragmentStore(settings.FRAGMENT_FILE),
        AsyncioScheduler(),
        delay=settings.POLLING_INTERVAL,
    )
    return ViewerSession(api, poller, view)


def print_entries(entries) -> None:
    if not entries:
        print("(none)")
    for entry in entries:
        print(f"{entry.name}\t{entry.urn}")


async def run(args: argparse.Namespace, settings: ClientSettings) -> int:
    view = ConsoleView()

    async with ViewerApiClient(settings.SERVER_URL, timeout=settings.HTTP_TIMEOUT) as api:
        session = build_session(api, settings, view)

        try:
            if args.command == "buckets":
                print_entries(await api.list_buckets())

            elif args.command == "models":
                print_entries(await api.list_models(args.bucket))

            elif args.command == "create-bucket":
                bucket = await session.create_bucket(args.name)
                if bucket is None:
                    return 1
                print_entries([bucket])

            elif args.command == "delete-bucket":
                result = await session.delete_bucket(args.name)
                if result is None:
                    return 1

            elif args.command == "upload":
                bucket = await session.refresh_buckets(args.bucket)
                if args.bucket and (bucket is None or bucket.urn != args.bucket):
                    view.show_error(f"Bucket {args.bucket} not found.")
                    return 1
                model = await session.upload_model(Path(args.file), args.entrypoint, select_uploaded=args.watch)
                if model is None:
                    return 1
                print_entries([model])
                if args.watch:
                    return 0 if await session.poller.wait_settled() == PollState.READY else 1

            elif args.command == "view":
                if args.urn:
                    await session.poller.select(args.urn)
                else:
                    await session.start()
                if session.poller.subject is None:
                    return 1
                state = await session.poller.wait_settled()
                return 0 if state == PollState.READY else 1

        except ApiRequestError as e:
            view.show_error(e.message, e)
            return 1
        finally:
            session.poller.cancel()

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Manage APS buckets and models and open them in the viewer.")
    parser.add_argument("--server", help="Viewer server base URL (default: $VIEWER_SERVER_URL)")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("buckets", help="List buckets")

    models = sub.add_parser("models", help="List models of a bucket")
    models.add_argument("--bucket", help="Bucket urn (default bucket when omitted)")

    create = sub.add_parser("create-bucket", help="Create a bucket")
    create.add_argument("name")

    delete = sub.add_parser("delete-bucket", help="Delete a bucket and its objects")
    delete.add_argument("name")

    upload = sub.add_parser("upload", help="Upload a model and start its translation")
    upload.add_argument("file")
    upload.add_argument("--bucket", help="Bucket urn (first bucket when omitted)")
    upload.add_argument("--entrypoint", help="Main design file inside a .zip archive")
    upload.add_argument("--watch", action="store_true", help="Wait for the translation and open the viewer")

    view = sub.add_parser("view", help="Wait for a model's translation, then open it in the viewer")
    view.add_argument("urn", nargs="?", help="Model urn (last viewed model when omitted)")

    args = parser.parse_args(argv)

    configure_logging(log_level="DEBUG" if args.verbose else "WARNING", service="aps-viewer-cli")
    settings = ClientSettings()
    if args.server:
        settings.SERVER_URL = args.server

    return asyncio.run(run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
