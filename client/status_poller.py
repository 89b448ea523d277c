"""
Translation status polling for the selected model.

One PollSession exists per selected urn and owns at most one re-query timer.
Selecting another model cancels the current session before anything else
happens, and responses that arrive for a superseded session are dropped.
Only an "inprogress" answer schedules another query; a failed request does not.
"""

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

import structlog
from client.api_client import ApiRequestError
from client.scheduler import Scheduler, Timer
from client.viewer import DocumentLoadError, FragmentStore, ModelViewer, PollerView
from domain.models import TranslationState, TranslationStatus

logger = structlog.get_logger()

DEFAULT_POLL_DELAY = 5.0  # seconds


class StatusSource(Protocol):
    async def get_model_status(self, urn: str) -> TranslationStatus: ...


class PollState(str, Enum):
    IDLE = "idle"
    QUERYING = "querying"
    NOT_TRANSLATED = "not_translated"
    IN_PROGRESS = "in_progress"
    FAILED = "failed"
    READY = "ready"


@dataclass(eq=False)
class PollSession:
    urn: str
    timer: Optional[Timer] = None
    cancelled: bool = False

    def arm(self, timer: Timer) -> None:
        if self.timer is not None:
            self.timer.cancel()
        self.timer = timer

    def cancel(self) -> None:
        self.cancelled = True
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class StatusPoller:
    def __init__(
        self,
        api: StatusSource,
        view: PollerView,
        viewer: ModelViewer,
        fragment: FragmentStore,
        scheduler: Scheduler,
        delay: float = DEFAULT_POLL_DELAY,
    ):
        self.api = api
        self.view = view
        self.viewer = viewer
        self.fragment = fragment
        self.scheduler = scheduler
        self.delay = delay

        self.state = PollState.IDLE
        self.session: Optional[PollSession] = None
        # Set whenever polling stops on its own (anything but in-progress)
        self.settled = asyncio.Event()

    @property
    def subject(self) -> Optional[str]:
        return self.session.urn if self.session else None

    async def select(self, urn: str) -> None:
        """Makes urn the subject and queries its status right away."""
        self.cancel()
        self.fragment.write(urn)
        self.session = PollSession(urn)
        self.settled.clear()
        logger.info("poll_subject_selected", urn=urn)
        await self._query(self.session)

    def cancel(self) -> None:
        if self.session is not None:
            self.session.cancel()
            logger.debug("poll_session_cancelled", urn=self.session.urn)
        self.state = PollState.IDLE

    async def wait_settled(self) -> PollState:
        await self.settled.wait()
        return self.state

    def _is_current(self, session: PollSession) -> bool:
        return session is self.session and not session.cancelled

    async def _on_timer(self, session: PollSession) -> None:
        session.timer = None
        await self._query(session)

    async def _query(self, session: PollSession) -> None:
        if not self._is_current(session):
            return

        self.state = PollState.QUERYING
        try:
            status = await self.api.get_model_status(session.urn)
        except (ApiRequestError, ValueError) as e:
            # ValueError covers bodies that fail TranslationStatus validation
            if not self._is_current(session):
                return
            self._settle(PollState.IDLE)
            self.view.show_error("Could not load model. See the log for more details.", e)
            return

        if not self._is_current(session):
            logger.info("poll_response_discarded", urn=session.urn, current=self.subject)
            return

        await self._apply(session, status)

    async def _apply(self, session: PollSession, status: TranslationStatus) -> None:
        if status.status == TranslationState.NOT_AVAILABLE.value:
            self._settle(PollState.NOT_TRANSLATED)
            self.view.show_notice("Model has not been translated.")

        elif status.status == TranslationState.IN_PROGRESS.value:
            self.state = PollState.IN_PROGRESS
            self.view.show_notice(f"Model is being translated ({status.progress})...")
            session.arm(self.scheduler.call_later(self.delay, lambda: self._on_timer(session)))
            logger.debug("poll_timer_armed", urn=session.urn, delay=self.delay)

        elif status.status == TranslationState.FAILED.value:
            self._settle(PollState.FAILED)
            messages = status.messages or []
            logger.warning("translation_failed", urn=session.urn, messages=len(messages))
            self.view.show_failure(messages)

        else:
            self._settle(PollState.READY)
            self.view.clear_notice()
            try:
                await self.viewer.load_model(session.urn)
            except DocumentLoadError as e:
                self.view.show_error(f"Could not load model: {e} ({json.dumps(e.errors, default=str)})", e)

    def _settle(self, state: PollState) -> None:
        self.state = state
        self.settled.set()
