import asyncio
from typing import List
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from client.api_client import ApiRequestError
from client.scheduler import AsyncioScheduler, Scheduler, Timer
from client.status_poller import PollState, StatusPoller
from client.viewer import DocumentLoadError, LoadErrorCode
from domain.models import TranslationStatus

IN_PROGRESS = TranslationStatus(status="inprogress", progress="10% complete")
COMPLETE = TranslationStatus(status="success", progress="complete")


# --- Fake Clock ---


class FakeTimer(Timer):
    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler(Scheduler):
    """Timers only fire when the test advances the clock."""

    def __init__(self):
        self.now = 0.0
        self.timers: List[FakeTimer] = []

    def call_later(self, delay, callback):
        timer = FakeTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    async def advance(self, seconds: float):
        self.now += seconds
        for timer in list(self.timers):
            if not timer.cancelled and not timer.fired and timer.due <= self.now:
                timer.fired = True
                await timer.callback()

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]


# --- Fixtures ---


@pytest.fixture
def api():
    return AsyncMock()


@pytest.fixture
def view():
    return MagicMock()


@pytest.fixture
def viewer():
    return AsyncMock()


@pytest.fixture
def fragment():
    return MagicMock()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def poller(api, view, viewer, fragment, scheduler):
    return StatusPoller(api, view, viewer, fragment, scheduler, delay=5.0)


# --- Tests ---


@pytest.mark.asyncio
async def test_polls_until_complete_then_hands_off_once(poller, api, viewer, scheduler):
    """
    Scenario: Status goes in-progress, in-progress, complete.
    Expectation: 3 queries, 2 timers, one viewer hand-off after the 3rd query.
    """
    api.get_model_status.side_effect = [IN_PROGRESS, IN_PROGRESS, COMPLETE]

    await poller.select("urn-a")
    assert poller.state == PollState.IN_PROGRESS
    viewer.load_model.assert_not_awaited()

    await scheduler.advance(5)
    assert api.get_model_status.await_count == 2
    viewer.load_model.assert_not_awaited()

    await scheduler.advance(5)

    assert api.get_model_status.await_count == 3
    assert len(scheduler.timers) == 2
    viewer.load_model.assert_awaited_once_with("urn-a")
    assert poller.state == PollState.READY
    assert poller.settled.is_set()
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_timer_waits_for_the_full_delay(poller, api, scheduler):
    api.get_model_status.side_effect = [IN_PROGRESS, COMPLETE]

    await poller.select("urn-a")
    await scheduler.advance(4.9)

    assert api.get_model_status.await_count == 1


@pytest.mark.asyncio
async def test_switching_subject_cancels_pending_timer(poller, api, scheduler, fragment):
    """
    Scenario: Model A is in progress with a timer pending, user picks model B.
    Expectation: A's timer is cancelled; advancing the clock never queries A again.
    """
    api.get_model_status.return_value = IN_PROGRESS

    await poller.select("urn-a")
    timer_a = scheduler.timers[0]

    await poller.select("urn-b")
    assert timer_a.cancelled is True
    assert len(scheduler.pending) == 1

    await scheduler.advance(5)

    assert api.get_model_status.await_args_list == [call("urn-a"), call("urn-b"), call("urn-b")]
    assert poller.subject == "urn-b"
    assert fragment.write.call_args_list == [call("urn-a"), call("urn-b")]


@pytest.mark.asyncio
async def test_late_response_for_previous_subject_is_discarded(poller, api, viewer):
    """
    Scenario: A's status request is still in flight when B is selected; A then completes.
    Expectation: A's answer does not load A in the viewer or overwrite B's state.
    """
    release_a = asyncio.Event()

    async def status(urn):
        if urn == "urn-a":
            await release_a.wait()
            return COMPLETE
        return IN_PROGRESS

    api.get_model_status.side_effect = status

    pending_a = asyncio.create_task(poller.select("urn-a"))
    await asyncio.sleep(0)

    await poller.select("urn-b")
    release_a.set()
    await pending_a

    viewer.load_model.assert_not_awaited()
    assert poller.subject == "urn-b"
    assert poller.state == PollState.IN_PROGRESS


@pytest.mark.asyncio
async def test_not_translated_is_passive(poller, api, view, scheduler, viewer):
    api.get_model_status.return_value = TranslationStatus(status="n/a")

    await poller.select("urn-a")

    assert poller.state == PollState.NOT_TRANSLATED
    view.show_notice.assert_called_once_with("Model has not been translated.")
    assert scheduler.timers == []
    viewer.load_model.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_shows_messages_and_stops(poller, api, view, scheduler):
    messages = [{"type": "error", "code": "D1"}, {"type": "error", "code": "C1"}]
    api.get_model_status.return_value = TranslationStatus(status="failed", messages=messages)

    await poller.select("urn-a")

    assert poller.state == PollState.FAILED
    view.show_failure.assert_called_once_with(messages)
    assert scheduler.timers == []


@pytest.mark.asyncio
async def test_unknown_status_is_treated_as_ready(poller, api, view, viewer):
    api.get_model_status.return_value = TranslationStatus(status="pending")

    await poller.select("urn-a")

    assert poller.state == PollState.READY
    view.clear_notice.assert_called_once()
    viewer.load_model.assert_awaited_once_with("urn-a")


@pytest.mark.asyncio
async def test_request_failure_returns_to_idle_without_retry(poller, api, view, scheduler):
    api.get_model_status.side_effect = ApiRequestError("Bad Gateway", status_code=502)

    await poller.select("urn-a")

    assert poller.state == PollState.IDLE
    assert scheduler.timers == []
    view.show_error.assert_called_once()
    assert poller.settled.is_set()


@pytest.mark.asyncio
async def test_viewer_load_failure_is_surfaced(poller, api, view, viewer):
    api.get_model_status.return_value = COMPLETE
    viewer.load_model.side_effect = DocumentLoadError(LoadErrorCode.NETWORK_FAILURE, "offline", ["timeout"])

    await poller.select("urn-a")

    assert poller.state == PollState.READY
    view.show_error.assert_called_once()
    assert "offline" in view.show_error.call_args.args[0]


@pytest.mark.asyncio
async def test_cancel_stops_polling(poller, api, scheduler):
    api.get_model_status.return_value = IN_PROGRESS

    await poller.select("urn-a")
    poller.cancel()
    await scheduler.advance(10)

    assert api.get_model_status.await_count == 1
    assert poller.state == PollState.IDLE


@pytest.mark.asyncio
async def test_wait_settled_returns_terminal_state(poller, api, scheduler):
    api.get_model_status.side_effect = [IN_PROGRESS, TranslationStatus(status="failed", messages=[])]

    await poller.select("urn-a")
    assert not poller.settled.is_set()

    await scheduler.advance(5)

    assert await poller.wait_settled() == PollState.FAILED


@pytest.mark.asyncio
async def test_invalid_status_payload_on_requery_returns_to_idle(poller, api, view, scheduler):
    """
    Scenario: The first query says in-progress, the timer re-query gets a body that is not a status.
    Expectation: Same as a failed request: Idle, error shown, no new timer, settled.
    """
    api.get_model_status.side_effect = [IN_PROGRESS, ValueError("1 validation error for TranslationStatus")]

    await poller.select("urn-a")
    await scheduler.advance(5)

    assert poller.state == PollState.IDLE
    assert poller.settled.is_set()
    assert scheduler.pending == []
    view.show_error.assert_called_once()


@pytest.mark.asyncio
async def test_requery_failure_settles_with_real_timers(api, view, viewer, fragment):
    api.get_model_status.side_effect = [IN_PROGRESS, ApiRequestError("Invalid response body", status_code=200)]
    poller = StatusPoller(api, view, viewer, fragment, AsyncioScheduler(), delay=0.01)

    await poller.select("urn-a")
    state = await asyncio.wait_for(poller.wait_settled(), timeout=1.0)

    assert state == PollState.IDLE
    assert api.get_model_status.await_count == 2
