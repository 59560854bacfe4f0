"""Tests for :mod:`weather_agent.poller`.

Async code is driven with :func:`asyncio.run`; the poller gets a
:class:`~tests.dummy_client.FakeTime` clock so backoff and deadlines are
checked without waiting.
"""

from __future__ import annotations

import asyncio
import time

import pytest

from tests.dummy_client import DummyVideoHost, FakeTime
from weather_agent.assets import AssetState, AssetStatus, RenderRequest
from weather_agent.composer import ResponseComposer
from weather_agent.errors import ProviderTerminalError, SubmissionError, TransientCheckError
from weather_agent.events import EventBus
from weather_agent.poller import AssetPoller, PollPolicy

BASE = "https://player.example.com"


def _poller(host, fake_time: FakeTime, policy: PollPolicy | None = None, events: EventBus | None = None):
    return AssetPoller(
        host,
        policy=policy or PollPolicy(initial_interval=1.0, step=1.0, max_interval=3.0, max_attempts=10, timeout=600.0),
        events=events or EventBus(clock=fake_time.clock),
        clock=fake_time.clock,
        sleep=fake_time.sleep,
        player_base_url=BASE,
    )


def _request() -> RenderRequest:
    return RenderRequest(audio_path="/tmp/speech.wav")


# --------------------------------------------------------------------------- #
#  Policy
# --------------------------------------------------------------------------- #
def test_delay_for_is_bounded_and_non_decreasing():
    policy = PollPolicy(initial_interval=2.0, step=1.5, max_interval=7.0)
    delays = [policy.delay_for(n) for n in range(1, 20)]
    assert delays[0] == 2.0
    assert all(a <= b for a, b in zip(delays, delays[1:]))
    assert all(2.0 <= d <= 7.0 for d in delays)
    assert delays[-1] == 7.0


def test_zero_step_gives_fixed_interval():
    policy = PollPolicy(initial_interval=3.0, step=0.0, max_interval=3.0)
    assert {policy.delay_for(n) for n in range(1, 10)} == {3.0}


@pytest.mark.parametrize(
    "kwargs",
    [
        {"initial_interval": -1.0},
        {"initial_interval": 5.0, "max_interval": 4.0},
        {"max_attempts": 0},
        {"timeout": 0.0},
    ],
)
def test_invalid_policy_values_raise(kwargs):
    with pytest.raises(ValueError):
        PollPolicy(**kwargs)


# --------------------------------------------------------------------------- #
#  Submission
# --------------------------------------------------------------------------- #
def test_submit_moves_to_preparing_with_player_url(host, fake_time):
    events = EventBus(clock=fake_time.clock)
    seen = []
    events.subscribe(lambda e: seen.append(e.transition))
    poller = _poller(host, fake_time, events=events)

    job = asyncio.run(poller.submit(_request(), session_id="s1"))

    assert job.state is AssetState.PREPARING
    assert job.external_asset_id == "asset-1"
    assert job.player_url == f"{BASE}/player?assetId=asset-1"
    assert job.deadline == fake_time.now + 600.0
    assert job.session_id == "s1"
    assert seen == ["created", "submitting->preparing"]


def test_immediate_message_available_before_any_status_check(host, fake_time):
    poller = _poller(host, fake_time)
    job = asyncio.run(poller.submit(_request()))

    message = ResponseComposer().compose_immediate(job)

    assert host.status_calls == []
    assert job.poll_attempts == 0
    assert job.player_url in message.content
    assert "processing" in message.content


def test_submission_error_marks_job_errored_without_url(fake_time):
    host = DummyVideoHost(submit_error=SubmissionError("400 bad request", status_code=400))
    poller = _poller(host, fake_time)

    with pytest.raises(SubmissionError) as excinfo:
        asyncio.run(poller.submit(_request()))

    job = excinfo.value.job
    assert job.state is AssetState.ERRORED
    assert job.external_asset_id is None
    assert job.player_url is None
    assert "400" in job.error_detail
    message = ResponseComposer().compose_resolution(job)
    assert "couldn't create" in message.content
    assert message.player_url is None


def test_unexpected_submit_failure_is_wrapped_and_marks_job_errored(fake_time):
    poller = _poller(DummyVideoHost(submit_error=RuntimeError("gateway ok")), fake_time)

    with pytest.raises(SubmissionError) as excinfo:
        asyncio.run(poller.submit(_request()))

    job = excinfo.value.job
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert job.state is AssetState.ERRORED
    assert job.player_url is None
    assert "gateway ok" in job.error_detail


# --------------------------------------------------------------------------- #
#  check_once
# --------------------------------------------------------------------------- #
@pytest.mark.parametrize(
    "status,expected",
    [
        (AssetStatus("preparing"), AssetState.PREPARING),
        (AssetStatus("ready", playback_id="pb1"), AssetState.READY),
        (AssetStatus("errored", error_detail="bad codec"), AssetState.ERRORED),
        (AssetStatus("failed"), AssetState.ERRORED),
        (AssetStatus("something-new"), AssetState.PREPARING),
        (TransientCheckError("503"), AssetState.PREPARING),
        (ProviderTerminalError("404 not found"), AssetState.ERRORED),
    ],
)
def test_check_once_maps_provider_answers(fake_time, status, expected):
    host = DummyVideoHost().script("asset-1", status)
    poller = _poller(host, fake_time)

    async def scenario():
        job = await poller.submit(_request())
        return await poller.check_once(job)

    job = asyncio.run(scenario())
    assert job.state is expected
    assert job.poll_attempts == 1
    assert job.last_polled_at == fake_time.now
    if expected is AssetState.ERRORED:
        assert job.error_detail
    if expected is AssetState.READY:
        assert job.playback_id == "pb1"


def test_check_once_on_terminal_job_is_a_noop(fake_time):
    host = DummyVideoHost().script("asset-1", AssetStatus("ready"))
    poller = _poller(host, fake_time)

    async def scenario():
        job = await poller.submit(_request())
        await poller.check_once(job)
        await poller.check_once(job)
        return job

    job = asyncio.run(scenario())
    assert job.state is AssetState.READY
    assert host.status_calls == ["asset-1"]
    assert job.poll_attempts == 1


# --------------------------------------------------------------------------- #
#  poll_until_terminal
# --------------------------------------------------------------------------- #
def test_transient_errors_then_ready(fake_time):
    host = DummyVideoHost().script(
        "asset-1",
        TransientCheckError("500"),
        TransientCheckError("network down"),
        AssetStatus("ready", playback_id="pb1"),
    )
    poller = _poller(host, fake_time)

    async def scenario():
        job = await poller.submit(_request())
        return await poller.poll_until_terminal(job)

    job = asyncio.run(scenario())
    assert job.state is AssetState.READY
    assert job.poll_attempts == 3
    assert job.error_detail is None


def test_provider_error_is_not_retried(fake_time):
    host = DummyVideoHost().script("asset-1", AssetStatus("preparing"), AssetStatus("errored", error_detail="bad input"))
    poller = _poller(host, fake_time)

    async def scenario():
        job = await poller.submit(_request())
        return await poller.poll_until_terminal(job)

    job = asyncio.run(scenario())
    assert job.state is AssetState.ERRORED
    assert job.error_detail == "bad input"
    assert len(host.status_calls) == 2


def test_backoff_grows_to_cap_then_times_out_on_attempts(fake_time):
    policy = PollPolicy(initial_interval=1.0, step=1.0, max_interval=3.0, max_attempts=6, timeout=600.0)
    poller = _poller(DummyVideoHost(), fake_time, policy=policy)

    async def scenario():
        job = await poller.submit(_request())
        return await poller.poll_until_terminal(job)

    job = asyncio.run(scenario())
    assert job.state is AssetState.TIMED_OUT
    assert job.poll_attempts == 6
    assert fake_time.sleeps == [1.0, 2.0, 3.0, 3.0, 3.0]


def test_deadline_gives_timed_out(fake_time):
    policy = PollPolicy(initial_interval=4.0, step=0.0, max_interval=4.0, max_attempts=100, timeout=10.0)
    poller = _poller(DummyVideoHost(), fake_time, policy=policy)

    async def scenario():
        job = await poller.submit(_request())
        return await poller.poll_until_terminal(job)

    job = asyncio.run(scenario())
    assert job.state is AssetState.TIMED_OUT
    assert job.poll_attempts == 4
    assert fake_time.sleeps == [4.0, 4.0, 2.0]
    assert job.last_polled_at <= job.deadline
    assert fake_time.now == job.deadline


def test_no_check_once_the_deadline_has_passed(fake_time, host):
    poller = _poller(host, fake_time)
    job = poller.track("asset-1", policy=PollPolicy(timeout=10.0))
    fake_time.now += 11.0

    asyncio.run(poller.poll_until_terminal(job))
    assert job.state is AssetState.TIMED_OUT
    assert host.status_calls == []


def test_unexpected_host_error_counts_as_inconclusive_check(fake_time):
    host = DummyVideoHost().script("asset-1", AttributeError("'NoneType' object has no attribute 'get'"))
    policy = PollPolicy(initial_interval=1.0, step=0.0, max_interval=1.0, max_attempts=3, timeout=600.0)
    poller = _poller(host, fake_time, policy=policy)

    async def scenario():
        job = await poller.submit(_request())
        return await poller.poll_until_terminal(job)

    job = asyncio.run(scenario())
    assert job.state is AssetState.TIMED_OUT
    assert job.poll_attempts == 3


def test_states_visited_are_monotonic(fake_time):
    events = EventBus(clock=fake_time.clock)
    transitions = []
    events.subscribe(lambda e: transitions.append(e.transition) if "->" in e.transition else None)
    host = DummyVideoHost().script(
        "asset-1",
        AssetStatus("preparing"),
        TransientCheckError("502"),
        AssetStatus("ready"),
    )
    poller = _poller(host, fake_time, events=events)

    async def scenario():
        job = await poller.submit(_request())
        return await poller.poll_until_terminal(job)

    asyncio.run(scenario())
    assert transitions == ["submitting->preparing", "preparing->ready"]


# --------------------------------------------------------------------------- #
#  Cancellation
# --------------------------------------------------------------------------- #
def test_cancel_between_attempts_leaves_job_non_terminal(fake_time):
    events = EventBus(clock=fake_time.clock)
    poller = _poller(DummyVideoHost(), fake_time, events=events)
    seen = []

    async def scenario():
        cancel = asyncio.Event()
        polls = []

        def on_event(event):
            seen.append(event.transition)
            if event.transition == "polled":
                polls.append(event)
                if len(polls) == 2:
                    cancel.set()

        events.subscribe(on_event)
        job = await poller.submit(_request())
        return await poller.poll_until_terminal(job, cancel=cancel)

    job = asyncio.run(scenario())
    assert job.state is AssetState.PREPARING
    assert job.poll_attempts == 2
    assert seen[-1] == "abandoned"
    assert not any(t.startswith("preparing->") for t in seen)


def test_cancel_interrupts_the_wait_promptly():
    policy = PollPolicy(initial_interval=30.0, step=0.0, max_interval=30.0, max_attempts=10, timeout=600.0)
    poller = AssetPoller(DummyVideoHost(), policy=policy, player_base_url=BASE)

    async def scenario():
        cancel = asyncio.Event()
        job = await poller.submit(_request())
        asyncio.get_running_loop().call_later(0.05, cancel.set)
        started = time.monotonic()
        await asyncio.wait_for(poller.poll_until_terminal(job, cancel=cancel), timeout=5)
        return job, time.monotonic() - started

    job, elapsed = asyncio.run(scenario())
    assert job.state is AssetState.PREPARING
    assert job.poll_attempts == 1
    assert elapsed < 5


def test_cancel_before_first_query_does_not_poll(fake_time, host):
    poller = _poller(host, fake_time)

    async def scenario():
        cancel = asyncio.Event()
        cancel.set()
        job = await poller.submit(_request())
        return await poller.poll_until_terminal(job, cancel=cancel)

    job = asyncio.run(scenario())
    assert host.status_calls == []
    assert job.state is AssetState.PREPARING


# --------------------------------------------------------------------------- #
#  Independence
# --------------------------------------------------------------------------- #
def test_jobs_poll_independently(fake_time):
    host = DummyVideoHost()
    host.script("asset-a", AssetStatus("preparing"), AssetStatus("ready"))
    host.script("asset-b", AssetStatus("errored", error_detail="corrupt"))
    poller = _poller(host, fake_time)

    async def scenario():
        a = poller.track("asset-a")
        b = poller.track("asset-b")
        await asyncio.gather(poller.poll_until_terminal(a), poller.poll_until_terminal(b))
        return a, b

    a, b = asyncio.run(scenario())
    assert a.state is AssetState.READY and a.poll_attempts == 2
    assert b.state is AssetState.ERRORED and b.poll_attempts == 1
    assert a.player_url.endswith("assetId=asset-a")
