"""Asset readiness poller.

:class:`AssetPoller` owns the submit / check / poll-until-terminal cycle for
narrated videos.  The video host client it talks to is synchronous
(``requests``), so every host call is pushed to a worker thread with
:func:`asyncio.to_thread`; the loop itself only suspends on those calls and
on the wait between attempts.

Outcomes
--------
* ``ready`` / ``errored`` come from the provider.
* ``timed_out`` means *this* loop gave up (attempt or deadline ceiling);
  the asset may still finish later.
* A cancelled loop returns the job untouched in ``preparing``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from . import config
from .assets import AssetJob, AssetState, RenderRequest, player_url
from .errors import ProviderTerminalError, SubmissionError, TransientCheckError
from .events import EventBus

log = logging.getLogger(__name__)

_PROVIDER_STATES = {
    "preparing": AssetState.PREPARING,
    "ready": AssetState.READY,
    "errored": AssetState.ERRORED,
    "failed": AssetState.ERRORED,
}


@dataclass(frozen=True)
class PollPolicy:
    """Backoff and ceiling for one poll loop.

    The wait after attempt ``n`` (1-based) is
    ``min(max_interval, initial_interval + step * (n - 1))``; ``step=0``
    gives a fixed interval.
    """

    initial_interval: float = 2.0
    step: float = 1.0
    max_interval: float = 10.0
    max_attempts: int = 60
    timeout: float = 300.0

    def __post_init__(self) -> None:
        if self.initial_interval < 0 or self.step < 0:
            raise ValueError("poll intervals must be non-negative")
        if self.max_interval < self.initial_interval:
            raise ValueError("max_interval must be >= initial_interval")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")

    def delay_for(self, attempt: int) -> float:
        return min(self.max_interval, self.initial_interval + self.step * max(0, attempt - 1))

    @classmethod
    def from_env(cls) -> "PollPolicy":
        initial = config.ASSET_POLL_INTERVAL_SECONDS
        return cls(
            initial_interval=initial,
            step=config.ASSET_POLL_STEP_SECONDS,
            max_interval=max(initial, config.ASSET_POLL_MAX_INTERVAL_SECONDS),
            max_attempts=config.ASSET_POLL_MAX_ATTEMPTS,
            timeout=config.ASSET_POLL_TIMEOUT_SECONDS,
        )


# Used for one-off "is it ready yet?" questions about untracked assets.
QUICK_CHECK_POLICY = PollPolicy(initial_interval=2.0, step=0.0, max_interval=2.0, max_attempts=5, timeout=10.0)


class AssetPoller:
    """Drive :class:`AssetJob` records against a video host client.

    Parameters
    ----------
    host:
        Object exposing ``submit_render(RenderRequest)`` and
        ``get_status(asset_id)`` (see :class:`weather_agent.video_host.MuxClient`).
    policy:
        Default :class:`PollPolicy`.
    events:
        Bus receiving one event per transition and per status check.
    clock, sleep:
        Injected for tests; default to :func:`time.time` and
        :func:`asyncio.sleep`.
    """

    def __init__(
        self,
        host: Any,
        policy: PollPolicy | None = None,
        events: EventBus | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        player_base_url: str = config.PLAYER_BASE_URL,
    ):
        self.host = host
        self.policy = policy or PollPolicy()
        self.events = events or EventBus(clock=clock)
        self._clock = clock
        self._sleep = sleep
        self._player_base_url = player_base_url

    # ------------------------------------------------------------------ #
    #  Transitions
    # ------------------------------------------------------------------ #
    def _transition(self, job: AssetJob, new_state: AssetState, detail: str | None = None) -> None:
        previous = job.advance(new_state, error_detail=detail)
        log.info("Job %s: %s -> %s", job.job_id, previous.value, new_state.value)
        self.events.emit(
            job.job_id,
            f"{previous.value}->{new_state.value}",
            state=new_state.value,
            detail=detail,
        )

    def new_job(self, session_id: str | None = None) -> AssetJob:
        job = AssetJob(created_at=self._clock(), session_id=session_id)
        self.events.emit(job.job_id, "created", state=job.state.value)
        return job

    # ------------------------------------------------------------------ #
    #  Public API
    # ------------------------------------------------------------------ #
    async def submit(self, request: RenderRequest, session_id: str | None = None) -> AssetJob:
        """Submit *request* and return a job in ``preparing``.

        Raises :class:`SubmissionError` (with ``exc.job`` set to the
        ``errored`` job) when the host rejects the request.  Any other
        failure is wrapped in one, so the job never stays ``submitting``.
        """
        job = self.new_job(session_id)
        try:
            result = await asyncio.to_thread(self.host.submit_render, request)
        except SubmissionError as exc:
            log.warning("Submission for job %s rejected: %s", job.job_id, exc)
            self._transition(job, AssetState.ERRORED, detail=str(exc))
            exc.job = job
            raise
        except Exception as exc:  # noqa: BLE001
            log.exception("Submission for job %s failed", job.job_id)
            self._transition(job, AssetState.ERRORED, detail=str(exc))
            error = SubmissionError(f"Video submission failed: {exc}")
            error.job = job
            raise error from exc
        url = player_url(result.external_asset_id, self._player_base_url)
        previous = job.mark_submitted(
            result.external_asset_id, url, deadline=self._clock() + self.policy.timeout
        )
        log.info(
            "Job %s: %s -> %s (asset %s)",
            job.job_id,
            previous.value,
            job.state.value,
            result.external_asset_id,
        )
        self.events.emit(
            job.job_id,
            f"{previous.value}->{job.state.value}",
            state=job.state.value,
            detail=result.external_asset_id,
        )
        return job

    def track(
        self,
        external_asset_id: str,
        session_id: str | None = None,
        policy: PollPolicy | None = None,
    ) -> AssetJob:
        """Return a ``preparing`` job for an asset submitted elsewhere."""
        policy = policy or self.policy
        job = self.new_job(session_id)
        previous = job.mark_submitted(
            external_asset_id,
            player_url(external_asset_id, self._player_base_url),
            deadline=self._clock() + policy.timeout,
        )
        self.events.emit(
            job.job_id,
            f"{previous.value}->{job.state.value}",
            state=job.state.value,
            detail=external_asset_id,
        )
        return job

    async def check_once(self, job: AssetJob) -> AssetJob:
        """Query the host exactly once and fold the answer into *job*.

        Transient failures leave the state alone; the attempt still counts.
        A terminal job is returned unchanged without any query.
        """
        if job.is_terminal:
            return job
        if job.external_asset_id is None:
            raise ValueError(f"job {job.job_id} has not been submitted")

        new_state: Optional[AssetState] = None
        detail: Optional[str] = None
        try:
            status = await asyncio.to_thread(self.host.get_status, job.external_asset_id)
        except TransientCheckError as exc:
            log.warning("Inconclusive check for job %s: %s", job.job_id, exc)
            detail = str(exc)
        except ProviderTerminalError as exc:
            new_state, detail = AssetState.ERRORED, str(exc)
        except Exception as exc:  # noqa: BLE001
            log.exception("Unexpected error checking job %s", job.job_id)
            detail = f"status check failed: {exc}"
        else:
            new_state = _PROVIDER_STATES.get((status.state or "").lower())
            if new_state is None:
                log.warning("Job %s: unknown provider status %r", job.job_id, status.state)
                detail = f"unknown provider status {status.state!r}"
            elif new_state is AssetState.ERRORED:
                detail = status.error_detail or f"asset {job.external_asset_id} failed to encode"
            elif new_state is AssetState.READY:
                job.playback_id = status.playback_id
        finally:
            job.poll_attempts += 1
            job.last_polled_at = self._clock()

        self.events.emit(job.job_id, "polled", state=job.state.value, detail=detail)
        if new_state is not None and new_state is not job.state:
            self._transition(job, new_state, detail=detail)
        return job

    async def poll_until_terminal(
        self,
        job: AssetJob,
        policy: PollPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AssetJob:
        """Poll *job* until it is terminal, the ceiling is hit, or *cancel* is set."""
        policy = policy or self.policy
        if job.deadline is None:
            job.deadline = self._clock() + policy.timeout

        while not job.is_terminal:
            if cancel is not None and cancel.is_set():
                return self._abandon(job)
            if self._clock() > job.deadline:
                self._transition(job, AssetState.TIMED_OUT, detail="deadline passed before the next check")
                break
            await self.check_once(job)
            if job.is_terminal:
                break
            if job.poll_attempts >= policy.max_attempts or self._clock() >= job.deadline:
                self._transition(
                    job,
                    AssetState.TIMED_OUT,
                    detail=f"gave up after {job.poll_attempts} checks",
                )
                break
            if cancel is not None and cancel.is_set():
                return self._abandon(job)
            remaining = max(0.0, job.deadline - self._clock())
            await self._pause(min(policy.delay_for(job.poll_attempts), remaining), cancel)
        return job

    # ------------------------------------------------------------------ #
    #  Helpers
    # ------------------------------------------------------------------ #
    def _abandon(self, job: AssetJob) -> AssetJob:
        log.info("Poll loop for job %s cancelled in state %s", job.job_id, job.state.value)
        self.events.emit(job.job_id, "abandoned", state=job.state.value)
        return job

    async def _pause(self, delay: float, cancel: asyncio.Event | None) -> None:
        if cancel is None:
            await self._sleep(delay)
            return
        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
            await asyncio.gather(sleeper, waiter, return_exceptions=True)


__all__ = ["AssetPoller", "PollPolicy", "QUICK_CHECK_POLICY"]
