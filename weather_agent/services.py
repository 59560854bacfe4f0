"""Shared collaborators for one running server.

:class:`Services` bundles the poller, composer, tracker and LLM client so
that tools, the agent and the HTTP layer are wired once and can be replaced
wholesale in tests.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from . import db
from .client import get_client
from .composer import ResponseComposer
from .events import EventBus
from .poller import AssetPoller, PollPolicy
from .tracker import JobTracker, TrackedJob
from .video_host import MuxClient

log = logging.getLogger(__name__)


@dataclass
class Services:
    events: EventBus
    poller: AssetPoller
    composer: ResponseComposer
    tracker: JobTracker
    llm: Optional[Any] = None
    persist: bool = True

    @classmethod
    def create(cls, host: Any, llm: Any = None, policy: PollPolicy | None = None, **poller_kwargs: Any) -> "Services":
        events = EventBus()
        poller = AssetPoller(host, policy=policy, events=events, **poller_kwargs)
        composer = ResponseComposer(events=events)
        return cls(
            events=events,
            poller=poller,
            composer=composer,
            tracker=JobTracker(poller, composer, clock=poller_kwargs.get("clock", time.time)),
            llm=llm,
        )

    @classmethod
    def from_env(cls) -> "Services":
        return cls.create(MuxClient(), llm=get_client(), policy=PollPolicy.from_env())

    def record_resolution(self, record: TrackedJob) -> None:
        """Append the resolution message of *record* to its session transcript."""
        job = record.job
        if not (self.persist and job.session_id and record.resolution):
            return
        db.log_message(job.session_id, "assistant", record.resolution.content)
        log.info("Job %s resolved as %s for session %s", job.job_id, job.state.value, job.session_id)


__all__ = ["Services"]
