"""In-memory registry of asset jobs with background poll loops.

Each tracked job gets its own :class:`asyncio.Task` running
:meth:`AssetPoller.poll_until_terminal` followed by
:meth:`ResponseComposer.compose_resolution`.  Jobs share nothing but this
dictionary.  A terminal record is dropped the first time it is reported to
a caller; unreported ones are pruned once they are older than the
retention window.  Cancelled or failed loops drop their record on exit.
Nothing survives a restart.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from . import config
from .assets import AssetJob
from .composer import Message, ResponseComposer
from .poller import AssetPoller, PollPolicy

log = logging.getLogger(__name__)


@dataclass
class TrackedJob:
    job: AssetJob
    cancel: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    resolution: Optional[Message] = None
    resolved_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.job.to_dict()
        data["resolution"] = self.resolution.to_dict() if self.resolution else None
        return data


ResolvedCallback = Callable[[TrackedJob], Any]


class JobTracker:
    def __init__(
        self,
        poller: AssetPoller,
        composer: ResponseComposer,
        retention: float = config.ASSET_RECORD_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.poller = poller
        self.composer = composer
        self.retention = retention
        self._clock = clock
        self._jobs: Dict[str, TrackedJob] = {}

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def add(self, job: AssetJob) -> TrackedJob:
        """Register *job* without starting a poll loop."""
        self.prune()
        record = self._jobs.get(job.job_id)
        if record is None:
            record = TrackedJob(job=job)
            self._jobs[job.job_id] = record
        return record

    def start(
        self,
        job: AssetJob,
        on_resolved: ResolvedCallback | None = None,
        policy: PollPolicy | None = None,
    ) -> asyncio.Task:
        """Start the background poll loop for *job* and return its task.

        Calling this twice for the same job returns the running task; a
        job never has two overlapping loops.
        """
        record = self.add(job)
        if record.task is not None and not record.task.done():
            return record.task
        record.task = asyncio.create_task(
            self._run(record, on_resolved, policy), name=f"asset-poll-{job.job_id}"
        )
        return record.task

    async def _run(
        self,
        record: TrackedJob,
        on_resolved: ResolvedCallback | None,
        policy: PollPolicy | None,
    ) -> TrackedJob:
        job = record.job
        try:
            await self.poller.poll_until_terminal(job, policy=policy, cancel=record.cancel)
        except asyncio.CancelledError:
            log.info("Poll task for job %s was cancelled", job.job_id)
            raise
        except Exception:  # noqa: BLE001
            log.exception("Poll loop for job %s failed", job.job_id)
            self._drop(record)
            return record

        if not job.is_terminal:
            self._drop(record)
            return record

        record.resolution = self.composer.compose_resolution(job)
        record.resolved_at = self._clock()
        if on_resolved is not None:
            try:
                result = on_resolved(record)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:  # noqa: BLE001
                log.exception("Resolution callback for job %s failed", job.job_id)
        return record

    # ------------------------------------------------------------------ #
    #  Queries
    # ------------------------------------------------------------------ #
    def get(self, job_id: str) -> Optional[TrackedJob]:
        return self._jobs.get(job_id)

    def find_by_asset(self, external_asset_id: str) -> Optional[TrackedJob]:
        for record in self._jobs.values():
            if record.job.external_asset_id == external_asset_id:
                return record
        return None

    def prune(self) -> int:
        """Discard terminal records resolved more than ``retention`` seconds ago."""
        cutoff = self._clock() - self.retention
        stale = [
            job_id
            for job_id, record in self._jobs.items()
            if record.resolved_at is not None and record.resolved_at <= cutoff
        ]
        for job_id in stale:
            del self._jobs[job_id]
        return len(stale)

    def report(self, job_id: str) -> Optional[TrackedJob]:
        """Return the record for *job_id*, discarding it if it is terminal."""
        record = self._jobs.get(job_id)
        if record is not None and record.job.is_terminal:
            if record.task is None or record.task.done():
                self._jobs.pop(job_id, None)
        return record

    # ------------------------------------------------------------------ #
    #  Lifecycle
    # ------------------------------------------------------------------ #
    def cancel(self, job_id: str) -> bool:
        """Ask the poll loop of *job_id* to stop; returns ``False`` if unknown."""
        record = self._jobs.get(job_id)
        if record is None:
            return False
        record.cancel.set()
        return True

    def _drop(self, record: TrackedJob) -> None:
        if self._jobs.get(record.job.job_id) is record:
            del self._jobs[record.job.job_id]

    async def shutdown(self) -> None:
        for record in self._jobs.values():
            record.cancel.set()
        tasks = [r.task for r in self._jobs.values() if r.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._jobs.clear()


__all__ = ["JobTracker", "TrackedJob"]
