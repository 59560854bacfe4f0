# weather_agent/tools/check_asset_readiness.py
"""Report whether a narrated video is playable yet."""

from __future__ import annotations

import json
from typing import Any, Dict

from ..poller import QUICK_CHECK_POLICY


def _payload(record_or_job: Any, composer: Any) -> Dict[str, Any]:
    job = getattr(record_or_job, "job", record_or_job)
    data = job.to_dict()
    resolution = getattr(record_or_job, "resolution", None)
    if job.is_terminal:
        resolution = resolution or composer.compose_resolution(job)
        data["message"] = resolution.content
    else:
        data["message"] = (
            f"The video is still processing ({job.poll_attempts} checks so far). "
            f"It will be playable at {job.player_url}"
        )
    data["ready"] = job.state.value == "ready"
    return data


async def check_asset_readiness(
    services: Any,
    asset_id: str | None = None,
    job_id: str | None = None,
    session_id: str | None = None,
) -> str:
    """Return the readiness record of a job or asset as a JSON string.

    A job already tracked by this server is reported from memory; a
    terminal record is discarded once reported.  An asset id this server
    does not know is checked with a short bounded poll.
    """
    tracker = services.tracker
    record = None
    if job_id:
        record = tracker.get(job_id)
        if record is None:
            return json.dumps({"error": f"Unknown job {job_id}"})
    elif asset_id:
        record = tracker.find_by_asset(asset_id)
    else:
        return json.dumps({"error": "Provide an asset_id or a job_id"})

    if record is not None:
        data = _payload(record, services.composer)
        if record.job.is_terminal:
            tracker.report(record.job.job_id)
        return json.dumps(data)

    job = services.poller.track(asset_id, session_id=session_id, policy=QUICK_CHECK_POLICY)
    await services.poller.poll_until_terminal(job, policy=QUICK_CHECK_POLICY)
    return json.dumps(_payload(job, services.composer))


__all__ = ["check_asset_readiness"]
