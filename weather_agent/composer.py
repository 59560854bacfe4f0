"""User-facing messages for deferred video delivery.

Two messages exist per video: the *immediate* one, sent with the chat
reply as soon as the player URL is known, and the *resolution* one, sent
when the poller reaches a terminal state.  Neither ever raises because
encoding was slow or failed; the worst case is a caveated link.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from .assets import AssetJob, AssetState
from .events import EventBus


@dataclass
class Message:
    role: str
    content: str
    kind: str
    job_id: str
    state: str
    player_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ResponseComposer:
    """Build placeholder and resolution messages for :class:`AssetJob` records."""

    def __init__(self, events: EventBus | None = None):
        self.events = events

    def _emit(self, message: Message) -> Message:
        if self.events is not None:
            self.events.emit(message.job_id, f"composed:{message.kind}", state=message.state)
        return message

    def compose_immediate(self, job: AssetJob) -> Message:
        """Return the placeholder message for a freshly submitted job.

        Only needs ``job.player_url``; it never looks at poll results.
        """
        if not job.player_url:
            raise ValueError(f"job {job.job_id} has no player URL yet")
        content = (
            f"⏳ Your weather video is processing. "
            f"It will be playable shortly at {job.player_url}"
        )
        return self._emit(
            Message(
                role="assistant",
                content=content,
                kind="immediate",
                job_id=job.job_id,
                state=job.state.value,
                player_url=job.player_url,
            )
        )

    def compose_resolution(self, job: AssetJob) -> Message:
        """Return the message announcing the terminal outcome of *job*."""
        if not job.is_terminal:
            raise ValueError(f"job {job.job_id} is still {job.state.value}")

        url = job.player_url
        if job.state is AssetState.READY:
            content = f"✅ Your weather video is ready to play: {url}"
            if job.hls_url:
                content += f"\nHLS stream: {job.hls_url}"
        elif job.state is AssetState.TIMED_OUT:
            content = (
                "⌛ The video is taking longer than expected to process. "
                f"It may still become available at {url}"
            )
        elif url:
            content = (
                f"⚠️ The video could not be encoded ({job.error_detail}). "
                f"The player link may not work: {url}"
            )
        else:
            content = f"❌ I couldn't create the weather video: {job.error_detail}"

        return self._emit(
            Message(
                role="assistant",
                content=content,
                kind="resolution",
                job_id=job.job_id,
                state=job.state.value,
                player_url=url,
            )
        )


__all__ = ["Message", "ResponseComposer"]
