"""Asset job record and its state machine.

An :class:`AssetJob` tracks one narrated-video render from submission to a
terminal outcome::

    submitting --(submit ok)--> preparing --(ready)--> ready
    submitting --(submit fails)--> errored
    preparing --(errored)--> errored
    preparing --(attempts/deadline exceeded)--> timed_out

Only the edges above exist.  :meth:`AssetJob.advance` refuses everything
else, which keeps the state monotonic no matter who drives the job.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from .config import MUX_HLS_BASE_URL, PLAYER_BASE_URL
from .errors import InvalidTransition


class AssetState(str, Enum):
    SUBMITTING = "submitting"
    PREPARING = "preparing"
    READY = "ready"
    ERRORED = "errored"
    TIMED_OUT = "timed_out"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({AssetState.READY, AssetState.ERRORED, AssetState.TIMED_OUT})

TRANSITIONS: Dict[AssetState, frozenset] = {
    AssetState.SUBMITTING: frozenset({AssetState.PREPARING, AssetState.ERRORED}),
    AssetState.PREPARING: frozenset({AssetState.READY, AssetState.ERRORED, AssetState.TIMED_OUT}),
    AssetState.READY: frozenset(),
    AssetState.ERRORED: frozenset(),
    AssetState.TIMED_OUT: frozenset(),
}


def player_url(external_asset_id: str, base_url: str = PLAYER_BASE_URL) -> str:
    """Return the hosted player URL for *external_asset_id*.

    Pure string construction: the link is valid before the asset is ready
    and the player page resolves it once encoding finishes.
    """
    if not external_asset_id:
        raise ValueError("external_asset_id is required to build a player URL")
    return f"{base_url.rstrip('/')}/player?{urlencode({'assetId': external_asset_id})}"


def hls_url(playback_id: str, base_url: str = MUX_HLS_BASE_URL) -> str:
    return f"{base_url.rstrip('/')}/{playback_id}.m3u8"


@dataclass
class AssetJob:
    """One outstanding media-rendering request.

    Attributes
    ----------
    job_id:
        Opaque identifier assigned at creation.
    external_asset_id:
        Identifier returned by the video host; ``None`` until submission
        succeeds.
    state:
        Current :class:`AssetState`.
    created_at, last_polled_at, deadline:
        Timestamps from the poller's clock.
    poll_attempts:
        Number of status checks performed, inconclusive ones included.
    error_detail:
        Set only when ``state`` is ``errored``.
    playback_id:
        The host's playback identifier, known once the asset is ready.
    session_id:
        Chat session that asked for the video, if any.
    """

    created_at: float
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: AssetState = AssetState.SUBMITTING
    external_asset_id: Optional[str] = None
    last_polled_at: Optional[float] = None
    deadline: Optional[float] = None
    poll_attempts: int = 0
    error_detail: Optional[str] = None
    playback_id: Optional[str] = None
    session_id: Optional[str] = None
    _player_url: Optional[str] = field(default=None, repr=False)

    # ------------------------------------------------------------------ #
    #  Derived values
    # ------------------------------------------------------------------ #
    @property
    def player_url(self) -> Optional[str]:
        return self._player_url

    @player_url.setter
    def player_url(self, value: str) -> None:
        if self._player_url is not None and value != self._player_url:
            raise InvalidTransition(f"player URL of job {self.job_id} is already set")
        self._player_url = value

    @property
    def hls_url(self) -> Optional[str]:
        return hls_url(self.playback_id) if self.playback_id else None

    @property
    def is_terminal(self) -> bool:
        return self.state.terminal

    # ------------------------------------------------------------------ #
    #  Mutations
    # ------------------------------------------------------------------ #
    def can_advance(self, new_state: AssetState) -> bool:
        return new_state in TRANSITIONS[self.state]

    def advance(self, new_state: AssetState, error_detail: str | None = None) -> AssetState:
        """Move to *new_state* and return the previous state.

        Raises :class:`InvalidTransition` for any edge not in the diagram,
        including every edge out of a terminal state.
        """
        new_state = AssetState(new_state)
        if not self.can_advance(new_state):
            raise InvalidTransition(
                f"job {self.job_id}: {self.state.value} -> {new_state.value} is not allowed"
            )
        if new_state is AssetState.PREPARING and self.external_asset_id is None:
            raise InvalidTransition(f"job {self.job_id} has no external asset id")
        previous = self.state
        self.state = new_state
        if new_state is AssetState.ERRORED:
            self.error_detail = error_detail or "unknown error"
        return previous

    def mark_submitted(self, external_asset_id: str, url: str, deadline: float | None = None) -> AssetState:
        """Record a successful submission and move to ``preparing``."""
        if self.state is not AssetState.SUBMITTING:
            raise InvalidTransition(f"job {self.job_id} was already submitted")
        self.external_asset_id = external_asset_id
        self.player_url = url
        self.deadline = deadline
        return self.advance(AssetState.PREPARING)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "session_id": self.session_id,
            "state": self.state.value,
            "terminal": self.is_terminal,
            "external_asset_id": self.external_asset_id,
            "player_url": self.player_url,
            "hls_url": self.hls_url,
            "playback_id": self.playback_id,
            "poll_attempts": self.poll_attempts,
            "created_at": self.created_at,
            "last_polled_at": self.last_polled_at,
            "deadline": self.deadline,
            "error_detail": self.error_detail,
        }


@dataclass
class RenderRequest:
    """Inputs for one narrated video.

    ``image_path`` may be ``None``; the renderer then uses a plain
    background.  ``options`` is forwarded to the video host.
    """

    audio_path: str
    image_path: Optional[str] = None
    output_path: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SubmitResult:
    external_asset_id: str
    upload_id: Optional[str] = None


@dataclass
class AssetStatus:
    """Provider view of an asset: ``preparing``, ``ready``, ``errored`` or ``failed``."""

    state: str
    error_detail: Optional[str] = None
    playback_id: Optional[str] = None


__all__ = [
    "AssetState",
    "AssetJob",
    "AssetStatus",
    "RenderRequest",
    "SubmitResult",
    "TERMINAL_STATES",
    "TRANSITIONS",
    "player_url",
    "hls_url",
]
