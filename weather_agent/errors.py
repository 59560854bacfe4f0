"""Exception taxonomy for the media readiness protocol.

Only :class:`SubmissionError` is ever raised to the code that asked for a
video; the other failures are absorbed by :mod:`weather_agent.poller` and
surface as job states.
"""

from __future__ import annotations


class WeatherAgentError(Exception):
    """Base class for errors raised by this package."""


class SubmissionError(WeatherAgentError):
    """The video host rejected a render request.

    Fatal for the job: the job is moved to ``errored`` and the error is not
    retried.  ``job`` is attached by the poller once the job record exists.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.job = None


class TransientCheckError(WeatherAgentError):
    """A single status check was inconclusive (network error, 5xx, 429)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderTerminalError(WeatherAgentError):
    """The video host reports that the asset itself failed to encode."""


class InvalidTransition(WeatherAgentError):
    """An asset job was asked to move along an undefined edge."""


__all__ = [
    "WeatherAgentError",
    "SubmissionError",
    "TransientCheckError",
    "ProviderTerminalError",
    "InvalidTransition",
]
