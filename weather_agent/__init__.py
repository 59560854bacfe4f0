"""Conversational weather agent with deferred narrated-video delivery.

The package is organised around a small protocol: a rendered weather video
is submitted to the video host, the user immediately receives a player URL,
and a background poller reports when the asset becomes playable.
"""

__version__ = "0.4.0"
