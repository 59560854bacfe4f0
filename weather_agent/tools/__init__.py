# weather_agent/tools/__init__.py
"""Tool registry for the OpenAI function-calling integration.

This package contains one module per tool.  The :class:`Tool` data class
defines the public API that the OpenAI chat completions endpoint expects.
:func:`build_tools` binds the tools to a server's :class:`Services` and a
chat session; :func:`get_tools` returns the OpenAI-ready format.

Tool functions return JSON strings.  Some are coroutines (they await the
asset poller); the chat loop awaits those and runs the rest in a worker
thread.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from .check_asset_readiness import check_asset_readiness as _check_asset_readiness
from .get_weather import func as _get_weather
from .tts_weather_upload import tts_weather_upload as _tts_weather_upload
from .zip_memory import zip_memory as _zip_memory

_ZIP_PROPERTY = {
    "type": "string",
    "description": "Five-digit US ZIP code, e.g. '94107'",
}


# --------------------------------------------------------------------------- #
#  Tool dataclass
# --------------------------------------------------------------------------- #
@dataclass
class Tool:
    """Represents a tool that can be called by the OpenAI model."""

    name: str
    description: str
    func: Callable
    schema: Dict[str, Any] = field(init=False)

    def __post_init__(self) -> None:
        # Define the JSON schema for each supported tool.
        if self.name == "get_weather":
            self.schema = {
                "parameters": {
                    "type": "object",
                    "properties": {
                        "zip_code": _ZIP_PROPERTY,
                        "include_hourly": {
                            "type": "boolean",
                            "description": "Include the next 24 hourly periods.",
                        },
                        "include_alerts": {
                            "type": "boolean",
                            "description": "Include active weather alerts for the state.",
                        },
                    },
                    "required": ["zip_code"],
                }
            }
        elif self.name == "tts_weather_upload":
            self.schema = {
                "parameters": {
                    "type": "object",
                    "properties": {
                        "zip_code": _ZIP_PROPERTY,
                        "text": {
                            "type": "string",
                            "description": "Optional narration; defaults to an agriculture forecast for the ZIP code.",
                        },
                    },
                    "required": ["zip_code"],
                }
            }
        elif self.name == "check_asset_readiness":
            self.schema = {
                "parameters": {
                    "type": "object",
                    "properties": {
                        "asset_id": {
                            "type": "string",
                            "description": "Video host asset id returned by tts_weather_upload.",
                        },
                        "job_id": {
                            "type": "string",
                            "description": "Job id returned by tts_weather_upload.",
                        },
                    },
                    "required": [],
                }
            }
        elif self.name == "zip_memory":
            self.schema = {
                "parameters": {
                    "type": "object",
                    "properties": {
                        "action": {
                            "type": "string",
                            "enum": ["store", "retrieve"],
                            "description": "Store a ZIP code or retrieve the stored one.",
                        },
                        "zip_code": _ZIP_PROPERTY,
                    },
                    "required": ["action"],
                }
            }
        else:
            raise NotImplementedError(f"Schema for {self.name} not defined")


TOOL_DESCRIPTIONS: Dict[str, str] = {
    "get_weather": "Get the National Weather Service forecast for a US ZIP code",
    "tts_weather_upload": (
        "Create a narrated agriculture weather video for a ZIP code and return its player URL "
        "immediately; the video finishes processing in the background"
    ),
    "check_asset_readiness": "Check whether a weather video is ready to play",
    "zip_memory": "Store or retrieve the user's ZIP code for this chat session",
}


# --------------------------------------------------------------------------- #
#  Tool registry
# --------------------------------------------------------------------------- #
def build_tools(
    services: Any = None,
    session_id: Optional[str] = None,
    sink: Optional[list] = None,
) -> List[Tool]:
    """Return the tools bound to *services* and *session_id*.

    ``sink`` collects the user-facing messages that video tools produce
    during one chat turn.
    """
    return [
        Tool(
            name="get_weather",
            description=TOOL_DESCRIPTIONS["get_weather"],
            func=_get_weather,
        ),
        Tool(
            name="tts_weather_upload",
            description=TOOL_DESCRIPTIONS["tts_weather_upload"],
            func=partial(_tts_weather_upload, services, session_id=session_id, sink=sink),
        ),
        Tool(
            name="check_asset_readiness",
            description=TOOL_DESCRIPTIONS["check_asset_readiness"],
            func=partial(_check_asset_readiness, services, session_id=session_id),
        ),
        Tool(
            name="zip_memory",
            description=TOOL_DESCRIPTIONS["zip_memory"],
            func=partial(_zip_memory, session_id=session_id),
        ),
    ]


TOOLS: List[Tool] = build_tools()


# --------------------------------------------------------------------------- #
#  Helper – expose OpenAI‑ready tool list
# --------------------------------------------------------------------------- #
def get_tools(tools: Optional[List[Tool]] = None) -> List[Dict]:
    """Return the list of tools formatted for the OpenAI API."""
    api_tools: List[Dict] = []
    for t in tools if tools is not None else TOOLS:
        api_tools.append(
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.schema["parameters"],
                },
            }
        )
    return api_tools


# --------------------------------------------------------------------------- #
#  Convenience for quick introspection in the REPL
# --------------------------------------------------------------------------- #
if __name__ == "__main__":
    print(json.dumps(get_tools(), indent=2))
