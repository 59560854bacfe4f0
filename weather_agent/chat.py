"""Utilities that handle the chat logic.

Functions
---------
* :func:`build_messages` – convert a stored conversation into the list of
  messages expected by the OpenAI chat completion endpoint.
* :func:`stream_and_collect` – stream the assistant response while
  capturing any tool calls.
* :func:`run_tool` – execute one tool call with a timeout.
* :func:`process_tool_calls` – invoke the tools requested by the model
  and generate subsequent assistant turns.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import MAX_TOOL_ROUNDS, MODEL_NAME
from .db import log_tool_msg
from .tools import Tool, get_tools

logger = logging.getLogger(__name__)

# Video rendering and quick readiness polls are slow; everything else is a
# single HTTP round trip.
TOOL_TIMEOUTS = {"tts_weather_upload": 600, "check_asset_readiness": 60}
DEFAULT_TOOL_TIMEOUT = 20

# ---------------------------------------------------------------------------
#  Public helper functions
# ---------------------------------------------------------------------------

def estimate_tokens(text: str | None) -> int:
    # Rough estimate: two tokens per word.  Only used to keep the prompt
    # well below the model's context window.
    return max(1, len((text or "").split())) * 2


def build_messages(
    history: Sequence[Tuple[str, str, str, str, str]],
    system_prompt: str,
    user_input: Optional[str] = None,
    max_context_tokens: int = 60000,
    max_messages: int = 30,
) -> List[Dict[str, Any]]:
    """Return the list of messages to send to the chat model.

    Parameters
    ----------
    history
        ``(role, content, tool_id, tool_name, tool_args)`` rows as returned
        by :func:`weather_agent.db.load_history`.
    system_prompt
        The system message that sets the model behaviour.
    user_input
        The new user message that will trigger the assistant reply.
    """
    msgs: List[Dict[str, Any]] = []
    for role, content, tool_id, tool_name, tool_args in history:
        if tool_name and role == "assistant":
            msgs.append(
                {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [
                        {
                            "id": tool_id,
                            "type": "function",
                            "function": {"name": tool_name, "arguments": tool_args or "{}"},
                        }
                    ],
                }
            )
        elif role == "tool":
            msgs.append({"role": "tool", "content": content or "", "tool_call_id": tool_id or ""})
        elif role in ("user", "assistant"):
            msgs.append({"role": role, "content": content or ""})

    if len(msgs) > max_messages - 1:
        msgs = msgs[-(max_messages - 1):]

    total = estimate_tokens(system_prompt) + sum(estimate_tokens(m.get("content")) for m in msgs)
    if user_input is not None:
        total += estimate_tokens(user_input)
    # Drop the oldest messages until we fit.
    while total > max_context_tokens and msgs:
        total -= estimate_tokens(msgs.pop(0).get("content"))

    # A tool result must follow its call; never start on an orphan.
    while msgs and msgs[0]["role"] == "tool":
        msgs.pop(0)

    result = [{"role": "system", "content": str(system_prompt)}] + msgs
    if user_input is not None:
        result.append({"role": "user", "content": str(user_input)})
    return result


def stream_and_collect(
    client: Any,
    messages: List[Dict[str, Any]],
    tools: List[Dict[str, Any]],
) -> Tuple[str, Optional[List[Dict[str, Any]]], bool]:
    """Stream the assistant response while capturing tool calls.

    Returns a tuple of the complete assistant text, a list of tool calls
    (or ``None`` if no tool call was emitted) and a boolean indicating if
    the assistant finished its turn.
    """
    stream = client.chat.completions.create(
        model=MODEL_NAME,
        messages=messages,
        stream=True,
        tools=tools,
    )

    assistant_text = ""
    tool_calls_buffer: Dict[int, Dict[str, Any]] = {}
    finished = False

    for chunk in stream:
        if not chunk.choices:
            continue
        choice = chunk.choices[0]
        delta = choice.delta
        if delta is not None:
            if delta.content:
                assistant_text += delta.content
            for tc_delta in delta.tool_calls or []:
                idx = tc_delta.index
                if idx not in tool_calls_buffer:
                    tool_calls_buffer[idx] = {"id": tc_delta.id, "name": "", "arguments": ""}
                if tc_delta.function is not None:
                    if tc_delta.function.name:
                        tool_calls_buffer[idx]["name"] = tc_delta.function.name
                    if tc_delta.function.arguments:
                        tool_calls_buffer[idx]["arguments"] += tc_delta.function.arguments
        if choice.finish_reason == "stop":
            finished = True
            break

    final_tool_calls = list(tool_calls_buffer.values()) if tool_calls_buffer else None
    return assistant_text, final_tool_calls, finished


async def run_tool(tools: Sequence[Tool], name: str, args: Dict[str, Any]) -> str:
    """Run tool *name* with *args* and return its JSON string result.

    Failures are returned as text for the model rather than raised.
    """
    func = next((t.func for t in tools if t.name == name), None)
    if func is None:
        return f"⚠️  Unknown tool '{name}'"

    timeout_sec = TOOL_TIMEOUTS.get(name, DEFAULT_TOOL_TIMEOUT)
    target = getattr(func, "func", func)
    try:
        if inspect.iscoroutinefunction(target):
            result = await asyncio.wait_for(func(**args), timeout=timeout_sec)
        else:
            result = await asyncio.wait_for(asyncio.to_thread(func, **args), timeout=timeout_sec)
    except asyncio.TimeoutError:
        return (
            f"⛔  Tool call {name} timed out after {timeout_sec} seconds. "
            "Try a shorter or more specific request."
        )
    except TypeError as exc:
        return f"❌  Bad arguments for {name}: {exc}"
    except Exception as exc:  # noqa: BLE001
        logger.exception("Tool %s raised an exception", name)
        return f"❌  Tool error: {exc}"
    return result if isinstance(result, str) else json.dumps(result)


async def process_tool_calls(
    client: Any,
    messages: List[Dict[str, Any]],
    session_id: str,
    tools: Sequence[Tool],
    tool_calls: Optional[List[Dict[str, Any]]],
    finished: bool,
    max_rounds: int = MAX_TOOL_ROUNDS,
    persist: bool = True,
) -> str:
    """Execute each tool that the model requested and return the final text.

    Parameters
    ----------
    client
        The OpenAI client used to stream assistant replies.
    messages
        The conversation so far; extended in place with the tool calls,
        tool replies and follow-up assistant turns.
    session_id
        Identifier of the chat session.
    tools
        Bound :class:`~weather_agent.tools.Tool` objects.
    tool_calls
        Tool calls produced by :func:`stream_and_collect`.
    finished
        Whether the assistant already finished its turn.
    max_rounds
        Upper bound on model round trips triggered by tool calls.
    """
    api_tools = get_tools(list(tools))
    assistant_text = ""
    rounds = 0
    while tool_calls and not finished and rounds < max_rounds:
        rounds += 1
        for tc in tool_calls:
            tool_name = tc.get("name")
            tool_id = tc.get("id") or ""
            tool_args = tc.get("arguments") or "{}"
            try:
                args = json.loads(tool_args)
            except json.JSONDecodeError as exc:
                result = f"❌  JSON error: {exc}"
                logger.warning("Failed to parse arguments for %s: %s", tool_name, exc)
            else:
                logger.info("Calling tool %s with arguments %s", tool_name, json.dumps(args))
                result = await run_tool(tools, tool_name, args if isinstance(args, dict) else {})

            messages.append(
                {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [
                        {
                            "id": tool_id,
                            "type": "function",
                            "function": {"name": tool_name, "arguments": tool_args},
                        }
                    ],
                }
            )
            messages.append({"role": "tool", "tool_call_id": tool_id, "content": result})
            if persist:
                log_tool_msg(session_id, tool_id, tool_name, tool_args, result)

        assistant_text, tool_calls, finished = await asyncio.to_thread(
            stream_and_collect, client, messages, api_tools
        )
        if assistant_text:
            messages.append({"role": "assistant", "content": assistant_text})

    if tool_calls and not finished:
        logger.warning("Stopped after %d tool rounds in session %s", rounds, session_id)
    return assistant_text
