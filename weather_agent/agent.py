"""The weather agent: one chat turn in, one reply (plus video messages) out.

With an OpenAI client the turn goes through the tool-calling loop in
:mod:`weather_agent.chat`.  Without one, :meth:`WeatherAgent.fallback_reply`
answers from simple rules: find a ZIP code, run the video flow when the
user asks for audio or video, otherwise reply with a text forecast.

Either way every :class:`~weather_agent.composer.Message` produced by a
video tool during the turn is returned with the reply, so the player URL
reaches the user even if the model forgets to repeat it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import db
from .chat import build_messages, process_tool_calls, stream_and_collect
from .composer import Message
from .config import DEFAULT_SYSTEM_PROMPT, MAX_TOOL_ROUNDS
from .services import Services
from .tools import build_tools, get_tools
from .tools.agri import build_agri_summary, extract_quoted_text, extract_zip
from .tools.get_weather import WeatherError, fetch_weather
from .tools.tts_weather_upload import tts_weather_upload
from .tools.zip_memory import PREFERENCE_KEY

log = logging.getLogger(__name__)

VIDEO_KEYWORDS = ("audio", "tts", "voice", "speak", "speech", "stream", "video", "listen")
HISTORY_LIMIT = 40


@dataclass
class AgentReply:
    session_id: str
    text: str
    messages: List[Message] = field(default_factory=list)

    @property
    def jobs(self) -> List[str]:
        return [m.job_id for m in self.messages]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "text": self.text,
            "messages": [m.to_dict() for m in self.messages],
            "jobs": self.jobs,
        }


def wants_video(text: str) -> bool:
    lowered = (text or "").lower()
    return any(word in lowered for word in VIDEO_KEYWORDS)


class WeatherAgent:
    def __init__(self, services: Services, system_prompt: str = DEFAULT_SYSTEM_PROMPT):
        self.services = services
        self.system_prompt = system_prompt

    async def respond(self, message: str, session_id: str | None = None) -> AgentReply:
        """Answer *message* in *session_id* (a new session when omitted)."""
        session_id = session_id or uuid.uuid4().hex
        persist = self.services.persist
        history = db.load_history(session_id, limit=HISTORY_LIMIT) if persist else []
        if persist:
            db.log_message(session_id, "user", message)

        sink: List[Message] = []
        if self.services.llm is None:
            text = await self.fallback_reply(message, session_id, sink)
        else:
            text = await self._llm_reply(message, session_id, history, sink)

        text = self._with_video_links(text, sink)
        if persist:
            db.log_message(session_id, "assistant", text)
        return AgentReply(session_id=session_id, text=text, messages=sink)

    async def _llm_reply(
        self,
        message: str,
        session_id: str,
        history: List[tuple],
        sink: List[Message],
    ) -> str:
        tools = build_tools(self.services, session_id=session_id, sink=sink)
        messages = build_messages(history, self.system_prompt, message)
        client = self.services.llm
        text, tool_calls, finished = await asyncio.to_thread(
            stream_and_collect, client, messages, get_tools(tools)
        )
        if tool_calls and not finished:
            text = await process_tool_calls(
                client,
                messages,
                session_id,
                tools,
                tool_calls,
                finished,
                max_rounds=MAX_TOOL_ROUNDS,
                persist=self.services.persist,
            ) or text
        return text or "I'm sorry, I couldn't come up with an answer."

    async def fallback_reply(self, message: str, session_id: str, sink: List[Message]) -> str:
        """Rule-based reply used when no LLM client is configured."""
        zip_code = extract_zip([message])
        if zip_code and self.services.persist:
            db.set_preference(session_id, PREFERENCE_KEY, zip_code)
        elif self.services.persist:
            zip_code = db.get_preference(session_id, PREFERENCE_KEY)
        if not zip_code:
            return (
                "Please share a 5-digit US ZIP code and I'll get the agriculture forecast "
                "for your area. Ask for audio or a video and I'll narrate it too."
            )

        if wants_video(message):
            result = json.loads(
                await tts_weather_upload(
                    self.services,
                    zip_code,
                    text=extract_quoted_text([message]),
                    session_id=session_id,
                    sink=sink,
                )
            )
            if result.get("success"):
                return f"Here is your narrated forecast for {zip_code}. {result.get('message', '')}".strip()
            log.info("Video flow for %s failed: %s", zip_code, result.get("error"))
            note = f"\n\nNote: audio generation is currently unavailable ({result.get('error')})."
            return await self._summary(zip_code) + note

        return await self._summary(zip_code)

    async def _summary(self, zip_code: str) -> str:
        try:
            weather = await asyncio.to_thread(fetch_weather, zip_code)
        except WeatherError as exc:
            return f"Sorry, I couldn't fetch the weather for ZIP {zip_code}: {exc}."
        return build_agri_summary(zip_code, weather)

    @staticmethod
    def _with_video_links(text: str, sink: List[Message]) -> str:
        for msg in sink:
            if msg.player_url and msg.player_url not in text:
                text = f"{text}\n\n{msg.content}".strip()
        return text


__all__ = ["AgentReply", "WeatherAgent", "wants_video"]
