"""FastAPI application for the weather agent.

Run with ``uvicorn weather_agent.server:app``.  :func:`create_app` accepts
pre-built :class:`~weather_agent.services.Services` so tests can swap the
video host and LLM for fakes; otherwise they are built from the
environment when the app starts.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from . import __version__, config, db, speech
from .agent import WeatherAgent
from .chat import run_tool
from .services import Services
from .tools import TOOL_DESCRIPTIONS, build_tools, get_tools

log = logging.getLogger(__name__)

SSE_KEEPALIVE_SECONDS = 15.0


class ChatRequest(BaseModel):
    message: str
    session_id: Optional[str] = None


def configure_logging(level: str = config.LOG_LEVEL) -> None:
    logging.basicConfig(level=level, format=config.LOG_FORMAT, datefmt=config.LOG_DATEFMT)


def _services(request: Request) -> Services:
    return request.app.state.services


async def _event_stream(request: Request, services: Services) -> AsyncGenerator[str, None]:
    queue, unsubscribe = services.events.queue()
    try:
        yield ": connected\n\n"
        while not await request.is_disconnected():
            try:
                event = await asyncio.wait_for(queue.get(), timeout=SSE_KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield f"event: asset\ndata: {json.dumps(event.to_dict())}\n\n"
    finally:
        unsubscribe()


def create_app(services: Services | None = None) -> FastAPI:
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            app.state.services = Services.from_env()
        if app.state.services.persist:
            db.init_db()
        app.state.agent = WeatherAgent(app.state.services)
        log.info("%s %s started", config.SERVICE_NAME, __version__)
        try:
            yield
        finally:
            await app.state.services.tracker.shutdown()
            log.info("%s stopped", config.SERVICE_NAME)

    app = FastAPI(title=config.SERVICE_NAME, version=__version__, lifespan=lifespan)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in config.CORS_ORIGIN.split(",")],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health(request: Request) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "ok": True,
            "service": config.SERVICE_NAME,
            "version": __version__,
            "timestamp": time.time(),
        }
        check = getattr(_services(request).poller.host, "health", None)
        if check is not None:
            body["video_host"] = await asyncio.to_thread(check)
        return body

    @app.post("/api/chat")
    async def chat(body: ChatRequest, request: Request) -> Dict[str, Any]:
        if not body.message.strip():
            raise HTTPException(status_code=400, detail="message must not be empty")
        reply = await request.app.state.agent.respond(body.message, body.session_id)
        return reply.to_dict()

    @app.post("/api/agents/{agent_id}/stream/vnext")
    async def chat_vnext(agent_id: str, request: Request) -> Dict[str, Any]:
        data = await request.json()
        message = data.get("message")
        if message is None:
            # Older frontends send the whole transcript; the last user turn is the prompt.
            user_turns = [m for m in data.get("messages") or [] if m.get("role") == "user"]
            message = user_turns[-1].get("content") if user_turns else ""
        if not str(message).strip():
            raise HTTPException(status_code=400, detail="message must not be empty")
        session_id = data.get("session_id") or data.get("threadId")
        log.debug("vnext request for agent %s", agent_id)
        reply = await request.app.state.agent.respond(str(message), session_id)
        return reply.to_dict()

    @app.get("/api/assets/{job_id}")
    async def asset_status(job_id: str, request: Request) -> Dict[str, Any]:
        record = _services(request).tracker.report(job_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"unknown job {job_id}")
        return record.to_dict()

    @app.post("/api/assets/{job_id}/cancel")
    async def cancel_asset(job_id: str, request: Request) -> Dict[str, Any]:
        if not _services(request).tracker.cancel(job_id):
            raise HTTPException(status_code=404, detail=f"unknown job {job_id}")
        return {"job_id": job_id, "cancelled": True}

    @app.get("/api/events")
    async def events(request: Request) -> StreamingResponse:
        return StreamingResponse(
            _event_stream(request, _services(request)),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache"},
        )

    @app.get("/api/history/{session_id}")
    async def history(session_id: str, request: Request) -> Dict[str, Any]:
        rows = db.load_history(session_id) if _services(request).persist else []
        return {
            "session_id": session_id,
            "messages": [
                {"role": role, "content": content, "tool_name": tool_name}
                for role, content, _tool_id, tool_name, _tool_args in rows
            ],
        }

    @app.post("/api/transcribe")
    async def transcribe(request: Request) -> Dict[str, Any]:
        audio = await request.body()
        filename = request.headers.get("x-filename", "speech.webm")
        try:
            text = await asyncio.to_thread(speech.transcribe, _services(request).llm, audio, filename)
        except speech.SpeechError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"text": text}

    @app.get("/mcp/tools")
    async def list_tools() -> Dict[str, Any]:
        return {"tools": get_tools()}

    @app.post("/mcp/tools/{name}")
    async def call_tool(name: str, request: Request) -> Dict[str, Any]:
        if name not in TOOL_DESCRIPTIONS:
            raise HTTPException(status_code=404, detail=f"unknown tool {name}")
        raw = await request.body()
        try:
            args = json.loads(raw) if raw else {}
        except json.JSONDecodeError as exc:
            raise HTTPException(status_code=400, detail=f"invalid JSON: {exc}") from exc
        if not isinstance(args, dict):
            raise HTTPException(status_code=400, detail="arguments must be a JSON object")
        session_id = args.pop("session_id", None)
        tools = build_tools(_services(request), session_id=session_id)
        result = await run_tool(tools, name, args)
        try:
            payload: Any = json.loads(result)
        except json.JSONDecodeError:
            payload = result
        return {"name": name, "result": payload}

    return app


app = create_app()


__all__ = ["app", "create_app", "configure_logging"]
