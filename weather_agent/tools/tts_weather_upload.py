# weather_agent/tools/tts_weather_upload.py
"""
Narrate the forecast, render it as a video and hand it to the video host.

The tool returns as soon as the host has accepted the upload: the reply
carries the player URL and a "processing" message, and a background poll
loop (see :class:`weather_agent.tracker.JobTracker`) announces the final
outcome later.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from pathlib import Path
from typing import Any, List, Optional

from .. import config, render, speech
from ..assets import RenderRequest
from ..composer import Message
from ..errors import SubmissionError
from .agri import build_agri_speech
from .get_weather import WeatherError, fetch_weather

log = logging.getLogger(__name__)


def _cleanup(*paths: Optional[str]) -> None:
    for path in paths:
        if path:
            Path(path).unlink(missing_ok=True)


async def tts_weather_upload(
    services: Any,
    zip_code: str,
    text: str | None = None,
    session_id: str | None = None,
    sink: List[Message] | None = None,
) -> str:
    """Create a narrated weather video for *zip_code*.

    Parameters
    ----------
    services
        :class:`weather_agent.services.Services` for this server.
    zip_code
        Five-digit US ZIP code.
    text
        Narration to use instead of the generated forecast speech.
    session_id
        Chat session the video belongs to.
    sink
        Optional list that receives the user-facing :class:`Message`
        produced by this call.

    Returns
    -------
    str
        JSON string with ``success``, ``job_id``, ``player_url``, ``state``
        and ``message`` on acceptance; ``{"success": false, "error": ...}``
        when the video could not be created.
    """
    zip_code = str(zip_code or "").strip()
    if not text:
        try:
            weather = await asyncio.to_thread(fetch_weather, zip_code)
        except WeatherError as exc:
            return json.dumps({"success": False, "error": str(exc)})
        text = build_agri_speech(zip_code, weather)

    stem = f"tts-{zip_code or 'custom'}-{uuid.uuid4().hex[:8]}"
    audio_path = str(config.TTS_TMP_DIR / f"{stem}.wav")
    video_path = str(config.TTS_TMP_DIR / f"{stem}.mp4")

    try:
        await asyncio.to_thread(speech.synthesize, services.llm, text, audio_path)
    except speech.SpeechError as exc:
        log.warning("TTS for %s failed: %s", zip_code, exc)
        return json.dumps({"success": False, "error": str(exc), "text": text})

    request = RenderRequest(
        audio_path=audio_path,
        image_path=render.pick_background(),
        output_path=video_path,
    )
    try:
        job = await services.poller.submit(request, session_id=session_id)
    except SubmissionError as exc:
        message = services.composer.compose_resolution(exc.job) if exc.job else None
        if sink is not None and message is not None:
            sink.append(message)
        return json.dumps(
            {
                "success": False,
                "error": str(exc),
                "job_id": exc.job.job_id if exc.job else None,
                "message": message.content if message else str(exc),
            }
        )
    finally:
        if config.TTS_CLEANUP:
            _cleanup(audio_path, video_path)

    message = services.composer.compose_immediate(job)
    services.tracker.start(job, on_resolved=services.record_resolution)
    if sink is not None:
        sink.append(message)
    return json.dumps(
        {
            "success": True,
            "status": "processing",
            "job_id": job.job_id,
            "asset_id": job.external_asset_id,
            "player_url": job.player_url,
            "state": job.state.value,
            "message": message.content,
            "text": text,
        }
    )


__all__ = ["tts_weather_upload"]
