"""Text-to-speech and speech-to-text through the OpenAI audio endpoints."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any

from . import config

log = logging.getLogger(__name__)


class SpeechError(RuntimeError):
    """Audio could not be synthesized or transcribed."""


def synthesize(client: Any, text: str, output_path: str | Path) -> str:
    """Write *text* as a WAV file at *output_path* and return the path."""
    if client is None:
        raise SpeechError("Text-to-speech needs OPENAI_API_KEY")
    if not text.strip():
        raise SpeechError("Nothing to speak")
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        response = client.audio.speech.create(
            model=config.TTS_MODEL,
            voice=config.TTS_VOICE,
            input=text,
            response_format="wav",
        )
    except Exception as exc:  # noqa: BLE001
        raise SpeechError(f"TTS request failed: {exc}") from exc
    output_path.write_bytes(response.content)
    log.info("Wrote %d bytes of speech to %s", output_path.stat().st_size, output_path)
    return str(output_path)


def transcribe(client: Any, audio: bytes, filename: str = "speech.webm") -> str:
    """Return the transcript of *audio*."""
    if client is None:
        raise SpeechError("Speech-to-text needs OPENAI_API_KEY")
    if not audio:
        raise SpeechError("Empty audio payload")
    buf = io.BytesIO(audio)
    buf.name = filename
    try:
        result = client.audio.transcriptions.create(model=config.STT_MODEL, file=buf)
    except Exception as exc:  # noqa: BLE001
        raise SpeechError(f"Transcription failed: {exc}") from exc
    return (getattr(result, "text", "") or "").strip()


__all__ = ["SpeechError", "synthesize", "transcribe"]
