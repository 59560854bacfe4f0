# weather_agent/config.py
"""
Application‑wide constants.

Every value can be overridden through an environment variable; numeric
values are clamped so that a typo in a deployment file cannot produce a
zero‑second poll loop or a thirty‑hour timeout.
"""
from __future__ import annotations

import os
from pathlib import Path


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return value.strip() if value and value.strip() else default


def _env_int(name: str, default: int, minimum: int | None = None, maximum: int | None = None) -> int:
    try:
        value = int(os.getenv(name, ""))
    except ValueError:
        value = default
    if minimum is not None:
        value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def _env_float(name: str, default: float, minimum: float | None = None, maximum: float | None = None) -> float:
    try:
        value = float(os.getenv(name, ""))
    except ValueError:
        value = default
    if minimum is not None:
        value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# --------------------------------------------------------------------------- #
#  LLM / speech
# --------------------------------------------------------------------------- #
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or None
MODEL_NAME = _env_str("WEATHER_AGENT_MODEL", "gpt-4o-mini")
TTS_MODEL = _env_str("TTS_MODEL", "gpt-4o-mini-tts")
TTS_VOICE = _env_str("TTS_VOICE", "alloy")
STT_MODEL = _env_str("STT_MODEL", "whisper-1")
MAX_TOOL_ROUNDS = _env_int("MAX_TOOL_ROUNDS", 5, minimum=1, maximum=20)

DEFAULT_SYSTEM_PROMPT = """You are a helpful, natural-sounding, agriculture-focused weather assistant.
Remember ZIP codes that users provide and store them with the zip_memory tool.
When a user asks about weather without a ZIP code, retrieve the stored ZIP code first and only ask for one if none is stored.
Offer practical farm and field guidance tied to conditions (planting, irrigation, spraying, frost, livestock).
When a user asks for audio, voice, speech, a stream or a video forecast, call tts_weather_upload without asking for confirmation.
After generating a video, show the player URL immediately and say that the video is still processing.
If the user asks whether the video is ready, call check_asset_readiness.
"""

# --------------------------------------------------------------------------- #
#  Weather provider
# --------------------------------------------------------------------------- #
WEATHER_USER_AGENT = _env_str(
    "WEATHER_USER_AGENT", "WeatherAgent/1.0 (weather-agent@streamingportfolio.com)"
)
ZIP_LOOKUP_URL = "https://api.zippopotam.us/us"
NWS_API_URL = "https://api.weather.gov"
HTTP_TIMEOUT_SECONDS = _env_float("HTTP_TIMEOUT_SECONDS", 10.0, minimum=1.0, maximum=120.0)

# --------------------------------------------------------------------------- #
#  Video host (Mux)
# --------------------------------------------------------------------------- #
MUX_TOKEN_ID = os.getenv("MUX_TOKEN_ID")
MUX_TOKEN_SECRET = os.getenv("MUX_TOKEN_SECRET")
MUX_API_BASE_URL = _env_str("MUX_API_BASE_URL", "https://api.mux.com")
MUX_HLS_BASE_URL = _env_str("MUX_HLS_BASE_URL", "https://stream.mux.com")
PLAYER_BASE_URL = _env_str("STREAMING_PORTFOLIO_BASE_URL", "https://streamingportfolio.com")
MUX_CORS_ORIGIN = _env_str("MUX_CORS_ORIGIN", "https://weather-mcp-kd.streamingportfolio.com")
MUX_UPLOAD_TEST = _env_bool("MUX_UPLOAD_TEST")
MUX_UPLOAD_RETRY_ATTEMPTS = _env_int("MUX_UPLOAD_RETRY_ATTEMPTS", 5, minimum=1, maximum=10)
MUX_UPLOAD_RETRY_BASE_SECONDS = _env_int("MUX_UPLOAD_RETRY_BASE_MS", 1000, minimum=100) / 1000.0
MUX_PUT_TIMEOUT_SECONDS = _env_int("MUX_PUT_TIMEOUT_MS", 120_000, minimum=60_000) / 1000.0
MUX_ASSET_LOOKUP_ATTEMPTS = _env_int("MUX_ASSET_LOOKUP_ATTEMPTS", 5, minimum=1, maximum=30)

# --------------------------------------------------------------------------- #
#  Asset readiness polling
# --------------------------------------------------------------------------- #
ASSET_POLL_INTERVAL_SECONDS = _env_float("ASSET_POLL_INTERVAL_SECONDS", 2.0, minimum=0.5, maximum=60.0)
ASSET_POLL_STEP_SECONDS = _env_float("ASSET_POLL_STEP_SECONDS", 1.0, minimum=0.0, maximum=30.0)
ASSET_POLL_MAX_INTERVAL_SECONDS = _env_float("ASSET_POLL_MAX_INTERVAL_SECONDS", 10.0, minimum=0.5, maximum=300.0)
ASSET_POLL_MAX_ATTEMPTS = _env_int("ASSET_POLL_MAX_ATTEMPTS", 60, minimum=1, maximum=1000)
ASSET_POLL_TIMEOUT_SECONDS = _env_float("ASSET_POLL_TIMEOUT_SECONDS", 300.0, minimum=10.0, maximum=1800.0)
ASSET_RECORD_RETENTION_SECONDS = _env_float("ASSET_RECORD_RETENTION_SECONDS", 900.0, minimum=0.0, maximum=86400.0)

# --------------------------------------------------------------------------- #
#  Rendering
# --------------------------------------------------------------------------- #
TTS_TMP_DIR = Path(_env_str("TTS_TMP_DIR", "/tmp/tts"))
TTS_CLEANUP = _env_bool("TTS_CLEANUP")
BACKGROUND_IMAGE_DIR = os.getenv("BACKGROUND_IMAGE_DIR") or None
FFMPEG_BINARY = _env_str("FFMPEG_BINARY", "ffmpeg")
FFMPEG_PRESET = _env_str("FFMPEG_PRESET", "fast")
FFMPEG_CRF = _env_int("FFMPEG_CRF", 23, minimum=0, maximum=51)
VIDEO_MAX_WIDTH = _env_int("VIDEO_MAX_WIDTH", 1920, minimum=320, maximum=3840)
VIDEO_MAX_HEIGHT = _env_int("VIDEO_MAX_HEIGHT", 1080, minimum=240, maximum=2160)
RENDER_TIMEOUT_SECONDS = _env_float("RENDER_TIMEOUT_SECONDS", 300.0, minimum=10.0)

# --------------------------------------------------------------------------- #
#  Server
# --------------------------------------------------------------------------- #
SERVICE_NAME = "weather-agent"
CORS_ORIGIN = _env_str("CORS_ORIGIN", "*")
LOG_LEVEL = _env_str("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
