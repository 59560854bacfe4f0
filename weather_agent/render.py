"""Turn narration audio and a still image into an MP4 with ``ffmpeg``.

The command is run through :func:`subprocess.run`; no Python bindings are
needed, only an ``ffmpeg`` binary on ``PATH`` (or ``FFMPEG_BINARY``).
"""

from __future__ import annotations

import logging
import random
import subprocess
from pathlib import Path
from typing import List, Optional

from . import config

log = logging.getLogger(__name__)

_IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp"}
_FALLBACK_BACKGROUND = "color=c=0x1e3a5f:s=1280x720:r=1"


class RenderError(RuntimeError):
    """``ffmpeg`` failed or produced no output."""


def pick_background(image_dir: str | None = config.BACKGROUND_IMAGE_DIR) -> Optional[str]:
    """Return a random image from *image_dir*, or ``None`` if there is none."""
    if not image_dir:
        return None
    folder = Path(image_dir)
    if not folder.is_dir():
        return None
    candidates = sorted(p for p in folder.iterdir() if p.suffix.lower() in _IMAGE_SUFFIXES)
    return str(random.choice(candidates)) if candidates else None


def build_ffmpeg_command(
    audio_path: str,
    image_path: str | None,
    output_path: str,
    binary: str = config.FFMPEG_BINARY,
    preset: str = config.FFMPEG_PRESET,
    crf: int = config.FFMPEG_CRF,
    max_width: int = config.VIDEO_MAX_WIDTH,
    max_height: int = config.VIDEO_MAX_HEIGHT,
) -> List[str]:
    """Return the argument list that renders *audio_path* over a still frame."""
    if image_path:
        video_input = ["-loop", "1", "-i", image_path]
    else:
        video_input = ["-f", "lavfi", "-i", _FALLBACK_BACKGROUND]
    # Even dimensions are required by yuv420p.
    scale = (
        f"scale='min({max_width},iw)':'min({max_height},ih)':force_original_aspect_ratio=decrease,"
        "scale=trunc(iw/2)*2:trunc(ih/2)*2"
    )
    return [
        binary,
        "-y",
        *video_input,
        "-i", audio_path,
        "-vf", scale,
        "-c:v", "libx264",
        "-tune", "stillimage",
        "-preset", preset,
        "-crf", str(crf),
        "-c:a", "aac",
        "-b:a", "128k",
        "-pix_fmt", "yuv420p",
        "-shortest",
        "-movflags", "+faststart",
        output_path,
    ]


def render_video(
    audio_path: str,
    image_path: str | None,
    output_path: str,
    timeout: float = config.RENDER_TIMEOUT_SECONDS,
) -> str:
    """Render the video and return *output_path*.

    Raises :class:`RenderError` when ``ffmpeg`` is missing, times out,
    exits non-zero or leaves no file behind.
    """
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    cmd = build_ffmpeg_command(audio_path, image_path, output_path)
    log.debug("FFmpeg: %s", " ".join(cmd))
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as exc:
        raise RenderError(f"ffmpeg not found: {exc}") from exc
    except subprocess.TimeoutExpired as exc:
        raise RenderError(f"ffmpeg timed out after {timeout:.0f}s") from exc
    if proc.returncode != 0:
        tail = (proc.stderr or "").strip().splitlines()[-5:]
        raise RenderError(f"ffmpeg exited with {proc.returncode}: {' | '.join(tail)}")
    if not Path(output_path).exists():
        raise RenderError(f"ffmpeg produced no output at {output_path}")
    log.info("Rendered %s", output_path)
    return output_path


__all__ = ["RenderError", "build_ffmpeg_command", "pick_background", "render_video"]
