"""Mux video host client.

Synchronous ``requests`` wrapper around the three Mux calls the readiness
protocol needs:

* create a direct upload and ``PUT`` the rendered MP4 to it,
* read the upload back to learn the asset id,
* read the asset to learn its status.

HTTP failures are mapped onto :mod:`weather_agent.errors`: a 4xx during
submission is a :class:`SubmissionError`, a 5xx or network error during a
status check is a :class:`TransientCheckError`.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import requests

from . import config
from .assets import AssetStatus, RenderRequest, SubmitResult
from .errors import ProviderTerminalError, SubmissionError, TransientCheckError
from .render import RenderError, render_video

log = logging.getLogger(__name__)


def _is_transient(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


def _error_text(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        messages = err.get("messages") or []
        return "; ".join(messages) or err.get("type", "") or resp.text[:200]
    return resp.text[:200]


def _json_data(resp: requests.Response) -> Dict[str, Any]:
    """Return the ``data`` object of a Mux response; ``ValueError`` if malformed."""
    body = resp.json()
    if not isinstance(body, dict):
        raise ValueError(f"expected a JSON object, got {type(body).__name__}")
    data = body.get("data") or {}
    if not isinstance(data, dict):
        raise ValueError(f"expected 'data' to be an object, got {type(data).__name__}")
    return data


class MuxClient:
    """Video host client backed by the Mux REST API.

    Parameters
    ----------
    token_id, token_secret:
        Mux access token pair; default to ``MUX_TOKEN_ID`` / ``MUX_TOKEN_SECRET``.
    session:
        Optional :class:`requests.Session` (tests pass a stub).
    renderer:
        Callable ``(audio_path, image_path, output_path) -> output_path``.
    """

    def __init__(
        self,
        token_id: str | None = config.MUX_TOKEN_ID,
        token_secret: str | None = config.MUX_TOKEN_SECRET,
        base_url: str = config.MUX_API_BASE_URL,
        session: requests.Session | None = None,
        renderer: Callable[[str, Optional[str], str], str] = render_video,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
        upload_attempts: int = config.MUX_UPLOAD_RETRY_ATTEMPTS,
        upload_backoff: float = config.MUX_UPLOAD_RETRY_BASE_SECONDS,
        asset_lookup_attempts: int = config.MUX_ASSET_LOOKUP_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        if token_id and token_secret:
            self.session.auth = (token_id, token_secret)
        self.configured = bool(token_id and token_secret)
        self.renderer = renderer
        self.timeout = timeout
        self.upload_attempts = upload_attempts
        self.upload_backoff = upload_backoff
        self.asset_lookup_attempts = asset_lookup_attempts
        self._sleep = sleep

    def _url(self, path: str) -> str:
        return f"{self.base_url}/video/v1/{path.lstrip('/')}"

    # ------------------------------------------------------------------ #
    #  Submission
    # ------------------------------------------------------------------ #
    def submit_render(self, request: RenderRequest) -> SubmitResult:
        """Render *request* locally, upload it and return the asset id.

        Every failure that prevents an asset from existing raises
        :class:`SubmissionError`; retries happen only around the file upload.
        """
        if not self.configured:
            raise SubmissionError("Missing MUX_TOKEN_ID or MUX_TOKEN_SECRET")

        output_path = request.output_path or str(Path(request.audio_path).with_suffix(".mp4"))
        try:
            video_path = self.renderer(request.audio_path, request.image_path, output_path)
        except RenderError as exc:
            raise SubmissionError(f"Video render failed: {exc}") from exc

        upload = self._create_upload(request.options)
        upload_id = upload.get("id")
        upload_url = upload.get("url")
        if not upload_url:
            raise SubmissionError("No upload URL received from Mux")
        log.debug("Mux upload %s created", upload_id)

        self._put_file(upload_url, video_path)

        asset_id = upload.get("asset_id") or self._lookup_asset_id(upload_id)
        if not asset_id:
            raise SubmissionError(f"Upload {upload_id} finished but no asset was created")
        log.info("Mux upload %s -> asset %s", upload_id, asset_id)
        return SubmitResult(external_asset_id=asset_id, upload_id=upload_id)

    def _create_upload(self, options: Dict[str, Any]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "cors_origin": options.get("cors_origin", config.MUX_CORS_ORIGIN),
            "new_asset_settings": {
                "playback_policies": [options.get("playback_policy", "public")],
            },
        }
        if options.get("test", config.MUX_UPLOAD_TEST):
            payload["test"] = True
        try:
            resp = self.session.post(self._url("uploads"), json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise SubmissionError(f"Mux upload creation failed: {exc}") from exc
        if resp.status_code >= 400:
            raise SubmissionError(
                f"Mux upload creation failed: {resp.status_code} {_error_text(resp)}",
                status_code=resp.status_code,
            )
        try:
            return _json_data(resp)
        except ValueError as exc:
            raise SubmissionError(f"Unexpected Mux upload response: {exc}") from exc

    def _put_file(self, upload_url: str, video_path: str) -> None:
        """PUT the video, retrying 5xx/network errors with exponential backoff."""
        try:
            data = Path(video_path).read_bytes()
        except OSError as exc:
            raise SubmissionError(f"Rendered video is unreadable: {exc}") from exc
        last_error = "unknown error"
        for attempt in range(1, self.upload_attempts + 1):
            try:
                resp = requests.put(
                    upload_url,
                    data=data,
                    headers={"Content-Type": "video/mp4"},
                    timeout=config.MUX_PUT_TIMEOUT_SECONDS,
                )
            except requests.RequestException as exc:
                last_error = str(exc)
            else:
                if resp.status_code < 400:
                    return
                last_error = f"{resp.status_code} {resp.text[:200]}"
                if not _is_transient(resp.status_code):
                    raise SubmissionError(f"File upload to Mux failed: {last_error}", resp.status_code)
            if attempt < self.upload_attempts:
                delay = self.upload_backoff * (2 ** (attempt - 1))
                log.warning("PUT attempt %d failed (%s); retrying in %.1fs", attempt, last_error, delay)
                self._sleep(delay)
        raise SubmissionError(f"File upload to Mux failed after {self.upload_attempts} attempts: {last_error}")

    def _lookup_asset_id(self, upload_id: str | None) -> Optional[str]:
        if not upload_id:
            return None
        for attempt in range(1, self.asset_lookup_attempts + 1):
            try:
                resp = self.session.get(self._url(f"uploads/{upload_id}"), timeout=self.timeout)
            except requests.RequestException as exc:
                log.warning("Upload lookup %s failed: %s", upload_id, exc)
            else:
                if 400 <= resp.status_code < 500 and resp.status_code != 429:
                    raise SubmissionError(
                        f"Mux upload lookup failed: {resp.status_code} {_error_text(resp)}",
                        status_code=resp.status_code,
                    )
                if resp.status_code < 400:
                    try:
                        upload = _json_data(resp)
                    except ValueError as exc:
                        raise SubmissionError(f"Unexpected Mux upload lookup response: {exc}") from exc
                    if upload.get("status") in {"errored", "cancelled", "timed_out"}:
                        raise SubmissionError(f"Mux upload {upload_id} is {upload['status']}")
                    if upload.get("asset_id"):
                        return upload["asset_id"]
            if attempt < self.asset_lookup_attempts:
                self._sleep(1.0)
        return None

    # ------------------------------------------------------------------ #
    #  Status
    # ------------------------------------------------------------------ #
    def get_status(self, asset_id: str) -> AssetStatus:
        """Return the provider status of *asset_id*.

        Raises :class:`TransientCheckError` for network errors, 429 and 5xx,
        and :class:`ProviderTerminalError` for any other 4xx (the asset
        cannot be looked up, so waiting longer will not help).
        """
        try:
            resp = self.session.get(self._url(f"assets/{asset_id}"), timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientCheckError(f"Network error polling asset {asset_id}: {exc}") from exc
        if _is_transient(resp.status_code):
            raise TransientCheckError(
                f"Mux returned {resp.status_code} for asset {asset_id}", status_code=resp.status_code
            )
        if resp.status_code >= 400:
            raise ProviderTerminalError(
                f"Mux rejected status lookup for asset {asset_id}: {resp.status_code} {_error_text(resp)}"
            )
        try:
            asset = _json_data(resp)
        except ValueError as exc:
            raise TransientCheckError(f"Unparseable Mux response for asset {asset_id}: {exc}") from exc

        playback_ids = [p for p in asset.get("playback_ids") or [] if isinstance(p, dict)]
        errors = asset.get("errors")
        detail = None
        if isinstance(errors, dict):
            messages = [str(m) for m in errors.get("messages") or []]
            detail = "; ".join(messages) or errors.get("type")
        elif errors:
            detail = str(errors)
        return AssetStatus(
            state=str(asset.get("status", "")),
            error_detail=detail,
            playback_id=playback_ids[0].get("id") if playback_ids else None,
        )

    def health(self) -> Dict[str, Any]:
        """Cheap credential check: list a single asset."""
        if not self.configured:
            return {"healthy": False, "error": "Missing MUX_TOKEN_ID or MUX_TOKEN_SECRET"}
        try:
            resp = self.session.get(self._url("assets"), params={"limit": 1}, timeout=self.timeout)
        except requests.RequestException as exc:
            return {"healthy": False, "error": str(exc)}
        if resp.status_code >= 400:
            return {"healthy": False, "error": f"{resp.status_code} {_error_text(resp)}"}
        return {"healthy": True}


__all__ = ["MuxClient"]
