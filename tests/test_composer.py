"""Tests for the deferred response messages."""

from __future__ import annotations

import pytest

from weather_agent.assets import AssetJob, AssetState
from weather_agent.composer import ResponseComposer
from weather_agent.events import EventBus

URL = "https://player.example.com/player?assetId=asset-1"


def _submitted_job() -> AssetJob:
    job = AssetJob(created_at=0.0)
    job.mark_submitted("asset-1", URL)
    return job


def test_immediate_message_contains_url_and_processing_hint():
    message = ResponseComposer().compose_immediate(_submitted_job())
    assert message.kind == "immediate"
    assert message.state == "preparing"
    assert message.player_url == URL
    assert URL in message.content
    assert "processing" in message.content


def test_immediate_message_requires_player_url():
    with pytest.raises(ValueError):
        ResponseComposer().compose_immediate(AssetJob(created_at=0.0))


def test_resolution_requires_terminal_job():
    with pytest.raises(ValueError):
        ResponseComposer().compose_resolution(_submitted_job())


def test_ready_resolution_includes_hls_url():
    job = _submitted_job()
    job.playback_id = "pb42"
    job.advance(AssetState.READY)
    message = ResponseComposer().compose_resolution(job)
    assert "ready to play" in message.content
    assert URL in message.content
    assert "pb42.m3u8" in message.content


def test_timed_out_resolution_is_degraded_but_keeps_url():
    job = _submitted_job()
    job.advance(AssetState.TIMED_OUT)
    message = ResponseComposer().compose_resolution(job)
    assert message.state == "timed_out"
    assert "longer than expected" in message.content
    assert URL in message.content


def test_errored_resolution_caveats_url():
    job = _submitted_job()
    job.advance(AssetState.ERRORED, error_detail="invalid audio stream")
    message = ResponseComposer().compose_resolution(job)
    assert "invalid audio stream" in message.content
    assert "may not work" in message.content
    assert message.player_url == URL


def test_composer_emits_events():
    bus = EventBus(clock=lambda: 1.0)
    seen = []
    bus.subscribe(seen.append)
    composer = ResponseComposer(events=bus)
    job = _submitted_job()
    composer.compose_immediate(job)
    job.advance(AssetState.READY)
    composer.compose_resolution(job)
    assert [e.transition for e in seen] == ["composed:immediate", "composed:resolution"]
    assert all(e.job_id == job.job_id for e in seen)
