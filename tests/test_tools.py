"""Tests for the tool registry and the video/readiness/memory tools."""

from __future__ import annotations

import asyncio
import importlib
import json

import pytest

from tests.dummy_client import DummyVideoHost, FakeTime
from weather_agent import config, speech
from weather_agent.assets import AssetState, AssetStatus
from weather_agent.errors import SubmissionError
from weather_agent.poller import PollPolicy
from weather_agent.services import Services
from weather_agent.tools import Tool, build_tools, get_tools
from weather_agent.tools.agri import (
    build_agri_speech,
    build_agri_summary,
    extract_quoted_text,
    extract_zip,
    speak_zip,
    temperature_advice,
)
from weather_agent.tools.check_asset_readiness import check_asset_readiness
from weather_agent.tools.zip_memory import zip_memory

tts_module = importlib.import_module("weather_agent.tools.tts_weather_upload")

WEATHER = {
    "location": {"displayName": "Ames, IA"},
    "forecast": [
        {"name": "Today", "temperature": 85, "temperatureUnit": "F", "windSpeed": "10  mph",
         "windDirection": "SW", "shortForecast": "Mostly Sunny"},
        {"name": "Tonight", "temperature": 61, "temperatureUnit": "F", "windSpeed": "5 mph",
         "windDirection": "S", "shortForecast": "Clear"},
        {"name": "Monday", "temperature": 88, "temperatureUnit": "F", "windSpeed": "5 mph",
         "windDirection": "S", "shortForecast": "Chance Showers"},
    ],
}


# --------------------------------------------------------------------------- #
#  Registry
# --------------------------------------------------------------------------- #
def test_get_tools_openai_format():
    tools = get_tools()
    names = [t["function"]["name"] for t in tools]
    assert names == ["get_weather", "tts_weather_upload", "check_asset_readiness", "zip_memory"]
    assert all(t["type"] == "function" for t in tools)
    assert tools[0]["function"]["parameters"]["required"] == ["zip_code"]


def test_unknown_tool_schema_raises():
    with pytest.raises(NotImplementedError):
        Tool(name="run_command", description="", func=print)


# --------------------------------------------------------------------------- #
#  Agriculture wording
# --------------------------------------------------------------------------- #
def test_speak_zip_separates_digits():
    assert speak_zip("50010") == "5 0 0 1 0"


@pytest.mark.parametrize(
    "temp,fragment",
    [(95, "irrigation"), (80, "water needs"), (60, "planting"), (40, "seedlings"), (39, "Cold"), ("n/a", None)],
)
def test_temperature_advice_thresholds(temp, fragment):
    advice = temperature_advice(temp)
    if fragment is None:
        assert advice is None
    else:
        assert fragment in advice


def test_build_agri_speech():
    text = build_agri_speech("50010", WEATHER)
    assert text.startswith("Agriculture weather for Ames, IA. ZIP 5 0 0 1 0.")
    assert "Today: mostly sunny. Temperature around 85 degrees F. Winds 10 mph SW." in text
    assert "Looking to monday: chance showers" in text
    assert "water needs" in text


def test_build_agri_summary_uses_short_advice():
    text = build_agri_summary("50010", WEATHER)
    assert text.startswith("Agriculture weather for Ames, IA (50010).")
    assert "Advice: Monitor water needs; provide shade for tender plants." in text


def test_extract_zip_and_quotes():
    assert extract_zip(["I'm in 94107", "actually 50010-1234 now"]) == "50010"
    assert extract_zip(["no zip here"]) is None
    assert extract_quoted_text(['say "frost tonight, cover the beans"']) == "frost tonight, cover the beans"
    assert extract_quoted_text(["say 'hi'"]) is None


# --------------------------------------------------------------------------- #
#  zip_memory
# --------------------------------------------------------------------------- #
def test_zip_memory_store_and_retrieve(temp_db):
    assert json.loads(zip_memory("retrieve", session_id="s1")) == {"zip_code": None}
    assert json.loads(zip_memory("store", "94107", session_id="s1"))["stored"] is True
    assert json.loads(zip_memory("store", "50010", session_id="s1"))["zip_code"] == "50010"
    assert json.loads(zip_memory("retrieve", session_id="s1")) == {"zip_code": "50010"}
    assert json.loads(zip_memory("retrieve", session_id="s2")) == {"zip_code": None}


@pytest.mark.parametrize("action,zip_code", [("store", "12"), ("forget", "94107")])
def test_zip_memory_errors(temp_db, action, zip_code):
    assert "error" in json.loads(zip_memory(action, zip_code, session_id="s1"))


# --------------------------------------------------------------------------- #
#  tts_weather_upload / check_asset_readiness
# --------------------------------------------------------------------------- #
@pytest.fixture
def video_env(tmp_path, monkeypatch, temp_db):
    spoken = []

    def fake_synthesize(client, text, output_path):
        spoken.append(text)
        return str(output_path)

    monkeypatch.setattr(config, "TTS_TMP_DIR", tmp_path)
    monkeypatch.setattr(speech, "synthesize", fake_synthesize)
    monkeypatch.setattr(tts_module, "fetch_weather", lambda zip_code: WEATHER)
    return spoken


def _services(host, fake_time: FakeTime) -> Services:
    policy = PollPolicy(initial_interval=1.0, step=0.0, max_interval=1.0, max_attempts=5, timeout=60.0)
    return Services.create(host, policy=policy, clock=fake_time.clock, sleep=fake_time.sleep)


def test_tts_weather_upload_returns_player_url_immediately(video_env, fake_time):
    host = DummyVideoHost().script("asset-1", AssetStatus("preparing"), AssetStatus("ready"))
    services = _services(host, fake_time)
    sink = []

    async def scenario():
        raw = await tts_module.tts_weather_upload(services, "50010", session_id="s1", sink=sink)
        calls_at_return = list(host.status_calls)
        record = services.tracker.get(json.loads(raw)["job_id"])
        await record.task
        return json.loads(raw), calls_at_return, record

    result, calls_at_return, record = asyncio.run(scenario())
    assert result["success"] is True
    assert result["state"] == "preparing"
    assert result["player_url"].endswith("assetId=asset-1")
    assert result["player_url"] in result["message"]
    assert calls_at_return == []
    assert video_env and "5 0 0 1 0" in video_env[0]
    assert host.submitted[0].output_path.endswith(".mp4")
    assert [m.kind for m in sink] == ["immediate"]
    assert record.job.state is AssetState.READY
    assert record.resolution.kind == "resolution"


def test_tts_weather_upload_submission_failure_has_no_url(video_env, fake_time):
    host = DummyVideoHost(submit_error=SubmissionError("Mux upload creation failed: 400", status_code=400))
    services = _services(host, fake_time)
    sink = []

    result = json.loads(asyncio.run(tts_module.tts_weather_upload(services, "50010", text="custom words", sink=sink)))

    assert result["success"] is False
    assert "player_url" not in result
    assert "couldn't create" in result["message"]
    assert video_env == ["custom words"]
    assert sink[0].state == "errored"
    assert len(services.tracker) == 0


def test_tts_weather_upload_speech_failure(video_env, fake_time, monkeypatch):
    def broken(client, text, output_path):
        raise speech.SpeechError("Text-to-speech needs OPENAI_API_KEY")

    monkeypatch.setattr(speech, "synthesize", broken)
    host = DummyVideoHost()
    result = json.loads(asyncio.run(tts_module.tts_weather_upload(_services(host, fake_time), "50010")))
    assert result["success"] is False
    assert "OPENAI_API_KEY" in result["error"]
    assert host.submitted == []


def test_check_asset_readiness_reports_tracked_job(fake_time):
    host = DummyVideoHost().script("asset-1", AssetStatus("ready", playback_id="pb1"))
    services = _services(host, fake_time)

    async def scenario():
        job = services.poller.track("asset-1")
        await services.tracker.start(job)
        by_asset = json.loads(await check_asset_readiness(services, asset_id="asset-1"))
        again = json.loads(await check_asset_readiness(services, job_id=job.job_id))
        return by_asset, again

    by_asset, again = asyncio.run(scenario())
    assert by_asset["ready"] is True
    assert "ready to play" in by_asset["message"]
    assert "error" in again


def test_check_asset_readiness_pending_job(fake_time):
    services = _services(DummyVideoHost(), fake_time)

    async def scenario():
        job = services.poller.track("asset-1")
        services.tracker.add(job)
        return json.loads(await check_asset_readiness(services, job_id=job.job_id))

    result = asyncio.run(scenario())
    assert result["ready"] is False
    assert "still processing" in result["message"]
    assert result["state"] == "preparing"


def test_check_asset_readiness_quick_polls_unknown_asset(fake_time):
    host = DummyVideoHost().script("asset-x", AssetStatus("preparing"), AssetStatus("ready"))
    services = _services(host, fake_time)

    result = json.loads(asyncio.run(check_asset_readiness(services, asset_id="asset-x")))

    assert result["ready"] is True
    assert result["poll_attempts"] == 2
    assert host.status_calls == ["asset-x", "asset-x"]


def test_check_asset_readiness_needs_an_id(fake_time):
    services = _services(DummyVideoHost(), fake_time)
    assert "error" in json.loads(asyncio.run(check_asset_readiness(services)))


def test_build_tools_binds_session(temp_db):
    tools = {t.name: t for t in build_tools(session_id="bound")}
    tools["zip_memory"].func(action="store", zip_code="73301")
    assert json.loads(zip_memory("retrieve", session_id="bound"))["zip_code"] == "73301"
