# weather_agent/tools/get_weather.py
"""
Get the forecast for a US ZIP code from the National Weather Service.

The ZIP code is resolved to coordinates through api.zippopotam.us, then
api.weather.gov is asked for the forecast grid of that point.  Neither
service needs an API key; NWS does require a ``User-Agent`` header.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List

import requests

from .. import config

log = logging.getLogger(__name__)

_ZIP_RE = re.compile(r"^\d{5}$")


class WeatherError(RuntimeError):
    """The ZIP code is invalid or a weather service call failed."""


def _get_json(url: str, **params: Any) -> Dict[str, Any]:
    resp = requests.get(
        url,
        params=params or None,
        headers={"User-Agent": config.WEATHER_USER_AGENT, "Accept": "application/geo+json"},
        timeout=config.HTTP_TIMEOUT_SECONDS,
    )
    resp.raise_for_status()
    return resp.json()


def _period(p: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": p.get("name"),
        "temperature": p.get("temperature"),
        "temperatureUnit": p.get("temperatureUnit"),
        "windSpeed": p.get("windSpeed"),
        "windDirection": p.get("windDirection"),
        "shortForecast": p.get("shortForecast"),
        "detailedForecast": p.get("detailedForecast"),
        "startTime": p.get("startTime"),
        "endTime": p.get("endTime"),
        "probabilityOfPrecipitation": (p.get("probabilityOfPrecipitation") or {}).get("value"),
    }


def _hourly(p: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "time": p.get("startTime"),
        "temperature": p.get("temperature"),
        "temperatureUnit": p.get("temperatureUnit"),
        "windSpeed": p.get("windSpeed"),
        "windDirection": p.get("windDirection"),
        "shortForecast": p.get("shortForecast"),
        "probabilityOfPrecipitation": (p.get("probabilityOfPrecipitation") or {}).get("value"),
    }


def _alert(feature: Dict[str, Any]) -> Dict[str, Any]:
    props = feature.get("properties") or {}
    area = props.get("areaDesc") or ""
    return {
        "id": props.get("id"),
        "event": props.get("event"),
        "headline": props.get("headline"),
        "severity": props.get("severity"),
        "urgency": props.get("urgency"),
        "areas": area.split("; ") if area else [],
        "effective": props.get("effective"),
        "expires": props.get("expires"),
    }


def fetch_weather(zip_code: str, include_hourly: bool = False, include_alerts: bool = False) -> Dict[str, Any]:
    """Return location and forecast data for *zip_code*.

    Raises :class:`WeatherError` for an invalid ZIP code or a failed
    forecast lookup.  Hourly data and alerts are best effort: a failure
    there is logged and the key is left out.
    """
    zip_code = str(zip_code or "").strip()
    if not _ZIP_RE.match(zip_code):
        raise WeatherError(f"Please provide a valid 5-digit ZIP code. Received: {zip_code!r}")

    try:
        geo = _get_json(f"{config.ZIP_LOOKUP_URL}/{zip_code}")
    except requests.RequestException as exc:
        raise WeatherError(f"Invalid ZIP code: {zip_code}") from exc
    places = geo.get("places") or []
    if not places:
        raise WeatherError("Location data not available for this ZIP code")
    place = places[0]
    try:
        latitude = float(place.get("latitude"))
        longitude = float(place.get("longitude"))
    except (TypeError, ValueError) as exc:
        raise WeatherError(f"Invalid coordinates for ZIP code {zip_code}") from exc
    state = place.get("state abbreviation") or ""
    display_name = f"{place.get('place name', 'Unknown')}, {state}".strip().rstrip(",")

    try:
        points = _get_json(f"{config.NWS_API_URL}/points/{latitude:.4f},{longitude:.4f}")
        props = points.get("properties") or {}
        forecast_url = props.get("forecast")
        if not forecast_url:
            raise WeatherError("Weather service did not provide a forecast URL for this location")
        forecast = _get_json(forecast_url)
    except requests.RequestException as exc:
        raise WeatherError(f"Failed to get weather forecast: {exc}") from exc

    periods: List[Dict[str, Any]] = (forecast.get("properties") or {}).get("periods") or []
    result: Dict[str, Any] = {
        "location": {
            "displayName": display_name,
            "zipCode": zip_code,
            "state": state,
            "latitude": latitude,
            "longitude": longitude,
            "timezone": props.get("timeZone"),
            "forecastOffice": props.get("forecastOffice"),
        },
        "forecast": [_period(p) for p in periods[:5]],
    }

    if include_hourly and props.get("forecastHourly"):
        try:
            hourly = _get_json(props["forecastHourly"])
            result["hourly_forecast"] = [_hourly(p) for p in (hourly.get("properties") or {}).get("periods", [])[:24]]
        except requests.RequestException as exc:
            log.warning("Hourly forecast for %s failed: %s", zip_code, exc)

    if include_alerts and state:
        try:
            alerts = _get_json(f"{config.NWS_API_URL}/alerts/active", area=state)
            result["alerts"] = [_alert(f) for f in alerts.get("features") or []]
        except requests.RequestException as exc:
            log.warning("Alerts for %s failed: %s", state, exc)

    return result


def _get_weather(zip_code: str, include_hourly: bool = False, include_alerts: bool = False) -> str:
    """
    Return the forecast for *zip_code* as a JSON string.

    Parameters
    ----------
    zip_code : str
        Five-digit US ZIP code, e.g. ``"94107"``.
    include_hourly : bool
        Add the next 24 hourly periods under ``hourly_forecast``.
    include_alerts : bool
        Add active alerts for the ZIP code's state under ``alerts``.

    Returns
    -------
    str
        JSON string. On success ``{"location": {...}, "forecast": [...]}``,
        on error ``{"error": "<error message>"}``.
    """
    try:
        return json.dumps(fetch_weather(zip_code, include_hourly, include_alerts))
    except WeatherError as exc:
        return json.dumps({"error": str(exc)})


# Public attributes used by the tool loader
func = _get_weather
name = "get_weather"
description = (
    "Get the current forecast for a US ZIP code from the National Weather Service, "
    "optionally with hourly periods and active alerts."
)

__all__ = ["WeatherError", "fetch_weather", "func", "name", "description"]
