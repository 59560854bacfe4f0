"""Agriculture-flavoured wording for forecasts.

``build_agri_speech`` produces the narration for weather videos;
``build_agri_summary`` the plain chat reply used when no LLM is available.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional

_ZIP_IN_TEXT = re.compile(r"\b(\d{5})(?:-\d{4})?\b")
_QUOTED = re.compile(r"\"([^\"\n]{5,})\"|'([^'\n]{5,})'")

_SPEECH_ADVICE = [
    (90, "Advice: Plan irrigation and avoid mid-day transplanting. Schedule field work early morning "
         "or evening to reduce heat stress on crops and livestock."),
    (80, "Advice: Monitor crop water needs and consider light irrigation. Midday heat can stress "
         "tender plants, so shade them where possible."),
    (60, "Advice: Good window for planting, pruning, and spraying if winds are calm. Watch for rapid "
         "drying in full sun."),
    (40, "Advice: Cool conditions. Protect sensitive seedlings overnight. Consider row covers for "
         "warmth retention."),
]
_SPEECH_COLD = ("Advice: Cold conditions. Protect frost-sensitive crops and ensure livestock shelter "
                "and water supply remain unfrozen.")

_SHORT_ADVICE = [
    (90, "Advice: Consider irrigation and avoid mid-day transplanting."),
    (80, "Advice: Monitor water needs; provide shade for tender plants."),
    (60, "Advice: Good window for planting and field work if winds are calm."),
    (40, "Advice: Protect sensitive seedlings overnight."),
]
_SHORT_COLD = "Advice: Frost risk. Protect sensitive crops and ensure livestock shelter."


def speak_zip(zip_code: str) -> str:
    """``"94107"`` -> ``"9 4 1 0 7"`` so TTS reads digits, not a number."""
    return " ".join(zip_code)


def extract_zip(texts: Iterable[str]) -> Optional[str]:
    """Return the last five-digit ZIP code mentioned in *texts*."""
    found: List[str] = []
    for text in texts:
        found.extend(m.group(1) for m in _ZIP_IN_TEXT.finditer(text or ""))
    return found[-1] if found else None


def extract_quoted_text(texts: Iterable[str]) -> Optional[str]:
    """Return the first quoted phrase of five or more characters."""
    for text in texts:
        m = _QUOTED.search(text or "")
        if m:
            return (m.group(1) or m.group(2)).strip()
    return None


def _advice(temperature: Any, table, cold: str) -> Optional[str]:
    if not isinstance(temperature, (int, float)):
        return None
    for threshold, text in table:
        if temperature >= threshold:
            return text
    return cold


def temperature_advice(temperature: Any, short: bool = False) -> Optional[str]:
    if short:
        return _advice(temperature, _SHORT_ADVICE, _SHORT_COLD)
    return _advice(temperature, _SPEECH_ADVICE, _SPEECH_COLD)


def _lower(value: Any) -> str:
    return str(value or "").lower()


def build_agri_speech(zip_code: str, weather: Dict[str, Any]) -> str:
    location = (weather.get("location") or {}).get("displayName") or "your area"
    periods = weather.get("forecast") or []
    today, next_period, later = (periods + [None, None, None])[:3]

    parts = [f"Agriculture weather for {location}. ZIP {speak_zip(zip_code)}."]
    if today:
        wind = ""
        if today.get("windSpeed"):
            wind = " " + f"Winds {' '.join(str(today['windSpeed']).split())} {today.get('windDirection') or ''}".strip() + "."
        parts.append(
            f"{today['name']}: {_lower(today.get('shortForecast'))}. Temperature around "
            f"{today.get('temperature')} degrees {today.get('temperatureUnit')}.{wind}"
        )
    if next_period:
        parts.append(
            f"{next_period['name']}: {_lower(next_period.get('shortForecast'))}. Near "
            f"{next_period.get('temperature')} degrees {next_period.get('temperatureUnit')}."
        )
    if later:
        parts.append(
            f"Looking to {_lower(later['name'])}: {_lower(later.get('shortForecast'))}, about "
            f"{later.get('temperature')} degrees {later.get('temperatureUnit')}."
        )

    reference = today or later or next_period
    if reference:
        advice = temperature_advice(reference.get("temperature"))
        if advice:
            parts.append(advice)
    parts.append("Check back before spraying or harvesting; conditions can shift quickly.")
    return " ".join(parts)


def build_agri_summary(zip_code: str, weather: Dict[str, Any]) -> str:
    location = (weather.get("location") or {}).get("displayName") or "your area"
    periods = weather.get("forecast") or []
    p0, p1, p2 = (periods + [None, None, None])[:3]

    parts = [f"Agriculture weather for {location} ({zip_code})."]
    if p0:
        parts.append(
            f"{p0['name']}: {p0.get('shortForecast')}, {p0.get('temperature')}°{p0.get('temperatureUnit')}. "
            f"Winds {p0.get('windSpeed')} {p0.get('windDirection')}."
        )
    if p1:
        parts.append(f"{p1['name']}: {p1.get('shortForecast')}, {p1.get('temperature')}°{p1.get('temperatureUnit')}.")
    if p2:
        parts.append(
            f"Then {_lower(p2['name'])}: {_lower(p2.get('shortForecast'))}, around "
            f"{p2.get('temperature')}°{p2.get('temperatureUnit')}."
        )
    reference = p0 or p1 or p2
    if reference:
        advice = temperature_advice(reference.get("temperature"), short=True)
        if advice:
            parts.append(advice)
    return " ".join(parts)


__all__ = [
    "build_agri_speech",
    "build_agri_summary",
    "extract_quoted_text",
    "extract_zip",
    "speak_zip",
    "temperature_advice",
]
