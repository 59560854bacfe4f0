"""Remember the user's ZIP code per chat session."""

from __future__ import annotations

import json
import re

from .. import db

_ZIP_RE = re.compile(r"^\d{5}$")
PREFERENCE_KEY = "zip_code"


def zip_memory(action: str, zip_code: str | None = None, session_id: str | None = None) -> str:
    """Store or retrieve the ZIP code of *session_id*.

    Returns a JSON string: ``{"zip_code": ..., "stored": bool}`` for
    ``store``, ``{"zip_code": ... | null}`` for ``retrieve`` and
    ``{"error": ...}`` otherwise.
    """
    session_id = session_id or "default"
    action = (action or "").strip().lower()
    if action == "store":
        zip_code = str(zip_code or "").strip()
        if not _ZIP_RE.match(zip_code):
            return json.dumps({"error": f"Invalid ZIP code: {zip_code!r}"})
        db.set_preference(session_id, PREFERENCE_KEY, zip_code)
        return json.dumps({"zip_code": zip_code, "stored": True})
    if action == "retrieve":
        return json.dumps({"zip_code": db.get_preference(session_id, PREFERENCE_KEY)})
    return json.dumps({"error": f"Unknown action {action!r}; use 'store' or 'retrieve'"})


__all__ = ["PREFERENCE_KEY", "zip_memory"]
