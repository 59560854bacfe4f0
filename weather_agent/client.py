from __future__ import annotations

import os
from typing import Optional

from openai import OpenAI

from .config import OPENAI_BASE_URL

_client: Optional[OpenAI] = None


def get_client() -> Optional[OpenAI]:
    """Return a shared OpenAI client, or ``None`` when no API key is set.

    Callers treat ``None`` as "run without an LLM" and fall back to the
    rule-based reply.
    """
    global _client
    if _client is None:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            return None
        _client = OpenAI(api_key=api_key, base_url=OPENAI_BASE_URL)
    return _client
