#!/usr/bin/env python3
"""
app.py – Streamlit chat page for the weather agent.

The page talks to the API server (``WEATHER_AGENT_API_URL``).  Video
replies arrive with a player link straight away; pending videos are
re-checked on every rerun and their final message is appended once the
server reports a terminal state.
"""

import os
import uuid
from typing import Any, Dict, Optional

import requests
import streamlit as st

API_URL = os.getenv("WEATHER_AGENT_API_URL", "http://127.0.0.1:8080").rstrip("/")
REQUEST_TIMEOUT = 660


# --------------------------------------------------------------------------- #
#  Helpers
# --------------------------------------------------------------------------- #
def send_message(message: str, session_id: str) -> Dict[str, Any]:
    resp = requests.post(
        f"{API_URL}/api/chat",
        json={"message": message, "session_id": session_id},
        timeout=REQUEST_TIMEOUT,
    )
    resp.raise_for_status()
    return resp.json()


def fetch_asset(job_id: str) -> Optional[Dict[str, Any]]:
    """Return the server record for *job_id*, or ``None`` once it is gone."""
    resp = requests.get(f"{API_URL}/api/assets/{job_id}", timeout=10)
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    return resp.json()


def refresh_pending() -> None:
    """Append resolution messages for videos that finished processing."""
    still_pending = []
    for job_id in st.session_state.pending_jobs:
        try:
            record = fetch_asset(job_id)
        except requests.RequestException as exc:
            st.sidebar.warning(f"Could not check video {job_id[:8]}: {exc}")
            still_pending.append(job_id)
            continue
        if record is None:
            continue
        if record.get("terminal") and record.get("resolution"):
            st.session_state.history.append(("assistant", record["resolution"]["content"]))
        else:
            still_pending.append(job_id)
    st.session_state.pending_jobs = still_pending


# --------------------------------------------------------------------------- #
#  Streamlit UI
# --------------------------------------------------------------------------- #
def main():
    st.set_page_config(page_title="Agriculture Weather Agent", layout="wide")

    st.session_state.setdefault("session_id", uuid.uuid4().hex)
    st.session_state.setdefault("history", [])
    st.session_state.setdefault("pending_jobs", [])

    with st.sidebar:
        st.header("Settings")
        st.caption(f"API: {API_URL}")
        st.caption(f"Session: {st.session_state.session_id[:8]}")

        if st.button("New Chat"):
            st.session_state.session_id = uuid.uuid4().hex
            st.session_state.history = []
            st.session_state.pending_jobs = []
            st.success("Chat history cleared. Start fresh!")

        if st.session_state.pending_jobs:
            st.subheader("Videos processing")
            for job_id in st.session_state.pending_jobs:
                st.markdown(f"- `{job_id[:8]}`")
            if st.button("Check videos"):
                refresh_pending()

    if st.session_state.pending_jobs:
        refresh_pending()

    for role, content in st.session_state.history:
        with st.chat_message(role):
            st.markdown(content)

    if user_input := st.chat_input("Ask about the weather for a ZIP code…"):
        st.session_state.history.append(("user", user_input))
        with st.chat_message("user"):
            st.markdown(user_input)

        with st.chat_message("assistant"):
            with st.spinner("Thinking…"):
                try:
                    reply = send_message(user_input, st.session_state.session_id)
                except requests.RequestException as exc:
                    st.error(f"❌  Request failed: {exc}")
                    return
            st.markdown(reply["text"])

        st.session_state.session_id = reply["session_id"]
        st.session_state.history.append(("assistant", reply["text"]))
        for msg in reply.get("messages", []):
            if msg["kind"] == "immediate":
                st.session_state.pending_jobs.append(msg["job_id"])


if __name__ == "__main__":
    main()
