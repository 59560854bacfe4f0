#!/usr/bin/env python3
"""
run.py – Start the weather-agent API server and the Streamlit UI, and
provide simple status/stop helpers.

Usage
-----
    python run.py          # start everything
    python run.py --status # inspect current state
    python run.py --stop   # terminate all services
"""

from __future__ import annotations

import json
import os
import socket
import subprocess
import sys
import time
from pathlib import Path

import psutil
import requests

# --------------------------------------------------------------------------- #
#  Constants
# --------------------------------------------------------------------------- #
SERVICE_INFO = Path("service_info.json")
SERVER_LOG   = Path("weather_agent_server.log")
UI_LOG       = Path("weather_agent_ui.log")
HOST         = os.getenv("WEATHER_AGENT_HOST", "127.0.0.1")
PORT         = int(os.getenv("PORT", "8080"))
UI_PORT      = int(os.getenv("UI_PORT", "8501"))


# --------------------------------------------------------------------------- #
#  Helpers
# --------------------------------------------------------------------------- #
def _is_port_free(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        return sock.connect_ex((HOST, port)) != 0


def _wait_for(url: str, *, timeout: int = 60, interval: float = 1.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            if requests.get(url, timeout=5).status_code == 200:
                return True
        except requests.RequestException:
            pass
        time.sleep(interval)
    return False


def _spawn(cmd: list[str], log_path: Path, extra_env: dict | None = None) -> subprocess.Popen:
    """Start *cmd* detached from this process, logging to *log_path*."""
    env = {**os.environ, **(extra_env or {})}
    log_file = log_path.open("w", encoding="utf-8", buffering=1)
    with open(os.devnull, "r") as devnull:
        proc = subprocess.Popen(
            cmd,
            stdin=devnull,
            stdout=log_file,
            stderr=subprocess.STDOUT,
            env=env,
            start_new_session=True,
            close_fds=True,
        )
    log_file.close()  # the child keeps its own fd
    return proc


def _save_service_info(server_pid: int, ui_pid: int) -> None:
    SERVICE_INFO.write_text(json.dumps({
        "server_pid": server_pid,
        "ui_pid": ui_pid,
        "server_url": f"http://{HOST}:{PORT}",
        "ui_url": f"http://{HOST}:{UI_PORT}",
        "started_at": time.strftime("%Y-%m-%d %H:%M:%S"),
    }, indent=2))


def _load_service_info() -> dict:
    if not SERVICE_INFO.exists():
        raise FileNotFoundError("No service_info.json found – are the services running?")
    return json.loads(SERVICE_INFO.read_text())


def _kill_pid(name: str, pid: int) -> None:
    """Gracefully terminate a process and its children."""
    try:
        proc = psutil.Process(pid)
        for child in proc.children(recursive=True):
            child.terminate()
        proc.terminate()
        print(f"{name} (PID {pid}) stopped")
    except psutil.NoSuchProcess:
        print(f"{name} (PID {pid}) was not running")
    except psutil.AccessDenied as exc:
        print(f"Error stopping {name} (PID {pid}): {exc}")


# --------------------------------------------------------------------------- #
#  Commands
# --------------------------------------------------------------------------- #
def main() -> None:
    for port in (PORT, UI_PORT):
        if not _is_port_free(port):
            sys.exit(f"[ERROR] Port {port} is already in use")

    server = _spawn(
        [sys.executable, "-m", "uvicorn", "weather_agent.server:app", "--host", HOST, "--port", str(PORT)],
        SERVER_LOG,
    )
    print(f"API server started (PID: {server.pid}) – waiting for health…")
    if not _wait_for(f"http://{HOST}:{PORT}/health"):
        server.terminate()
        sys.exit(f"[ERROR] API server failed to start; see {SERVER_LOG}")

    ui = _spawn(
        [sys.executable, "-m", "streamlit", "run", "app.py",
         "--server.port", str(UI_PORT), "--server.headless", "true"],
        UI_LOG,
        extra_env={"WEATHER_AGENT_API_URL": f"http://{HOST}:{PORT}"},
    )
    print(f"Streamlit UI started (PID: {ui.pid}) on http://{HOST}:{UI_PORT}")

    _save_service_info(server.pid, ui.pid)
    print("\nALL SERVICES RUNNING SUCCESSFULLY!")
    print("=" * 60)


def status() -> None:
    try:
        info = _load_service_info()
    except FileNotFoundError as exc:
        print(exc)
        return

    print("=" * 60)
    print(f"Started at : {info['started_at']}")
    for name, key, url in (("API server", "server_pid", info["server_url"]), ("UI", "ui_pid", info["ui_url"])):
        pid = info[key]
        alive = psutil.pid_exists(pid)
        print(f"{name:<10} PID {pid}: {'running' if alive else 'NOT running'} ({url})")
    print("=" * 60)


def stop() -> None:
    try:
        info = _load_service_info()
    except FileNotFoundError:
        print("No service_info.json – nothing to stop")
        return

    print("Stopping services…")
    _kill_pid("Streamlit UI", info["ui_pid"])
    _kill_pid("API server", info["server_pid"])
    time.sleep(1)

    SERVICE_INFO.unlink(missing_ok=True)
    print("Cleaned up service info")


# --------------------------------------------------------------------------- #
#  Entry point
# --------------------------------------------------------------------------- #
if __name__ == "__main__":
    commands = {"--status": status, "--stop": stop}
    if len(sys.argv) == 1:
        main()
    elif sys.argv[1] in commands:
        commands[sys.argv[1]]()
    else:
        print(f"Unknown command: {sys.argv[1]}")
        print("Usage: python run.py [--status | --stop]")
        sys.exit(1)
