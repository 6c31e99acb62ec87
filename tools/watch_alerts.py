#!/usr/bin/env python3
"""Follow the API's realtime feed and sound the alarm on every new alert."""

from __future__ import annotations

import argparse
import json
import logging
import shlex
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import requests

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from py_missingwatch.realtime import Notification, RealtimeView

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
LOGGER = logging.getLogger(__name__)

RECONNECT_DELAY_S = 3.0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch MissingWatch alerts in realtime")
    parser.add_argument("--api", default="http://localhost:8000", help="API base URL")
    parser.add_argument(
        "--alarm-cmd",
        help="Command that plays a WAV file; '{path}' is replaced with the alarm file (e.g. 'aplay -q {path}')",
    )
    parser.add_argument("--no-sound", action="store_true", help="Never play the alarm")
    parser.add_argument("--once", action="store_true", help="Exit when the stream ends instead of reconnecting")
    return parser.parse_args(argv)


def iter_sse(response: requests.Response) -> Iterator[Dict[str, Any]]:
    """Yield decoded `data:` payloads from a text/event-stream response."""
    data_lines: list[str] = []
    for raw_line in response.iter_lines(decode_unicode=True):
        if raw_line is None:
            continue
        line = raw_line.strip()
        if not line:
            if data_lines:
                yield json.loads("\n".join(data_lines))
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            data_lines.append(line.split(":", 1)[1].lstrip())
    if data_lines:
        yield json.loads("\n".join(data_lines))


class AlarmPlayer:
    def __init__(self, api: str, command: Optional[str] = None, enabled: bool = True):
        self.api = api.rstrip("/")
        self.command = command
        self.enabled = enabled
        self._path: Optional[Path] = None

    def _alarm_file(self) -> Path:
        if self._path is None:
            resp = requests.get(f"{self.api}/alerts/alarm.wav", timeout=10)
            resp.raise_for_status()
            handle = tempfile.NamedTemporaryFile(prefix="missingwatch-alarm-", suffix=".wav", delete=False)
            with handle:
                handle.write(resp.content)
            self._path = Path(handle.name)
        return self._path

    def play(self) -> None:
        if not self.enabled:
            return
        if not self.command:
            sys.stdout.write("\a")
            sys.stdout.flush()
            return
        try:
            path = self._alarm_file()
            cmd = [part.replace("{path}", str(path)) for part in shlex.split(self.command)]
            subprocess.run(cmd, check=False, timeout=5)
        except (requests.RequestException, OSError, subprocess.TimeoutExpired) as exc:
            LOGGER.warning("Alarm playback failed (%s); falling back to terminal bell", exc)
            sys.stdout.write("\a")
            sys.stdout.flush()


def _show(notification: Notification, view: RealtimeView) -> None:
    marker = "!!" if notification.variant == "destructive" else "**"
    print(f"{marker} {notification.title} {notification.description} (unread: {view.unread_count})", flush=True)


def load_view(api: str) -> RealtimeView:
    view = RealtimeView()
    alerts = requests.get(f"{api}/alerts", timeout=10)
    alerts.raise_for_status()
    matches = requests.get(f"{api}/matches", timeout=10)
    matches.raise_for_status()
    view.load(alerts.json().get("alerts", []), matches.json().get("matches", []))
    return view


def watch(api: str, view: RealtimeView, player: AlarmPlayer) -> None:
    with requests.get(f"{api}/events", stream=True, timeout=(10, None)) as resp:
        resp.raise_for_status()
        LOGGER.info("Connected to %s/events", api)
        for event in iter_sse(resp):
            notification = view.apply(event)
            if notification is None:
                continue
            _show(notification, view)
            if notification.play_alarm:
                player.play()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    api = args.api.rstrip("/")
    player = AlarmPlayer(api, command=args.alarm_cmd, enabled=not args.no_sound)
    try:
        view = load_view(api)
    except requests.RequestException as exc:
        LOGGER.error("Could not reach %s: %s", api, exc)
        return 1
    LOGGER.info("%d alert(s), %d unread", len(view.alerts), view.unread_count)

    while True:
        try:
            watch(api, view, player)
        except requests.RequestException as exc:
            LOGGER.warning("Event stream dropped: %s", exc)
        except KeyboardInterrupt:
            return 0
        if args.once:
            return 0
        time.sleep(RECONNECT_DELAY_S)


if __name__ == "__main__":
    raise SystemExit(main())
