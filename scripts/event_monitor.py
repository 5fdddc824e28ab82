#!/usr/bin/env python3
"""Passive event-stream monitor for an ESPHome garage door controller.

This script runs the same connection supervisor the accessory uses to:
1) open http://<host>:<port>/events,
2) wait for the first heartbeat (LIVE),
3) print every decoded cover ``state`` event and connection transition,
4) reconnect on liveness timeouts and stream errors.

Use this to check heartbeat cadence and what the device reports when the
wall button is pressed. No commands are ever sent.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))


def _maybe_reexec_with_project_venv() -> None:
    candidate_env = (_repo / ".venv").resolve()
    candidate_python = candidate_env / "bin" / "python"
    if not candidate_python.exists():
        return

    current_prefix = Path(sys.prefix).resolve()
    if current_prefix == candidate_env:
        return
    if os.environ.get("ESPGARAGE_EVENT_MONITOR_REEXEC") == "1":
        return

    env = dict(os.environ)
    env["ESPGARAGE_EVENT_MONITOR_REEXEC"] = "1"
    os.execve(str(candidate_python), [str(candidate_python), *sys.argv], env)


_maybe_reexec_with_project_venv()

import aiohttp  # noqa: E402

from pyespgarage import ConnectionState, ConnectionSupervisor, DeviceEvent, GarageDoorConfig  # noqa: E402
from pyespgarage._stream import EventStreamClient  # noqa: E402
from pyespgarage.exceptions import GarageConfigError  # noqa: E402


@dataclass
class MonitorStats:
    started_at: float
    total_events: int = 0
    connects: int = 0
    disconnects: int = 0
    first_event_at: float | None = None
    last_event_at: float | None = None

    def on_event(self, now: float) -> float | None:
        previous = self.last_event_at
        self.total_events += 1
        if self.first_event_at is None:
            self.first_event_at = now
        self.last_event_at = now
        return None if previous is None else now - previous


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Passive monitor for an ESPHome /events stream.",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Device host (default: ESPGARAGE_HOST).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Device web server port (default: ESPGARAGE_PORT or 80).",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--liveness-timeout",
        type=float,
        default=None,
        help="Seconds without a heartbeat before reconnecting.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Pretty-print the raw state payload.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs (includes device log lines).",
    )
    return parser.parse_args()


def _config_from_args(args: argparse.Namespace) -> GarageDoorConfig:
    overrides: dict[str, object] = {}
    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    if args.liveness_timeout:
        overrides["liveness_timeout"] = args.liveness_timeout
    return GarageDoorConfig.from_env(**overrides)


def _print_summary(stats: MonitorStats) -> None:
    runtime = time.time() - stats.started_at
    print("[monitor] Summary")
    print(f"[monitor]   runtime_s    : {runtime:.1f}")
    print(f"[monitor]   state_events : {stats.total_events}")
    print(f"[monitor]   connects     : {stats.connects}")
    print(f"[monitor]   disconnects  : {stats.disconnects}")
    if stats.first_event_at is not None:
        first_event = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(stats.first_event_at))
        print(f"[monitor]   first_event  : {first_event}")
    if stats.last_event_at is not None:
        last_event = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(stats.last_event_at))
        print(f"[monitor]   last_event   : {last_event}")


async def _monitor(config: GarageDoorConfig, args: argparse.Namespace, stats: MonitorStats) -> None:
    def on_event(event: DeviceEvent) -> None:
        now = time.time()
        delta = stats.on_event(now)
        ts_text = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(now))
        gap_text = "first" if delta is None else f"{delta:.1f}s"
        print(
            f"[monitor] event#{stats.total_events} at {ts_text} gap={gap_text} "
            f"id={event.device_id} state={event.reported_state} op={event.reported_operation}",
        )
        if args.json:
            print(json.dumps(event.raw, indent=2, ensure_ascii=False, sort_keys=True))

    def on_state_change(state: ConnectionState) -> None:
        if state is ConnectionState.LIVE:
            stats.connects += 1
        elif state is ConnectionState.DISCONNECTED:
            stats.disconnects += 1
        print(f"[monitor] connection: {state}")

    async with aiohttp.ClientSession() as session:
        source = EventStreamClient(session, config.host, config.port, connect_timeout=config.connect_timeout)
        supervisor = ConnectionSupervisor.from_config(config, source)
        supervisor.add_listener(on_event=on_event, on_state_change=on_state_change)

        print(f"[monitor] Connecting to {source.url}...")
        supervisor.start()
        try:
            if args.duration > 0:
                await asyncio.sleep(args.duration)
                print(f"[monitor] Reached --duration={args.duration}s, stopping.")
            else:
                await asyncio.Event().wait()
        finally:
            await supervisor.stop()


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _config_from_args(args)
    except GarageConfigError as exc:
        print(f"[monitor] Invalid configuration: {exc}", file=sys.stderr)
        return 2

    stats = MonitorStats(started_at=time.time())
    try:
        asyncio.run(_monitor(config, args, stats))
    except KeyboardInterrupt:
        pass

    _print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
