#!/usr/bin/env python3
"""Live garage door command tool.

This script drives a real device through :class:`GarageDoorAccessory` and
reports each step of the round trip.

Configuration comes from ``ESPGARAGE_*`` environment variables (at least
``ESPGARAGE_HOST``); ``--host``/``--port`` override them.

Default behavior:
1) open the event stream and wait for LIVE,
2) wait for the first state event so the device id is known,
3) send ``open`` or ``close``,
4) follow the door until the settle deadline or a device report ends it.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyespgarage import (  # noqa: E402
    ConnectionState,
    DoorDirection,
    DoorPosition,
    GarageDoorAccessory,
    GarageDoorConfig,
)


@dataclass(frozen=True)
class StepResult:
    name: str
    ok: bool
    detail: str


async def _wait_until(predicate: Callable[[], bool], timeout: float) -> bool:
    try:
        async with asyncio.timeout(timeout):
            while not predicate():
                await asyncio.sleep(0.1)
    except TimeoutError:
        return False
    return True


def _print_results(results: list[StepResult]) -> None:
    width = max((len(result.name) for result in results), default=20)
    print("\nCommand report")
    print("-" * (width + 24))
    for result in results:
        status = "OK" if result.ok else "FAIL"
        print(f"{result.name:<{width}}  {status:<4}  {result.detail}")

    failures = [result for result in results if not result.ok]
    print("-" * (width + 24))
    print(f"Summary: {len(results) - len(failures)} OK, {len(failures)} FAIL")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send one open/close command to an ESPHome garage door")
    parser.add_argument("direction", choices=[d.value for d in DoorDirection], help="Command to send.")
    parser.add_argument("--host", default=None, help="Device host (default: ESPGARAGE_HOST).")
    parser.add_argument("--port", type=int, default=None, help="Device port (default: ESPGARAGE_PORT or 80).")
    parser.add_argument(
        "--live-timeout",
        type=float,
        default=30.0,
        help="Seconds to wait for the stream to go LIVE and report the device id.",
    )
    parser.add_argument(
        "--no-follow",
        action="store_true",
        help="Return right after the command is acknowledged.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, object] = {}
    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    config = GarageDoorConfig.from_env(**overrides)
    direction = DoorDirection(args.direction)
    results: list[StepResult] = []

    async with GarageDoorAccessory(config) as door:
        door.subscribe(lambda current, target: print(f"[door] current={current} target={target}"))

        live = await _wait_until(lambda: door.connection_state is ConnectionState.LIVE, args.live_timeout)
        results.append(StepResult("stream.live", live, f"state={door.connection_state}"))
        if not live:
            _print_results(results)
            return 2

        known = await _wait_until(lambda: door.device_id is not None, args.live_timeout)
        results.append(StepResult("device.id", known, f"id={door.device_id!r}"))
        if not known:
            _print_results(results)
            return 2

        acknowledged = await door.request_transition(direction)
        results.append(StepResult("command.ack", acknowledged, f"{direction} -> {door.current_position}"))

        if not args.no_follow:
            settled = await _wait_until(
                lambda: door.current_position is direction.terminal_position
                or door.current_position is DoorPosition.CLOSED,
                config.opening_time + 5.0,
            )
            results.append(
                StepResult("door.settled", settled, f"current={door.current_position} target={door.target_position}")
            )

    _print_results(results)
    return 0 if all(result.ok for result in results) else 1


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
