#!/usr/bin/env python3
"""Run the step reconciler live against an MQTT sensor feed.

Readings published on the configured topic are reconciled and the day's
step count is printed on every update. State is persisted to
``PEDOMETER_STORE_PATH`` (or ``--store``) so restarts resume the count.

Usage
-----
    PEDOMETER_MQTT_HOST=broker.local python scripts/mqtt_listen.py
    python scripts/mqtt_listen.py --host broker.local --topic wearable/steps --pulse
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pypedometer import CallbackObserver, PedometerConfig, SensorKind, SensorMode, StepReconciler  # noqa: E402
from pypedometer._mqtt import MqttSensorProvider  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile steps from an MQTT sensor feed.")
    parser.add_argument("--host", default=None, help="Broker host (overrides PEDOMETER_MQTT_HOST)")
    parser.add_argument("--port", type=int, default=None, help="Broker port")
    parser.add_argument("--topic", default=None, help="Sensor topic")
    parser.add_argument("--store", default=None, help="JSON store path")
    parser.add_argument("--pulse", action="store_true", help="Feed publishes step detector pulses only")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging")
    return parser.parse_args()


async def _run(config: PedometerConfig, capabilities: tuple[SensorKind, ...]) -> int:
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    observer = CallbackObserver(
        step=lambda count: print(f"[steps] {count}"),
        unsupported=lambda: print("[steps] sensor feed unavailable"),
    )
    reconciler = StepReconciler(config=config, observer=observer)
    provider = MqttSensorProvider.from_config(config, loop=loop, capabilities=capabilities)

    if reconciler.start(provider) is SensorMode.UNSUPPORTED:
        return 1
    try:
        await stop_event.wait()
    finally:
        reconciler.stop()
    print(f"[steps] stopped at {reconciler.current_step}")
    return 0


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, object] = {}
    if args.host:
        overrides["mqtt_host"] = args.host
    if args.port is not None:
        overrides["mqtt_port"] = args.port
    if args.topic:
        overrides["mqtt_topic"] = args.topic
    if args.store:
        overrides["store_path"] = args.store
    config = PedometerConfig.from_env(**overrides)

    capabilities = (SensorKind.PULSE,) if args.pulse else (SensorKind.CUMULATIVE,)
    return asyncio.run(_run(config, capabilities))


if __name__ == "__main__":
    raise SystemExit(main())
