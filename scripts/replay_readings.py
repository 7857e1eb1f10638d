#!/usr/bin/env python3
"""Replay recorded sensor readings through the step reconciler.

Input is a CSV file with a header row and the columns ``timestamp`` (ISO 8601
or epoch seconds/ms), ``kind`` (``cumulative``/``pulse``) and ``value``.
Optional ``event`` column values ``reboot`` and ``midnight`` simulate a device
reboot or the external day-boundary trigger before that row is applied.

Usage
-----
    python scripts/replay_readings.py readings.csv
    python scripts/replay_readings.py --store state.json --time-zone Europe/Amsterdam readings.csv
"""

from __future__ import annotations

import argparse
import csv
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pypedometer import (  # noqa: E402
    FixedClock,
    JsonFileStore,
    MemoryStore,
    PedometerConfig,
    RecordingObserver,
    SensorKind,
    StepReconciler,
)
from pypedometer._constants import from_epoch  # noqa: E402


def _parse_timestamp(raw: str) -> datetime:
    text = raw.strip()
    try:
        return from_epoch(float(text))
    except ValueError:
        parsed = datetime.fromisoformat(text)
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay step sensor readings from CSV.")
    parser.add_argument("csv", help="CSV file with timestamp,kind,value[,event] columns")
    parser.add_argument("--store", default=None, help="JSON store path (default: in-memory)")
    parser.add_argument("--time-zone", default=None, help="IANA time zone for day boundaries")
    parser.add_argument("--midnight-window", type=float, default=None, help="Midnight window in seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, object] = {}
    if args.time_zone:
        overrides["time_zone"] = args.time_zone
    if args.midnight_window is not None:
        overrides["midnight_window_seconds"] = args.midnight_window
    config = PedometerConfig.from_env(**overrides)

    with Path(args.csv).open("r", encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    if not rows:
        print("No readings found.")
        return 1

    clock = FixedClock(_parse_timestamp(rows[0]["timestamp"]))
    store = JsonFileStore(args.store) if args.store else MemoryStore()
    observer = RecordingObserver()
    reconciler = StepReconciler(store, clock=clock, observer=observer, config=config)

    print(f"{'timestamp':<32}  {'kind':<10}  {'value':>10}  {'steps':>7}  {'offset':>9}")
    for row in rows:
        clock.set(_parse_timestamp(row["timestamp"]))
        event = (row.get("event") or "").strip().lower()
        if event == "reboot":
            clock.reboot()
            reconciler.notify_device_rebooted()
        elif event == "midnight":
            reconciler.mark_day_boundary()

        kind = SensorKind(row["kind"].strip().lower())
        value = float(row["value"])
        if kind is SensorKind.CUMULATIVE:
            reconciler.process_cumulative_reading(value)
        else:
            reconciler.process_pulse(value)

        state = reconciler.snapshot()
        print(
            f"{clock.now().isoformat():<32}  {kind.value:<10}  {value:>10.0f}  "
            f"{state.current_app_step:>7}  {state.last_offset_step:>9}"
        )

    print(f"\n{len(rows)} reading(s) replayed, final step count {reconciler.current_step}.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
