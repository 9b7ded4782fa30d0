#!/usr/bin/env python3
"""Replay recorded broker messages through the telemetry pipeline.

Reads a JSONL file where every line is one broker message::

    {"topic": "samsara.location", "partition": 0, "offset": 12,
     "timestamp": 1717000000000, "key": null, "headers": {}, "value": "{...}"}

``value`` may be a JSON string (the raw payload) or an inline object,
which is re-encoded before ingestion.  Every outbound event is printed,
followed by a summary of ingest outcomes.

Use this to check how a captured feed resolves to assets and faults
without a live broker.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from fleetpulse import FleetPulseConfig, OutboundEvent, TelemetryPipeline  # noqa: E402

_LOG = logging.getLogger("replay_messages")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Replay a JSONL capture of broker messages through fleetpulse.",
    )
    parser.add_argument("path", type=Path, help="JSONL file, one broker message per line.")
    parser.add_argument(
        "--fault-topic-marker",
        default="fault",
        help="Substring that routes a topic to the fault path (default: fault).",
    )
    parser.add_argument(
        "--no-partition-fallback",
        action="store_true",
        help="Disable partition-sticky identity for fault messages.",
    )
    parser.add_argument(
        "--no-singleton-fallback",
        action="store_true",
        help="Disable the single-asset identity fallback for fault messages.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not print individual events, only the summary.",
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Pretty-print event payloads.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def _load_line(line: str, lineno: int) -> dict[str, Any] | None:
    try:
        record = json.loads(line)
    except json.JSONDecodeError as exc:
        _LOG.warning("Skipping line %d: %s", lineno, exc)
        return None
    if not isinstance(record, dict) or "topic" not in record:
        _LOG.warning("Skipping line %d: not a broker message object", lineno)
        return None
    value = record.get("value")
    if isinstance(value, (dict, list)):
        record["value"] = json.dumps(value)
    return record


async def _messages(path: Path) -> AsyncIterator[dict[str, Any]]:
    with path.open(encoding="utf-8") as handle:
        for lineno, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            record = _load_line(line, lineno)
            if record is not None:
                yield record


def _print_event(event: OutboundEvent, *, pretty: bool) -> None:
    if event.kind == "snapshot":
        return
    body = json.dumps(event.payload, indent=2 if pretty else None, ensure_ascii=False, sort_keys=True)
    print(f"[replay] {event.kind}: {body}")


def _print_summary(pipeline: TelemetryPipeline) -> None:
    stats = pipeline.stats()
    print()
    print("[replay] Summary")
    print(f"[replay]   assets   : {stats['size']}")
    for status, count in sorted(stats["outcomes"].items()):
        print(f"[replay]   {status:<20}: {count}")
    for tier, count in sorted(stats["tiers"].items()):
        print(f"[replay]   tier {tier:<15}: {count}")
    for record in pipeline.get_active_faults_flattened():
        print(f"[replay]   active   : {record['id']} {record['code']} ({record['severity']})")


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not args.path.is_file():
        print(f"[replay] No such file: {args.path}", file=sys.stderr)
        return 2

    config = FleetPulseConfig(
        topics=("replay",),
        fault_topic_marker=args.fault_topic_marker,
        partition_fallback=not args.no_partition_fallback,
        singleton_fallback=not args.no_singleton_fallback,
    )
    pipeline = TelemetryPipeline(config)
    if not args.quiet:
        pipeline.subscribe(lambda event: _print_event(event, pretty=args.pretty))

    try:
        asyncio.run(pipeline.run(_messages(args.path)))
    except KeyboardInterrupt:
        print("[replay] Interrupted.")
    _print_summary(pipeline)
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
