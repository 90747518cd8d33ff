"""
Log Viewer Utilities for Stitch.

Query, filter and summarize structured log entries.
Used by the `stitch logs` CLI command.
"""

import json
import re
from collections import Counter
from collections.abc import Iterator
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from .config import get_config

LOG_TYPES = ("engine", "store", "all")


def parse_since(since: str) -> datetime:
    """
    Parse a 'since' time string into a datetime.

    Supports:
        - ISO format: "2026-01-11T10:00:00"
        - Relative: "1h", "30m", "2d", "1w"
    """
    try:
        return datetime.fromisoformat(since)
    except ValueError:
        pass

    match = re.match(r"^(\d+)([mhdw])$", since.lower())
    if match:
        value = int(match.group(1))
        delta_map = {
            "m": timedelta(minutes=value),
            "h": timedelta(hours=value),
            "d": timedelta(days=value),
            "w": timedelta(weeks=value),
        }
        return datetime.now() - delta_map[match.group(2)]

    raise ValueError(f"Invalid time format: {since}. Use ISO format or relative (1h, 30m, 2d)")


def read_jsonl(filepath: Path, since: datetime | None = None) -> Iterator[dict[str, Any]]:
    """Yield parsed entries from a JSONL file, skipping blank and corrupt lines."""
    if not filepath.exists():
        return

    with open(filepath, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(entry, dict):
                continue

            if since:
                try:
                    if datetime.fromisoformat(entry.get("timestamp", "")) < since:
                        continue
                except (ValueError, TypeError):
                    continue

            yield entry


def query_logs(
    log_type: str = "all",
    since: str | None = None,
    project_id: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """
    Query log entries with filters.

    Args:
        log_type: "engine", "store", or "all"
        since: Time filter (ISO or relative like "1h")
        project_id: Only entries about this project
        limit: Max entries to return

    Returns:
        Matching entries, newest first
    """
    if log_type not in LOG_TYPES:
        raise ValueError(f"Unknown log type: {log_type}. Use one of {', '.join(LOG_TYPES)}")

    config = get_config()
    since_dt = parse_since(since) if since else None

    files: list[tuple[str, Path]] = []
    if log_type in ("engine", "all"):
        files.append(("engine", config.engine_log_path))
    if log_type in ("store", "all"):
        files.append(("store", config.store_log_path))

    results: list[dict[str, Any]] = []
    for source, filepath in files:
        for entry in read_jsonl(filepath, since=since_dt):
            if project_id and entry.get("project_id") != project_id:
                continue
            entry["_source"] = source
            results.append(entry)

    results.sort(key=lambda e: e.get("timestamp", ""), reverse=True)
    return results[:limit]


def format_entry_line(entry: dict[str, Any]) -> str:
    """Format a single entry as a one-line summary."""
    ts = entry.get("timestamp", "")[:19].replace("T", " ")
    source = entry.get("_source", "")
    project = (entry.get("project_id") or "-")[:24]

    if source == "store":
        status = "ok" if entry.get("success", True) else f"FAILED ({entry.get('error_type')})"
        return (
            f"{ts} [store] {entry.get('operation', '?'):<8} {project} "
            f"{entry.get('latency_ms', 0)}ms {status}"
        )

    line = f"{ts} [engine] {entry.get('event_type', '?'):<14} {project}"
    if entry.get("intent"):
        line += f" {entry['intent']}"
    if entry.get("action"):
        line += f" action={entry['action']}"
    if entry.get("error"):
        line += f" error={entry['error']}"
    return line


def calculate_stats(entries: list[dict[str, Any]]) -> dict[str, Any]:
    """Summarize entries: event counts, store failures and mean store latency."""
    engine_events: Counter[str] = Counter()
    store_ops: Counter[str] = Counter()
    store_failures = 0
    latencies: list[int] = []

    for entry in entries:
        if entry.get("_source") == "store":
            store_ops[entry.get("operation", "?")] += 1
            latencies.append(int(entry.get("latency_ms", 0)))
            if not entry.get("success", True):
                store_failures += 1
        else:
            engine_events[entry.get("event_type", "?")] += 1

    return {
        "total_entries": len(entries),
        "engine_events": dict(engine_events),
        "store_operations": dict(store_ops),
        "store_failures": store_failures,
        "avg_store_latency_ms": round(sum(latencies) / len(latencies), 1) if latencies else 0.0,
    }


def format_stats(stats: dict[str, Any]) -> str:
    """Render stats as plain text lines."""
    lines = [f"Entries: {stats['total_entries']}"]
    if stats["engine_events"]:
        lines.append("Engine events:")
        for name, count in sorted(stats["engine_events"].items()):
            lines.append(f"  {name}: {count}")
    if stats["store_operations"]:
        lines.append("Store operations:")
        for name, count in sorted(stats["store_operations"].items()):
            lines.append(f"  {name}: {count}")
    lines.append(f"Store failures: {stats['store_failures']}")
    lines.append(f"Avg store latency: {stats['avg_store_latency_ms']}ms")
    return "\n".join(lines)
