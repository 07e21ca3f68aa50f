"""
Listener counters and gauges with Prometheus text exposition.

Every series is exported as ``realtime_<name>``. Names used by the client:

connections_opened_total, connection_errors_total, reconnects_total,
events_received_total, frames_dropped_total, api_requests_total,
api_errors_total, subscriptions_active, adapters_connected.
"""

from __future__ import annotations

import time
from collections import defaultdict
from typing import Any

PREFIX = "realtime_"

HELP = {
    "connections_opened_total": "Successful hub handshakes",
    "connection_errors_total": "Dropped or failed hub connections",
    "reconnects_total": "Reconnect attempts scheduled",
    "events_received_total": "Decoded events handed to subscribers",
    "frames_dropped_total": "Frames dropped as malformed",
    "api_requests_total": "Completed API calls",
    "api_errors_total": "API calls that failed after retries",
    "subscriptions_active": "Open subscriptions",
    "adapters_connected": "Adapters that received an event since their last reconnect",
}


class MetricsCollector:
    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._gauges: dict[str, float] = {}
        self._started = time.monotonic()

    @property
    def uptime(self) -> float:
        return time.monotonic() - self._started

    def inc(self, name: str, value: int = 1) -> None:
        self._counters[name] += value

    def set_gauge(self, name: str, value: float) -> None:
        self._gauges[name] = value

    def get(self, name: str) -> int | float:
        if name in self._gauges:
            return self._gauges[name]
        return self._counters.get(name, 0)

    def to_prometheus(self) -> str:
        lines: list[str] = []
        series = [(n, v, "counter") for n, v in self._counters.items()]
        series += [(n, v, "gauge") for n, v in self._gauges.items()]
        series.append(("uptime_seconds", round(self.uptime, 1), "gauge"))
        for name, value, kind in sorted(series):
            full = PREFIX + name
            if name in HELP:
                lines.append(f"# HELP {full} {HELP[name]}")
            lines.append(f"# TYPE {full} {kind}")
            lines.append(f"{full} {value}" if kind == "counter" else f"{full} {value:g}")
        return "\n".join(lines) + "\n"

    def to_dict(self) -> dict[str, Any]:
        return {
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "uptime_seconds": round(self.uptime, 1),
        }
