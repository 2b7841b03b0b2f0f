"""In-process counters rendered in Prometheus text format."""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, List, Optional, Tuple


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\"", "\\\"")


def _render_labels(label_names: List[str], values: Tuple[str, ...]) -> str:
    if not label_names:
        return ""
    return "{" + ",".join(f'{n}="{_escape(v)}"' for n, v in zip(label_names, values)) + "}"


class Counter:
    """Monotonic counter, optionally split by labels."""

    def __init__(self, name: str, label_names: Optional[Iterable[str]] = None, help_text: str = ""):
        self.name = name
        self.help_text = help_text
        self.label_names = list(label_names or [])
        self._values: Dict[Tuple[str, ...], float] = {}
        self._lock = threading.Lock()

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0):
        if amount < 0:
            raise ValueError("counters only go up")
        key = tuple(str((labels or {}).get(name, "")) for name in self.label_names)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + float(amount)

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        key = tuple(str((labels or {}).get(name, "")) for name in self.label_names)
        with self._lock:
            return self._values.get(key, 0.0)

    def render(self) -> List[str]:
        lines = []
        if self.help_text:
            lines.append(f"# HELP {self.name} {self.help_text}")
        lines.append(f"# TYPE {self.name} counter")
        with self._lock:
            for label_values, value in sorted(self._values.items()):
                lines.append(f"{self.name}{_render_labels(self.label_names, label_values)} {value}")
        return lines

    def reset(self):
        with self._lock:
            self._values.clear()


class MetricsRegistry:
    def __init__(self):
        self.counters: Dict[str, Counter] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, label_names: Optional[Iterable[str]] = None, help_text: str = "") -> Counter:
        with self._lock:
            if name not in self.counters:
                self.counters[name] = Counter(name, label_names, help_text)
            return self.counters[name]

    def export_prometheus(self) -> str:
        lines: List[str] = []
        for metric in list(self.counters.values()):
            lines.extend(metric.render())
        return "\n".join(lines) + "\n"

    def reset(self):
        for metric in self.counters.values():
            metric.reset()


METRICS = MetricsRegistry()

http_requests_total = METRICS.counter(
    "folio_http_requests_total", ["method", "path", "status"], "HTTP requests by route and status"
)
exports_total = METRICS.counter(
    "folio_exports_total", ["format", "status"], "Export attempts by format and terminal state"
)
credits_consumed_total = METRICS.counter(
    "folio_credits_consumed_total", None, "AI credits consumed"
)
ledger_rejections_total = METRICS.counter(
    "folio_ledger_rejections_total", ["reason"], "Entitlement checks that rejected a request"
)


_ID_SEGMENT = re.compile(r"^([0-9]+|[0-9a-fA-F-]{8,})$")


def normalize_path(path: str) -> str:
    """Collapse numeric and uuid-like segments to :id to keep label cardinality low."""
    parts = [":id" if _ID_SEGMENT.match(seg) else seg for seg in path.split("/") if seg]
    return "/" + "/".join(parts)
