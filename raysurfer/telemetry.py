"""FunctionTelemetry: per-function value statistics for cached code.

Cached functions call ``telemetry.record(value)``; the caller's function
name is taken from the calling frame. The owner flushes explicitly.
"""

from __future__ import annotations

import inspect
import json
import sys
from dataclasses import dataclass, field
from typing import Any, TextIO

CAP = 1000
START_MARKER = "--- RAYSURFER_TELEMETRY_START ---"
END_MARKER = "--- RAYSURFER_TELEMETRY_END ---"
MODULE_SCOPE = "__module__"


@dataclass
class FunctionStats:
    call_count: int = 0
    total_value_size: int = 0
    empty_count: int = 0
    value_types: dict[str, int] = field(default_factory=dict)


def _type_name(value: Any) -> str:
    if value is None:
        return "None"
    return type(value).__name__


def _size(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset)):
        return len(value)
    return len(str(value))


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


class FunctionTelemetry:
    """Accumulates value statistics per calling function."""

    def __init__(self, cap: int = CAP) -> None:
        self.cap = cap
        self._functions: dict[str, FunctionStats] = {}

    def record(self, value: Any, name: str | None = None) -> None:
        if name is None:
            name = self._caller_name()
        stats = self._functions.setdefault(name, FunctionStats())
        stats.call_count += 1
        # Call count keeps counting past the cap; samples stop
        if stats.call_count <= self.cap:
            stats.total_value_size += _size(value)
            if _is_empty(value):
                stats.empty_count += 1
            type_name = _type_name(value)
            stats.value_types[type_name] = stats.value_types.get(type_name, 0) + 1

    @staticmethod
    def _caller_name() -> str:
        frame = inspect.currentframe()
        try:
            caller = frame.f_back.f_back if frame and frame.f_back else None
            if caller is None or caller.f_code.co_name == "<module>":
                return MODULE_SCOPE
            return caller.f_code.co_name
        finally:
            del frame

    def payload(self) -> dict[str, Any]:
        functions: dict[str, Any] = {}
        for name, stats in self._functions.items():
            samples = min(stats.call_count, self.cap)
            avg = stats.total_value_size / samples if samples else 0.0
            empty = stats.empty_count / samples if samples else 0.0
            functions[name] = {
                "call_count": stats.call_count,
                "avg_value_size": round(avg, 2),
                "empty_rate": round(empty, 4),
                "value_types": dict(stats.value_types),
            }
        return {"raysurfer_telemetry": {"version": 1, "functions": functions}}

    def to_json(self) -> str:
        return json.dumps(self.payload())

    def flush(self, stream: TextIO | None = None) -> None:
        """Write the payload between markers. No-op when nothing was recorded."""
        if not self._functions:
            return
        out = stream or sys.stdout
        out.write(f"\n{START_MARKER}\n")
        out.write(self.to_json())
        out.write(f"\n{END_MARKER}\n")
        out.flush()

    def reset(self) -> None:
        self._functions.clear()

    def __len__(self) -> int:
        return len(self._functions)
