from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping


@dataclass(frozen=True)
class ChatTelemetry:
    event: str  # "chat"
    ts_ms: float
    run_id: str
    cache_key: str
    tier: str  # "flash" | "pro"
    model: str
    cached: bool
    accelerated: bool
    ttft_ms: float
    total_latency_ms: float
    cost_estimate: float
    response_chars: int
    tool_calls: list[str]  # tool names, in order
    error: str | None = None


@dataclass(frozen=True)
class DispatchTelemetry:
    event: str  # "dispatch"
    ts_ms: float
    run_id: str
    outcomes: list[dict]  # [{name, applied, detail}]
    routing_backbone: str
    simulation_active: bool
    offline_districts: list[str]


Record = ChatTelemetry | DispatchTelemetry


class TelemetryLogger:
    """Append-only JSONL sink for chat and dispatch records of one run."""

    FILENAME = "telemetry.jsonl"

    def __init__(self, *, run_dir: Path) -> None:
        self.run_dir = Path(run_dir)
        self.path = self.run_dir / self.FILENAME
        self.run_dir.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        self.records_written = 0

    def record(self, rec: Record | Mapping[str, Any]) -> None:
        row = asdict(rec) if is_dataclass(rec) else dict(rec)
        if "event" not in row:
            raise ValueError("Telemetry record needs an 'event' field")
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(row, ensure_ascii=False, sort_keys=True) + "\n")
        self.records_written += 1

    def read_all(self, event: str | None = None) -> list[dict]:
        """Parsed records in write order, optionally only one event kind."""
        with self.path.open(encoding="utf-8") as f:
            rows = [json.loads(line) for line in f if line.strip()]
        return rows if event is None else [r for r in rows if r.get("event") == event]


def now_ms() -> float:
    return datetime.now(timezone.utc).timestamp() * 1000.0


def default_run_id() -> str:
    # UTC stamp sorts chronologically; the suffix separates sessions started in the same second.
    return f"{datetime.now(timezone.utc):%Y%m%dT%H%M%SZ}-{uuid.uuid4().hex[:6]}"


def make_run_dir(base: str | Path = "runs", *, run_id: str) -> Path:
    run_dir = Path(base, run_id)
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir
