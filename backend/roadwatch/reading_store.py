from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from threading import Lock
from typing import Any

from .river import parse_timestamp
from .settings import settings
from .traffic import PollStatus, TrafficReading, readings_after


def _reading_to_row(reading: TrafficReading) -> dict[str, Any]:
    return {
        "timestamp": reading.timestamp.astimezone(UTC).isoformat(),
        "status": reading.status.value,
        "has_live_data": bool(reading.has_live_data),
        "average_speed_mps": reading.average_speed_mps,
        "confidence": reading.confidence,
        "geometry": reading.geometry,
        "segments": list(reading.segments),
    }


def _row_to_reading(row: Any) -> TrafficReading | None:
    if not isinstance(row, dict):
        return None
    ts = parse_timestamp(row.get("timestamp"))
    if ts is None:
        return None
    try:
        status = PollStatus(str(row.get("status")))
    except ValueError:
        return None
    speed = row.get("average_speed_mps")
    confidence = row.get("confidence")
    geometry = row.get("geometry")
    segments = row.get("segments")
    return TrafficReading(
        timestamp=ts,
        status=status,
        has_live_data=bool(row.get("has_live_data")),
        average_speed_mps=float(speed) if isinstance(speed, (int, float)) else None,
        confidence=float(confidence) if isinstance(confidence, (int, float)) else None,
        geometry=geometry if isinstance(geometry, dict) else None,
        segments=tuple(s for s in segments if isinstance(s, dict)) if isinstance(segments, list) else (),
    )


class ReadingStore:
    """Append-only JSON-lines log of traffic polls with bounded retention."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._lock = Lock()

    @property
    def path(self) -> Path:
        # Resolved lazily so tests can repoint settings.out_dir.
        path = self._path or Path(settings.out_dir) / "traffic" / "readings.jsonl"
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def _read_all(self) -> list[TrafficReading]:
        path = self.path
        if not path.exists():
            return []
        out: list[TrafficReading] = []
        with path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    row = json.loads(line)
                except json.JSONDecodeError:
                    continue
                reading = _row_to_reading(row)
                if reading is not None:
                    out.append(reading)
        return out

    def append(self, reading: TrafficReading) -> None:
        line = json.dumps(_reading_to_row(reading), separators=(",", ":"))
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")

    def readings(self) -> list[TrafficReading]:
        """Every stored reading in file order."""
        with self._lock:
            return self._read_all()

    def since(self, cutoff: datetime) -> list[TrafficReading]:
        """Readings strictly newer than ``cutoff``, newest first."""
        return readings_after(self.readings(), cutoff)

    def prune(self, older_than: datetime) -> int:
        with self._lock:
            rows = self._read_all()
            kept = [r for r in rows if r.timestamp >= older_than]
            removed = len(rows) - len(kept)
            if removed:
                tmp = self.path.with_suffix(".jsonl.tmp")
                tmp.write_text(
                    "".join(json.dumps(_reading_to_row(r), separators=(",", ":")) + "\n" for r in kept),
                    encoding="utf-8",
                )
                tmp.replace(self.path)
            return removed

    def clear(self) -> int:
        with self._lock:
            count = len(self._read_all())
            path = self.path
            if path.exists():
                path.write_text("", encoding="utf-8")
            return count


READING_STORE = ReadingStore()
