"""JSON persistence for recorded sessions.

Only the raw log and its window/filter parameters are written; the derived
HRV data is rebuilt on load.  I/O and decoding errors propagate to the caller.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterator

from hrvlab.config import settings
from hrvlab.measurement import MeasurementAggregate

logger = logging.getLogger(__name__)


def default_session_path(start_time: datetime, directory: Path | None = None) -> Path:
    """``<sessions_dir>/session_YYYYmmdd_HHMMSS.json``"""
    directory = directory or settings.paths.sessions_dir
    return Path(directory) / f"session_{start_time.strftime('%Y%m%d_%H%M%S')}.json"


def save_session(acq: MeasurementAggregate, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(acq.to_dict(), f, indent=2)
    logger.info("saved session with %d messages to %s", len(acq.messages), path)
    return path


def load_session(path: str | Path) -> MeasurementAggregate:
    with open(path) as f:
        data = json.load(f)
    acq = MeasurementAggregate.from_dict(data)
    logger.info("loaded session with %d messages from %s", len(acq.messages), path)
    return acq


class SessionStore:
    """An ordered collection of sessions persisted as one JSON array."""

    def __init__(self, sessions: list[MeasurementAggregate] | None = None) -> None:
        self._sessions: list[MeasurementAggregate] = list(sessions or [])

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[MeasurementAggregate]:
        return iter(self._sessions)

    def __getitem__(self, idx: int) -> MeasurementAggregate:
        return self._sessions[idx]

    def store(self, acq: MeasurementAggregate) -> None:
        self._sessions.append(acq)

    def delete(self, idx: int) -> None:
        """Remove the session at *idx*; out-of-range indices are ignored."""
        if 0 <= idx < len(self._sessions):
            del self._sessions[idx]

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump([acq.to_dict() for acq in self._sessions], f, indent=2)
        return path

    @classmethod
    def load(cls, path: str | Path) -> SessionStore:
        with open(path) as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{path}: expected a JSON array of sessions")
        return cls([MeasurementAggregate.from_dict(item) for item in data])
