# status.py
"""Lock-protected run status shared between the poll loop and the status server."""
import threading
import time
from dataclasses import asdict, dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class StatusSnapshot:
    started_at: float
    last_card_id: Optional[str] = None
    last_track: Optional[str] = None
    last_error: Optional[str] = None
    last_update: Optional[float] = None
    playbacks: int = 0
    resolution_errors: int = 0
    audio_errors: int = 0
    reader_errors: int = 0
    idle_polls: int = 0
    reader_kind: Optional[str] = None
    reader_fallback: bool = False
    audio_kind: Optional[str] = None

    def uptime(self, now: Optional[float] = None) -> float:
        return (time.time() if now is None else now) - self.started_at

    def to_dict(self, now: Optional[float] = None) -> dict:
        data = asdict(self)
        data["uptime_sec"] = round(self.uptime(now), 3)
        return data


class SharedStatus:
    """
    Written by the event loop, read by the telemetry thread. Every method
    holds the lock only long enough to swap in a new immutable snapshot.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot = StatusSnapshot(started_at=clock())

    def _update(self, **changes) -> None:
        with self._lock:
            self._snapshot = replace(self._snapshot, last_update=self._clock(), **changes)

    def _increment(self, counter: str, **changes) -> None:
        with self._lock:
            current = getattr(self._snapshot, counter)
            self._snapshot = replace(
                self._snapshot, last_update=self._clock(), **{counter: current + 1}, **changes
            )

    def set_backends(self, reader_kind: str, audio_kind: str, reader_fallback: bool = False) -> None:
        self._update(reader_kind=reader_kind, audio_kind=audio_kind, reader_fallback=reader_fallback)

    def record_card(self, card_id: str) -> None:
        self._update(last_card_id=card_id)

    def record_playback(self, card_id: str, track: str) -> None:
        self._increment("playbacks", last_card_id=card_id, last_track=track)

    def record_idle(self) -> None:
        self._increment("idle_polls")

    def record_resolution_error(self, message: str) -> None:
        self._increment("resolution_errors", last_error=message)

    def record_audio_error(self, message: str) -> None:
        self._increment("audio_errors", last_error=message)

    def record_reader_error(self, message: str) -> None:
        self._increment("reader_errors", last_error=message)

    def snapshot(self) -> StatusSnapshot:
        with self._lock:
            return self._snapshot
