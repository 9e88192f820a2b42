# event_loop.py
import logging
import threading
import time
from typing import Callable, Optional

from .config import DEFAULT_POLL_INTERVAL_MS
from .controller import Controller, PlaybackOutcome
from .errors import AudioError, MusicBoxError, ReaderError, ResolutionError
from .rfid_reader import NO_CARD, CardReader
from .status import SharedStatus

logger = logging.getLogger(__name__)


class EventLoop:
    """
    Polls the reader at a fixed cadence and feeds each reading to the
    controller. The loop owns the controller for its whole run and is the
    only caller of `reader.poll()`.

    Reader, resolution and audio errors are reported and the loop carries
    on; only `request_shutdown()` (checked once per tick) ends it.
    """

    def __init__(self, controller: Controller, reader: CardReader,
                 poll_interval: float = DEFAULT_POLL_INTERVAL_MS / 1000.0,
                 status: Optional[SharedStatus] = None,
                 on_error: Optional[Callable[[MusicBoxError], None]] = None,
                 on_outcome: Optional[Callable[[PlaybackOutcome], None]] = None):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.controller = controller
        self.reader = reader
        self.poll_interval = poll_interval
        self.status = status if status is not None else SharedStatus()
        self.on_error = on_error
        self.on_outcome = on_outcome
        self.ticks = 0
        self._shutdown = threading.Event()
        controller.on_error = self.report_error

    def request_shutdown(self) -> None:
        """Safe to call from signal handlers and other threads."""
        self._shutdown.set()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    def report_error(self, error: MusicBoxError) -> None:
        message = str(error)
        if isinstance(error, ResolutionError):
            self.status.record_resolution_error(message)
        elif isinstance(error, AudioError):
            self.status.record_audio_error(message)
        elif isinstance(error, ReaderError):
            logger.warning("Reader error (treated as no card): %s", message)
            self.status.record_reader_error(message)
        else:
            logger.error("Unexpected error: %s", message)
        if self.on_error is not None:
            self.on_error(error)

    def tick(self) -> Optional[PlaybackOutcome]:
        """Runs one poll -> controller step."""
        self.ticks += 1
        try:
            reading = self.reader.poll()
        except ReaderError as exc:
            self.report_error(exc)
            reading = NO_CARD

        if reading.present:
            self.status.record_card(reading.card_id)
        else:
            self.status.record_idle()

        outcome = self.controller.handle_reading(reading)
        if outcome is not None:
            if outcome.started:
                self.status.record_playback(outcome.card_id, str(outcome.request.track_path))
            if self.on_outcome is not None:
                self.on_outcome(outcome)
        return outcome

    def run(self, max_ticks: Optional[int] = None) -> int:
        """
        Loops until shutdown is requested (or `max_ticks` ticks have run).
        Returns the number of ticks executed by this call.
        """
        logger.info("Event loop started (poll interval %.0f ms)", self.poll_interval * 1000)
        ran = 0
        while not self._shutdown.is_set():
            started = time.monotonic()
            self.tick()
            ran += 1
            if max_ticks is not None and ran >= max_ticks:
                break
            remaining = self.poll_interval - (time.monotonic() - started)
            if remaining > 0:
                self._shutdown.wait(remaining)
        logger.info("Event loop stopped after %d tick(s)", ran)
        return ran
