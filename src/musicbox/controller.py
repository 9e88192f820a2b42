# controller.py
"""
Presence-edge state machine between the reader and the audio sink.

A card resting on the reader shows up on every poll. The controller
resolves and plays a card only on the poll where it first appears (or
replaces another card) and ignores it until it is taken away.
"""
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .errors import AudioError, MusicBoxError, ResolutionError
from .library import Library, normalize_card_id
from .rfid_reader import Reading

logger = logging.getLogger(__name__)

ErrorHook = Callable[[MusicBoxError], None]


@dataclass(frozen=True)
class PlaybackRequest:
    track_path: Path


@dataclass(frozen=True)
class PlaybackOutcome:
    """What a resolution attempt did: a started track, or the error it hit."""
    card_id: str
    request: Optional[PlaybackRequest] = None
    replaced_card_id: Optional[str] = None
    error: Optional[MusicBoxError] = None

    @property
    def started(self) -> bool:
        return self.request is not None and self.error is None


class Controller:
    """
    States are Idle (`last_card_id is None`) and Present(card, since).
    Only the event loop that owns an instance may feed it readings.
    """

    def __init__(self, library: Library, audio_player, on_error: Optional[ErrorHook] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.library = library
        self.audio_player = audio_player
        self.on_error = on_error
        self._clock = clock
        self.last_card_id: Optional[str] = None
        self.last_observed_at: Optional[float] = None

    @property
    def idle(self) -> bool:
        return self.last_card_id is None

    def handle_reading(self, reading: Reading) -> Optional[PlaybackOutcome]:
        """
        Applies one poll result. Returns the outcome of a resolution attempt,
        or None when the reading caused no attempt (absence or a suppressed
        repeat). Resolution and audio errors go to `on_error`.
        """
        if not reading.present:
            if self.last_card_id is not None:
                logger.info("Card %s removed", self.last_card_id)
            self.last_card_id = None
            self.last_observed_at = None
            return None

        card_id = normalize_card_id(reading.card_id)
        if card_id == self.last_card_id:
            return None

        outcome = self.present(card_id, observed_at=reading.observed_at)
        if outcome.error is not None:
            self._report(outcome.error)
        return outcome

    def present(self, card_id: str, observed_at: Optional[float] = None) -> PlaybackOutcome:
        """
        Idle/other-card -> Present(card_id) transition: record the card, then
        resolve it and start playback. The card is recorded even if that
        fails, so a bad card left on the reader is reported only once.
        """
        card_id = normalize_card_id(card_id)
        previous = self.last_card_id
        self.last_card_id = card_id
        self.last_observed_at = observed_at if observed_at is not None else self._clock()

        try:
            track_path = self.library.resolve(card_id)
        except ResolutionError as exc:
            logger.warning("Card %s: %s", card_id, exc)
            return PlaybackOutcome(card_id, replaced_card_id=previous, error=exc)

        request = PlaybackRequest(track_path)
        try:
            self.audio_player.play(request.track_path)
        except AudioError as exc:
            logger.error("Card %s: %s", card_id, exc)
            return PlaybackOutcome(card_id, request, replaced_card_id=previous, error=exc)

        logger.info("Card %s -> %s", card_id, track_path)
        return PlaybackOutcome(card_id, request, replaced_card_id=previous)

    def _report(self, error: MusicBoxError) -> None:
        if self.on_error is not None:
            self.on_error(error)
