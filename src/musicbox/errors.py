"""
errors.py - Exception classes for the music box.

Fatal errors (configuration, persistence) propagate to the caller. Recoverable
errors (unknown card, missing track, reader and audio faults) are reported
through the event loop's error hook and the loop keeps running.
"""


class MusicBoxError(Exception):
    """Base exception for all music box errors."""
    pass


class ConfigError(MusicBoxError):
    """Raised when the card library file is malformed, incomplete or cannot be written."""
    pass


class InvalidCardIdError(MusicBoxError, ValueError):
    """Raised when a card identifier is not a valid hex string."""
    pass


class ResolutionError(MusicBoxError):
    """Base class for errors raised while resolving a card to a track."""

    def __init__(self, card_id, message):
        super().__init__(message)
        self.card_id = card_id


class UnknownCardError(ResolutionError):
    """Raised when a card identifier has no entry in the library."""

    def __init__(self, card_id):
        super().__init__(card_id, f"no track mapped to card {card_id}")


class TrackNotFoundError(ResolutionError):
    """Raised when a mapped track file has disappeared since the library was loaded."""

    def __init__(self, card_id, track_path):
        super().__init__(card_id, f"track for card {card_id} not found: {track_path}")
        self.track_path = track_path


class ReaderError(MusicBoxError):
    """Raised on a (usually transient) card reader failure."""
    pass


class AudioError(MusicBoxError):
    """Raised when the audio backend fails to start or stop playback."""
    pass


class RegistrationError(MusicBoxError):
    """Base class for card registration failures."""
    pass


class NoCardPresentedError(RegistrationError):
    """Raised when no card was presented before the registration timeout."""
    pass


class TagWriteError(MusicBoxError):
    """Raised when writing metadata back to the physical tag fails."""
    pass
