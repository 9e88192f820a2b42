"""Music box - plays the audio track mapped to whichever NFC card is placed on the reader."""

__version__ = "0.2.0"

from .library import Library, normalize_card_id
from .controller import Controller, PlaybackOutcome
from .event_loop import EventLoop
from .registrar import register
from .manual import trigger

__all__ = ['Library', 'normalize_card_id', 'Controller', 'PlaybackOutcome',
           'EventLoop', 'register', 'trigger']
