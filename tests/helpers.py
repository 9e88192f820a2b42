"""Test doubles shared by the controller, loop and registrar tests."""

from collections import deque
from pathlib import Path

from musicbox.audio_player import AudioPlayer
from musicbox.errors import AudioError
from musicbox.rfid_reader import NO_CARD, CardReader, Reading


def card(card_id):
    return Reading(card_id, 0.0)


class RecordingPlayer(AudioPlayer):
    """Audio sink that records play/stop calls and can be told to fail."""

    kind = "recording"

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def play(self, track_path):
        if self.fail:
            raise AudioError("no output device")
        self.calls.append(("play", Path(track_path)))

    def stop(self):
        self.calls.append(("stop", None))

    @property
    def played(self):
        return [path for name, path in self.calls if name == "play"]


class ScriptedReader(CardReader):
    """Returns (or raises) a fixed sequence of poll results, then no card."""

    kind = "scripted"

    def __init__(self, events, on_exhausted=None):
        self.events = deque(events)
        self.on_exhausted = on_exhausted
        self.polls = 0
        self.closed = False

    def poll(self):
        self.polls += 1
        if not self.events:
            if self.on_exhausted is not None:
                self.on_exhausted()
            return NO_CARD
        event = self.events.popleft()
        if isinstance(event, Exception):
            raise event
        return event

    def close(self):
        self.closed = True
