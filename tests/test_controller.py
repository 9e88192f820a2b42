"""Tests for the presence-edge controller."""

import tempfile
import unittest
from pathlib import Path

from helpers import RecordingPlayer, card
from musicbox.controller import Controller
from musicbox.errors import AudioError, TrackNotFoundError, UnknownCardError
from musicbox.library import Library
from musicbox.rfid_reader import NO_CARD


class TestController(unittest.TestCase):
    """Test the Idle / Present state machine."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.music = Path(self._tmp.name)
        for name in ("a.mp3", "b.mp3"):
            (self.music / name).write_bytes(b"ID3")
        self.library = Library(self.music, {"deadbeef": "a.mp3", "cafe": "b.mp3"})
        self.player = RecordingPlayer()
        self.errors = []
        self.controller = Controller(self.library, self.player, on_error=self.errors.append)

    def tearDown(self):
        self._tmp.cleanup()

    def feed(self, readings):
        return [self.controller.handle_reading(r) for r in readings]

    def test_starts_idle(self):
        self.assertTrue(self.controller.idle)
        self.assertIsNone(self.controller.last_observed_at)

    def test_no_card_while_idle_does_nothing(self):
        self.assertEqual(self.feed([NO_CARD, NO_CARD]), [None, None])
        self.assertEqual(self.player.calls, [])

    def test_card_resting_on_reader_plays_once(self):
        outcomes = self.feed([card("deadbeef")] * 5)

        self.assertEqual(self.player.played, [self.music / "a.mp3"])
        self.assertTrue(outcomes[0].started)
        self.assertEqual(outcomes[1:], [None] * 4)

    def test_remove_and_represent_plays_again(self):
        self.feed([card("deadbeef"), card("deadbeef"), NO_CARD, card("deadbeef")])
        self.assertEqual(self.player.played, [self.music / "a.mp3"] * 2)

    def test_example_sequence_plays_at_ticks_one_and_four(self):
        outcomes = self.feed([card("deadbeef"), card("deadbeef"), NO_CARD, card("deadbeef")])
        started = [i + 1 for i, o in enumerate(outcomes) if o is not None and o.started]
        self.assertEqual(started, [1, 4])

    def test_direct_swap_plays_both(self):
        outcomes = self.feed([card("deadbeef"), card("cafe")])

        self.assertEqual(self.player.played, [self.music / "a.mp3", self.music / "b.mp3"])
        self.assertEqual(outcomes[1].replaced_card_id, "deadbeef")
        self.assertEqual(self.controller.last_card_id, "cafe")

    def test_identifier_case_does_not_retrigger(self):
        self.feed([card("DEADBEEF"), card("deadbeef")])
        self.assertEqual(len(self.player.played), 1)

    def test_removal_returns_to_idle(self):
        self.feed([card("deadbeef"), NO_CARD])
        self.assertTrue(self.controller.idle)

    def test_unknown_card_reported_once_and_still_tracked(self):
        outcomes = self.feed([card("0102"), card("0102"), card("0102")])

        self.assertEqual(self.player.calls, [])
        self.assertEqual(len(self.errors), 1)
        self.assertIsInstance(self.errors[0], UnknownCardError)
        self.assertIsInstance(outcomes[0].error, UnknownCardError)
        self.assertEqual(self.controller.last_card_id, "0102")

    def test_missing_track_is_reported(self):
        (self.music / "a.mp3").unlink()
        self.feed([card("deadbeef")])
        self.assertIsInstance(self.errors[0], TrackNotFoundError)

    def test_audio_error_reported_and_card_still_present(self):
        self.controller.audio_player = RecordingPlayer(fail=True)
        outcomes = self.feed([card("deadbeef"), card("deadbeef")])

        self.assertIsInstance(self.errors[0], AudioError)
        self.assertEqual(len(self.errors), 1)
        self.assertFalse(outcomes[0].started)
        self.assertEqual(outcomes[0].request.track_path, self.music / "a.mp3")
        self.assertEqual(self.controller.last_card_id, "deadbeef")

    def test_library_changes_are_seen_on_next_lookup(self):
        self.feed([card("0102"), NO_CARD])
        self.controller.library = self.library.upsert("0102", "b.mp3")
        self.feed([card("0102")])
        self.assertEqual(self.player.played, [self.music / "b.mp3"])

    def test_observed_at_is_recorded(self):
        self.controller.handle_reading(card("cafe"))
        self.assertEqual(self.controller.last_observed_at, 0.0)


if __name__ == '__main__':
    unittest.main()
