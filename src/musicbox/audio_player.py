# audio_player.py
import logging
import os
import time

import pygame

from .config import DEFAULT_VOLUME
from .errors import AudioError

logger = logging.getLogger(__name__)


class AudioPlayer:
    """Interface shared by all audio sinks."""

    kind = "base"

    def play(self, track_path) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    def wait_until_done(self, poll_interval: float = 0.1) -> None:
        pass

    def close(self) -> None:
        pass


class SilentAudioPlayer(AudioPlayer):
    """Accepts every request and plays nothing. Used headless and in tests."""

    kind = "silent"

    def __init__(self):
        self.last_track = None

    def play(self, track_path) -> None:
        self.last_track = track_path
        logger.info("[silent] Would play track: %s", track_path)

    def stop(self) -> None:
        self.last_track = None


class PygameAudioPlayer(AudioPlayer):
    """
    Plays tracks through pygame.mixer.music. play() only starts playback;
    the mixer streams the file on its own thread.
    """

    kind = "pygame"

    def __init__(self, volume: float = DEFAULT_VOLUME):
        try:
            pygame.mixer.init()
            pygame.mixer.music.set_volume(volume)
        except pygame.error as e:
            raise AudioError(
                f"error initializing pygame mixer: {e} "
                "(is a valid audio output device connected?)"
            ) from e
        self.playing = False
        self.current_track = None
        logger.info("AudioPlayer initialized.")

    def play(self, track_path) -> None:
        """Replaces whatever is playing with `track_path`."""
        try:
            pygame.mixer.music.load(str(track_path))
            pygame.mixer.music.play()
        except pygame.error as e:
            self.playing = False
            raise AudioError(f"error playing track {track_path}: {e}") from e
        self.playing = True
        self.current_track = track_path
        logger.info("♪ Now Playing: %s", os.path.basename(str(track_path)))

    def stop(self) -> None:
        """Stops playback; a no-op when idle."""
        if not self.playing:
            return
        try:
            pygame.mixer.music.stop()
        except pygame.error as e:
            raise AudioError(f"error stopping playback: {e}") from e
        finally:
            self.playing = False
            self.current_track = None

    def wait_until_done(self, poll_interval: float = 0.1) -> None:
        """Blocks until the current track has finished."""
        while self.playing and pygame.mixer.music.get_busy():
            time.sleep(poll_interval)
        self.playing = False

    def close(self) -> None:
        """Shuts down the mixer."""
        pygame.mixer.quit()


def select_audio_player(silent: bool = False, volume: float = DEFAULT_VOLUME) -> AudioPlayer:
    """
    Returns the silent sink when asked to, otherwise tries pygame and falls
    back to silent playback if the mixer cannot be opened.
    """
    if silent:
        return SilentAudioPlayer()
    try:
        return PygameAudioPlayer(volume=volume)
    except AudioError as exc:
        logger.warning("Audio backend unavailable (%s). Falling back to silent playback.", exc)
        return SilentAudioPlayer()
