# registrar.py
"""
Binds a card to a track and saves the library.

Registration is a one-shot operation run while the player loop is not
using the same file. The config is rewritten atomically; writing the
track name back onto the physical tag is a best-effort extra step whose
failure leaves the saved mapping in place.
"""
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .config import DEFAULT_POLL_INTERVAL_MS, DEFAULT_REGISTER_TIMEOUT_SEC, SUPPORTED_EXTENSIONS
from .errors import ConfigError, NoCardPresentedError, ReaderError, TagWriteError
from .library import Library, PathLike, card_id_from_bytes, normalize_card_id
from .rfid_reader import NO_CARD, CardReader

logger = logging.getLogger(__name__)


@dataclass
class RegistrationResult:
    card_id: str
    track: str
    config_path: Path
    library: Library
    previous_track: Optional[str] = None
    synthetic: bool = False
    tag_written: bool = False
    tag_skipped: bool = False
    tag_error: Optional[str] = None


def synthetic_card_id(now_ns: Optional[int] = None) -> str:
    """Builds a 12-byte identifier from the current time (seconds + nanoseconds)."""
    if now_ns is None:
        now_ns = time.time_ns()
    secs, nanos = divmod(now_ns, 1_000_000_000)
    return card_id_from_bytes(secs.to_bytes(8, "big") + nanos.to_bytes(4, "big"))


def wait_for_card(reader: CardReader, timeout: float = DEFAULT_REGISTER_TIMEOUT_SEC,
                  poll_interval: float = DEFAULT_POLL_INTERVAL_MS / 1000.0,
                  clock: Callable[[], float] = time.monotonic,
                  sleep: Callable[[float], None] = time.sleep) -> str:
    """
    Polls until a card is presented and returns its identifier.
    Raises NoCardPresentedError once `timeout` seconds have passed.
    """
    deadline = clock() + timeout
    while True:
        try:
            reading = reader.poll()
        except ReaderError as exc:
            logger.warning("Reader error while waiting for a card: %s", exc)
            reading = NO_CARD
        if reading.present:
            return normalize_card_id(reading.card_id)
        remaining = deadline - clock()
        if remaining <= 0:
            raise NoCardPresentedError(f"no card presented within {timeout:g} seconds")
        sleep(min(poll_interval, remaining))


def load_for_registration(config_path: PathLike, music_dir: Optional[str] = None) -> Library:
    """Loads the library, or starts an empty one if the file does not exist yet."""
    path = Path(config_path)
    if path.exists():
        return Library.load(path)
    logger.info("Config %s does not exist; creating a new library", path)
    return Library(music_dir if music_dir is not None else "", {}, source=path)


def relative_track(library: Library, track: PathLike) -> str:
    """Expresses `track` relative to the media root when it lies inside it."""
    path = Path(track)
    if not path.is_absolute():
        return path.as_posix()
    for root in (library.media_root, library.media_root.resolve()):
        try:
            return path.relative_to(root).as_posix()
        except ValueError:
            continue
    return str(path)


def register(config_path: PathLike, track: PathLike, card_id: Optional[str] = None,
             reader: Optional[CardReader] = None,
             timeout: float = DEFAULT_REGISTER_TIMEOUT_SEC,
             poll_interval: float = DEFAULT_POLL_INTERVAL_MS / 1000.0,
             write_tag: bool = True, music_dir: Optional[str] = None,
             clock: Callable[[], float] = time.monotonic,
             sleep: Callable[[float], None] = time.sleep) -> RegistrationResult:
    """
    Maps a card to `track` in the library at `config_path`.

    The card is `card_id` when given; otherwise the next card presented to
    `reader` within `timeout`. With no reader (or the noop reader) and no
    explicit card, a synthetic identifier is generated.

    Raises ConfigError (nothing is written) and NoCardPresentedError. Tag
    write-back problems never raise; they are reported on the result.
    """
    config_path = Path(config_path)
    library = load_for_registration(config_path, music_dir)

    track_rel = relative_track(library, track)
    track_path = library.track_path(track_rel)
    if not track_path.is_file():
        raise ConfigError(f"track not found: {track_path}")
    if track_path.suffix.lower() not in SUPPORTED_EXTENSIONS:
        logger.warning("%s does not look like a supported audio file (%s)",
                       track_path.name, ", ".join(SUPPORTED_EXTENSIONS))

    synthetic = False
    if card_id is not None:
        card_id = normalize_card_id(card_id)
    elif reader is None or reader.kind == "noop":
        card_id = synthetic_card_id()
        synthetic = True
    else:
        logger.info("Waiting up to %gs for a card...", timeout)
        card_id = wait_for_card(reader, timeout, poll_interval, clock=clock, sleep=sleep)

    previous = library.entries.get(card_id)
    if previous is not None and previous != track_rel:
        logger.info("Card %s was mapped to %s; replacing", card_id, previous)

    updated = library.upsert(card_id, track_rel)
    updated.persist(config_path)

    result = RegistrationResult(card_id, track_rel, config_path, updated,
                                previous_track=previous, synthetic=synthetic)

    if not write_tag:
        result.tag_skipped = True
    elif reader is None or not reader.can_write_tags:
        result.tag_error = "reader cannot write tags"
    else:
        try:
            reader.write_text(track_rel, expected_card_id=card_id)
            result.tag_written = True
        except TagWriteError as exc:
            logger.warning("Failed to write tag %s; config still updated: %s", card_id, exc)
            result.tag_error = str(exc)
    return result
