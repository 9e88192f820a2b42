# library.py
"""
Card library: maps card identifiers to audio tracks under a media root.

The on-disk format is a small TOML file::

    music_dir = "/srv/music"

    [cards]
    "04a0b1c2d3" = "stories/gruffalo.mp3"

Identifiers are compared on their canonical lowercase hex form only.
"""
import logging
import os
import stat
import string
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

import tomlkit
from tomlkit.exceptions import TOMLKitError

from .errors import ConfigError, InvalidCardIdError, TrackNotFoundError, UnknownCardError

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


def normalize_card_id(value: str) -> str:
    """
    Returns the canonical (lowercase hex) form of a card identifier.
    Raises InvalidCardIdError for empty, odd-length or non-hex input.
    """
    text = str(value).strip()
    if not text:
        raise InvalidCardIdError("card identifier is empty")
    bad = [c for c in text if c not in string.hexdigits]
    if bad:
        raise InvalidCardIdError(f"invalid hex character {bad[0]!r} in card identifier {text!r}")
    if len(text) % 2 != 0:
        raise InvalidCardIdError(f"card identifier {text!r} must have an even number of hex digits")
    return text.lower()


def card_id_from_bytes(data: Iterable[int]) -> str:
    """Formats raw UID bytes as a canonical card identifier."""
    return bytes(data).hex()


def _file_mode(path: Path) -> int:
    """Permission bits for a rewrite of `path`: its current mode, else 0666 minus the umask."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


class Library:
    """
    Validated in-memory card -> track mapping.

    `music_dir` is kept exactly as written in the file; `media_root` is the
    directory it points at (relative paths are taken from the config file's
    directory).
    """

    def __init__(self, music_dir: PathLike, entries: Optional[Mapping[str, str]] = None,
                 source: Optional[PathLike] = None, text: Optional[str] = None):
        self.music_dir = str(music_dir)
        self.source = Path(source) if source is not None else None
        base = self.source.parent if self.source is not None else Path.cwd()
        self.media_root = base / Path(self.music_dir)
        self._text = text
        self._entries: Dict[str, str] = {}
        for card_id, track in (entries or {}).items():
            self._entries[normalize_card_id(card_id)] = str(track)

    # --- Loading ---

    @classmethod
    def load(cls, path: PathLike) -> "Library":
        """Reads and validates a library file. Any problem raises ConfigError."""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"failed to read config {path}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise ConfigError(f"config {path} is not valid UTF-8: {exc}") from exc
        return cls.from_toml(text, source=path)

    @classmethod
    def from_toml(cls, text: str, source: Optional[PathLike] = None,
                  validate: bool = True) -> "Library":
        where = str(source) if source is not None else "<config>"
        try:
            doc = tomlkit.parse(text)
        except TOMLKitError as exc:
            # ParseError messages carry the line and column.
            raise ConfigError(f"failed to parse config {where}: {exc}") from exc

        music_dir = doc.get("music_dir")
        if music_dir is None:
            raise ConfigError(f"{where}: missing required key 'music_dir'")
        if not isinstance(music_dir, str):
            raise ConfigError(f"{where}: 'music_dir' must be a string")

        cards = doc.get("cards")
        if cards is None:
            raise ConfigError(f"{where}: missing [cards] table")
        if not isinstance(cards, dict):
            raise ConfigError(f"{where}: 'cards' must be a table")

        entries: Dict[str, str] = {}
        for key, value in cards.items():
            try:
                card_id = normalize_card_id(key)
            except InvalidCardIdError as exc:
                raise ConfigError(f"{where}: invalid card key {key!r} in [cards]: {exc}") from exc
            if not isinstance(value, str) or not value.strip():
                raise ConfigError(f"{where}: [cards] {key!r} must be a non-empty track path")
            if card_id in entries:
                raise ConfigError(f"{where}: duplicate mapping for card {card_id} (key {key!r})")
            entries[card_id] = str(value).strip()

        library = cls(str(music_dir), entries, source=source, text=text)
        if validate:
            library.validate()
        logger.debug("Loaded %d card(s) from %s", len(library), where)
        return library

    def validate(self) -> None:
        """Checks that every mapped track exists and is readable."""
        where = str(self.source) if self.source is not None else "<config>"
        if not self.media_root.is_dir():
            raise ConfigError(f"{where}: music_dir {self.media_root} is not a directory")
        for card_id, track in self._entries.items():
            path = self.track_path(track)
            if not path.is_file():
                raise ConfigError(f"{where}: track for card {card_id} not found: {path}")
            if not os.access(path, os.R_OK):
                raise ConfigError(f"{where}: track for card {card_id} is not readable: {path}")

    # --- Lookup ---

    def track_path(self, relative_path: str) -> Path:
        """Joins a track entry to the media root (absolute entries are kept as-is)."""
        return self.media_root / relative_path

    def resolve(self, identifier: str) -> Path:
        """
        Returns the absolute track path for a card.
        Raises UnknownCardError if the card is not mapped and
        TrackNotFoundError if its file has gone missing since load.
        """
        card_id = normalize_card_id(identifier)
        track = self._entries.get(card_id)
        if track is None:
            raise UnknownCardError(card_id)
        path = self.track_path(track)
        if not path.is_file():
            raise TrackNotFoundError(card_id, path)
        return path

    @property
    def entries(self) -> Dict[str, str]:
        return dict(self._entries)

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(self._entries.items())

    def __contains__(self, identifier) -> bool:
        try:
            return normalize_card_id(identifier) in self._entries
        except InvalidCardIdError:
            return False

    def __len__(self) -> int:
        return len(self._entries)

    # --- Mutation / persistence ---

    def upsert(self, identifier: str, relative_path: str) -> "Library":
        """Returns a copy with the card bound to `relative_path`. Disk is untouched."""
        entries = dict(self._entries)
        entries[normalize_card_id(identifier)] = str(relative_path)
        updated = Library(self.music_dir, entries, source=self.source, text=self._text)
        updated.media_root = self.media_root
        return updated

    def to_toml(self) -> str:
        """Renders the mapping, keeping comments and layout of the loaded file."""
        doc = tomlkit.parse(self._text) if self._text else tomlkit.document()
        doc["music_dir"] = self.music_dir

        if not isinstance(doc.get("cards"), dict):
            doc["cards"] = tomlkit.table()
        cards = doc["cards"]

        for key in list(cards.keys()):
            if key not in self._entries:
                del cards[key]
        for card_id, track in self._entries.items():
            cards[card_id] = track
        return tomlkit.dumps(doc)

    def persist(self, destination: Optional[PathLike] = None) -> Path:
        """
        Atomically writes the library to `destination` (default: the file it
        was loaded from). The data goes to a temporary file in the same
        directory which then replaces the destination.
        """
        if destination is None:
            destination = self.source
        if destination is None:
            raise ConfigError("no destination given for a library without a source file")
        destination = Path(destination)
        content = self.to_toml()

        tmp_path = None
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=destination.parent, prefix=f".{destination.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_path, _file_mode(destination))
            os.replace(tmp_path, destination)
            tmp_path = None
        except OSError as exc:
            raise ConfigError(f"failed to write config {destination}: {exc}") from exc
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        self._text = content
        logger.info("Saved %d card(s) to %s", len(self), destination)
        return destination
