# rfid_reader.py
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from .config import (
    PIN_RFID_RST,
    TAG_NDEF_START_PAGE,
    TAG_NDEF_PAGE_COUNT,
)
from .errors import ReaderError, TagWriteError
from .library import card_id_from_bytes

try:
    from pirc522 import RFID
except ImportError:  # not on a Pi (no RPi.GPIO / spidev)
    RFID = None

logger = logging.getLogger(__name__)

READER_KINDS = ("auto", "hardware", "noop")


@dataclass(frozen=True)
class Reading:
    """One poll outcome: a present card, or no card at all."""
    card_id: Optional[str] = None
    observed_at: Optional[float] = None

    @property
    def present(self) -> bool:
        return self.card_id is not None


NO_CARD = Reading()


class CardReader:
    """Interface shared by all reader backends."""

    kind = "base"
    can_write_tags = False

    def poll(self) -> Reading:
        raise NotImplementedError

    def write_text(self, text: str, expected_card_id: Optional[str] = None) -> None:
        raise TagWriteError(f"{self.kind} reader cannot write tags")

    def close(self) -> None:
        pass


class NoopReader(CardReader):
    """Inert reader: never sees a card and never fails."""

    kind = "noop"

    def poll(self) -> Reading:
        return NO_CARD


class Rc522Reader(CardReader):
    """
    Thin wrapper around the pi-rc522 driver. Each poll does one REQA +
    anticollision round, so it returns within a few milliseconds whether or
    not a card is in the field.
    """

    kind = "hardware"
    can_write_tags = True

    def __init__(self, pin_rst: int = PIN_RFID_RST, clock: Callable[[], float] = time.monotonic):
        if RFID is None:
            raise ReaderError("pi-rc522 driver is not installed")
        self._clock = clock
        try:
            self.rfid = RFID(pin_rst=pin_rst, bus=0, device=0)
        except Exception as exc:
            raise ReaderError(
                f"failed to initialise RC522 reader ({exc}); "
                "ensure SPI is enabled and the RC522 is wired correctly"
            ) from exc
        time.sleep(0.1)  # Allow the RC522 to stabilise.
        logger.info("RFID reader initialised (SPI bus 0, device 0)")

    def _select(self) -> Optional[List[int]]:
        """Returns the UID bytes of the card in the field, or None."""
        (error, _) = self.rfid.request()
        if error:
            return None
        (error, uid) = self.rfid.anticoll()
        if error or not uid or len(uid) < 4:
            return None
        # anticoll returns 4 UID bytes followed by the BCC checksum.
        return uid[:4]

    def poll(self) -> Reading:
        try:
            uid = self._select()
            if uid is None:
                return NO_CARD
            self.rfid.stop_crypto()
        except Exception as exc:
            raise ReaderError(f"RC522 poll failed: {exc}") from exc
        return Reading(card_id_from_bytes(uid), self._clock())

    def write_text(self, text: str, expected_card_id: Optional[str] = None) -> None:
        """
        Writes `text` as an NDEF Well-Known Text record to the tag currently
        on the reader. Raises TagWriteError if no (or the wrong) tag is present
        or a page write fails.
        """
        if not text:
            raise TagWriteError("text payload cannot be empty")

        try:
            uid = self._select()
        except Exception as exc:
            raise TagWriteError(f"failed to select tag: {exc}") from exc
        if uid is None:
            raise TagWriteError("no tag detected; place the tag on the reader")
        card_id = card_id_from_bytes(uid)
        if expected_card_id is not None and card_id != expected_card_id:
            raise TagWriteError(f"tag on reader is {card_id}, expected {expected_card_id}")

        tlv_data = build_ndef_tlv(build_text_record(text))
        try:
            self._write_pages(TAG_NDEF_START_PAGE, tlv_data)
        finally:
            self.rfid.stop_crypto()
        logger.info("Wrote text %r to tag %s", text, card_id)

    def _write_pages(self, start_page: int, data: bytes) -> None:
        """Writes data to NTAG-style tags (4 bytes per page)."""
        pages_needed = (len(data) + 3) // 4
        if pages_needed > TAG_NDEF_PAGE_COUNT:
            raise TagWriteError(
                f"data too large ({len(data)} bytes, need {pages_needed} pages, "
                f"only {TAG_NDEF_PAGE_COUNT} available)"
            )

        for i in range(pages_needed):
            page_num = start_page + i
            page_data = list(data[i * 4:i * 4 + 4])
            page_data += [0x00] * (4 - len(page_data))

            # util_write is the Ultralight/NTAG page write; older drivers only have write
            if hasattr(self.rfid, 'util_write'):
                error = self.rfid.util_write(page_num, page_data)
            else:
                error = self.rfid.write(page_num, page_data)
            if error:
                raise TagWriteError(f"error writing to page {page_num}")
            logger.debug("Wrote tag page %d", page_num)

    def close(self) -> None:
        self.rfid.cleanup()
        logger.info("RFID reader resources cleaned up.")


def build_text_record(text: str, language: str = "en") -> bytes:
    """Creates a short NDEF Well-Known Text record (UTF-8)."""
    text_bytes = text.encode("utf-8")
    lang_bytes = language.encode("ascii")
    # Status byte: UTF-8 (bit 7 = 0) + language code length
    payload = bytes([len(lang_bytes) & 0x3F]) + lang_bytes + text_bytes
    if len(payload) > 0xFF:
        raise TagWriteError(f"text too long for a short record ({len(payload)} bytes)")
    # MB=1, ME=1, CF=0, SR=1, IL=0, TNF=0x01 (Well-Known); type 'T'
    return bytes([0xD1, 0x01, len(payload), ord('T')]) + payload


def build_ndef_tlv(ndef_message: bytes) -> bytes:
    """Wraps an NDEF message in a TLV block plus terminator, padded to whole pages."""
    length = len(ndef_message)
    if length < 0xFF:
        tlv = bytes([0x03, length]) + ndef_message + bytes([0xFE])
    else:
        tlv = bytes([0x03, 0xFF, (length >> 8) & 0xFF, length & 0xFF]) + ndef_message + bytes([0xFE])
    return tlv + bytes((4 - len(tlv) % 4) % 4)


@dataclass
class ReaderSelection:
    reader: CardReader
    requested: str
    fell_back: bool = False
    fallback_reason: Optional[str] = None

    @property
    def kind(self) -> str:
        return self.reader.kind


def select_reader(kind: str = "auto", report_fallback: bool = True,
                  factory: Callable[[], CardReader] = Rc522Reader) -> ReaderSelection:
    """
    Builds the reader backend named by `kind`.

    `hardware` fails hard if the RC522 cannot be initialised. `auto` falls
    back to the noop reader; with `report_fallback` the fallback is logged as
    a warning, otherwise only at debug level.
    """
    if kind not in READER_KINDS:
        raise ValueError(f"unknown reader kind {kind!r}; expected one of {', '.join(READER_KINDS)}")
    if kind == "noop":
        return ReaderSelection(NoopReader(), kind)
    if kind == "hardware":
        return ReaderSelection(factory(), kind)

    try:
        return ReaderSelection(factory(), kind)
    except ReaderError as exc:
        log = logger.warning if report_fallback else logger.debug
        log("Hardware reader unavailable (%s); falling back to noop reader", exc)
        return ReaderSelection(NoopReader(), kind, fell_back=True, fallback_reason=str(exc))
