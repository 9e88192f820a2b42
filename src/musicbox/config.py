# config.py
import os

# RFID Reset Pin (physical)
PIN_RFID_RST = 22

# --- Audio Player Settings ---

# Supported audio file extensions
SUPPORTED_EXTENSIONS = ['.mp3', '.ogg', '.wav']

# Initial volume (from 0.0 to 1.0)
DEFAULT_VOLUME = 0.5

# --- Event Loop Settings ---

# Reader poll cadence in milliseconds
DEFAULT_POLL_INTERVAL_MS = int(os.getenv("MUSICBOX_POLL_INTERVAL_MS", "200"))

# How long `add` waits for a card before giving up (seconds)
DEFAULT_REGISTER_TIMEOUT_SEC = 30.0

# Stop the loop after one tick when running with the noop reader (smoke tests)
NOOP_SHUTDOWN_ENV = "MUSICBOX_NOOP_SHUTDOWN"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def env_log_level(default="INFO"):
    """MUSICBOX_LOG_LEVEL if it names a known level, else `default`."""
    value = os.getenv("MUSICBOX_LOG_LEVEL", default).upper()
    return value if value in LOG_LEVELS else default


LOG_LEVEL = env_log_level()

# --- Telemetry ---

DEFAULT_TELEMETRY_HOST = "127.0.0.1"
DEFAULT_TELEMETRY_PORT = 8080

# --- RFID Tag Writing Settings ---

# NTAG215 pages that hold the NFC Forum TLV (page 4 is the first writable page).
TAG_NDEF_START_PAGE = 4
TAG_NDEF_PAGE_COUNT = 32  # 32 pages = 128 bytes of NDEF payload space
