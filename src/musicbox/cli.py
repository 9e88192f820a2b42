# cli.py
"""
Command-line entry point.

    musicbox CONFIG [--reader auto|hardware|noop] [--poll-interval-ms N] [--silent] [--telemetry ADDR]
    musicbox add --config CONFIG --track TRACK [--card HEX] [--skip-tag-write]
    musicbox CONFIG tag add --track TRACK [--card HEX] [--skip-tag-write]
    musicbox manual trigger --config CONFIG HEX [--silent] [--wait]
"""
import argparse
import logging
import os
import signal
import sys

from . import __version__
from .audio_player import select_audio_player
from .config import (
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_REGISTER_TIMEOUT_SEC,
    DEFAULT_TELEMETRY_HOST,
    DEFAULT_TELEMETRY_PORT,
    LOG_LEVEL,
    LOG_LEVELS,
    NOOP_SHUTDOWN_ENV,
)
from .controller import Controller
from .errors import MusicBoxError
from .event_loop import EventLoop
from .library import Library, normalize_card_id
from .manual import trigger
from .registrar import register
from .rfid_reader import READER_KINDS, select_reader
from .status import SharedStatus
from .web_server import StatusServer, parse_bind_address

logger = logging.getLogger(__name__)

COMMANDS = ("run", "add", "tag", "manual")
# Commands that also accept the config as a leading positional argument
CONFIG_COMMANDS = ("add", "tag", "manual")
GLOBAL_VALUE_OPTIONS = ("--log-level",)


def _positive_int(value):
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def _bind_address(value):
    try:
        return parse_bind_address(value, DEFAULT_TELEMETRY_HOST, DEFAULT_TELEMETRY_PORT)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc))


def _card_id(value):
    try:
        return normalize_card_id(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc))


def _add_arguments(parser):
    parser.add_argument("--config", required=True, help="Card library TOML file (created if missing)")
    parser.add_argument("--track", required=True, help="Track path, relative to music_dir or absolute")
    parser.add_argument("--card", type=_card_id, help="Hex card UID; skips waiting for a card")
    parser.add_argument("--skip-tag-write", action="store_true", help="Do not write the track name to the tag")
    parser.add_argument("--reader", choices=READER_KINDS, default="auto", help="Reader backend")
    parser.add_argument("--poll-interval-ms", type=_positive_int, default=DEFAULT_POLL_INTERVAL_MS)
    parser.add_argument("--timeout", type=float, default=DEFAULT_REGISTER_TIMEOUT_SEC,
                        help="Seconds to wait for a card")
    parser.add_argument("--music-dir", help="music_dir for a newly created config")


def build_parser():
    parser = argparse.ArgumentParser(prog="musicbox", description="NFC-triggered music player")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=LOG_LEVEL,
                        choices=LOG_LEVELS, type=str.upper)
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the player loop (default command)")
    run.add_argument("config", help="Card library TOML file")
    run.add_argument("--poll-interval-ms", type=_positive_int, default=DEFAULT_POLL_INTERVAL_MS)
    run.add_argument("--reader", choices=READER_KINDS, default="auto", help="Reader backend")
    run.add_argument("--silent", action="store_true", help="Disable audio playback")
    run.add_argument("--telemetry", metavar="ADDR", type=_bind_address,
                     help=f"Serve read-only JSON status on HOST:PORT (e.g. :{DEFAULT_TELEMETRY_PORT})")
    run.add_argument("--quiet-fallback", action="store_true",
                     help="Do not warn when --reader auto falls back to the noop reader")

    add = sub.add_parser("add", help="Map a card to a track")
    _add_arguments(add)

    tag = sub.add_parser("tag", help="Tag commands")
    tag_sub = tag.add_subparsers(dest="tag_command", required=True)
    _add_arguments(tag_sub.add_parser("add", help="Map a card to a track"))

    manual = sub.add_parser("manual", help="Manual commands (no reader needed)")
    manual_sub = manual.add_subparsers(dest="manual_command", required=True)
    trig = manual_sub.add_parser("trigger", help="Play the track for a card UID")
    trig.add_argument("--config", required=True, help="Card library TOML file")
    trig.add_argument("card", type=_card_id, help="Hex card UID (no spaces)")
    trig.add_argument("--silent", action="store_true", help="Disable audio playback")
    trig.add_argument("--wait", action="store_true", help="Block until the track has finished")
    return parser


def cmd_run(args):
    library = Library.load(args.config)
    print(f"Loaded configuration from {args.config} ({len(library)} card(s))")

    selection = select_reader(args.reader, report_fallback=not args.quiet_fallback)
    player = select_audio_player(silent=args.silent)
    status = SharedStatus()
    status.set_backends(selection.kind, player.kind, reader_fallback=selection.fell_back)

    def on_outcome(outcome):
        if outcome.started:
            print(f"Card {outcome.card_id} -> {outcome.request.track_path}")
        else:
            print(f"Card {outcome.card_id}: {outcome.error}")

    loop = EventLoop(Controller(library, player), selection.reader,
                     poll_interval=args.poll_interval_ms / 1000.0,
                     status=status, on_outcome=on_outcome)

    if args.telemetry:
        host, port = args.telemetry
        StatusServer(status, library).run(host=host, port=port)

    max_ticks = None
    if selection.kind == "noop" and os.getenv(NOOP_SHUTDOWN_ENV, "0") not in ("", "0"):
        max_ticks = 1

    previous_sigterm = signal.signal(signal.SIGTERM, lambda signum, frame: loop.request_shutdown())
    print(f"Waiting for cards ({selection.kind} reader, {player.kind} audio). Press Ctrl+C to exit.")
    try:
        loop.run(max_ticks=max_ticks)
    except KeyboardInterrupt:
        print("\nShutting down... (Ctrl+C pressed)")
    finally:
        signal.signal(signal.SIGTERM, previous_sigterm)
        player.stop()
        player.close()
        selection.reader.close()

    snapshot = status.snapshot()
    logger.info("Final status: %s", snapshot.to_dict())
    print("Reader loop stopped. Exiting.")
    return 0


def cmd_add(args):
    reader = None
    if args.card is None or not args.skip_tag_write:
        reader = select_reader(args.reader).reader
    try:
        result = register(
            args.config,
            args.track,
            card_id=args.card,
            reader=reader,
            timeout=args.timeout,
            poll_interval=args.poll_interval_ms / 1000.0,
            write_tag=not args.skip_tag_write,
            music_dir=args.music_dir,
        )
    finally:
        if reader is not None:
            reader.close()

    if result.synthetic:
        print(f"Generated synthetic card UID {result.card_id} because the selected reader cannot scan cards.")
    print(f"Mapped card {result.card_id} to {result.track} in {result.config_path}")
    if result.tag_skipped:
        print("Skipping NFC tag write (per --skip-tag-write).")
    elif result.tag_written:
        print(f"Wrote {result.track} to tag {result.card_id}.")
    else:
        print(f"WARNING: tag NOT written ({result.tag_error}); the config has still been updated.")
    return 0


def cmd_manual_trigger(args):
    library = Library.load(args.config)
    player = select_audio_player(silent=args.silent)
    try:
        outcome = trigger(library, args.card, player)
        print(f"Manual trigger: card {outcome.card_id} -> {outcome.request.track_path}")
        if args.wait:
            player.wait_until_done()
    finally:
        player.close()
    return 0


def expand_shorthand(argv):
    """
    Rewrites the config-first forms into explicit commands:

        musicbox [--log-level L] CONFIG [run options]  ->  run CONFIG ...
        musicbox CONFIG add|tag add|manual trigger ... ->  ... --config CONFIG
    """
    i = 0
    while i < len(argv):
        if argv[i] in GLOBAL_VALUE_OPTIONS:
            i += 2
        elif argv[i].startswith(tuple(f"{opt}=" for opt in GLOBAL_VALUE_OPTIONS)):
            i += 1
        else:
            break
    head, rest = argv[:i], argv[i:]
    if rest and (rest[0] in COMMANDS or rest[0].startswith("-")):
        return argv
    if len(rest) > 1 and rest[1] in CONFIG_COMMANDS:
        config, rest = rest[0], rest[1:]
        if not any(a == "--config" or a.startswith("--config=") for a in rest):
            rest = rest + ["--config", config]
        return head + rest
    return head + ["run"] + rest


def main(argv=None):
    argv = expand_shorthand(list(sys.argv[1:] if argv is None else argv))
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=args.log_level, format="%(levelname)s: %(message)s")

    try:
        if args.command == "run":
            return cmd_run(args)
        if args.command in ("add", "tag"):
            return cmd_add(args)
        return cmd_manual_trigger(args)
    except MusicBoxError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
