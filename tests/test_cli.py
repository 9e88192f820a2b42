"""End-to-end tests for the command-line interface."""

import io
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import patch

from musicbox.cli import build_parser, expand_shorthand, main
from musicbox.config import DEFAULT_POLL_INTERVAL_MS
from musicbox.library import Library


class CliTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        (self.root / "music" / "songs").mkdir(parents=True)
        (self.root / "music" / "songs" / "example.mp3").write_bytes(b"ID3")
        self.config = self.root / "musicbox.toml"
        self.config.write_text('music_dir = "music"\n\n[cards]\n"deadbeef" = "songs/example.mp3"\n')

    def tearDown(self):
        self._tmp.cleanup()

    def run_cli(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main([str(a) for a in argv])
        return code, out.getvalue(), err.getvalue()


class TestRunCommand(CliTestCase):

    @patch.dict(os.environ, {"MUSICBOX_NOOP_SHUTDOWN": "1"})
    def test_runs_with_noop_reader(self):
        code, out, _ = self.run_cli(self.config, "--reader", "noop",
                                    "--poll-interval-ms", "10", "--silent")
        self.assertEqual(code, 0)
        self.assertIn("Loaded configuration", out)
        self.assertIn("Reader loop stopped", out)

    @patch.dict(os.environ, {"MUSICBOX_NOOP_SHUTDOWN": "1"})
    @patch('musicbox.rfid_reader.RFID', None)
    def test_auto_reader_falls_back_without_hardware(self):
        code, out, _ = self.run_cli("run", self.config, "--reader", "auto", "--silent",
                                    "--poll-interval-ms", "10")
        self.assertEqual(code, 0)
        self.assertIn("noop reader", out)

    @patch('musicbox.rfid_reader.RFID', None)
    def test_hardware_reader_unavailable_is_fatal(self):
        code, _, err = self.run_cli(self.config, "--reader", "hardware", "--silent")
        self.assertEqual(code, 1)
        self.assertIn("pi-rc522", err)

    def test_bad_config_exits_non_zero(self):
        self.config.write_text('music_dir = "music"\n[cards]\n"0102" = "missing.mp3"\n')
        code, _, err = self.run_cli(self.config, "--reader", "noop", "--silent")
        self.assertEqual(code, 1)
        self.assertIn("missing.mp3", err)

    @patch.dict(os.environ, {"MUSICBOX_NOOP_SHUTDOWN": "1"})
    def test_global_log_level_before_config(self):
        code, out, _ = self.run_cli("--log-level", "DEBUG", self.config, "--reader", "noop", "--silent")
        self.assertEqual(code, 0)
        self.assertIn("Reader loop stopped", out)

    def test_parser_defaults(self):
        args = build_parser().parse_args(["run", "cfg.toml"])
        self.assertEqual(args.poll_interval_ms, DEFAULT_POLL_INTERVAL_MS)
        self.assertEqual(args.reader, "auto")
        self.assertFalse(args.silent)
        self.assertIsNone(args.telemetry)

    def test_parser_rejects_bad_poll_interval(self):
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                build_parser().parse_args(["run", "cfg.toml", "--poll-interval-ms", "0"])


class TestAddCommand(CliTestCase):

    def test_add_writes_config(self):
        code, out, _ = self.run_cli("add", "--config", self.config, "--track", "songs/example.mp3",
                                    "--card", "CAFEBABE", "--reader", "noop", "--skip-tag-write")
        self.assertEqual(code, 0)
        self.assertIn("Mapped card cafebabe to songs/example.mp3", out)
        self.assertIn("cafebabe", Library.load(self.config))

    def test_tag_add_alias(self):
        code, out, _ = self.run_cli("tag", "add", "--config", self.config, "--track",
                                    "songs/example.mp3", "--card", "0a0b", "--reader", "noop",
                                    "--skip-tag-write")
        self.assertEqual(code, 0)
        self.assertIn("Mapped card 0a0b", out)

    def test_add_reports_tag_not_written(self):
        code, out, _ = self.run_cli("add", "--config", self.config, "--track", "songs/example.mp3",
                                    "--card", "0a0b", "--reader", "noop")
        self.assertEqual(code, 0)
        self.assertIn("tag NOT written", out)

    def test_add_noop_reader_without_card_generates_uid(self):
        code, out, _ = self.run_cli("add", "--config", self.config, "--track", "songs/example.mp3",
                                    "--reader", "noop", "--skip-tag-write")
        self.assertEqual(code, 0)
        self.assertIn("Generated synthetic card UID", out)

    def test_add_creates_new_config(self):
        target = self.root / "library.toml"
        code, _, _ = self.run_cli("add", "--config", target, "--track", "songs/example.mp3",
                                  "--card", "deadbeef", "--reader", "noop", "--skip-tag-write",
                                  "--music-dir", "music")
        self.assertEqual(code, 0)
        self.assertEqual(Library.load(target).entries, {"deadbeef": "songs/example.mp3"})

    def test_tag_add_takes_positional_config(self):
        code, out, _ = self.run_cli(self.config, "tag", "add", "--track", "songs/example.mp3",
                                    "--card", "cafebabe", "--reader", "noop", "--skip-tag-write")
        self.assertEqual(code, 0)
        self.assertIn(f"Mapped card cafebabe to songs/example.mp3 in {self.config}", out)
        self.assertIn("cafebabe", Library.load(self.config))

    def test_add_missing_track_fails(self):
        code, _, err = self.run_cli("add", "--config", self.config, "--track", "nope.mp3",
                                    "--card", "01", "--reader", "noop", "--skip-tag-write")
        self.assertEqual(code, 1)
        self.assertIn("nope.mp3", err)


class TestManualTrigger(CliTestCase):

    def test_trigger_takes_positional_config(self):
        code, out, _ = self.run_cli(self.config, "manual", "trigger", "deadbeef", "--silent")
        self.assertEqual(code, 0)
        self.assertIn("example.mp3", out)

    def test_trigger_known_card(self):
        code, out, _ = self.run_cli("manual", "trigger", "--config", self.config, "DEADBEEF", "--silent")
        self.assertEqual(code, 0)
        self.assertIn("card deadbeef", out)
        self.assertIn("example.mp3", out)

    def test_trigger_unknown_card(self):
        code, _, err = self.run_cli("manual", "trigger", "--config", self.config, "0102", "--silent")
        self.assertEqual(code, 1)
        self.assertIn("0102", err)



class TestExpandShorthand(unittest.TestCase):

    def test_config_alone_means_run(self):
        self.assertEqual(expand_shorthand(["cfg.toml", "--silent"]), ["run", "cfg.toml", "--silent"])

    def test_explicit_command_is_untouched(self):
        argv = ["add", "--config", "cfg.toml", "--track", "a.mp3"]
        self.assertEqual(expand_shorthand(argv), argv)

    def test_skips_global_options(self):
        self.assertEqual(expand_shorthand(["--log-level=debug", "cfg.toml"]),
                         ["--log-level=debug", "run", "cfg.toml"])

    def test_config_before_tag_add(self):
        self.assertEqual(expand_shorthand(["cfg.toml", "tag", "add", "--track", "a.mp3"]),
                         ["tag", "add", "--track", "a.mp3", "--config", "cfg.toml"])

    def test_explicit_config_option_wins(self):
        argv = ["cfg.toml", "add", "--config", "other.toml"]
        self.assertEqual(expand_shorthand(argv), ["add", "--config", "other.toml"])

    def test_help_is_untouched(self):
        self.assertEqual(expand_shorthand(["--help"]), ["--help"])

if __name__ == '__main__':
    unittest.main()
