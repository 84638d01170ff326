"""Tests for CLI validation, argument defaults, CSV append and config commands."""

import contextlib
import io
import json
import os
import tempfile
import unittest
from unittest import mock

from aiohttp.test_utils import TestServer

from speedengine.config import DEFAULTS, load_config
from speedengine.constants import (
    DEFAULT_DURATION,
    DEFAULT_PING_COUNT,
    DEFAULT_WARMUP,
    MAX_DURATION,
    MAX_PING_COUNT,
    MIN_DURATION,
    MIN_PING_COUNT,
)
from speedengine.endpoints import Server
from testserver.app import create_app


class TestValidation(unittest.TestCase):
    """Test the _validate function from speedtest.py."""

    def _validate(self, **kwargs):
        # Import here to avoid triggering side effects at module level
        from speedtest import _validate
        defaults = {
            "ping_count": DEFAULT_PING_COUNT,
            "download_duration": DEFAULT_DURATION,
            "upload_duration": DEFAULT_DURATION,
            "warmup_seconds": DEFAULT_WARMUP,
        }
        defaults.update(kwargs)
        return _validate(**defaults)

    def test_defaults_valid(self):
        self._validate()

    def test_ping_count_range(self):
        self._validate(ping_count=MIN_PING_COUNT)
        self._validate(ping_count=MAX_PING_COUNT)
        with self.assertRaises(ValueError):
            self._validate(ping_count=MIN_PING_COUNT - 1)
        with self.assertRaises(ValueError):
            self._validate(ping_count=MAX_PING_COUNT + 1)

    def test_duration_range(self):
        with self.assertRaises(ValueError):
            self._validate(download_duration=MAX_DURATION + 1)
        with self.assertRaises(ValueError):
            self._validate(upload_duration=MIN_DURATION - 0.5, warmup_seconds=0)

    def test_warmup_must_fit_in_duration(self):
        self._validate(download_duration=3, upload_duration=3, warmup_seconds=2.5)
        with self.assertRaises(ValueError):
            self._validate(download_duration=3, upload_duration=10, warmup_seconds=3)

    def test_negative_warmup(self):
        with self.assertRaises(ValueError):
            self._validate(warmup_seconds=-1)


class TestParser(unittest.TestCase):
    def test_defaults_come_from_config(self):
        from speedtest import build_parser
        config = dict(DEFAULTS, server_url="http://speed.lan:9000", ping_count=30)
        args = build_parser(config).parse_args([])
        self.assertEqual(args.server, "http://speed.lan:9000")
        self.assertEqual(args.ping_count, 30)
        self.assertIsNone(args.csv)
        self.assertFalse(args.verbose)

    def test_command_line_overrides_config(self):
        from speedtest import build_parser
        args = build_parser(DEFAULTS).parse_args(
            ["--server", "10.0.0.1:8080", "--warmup", "2", "--download-duration", "5", "-v"]
        )
        self.assertEqual(args.server, "10.0.0.1:8080")
        self.assertEqual(args.warmup, 2.0)
        self.assertEqual(args.download_duration, 5.0)
        self.assertTrue(args.verbose)


class TestCsvFromRun(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.server = TestServer(create_app())
        await self.server.start_server()

    async def asyncTearDown(self):
        await self.server.close()

    async def test_run_appends_csv_row(self):
        from speedtest import run_cli_test
        target = Server.from_url(str(self.server.make_url("/")))
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "results.csv")
            with contextlib.redirect_stdout(io.StringIO()) as out:
                doc = await run_cli_test(
                    target,
                    simple=True,
                    csv_file=path,
                    ping_count=MIN_PING_COUNT,
                    download_duration=2.0,
                    upload_duration=2.0,
                    warmup_seconds=0.5,
                )
            with open(path) as f:
                lines = f.read().splitlines()

        self.assertIsNotNone(doc)
        self.assertIn("Download", out.getvalue())
        self.assertEqual(len(lines), 2)
        self.assertTrue(lines[0].startswith("timestamp,server,tier"))
        self.assertIn(f",{target.base_url},{doc['tier']},", lines[1])


class TestConfigCommands(unittest.TestCase):
    def setUp(self):
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.path = os.path.join(tmpdir.name, "config.json")
        patcher = mock.patch("speedengine.config._config_path", return_value=self.path)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_set_then_get(self):
        from speedtest import run_config_command
        line = run_config_command(set_pair=["ping_count", "30"])
        self.assertIn(self.path, line)
        self.assertEqual(run_config_command(get_key="ping_count"), "ping_count = 30")
        with open(self.path) as f:
            self.assertEqual(json.load(f)["ping_count"], 30)

    def test_strings_kept_verbatim(self):
        from speedtest import run_config_command
        run_config_command(set_pair=["server_url", "http://speed.lan:9000"])
        self.assertEqual(
            run_config_command(get_key="server_url"),
            'server_url = "http://speed.lan:9000"',
        )

    def test_saved_value_becomes_default(self):
        from speedtest import build_parser, run_config_command
        run_config_command(set_pair=["warmup_seconds", "2.5"])
        args = build_parser(load_config()).parse_args([])
        self.assertEqual(args.warmup, 2.5)

    def test_unknown_key(self):
        from speedtest import run_config_command
        with self.assertRaises(KeyError):
            run_config_command(get_key="plan")
        with self.assertRaises(KeyError):
            run_config_command(set_pair=["plan", "100"])

    def test_path_only(self):
        from speedtest import run_config_command
        self.assertEqual(run_config_command(), self.path)

    def test_parser_options(self):
        from speedtest import build_parser
        args = build_parser(DEFAULTS).parse_args(["--config-set", "ping_count", "9"])
        self.assertEqual(args.config_set, ["ping_count", "9"])
        self.assertIsNone(args.config_get)
        self.assertFalse(args.config_path)


if __name__ == "__main__":
    unittest.main()
