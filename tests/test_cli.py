"""Tests for the gpsd-stream command-line interface."""

import os
import signal
import threading

import pytest

from gpsd_stream.cli import create_parser, main, parse_webhook_headers
from gpsd_stream.connection import DEFAULT_ADDRESS


@pytest.fixture
def restore_signal_handlers():
    """cmd_watch installs SIGINT/SIGTERM handlers; put the originals back."""
    saved = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    yield
    for sig, handler in saved.items():
        signal.signal(sig, handler)


class TestCreateParser:
    """Test argument parsing."""

    def test_watch_defaults(self):
        args = create_parser().parse_args(["watch"])

        assert args.command == "watch"
        assert args.address == DEFAULT_ADDRESS
        assert args.classes is None
        assert args.format == "plain"
        assert args.reconnect_delay == 1.0
        assert args.dial_timeout == 2.0

    def test_watch_options(self):
        args = create_parser().parse_args([
            "-vv", "watch",
            "--address", "gps:3000",
            "-c", "TPV", "-c", "SKY",
            "--format", "json",
            "--webhook", "http://localhost:8080/gps",
            "--webhook-header", "Authorization=Bearer x",
        ])

        assert args.verbose == 2
        assert args.address == "gps:3000"
        assert args.classes == ["TPV", "SKY"]
        assert args.format == "json"
        assert args.webhook == ["http://localhost:8080/gps"]
        assert args.webhook_header == ["Authorization=Bearer x"]

    def test_unknown_class_rejected(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["watch", "--class", "NMEA"])

    @pytest.mark.parametrize("command", ["version", "poll"])
    def test_request_commands(self, command):
        args = create_parser().parse_args([command, "-a", "gps:2947"])
        assert args.command == command
        assert args.address == "gps:2947"


class TestParseWebhookHeaders:
    """Test KEY=VALUE header parsing."""

    def test_none(self):
        assert parse_webhook_headers(None) == {}

    def test_pairs(self):
        headers = parse_webhook_headers(["Authorization=Bearer a=b", " X-Rover = 7 "])
        assert headers == {"Authorization": "Bearer a=b", "X-Rover": "7"}

    def test_invalid_skipped(self):
        assert parse_webhook_headers(["novalue"]) == {}


class TestMain:
    """Test running subcommands."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out

    def test_version(self, fake_gpsd, capsys, record_line):
        """version prints the raw reply line."""
        server = fake_gpsd({"lines": [record_line("VERSION")], "hold_open": True})

        assert main(["version", "--address", server.address]) == 0

        out = capsys.readouterr().out
        assert '"class":"VERSION"' in out
        assert out.endswith("}\n")

    def test_poll_no_reply(self, fake_gpsd, capsys):
        """A daemon that hangs up without replying is an error."""
        server = fake_gpsd({"lines": []})

        assert main(["poll", "--address", server.address]) == 1
        assert "Error" in capsys.readouterr().err

    def test_unreachable(self, unused_address, capsys):
        assert main(["poll", "--address", unused_address]) == 1
        assert "failed to connect" in capsys.readouterr().err

    def test_watch_unreachable(self, unused_address, capsys, restore_signal_handlers):
        assert main(["watch", "--address", unused_address]) == 1

    def test_watch_until_interrupted(self, fake_gpsd, capsys, restore_signal_handlers, record_line):
        """watch prints reports until SIGINT, then shows the summary."""
        server = fake_gpsd({
            "lines": [record_line("TPV"), record_line("SKY")],
            "hold_open": True,
        })
        timer = threading.Timer(1.0, os.kill, (os.getpid(), signal.SIGINT))
        timer.start()
        try:
            code = main([
                "watch",
                "--address", server.address,
                "--class", "TPV",
                "--no-color",
                "--show-metrics-summary",
            ])
        finally:
            timer.cancel()

        out = capsys.readouterr().out
        assert code == 0
        assert "TPV 3D fix 46.498293, 7.567412" in out
        assert "SKY" not in out.split("Press Ctrl+C to stop")[1].split("Session Summary")[0]
        assert "TPV reports: 1" in out
        assert "Records skipped: 1" in out
