"""Tests for gpsd_stream.formatters module."""

import json

import pytest

from gpsd_stream.formatters import (
    CompactFormatter,
    JsonFormatter,
    PlainFormatter,
    get_formatter,
)
from gpsd_stream.parser import decode
from gpsd_stream.reports import ErrorReport, Mode, TPVReport


@pytest.fixture
def tpv(record_line):
    return decode("TPV", record_line("TPV"))


@pytest.fixture
def sky(record_line):
    return decode("SKY", record_line("SKY"))


class TestPlainFormatter:
    """Test human-readable output."""

    def test_tpv_with_fix(self, tpv):
        output = PlainFormatter(use_color=False).format(tpv)
        assert output == "[10:30:00] TPV 3D fix 46.498293, 7.567412 alt 1343.1m 0.09m/s"

    def test_tpv_without_fix(self, sample_datetime):
        report = TPVReport(mode=Mode.NO_FIX, time=sample_datetime)
        output = PlainFormatter(use_color=False).format(report)
        assert output == "[10:30:00] TPV no fix"

    def test_missing_time(self):
        output = PlainFormatter(use_color=False).format(TPVReport())
        assert output.startswith("[--:--:--]")

    def test_sky(self, sky):
        output = PlainFormatter(use_color=False).format(sky)
        assert output == "[10:30:00] SKY 1/2 satellites used hdop 1.04"

    def test_error(self):
        output = PlainFormatter(use_color=False).format(ErrorReport(message="bad request"))
        assert output == "[--:--:--] ERROR: bad request"

    @pytest.mark.parametrize("tag", ["VERSION", "GST", "ATT", "DEVICES", "DEVICE", "PPS"])
    def test_other_classes(self, tag, record_line):
        """Every class formats with its tag."""
        output = PlainFormatter(use_color=False).format(decode(tag, record_line(tag)))
        assert tag in output

    def test_pps_nanoseconds_padded(self, record_line):
        output = PlainFormatter(use_color=False).format(decode("PPS", record_line("PPS")))
        assert "clock 1705314600.000000120" in output

    def test_no_color_when_not_tty(self, tpv, capsys):
        """Colors are disabled when stdout is not a terminal."""
        output = PlainFormatter(use_color=True).format(tpv)
        assert "\033[" not in output


class TestJsonFormatter:
    """Test JSON lines output."""

    def test_valid_json(self, tpv):
        output = JsonFormatter().format(tpv)
        data = json.loads(output)

        assert data["class"] == "TPV"
        assert data["mode"] == 3
        assert data["time"] == "2024-01-15T10:30:00.000Z"

    def test_single_line(self, sky):
        assert "\n" not in JsonFormatter().format(sky)


class TestCompactFormatter:
    """Test compact output."""

    def test_tpv(self, tpv):
        output = CompactFormatter().format(tpv)
        assert output == "10:30:00 | TPV | 3 | 46.498293 | 7.567412"

    def test_tpv_without_fix(self):
        assert CompactFormatter().format(TPVReport(mode=Mode.NO_FIX)) == "--:--:-- | TPV | 1"

    def test_sky(self, sky):
        assert CompactFormatter().format(sky) == "10:30:00 | SKY | 1/2"


class TestGetFormatter:
    """Test the formatter factory."""

    @pytest.mark.parametrize("name,cls", [
        ("plain", PlainFormatter),
        ("json", JsonFormatter),
        ("compact", CompactFormatter),
    ])
    def test_known(self, name, cls):
        assert isinstance(get_formatter(name), cls)

    def test_unknown(self):
        with pytest.raises(ValueError):
            get_formatter("xml")
