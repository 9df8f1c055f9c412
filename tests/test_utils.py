import pytest

from utils import (
    format_speed, parse_speed_kbps, format_bytes, format_duration,
    round_half_up, as_number,
)


@pytest.mark.parametrize("rate, expected", [
    (0, "0 bps"),
    (-10, "0 bps"),
    (None, "0 bps"),
    ("junk", "0 bps"),
    (100, "800 bps"),
    (100000, "800.0 Kbps"),
    (500000, "4.00 Mbps"),
    (200_000_000, "1.60 Gbps"),
])
def test_format_speed(rate, expected):
    assert format_speed(rate) == expected


@pytest.mark.parametrize("label, kbps", [
    ("4.00 Mbps", 4000.0),
    ("800.0 Kbps", 800.0),
    ("800 bps", 0.8),
    ("1.60 Gbps", 1_600_000.0),
    ("12 kbps", 12.0),
])
def test_parse_speed_kbps(label, kbps):
    assert parse_speed_kbps(label) == pytest.approx(kbps)


@pytest.mark.parametrize("label", ["", None, "fast", "4 MB/s", "-"])
def test_parse_speed_kbps_unparseable_is_zero(label):
    assert parse_speed_kbps(label) == 0.0


def test_parse_reads_back_formatted_speed():
    assert parse_speed_kbps(format_speed(500000)) == pytest.approx(4000.0)
    assert parse_speed_kbps(format_speed(0)) == 0.0


def test_format_bytes():
    assert format_bytes(0) == "0 B"
    assert format_bytes(500) == "500 B"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(3 * 1024 ** 2) == "3 MB"
    assert format_bytes("bad") == "0 B"


def test_format_duration():
    assert format_duration(42) == "42s"
    assert format_duration(185) == "3m 5s"
    assert format_duration(8040) == "2h 14m"
    assert format_duration(-3) == "0s"


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(1.49) == 1
    assert round_half_up(6.0) == 6


def test_as_number():
    assert as_number("3.5") == 3.5
    assert as_number(7) == 7
    assert as_number(None) == 0
    assert as_number("x", 9) == 9
    assert as_number(True) == 1
