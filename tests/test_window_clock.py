import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from wifi_portal.core.access_window import AccessWindow
from wifi_portal.core.errors import MalformedWindowError
from wifi_portal.core.window_clock import WindowTicker, format_remaining, sample

UTC = timezone.utc
START = datetime(2024, 1, 15, 10, 0, tzinfo=UTC)
WINDOW = AccessWindow("2", START, START + timedelta(hours=3))


def test_midpoint_sample():
    current = sample(WINDOW, datetime(2024, 1, 15, 11, 30, tzinfo=UTC))
    assert current.remaining_seconds == 5400
    assert current.progress_percent == 50.0


def test_after_expiry():
    current = sample(WINDOW, datetime(2024, 1, 15, 14, 0, tzinfo=UTC))
    assert current.remaining_seconds == 0
    assert current.progress_percent == 0


def test_exactly_at_end():
    current = sample(WINDOW, WINDOW.end_time)
    assert current.remaining_seconds == 0
    assert current.progress_percent == 0


def test_before_start_is_clamped_to_full():
    current = sample(WINDOW, START - timedelta(minutes=5))
    assert current.progress_percent == 100
    assert current.remaining_seconds == 3 * 3600 + 300


def test_at_start_is_full():
    current = sample(WINDOW, START)
    assert current.progress_percent == 100
    assert current.remaining_seconds == 3 * 3600


def test_partial_seconds_are_floored():
    current = sample(WINDOW, WINDOW.end_time - timedelta(seconds=10, milliseconds=400))
    assert current.remaining_seconds == 10


def test_naive_now_is_utc():
    assert sample(WINDOW, datetime(2024, 1, 15, 11, 30)).remaining_seconds == 5400


def test_remaining_never_increases():
    previous = None
    for minutes in range(0, 181, 7):
        current = sample(WINDOW, START + timedelta(minutes=minutes))
        if previous is not None:
            assert current.remaining_seconds <= previous.remaining_seconds
            assert current.progress_percent < previous.progress_percent
        previous = current


@pytest.mark.parametrize("end_offset", [timedelta(0), timedelta(hours=-1)])
def test_malformed_window(end_offset):
    window = AccessWindow("1", START, START + end_offset)
    with pytest.raises(MalformedWindowError):
        sample(window, START)


def test_sample_dict_has_display_string():
    payload = sample(WINDOW, datetime(2024, 1, 15, 11, 30, tzinfo=UTC)).to_dict()
    assert payload == {"remaining_seconds": 5400, "progress_percent": 50.0, "remaining_human": "01:30:00"}


@pytest.mark.parametrize("seconds,expected", [
    (0, "00:00:00"),
    (59, "00:00:59"),
    (3600, "01:00:00"),
    (90061, "25:01:01"),
    (-5, "00:00:00"),
])
def test_format_remaining(seconds, expected):
    assert format_remaining(seconds) == expected


async def test_ticker_stops_itself_at_expiry():
    samples = []
    ticker = WindowTicker(WINDOW, samples.append, interval=0.01, clock=lambda: WINDOW.end_time + timedelta(seconds=1))
    ticker.start()
    await asyncio.wait_for(ticker.wait(), timeout=1)
    assert len(samples) == 1
    assert samples[0].remaining_seconds == 0
    assert not ticker.running


async def test_ticker_samples_until_stopped():
    samples = []
    now = {"value": START}

    async def on_sample(current):
        samples.append(current)
        now["value"] += timedelta(minutes=30)

    ticker = WindowTicker(WINDOW, on_sample, interval=0.01, clock=lambda: now["value"]).start()
    await asyncio.wait_for(ticker.wait(), timeout=1)
    # 10:00, 10:30, ... 13:00 -> seven samples, the last one at expiry
    assert [s.remaining_seconds for s in samples] == [10800, 9000, 7200, 5400, 3600, 1800, 0]


async def test_stop_cancels_running_ticker():
    samples = []
    ticker = WindowTicker(WINDOW, samples.append, interval=10, clock=lambda: START).start()
    await asyncio.sleep(0.01)
    assert ticker.running
    await ticker.stop()
    assert not ticker.running
    assert len(samples) == 1
    # Stopping twice is harmless
    await ticker.stop()


async def test_wait_reraises_callback_failure():
    def broken(current):
        raise RuntimeError("view gone")

    ticker = WindowTicker(WINDOW, broken, interval=0.01, clock=lambda: START).start()
    with pytest.raises(RuntimeError, match="view gone"):
        await ticker.wait()


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        WindowTicker(WINDOW, lambda s: None, interval=0)
