from __future__ import annotations

import pytest

from scoreboard_plugin import timer_engine
from scoreboard_plugin.state import MODE_COUNTDOWN, MODE_COUNTUP, Timer


def _timer(**kwargs) -> Timer:
    return Timer(label="T", **kwargs)


def test_countdown_start_pause_subtracts_elapsed():
    timer = _timer(mode=MODE_COUNTDOWN, initial_ms=60_000, remaining_ms=60_000)

    assert timer_engine.start(timer, 1_000) is True
    assert timer.running is True
    assert timer.last_tick_ms == 1_000

    assert timer_engine.pause(timer, 16_000) is True
    assert timer.running is False
    assert timer.remaining_ms == 45_000


def test_countup_start_pause_adds_elapsed():
    timer = _timer(mode=MODE_COUNTUP, initial_ms=0, remaining_ms=0)

    timer_engine.start(timer, 1_000)
    timer_engine.pause(timer, 16_000)

    assert timer.remaining_ms == 15_000


def test_countdown_never_goes_below_zero():
    timer = _timer(remaining_ms=5_000, initial_ms=5_000)

    timer_engine.start(timer, 1_000)
    timer_engine.pause(timer, 61_000)

    assert timer.remaining_ms == 0


def test_start_while_running_is_noop():
    timer = _timer(remaining_ms=10_000, running=True, last_tick_ms=500)

    assert timer_engine.start(timer, 9_999) is False
    assert timer.last_tick_ms == 500


def test_pause_while_paused_is_noop():
    timer = _timer(remaining_ms=10_000)

    assert timer_engine.pause(timer, 9_999) is False
    assert timer.remaining_ms == 10_000


@pytest.mark.parametrize(
    "mode, expected",
    [(MODE_COUNTDOWN, 30_000), (MODE_COUNTUP, 0)],
)
def test_start_reseeds_negative_remaining(mode, expected):
    timer = _timer(mode=mode, initial_ms=30_000, remaining_ms=-1)

    timer_engine.start(timer, 100)

    assert timer.remaining_ms == expected


def test_pause_without_tick_keeps_remaining():
    timer = _timer(remaining_ms=12_000, running=True, last_tick_ms=0)

    timer_engine.pause(timer, 50_000)

    assert timer.running is False
    assert timer.remaining_ms == 12_000


def test_toggle_alternates():
    timer = _timer(initial_ms=10_000, remaining_ms=10_000)

    timer_engine.toggle(timer, 1_000)
    assert timer.running is True
    timer_engine.toggle(timer, 3_000)
    assert timer.running is False
    assert timer.remaining_ms == 8_000


def test_reset_restores_initial():
    timer = _timer(initial_ms=90_000, remaining_ms=12_000, running=True, last_tick_ms=77)

    assert timer_engine.reset(timer) is True
    assert (timer.remaining_ms, timer.running, timer.last_tick_ms) == (90_000, False, 0)
    assert timer_engine.reset(timer) is False


def test_set_target_duration_sets_both_values():
    timer = _timer(initial_ms=0, remaining_ms=0)

    assert timer_engine.set_target_duration(timer, 120_000) is True
    assert timer.initial_ms == 120_000
    assert timer.remaining_ms == 120_000
    assert timer_engine.set_target_duration(timer, 120_000) is False


def test_set_target_duration_refused_while_running_or_negative():
    timer = _timer(initial_ms=10_000, remaining_ms=10_000, running=True, last_tick_ms=5)

    assert timer_engine.set_target_duration(timer, 30_000) is False
    timer.running = False
    assert timer_engine.set_target_duration(timer, -5) is False
    assert timer.initial_ms == 10_000


def test_set_mode_rules():
    timer = _timer()

    assert timer_engine.set_mode(timer, "sideways") is False
    assert timer_engine.set_mode(timer, MODE_COUNTUP) is True
    timer.running = True
    assert timer_engine.set_mode(timer, MODE_COUNTDOWN) is False
    assert timer.mode == MODE_COUNTUP


def test_live_remaining_ms_projects_running_timer():
    countdown = _timer(remaining_ms=10_000, running=True, last_tick_ms=1_000)
    countup = _timer(mode=MODE_COUNTUP, remaining_ms=10_000, running=True, last_tick_ms=1_000)
    paused = _timer(remaining_ms=10_000)

    assert timer_engine.live_remaining_ms(countdown, 4_000) == 7_000
    assert timer_engine.live_remaining_ms(countup, 4_000) == 13_000
    assert timer_engine.live_remaining_ms(paused, 4_000) == 10_000


@pytest.mark.parametrize(
    "ms, text",
    [(0, "00:00"), (65_000, "01:05"), (65_999, "01:05"), (6_000_000, "100:00"), (-500, "00:00")],
)
def test_format_mmss(ms, text):
    assert timer_engine.format_mmss(ms) == text


@pytest.mark.parametrize(
    "text, ms",
    [
        ("01:30", 90_000),
        (" 2:05 ", 125_000),
        ("90:00", 5_400_000),
        ("0:7", 7_000),
        ("abc", timer_engine.PARSE_FAILED),
        ("1:60", timer_engine.PARSE_FAILED),
        ("", timer_engine.PARSE_FAILED),
        ("12", timer_engine.PARSE_FAILED),
        ("-1:00", timer_engine.PARSE_FAILED),
    ],
)
def test_parse_mmss(text, ms):
    assert timer_engine.parse_mmss(text) == ms
