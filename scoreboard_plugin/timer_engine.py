"""Timer state machine.

The engine only computes snapshots at discrete start/pause/reset events; it never
ticks. While a timer runs, the overlay derives the displayed value from
``remaining_ms`` and ``last_tick_ms``.
"""
from __future__ import annotations

import re
import time

from .state import MODE_COUNTDOWN, MODE_COUNTUP, TIMER_MODES, Timer

PARSE_FAILED = -1

_MMSS_PATTERN = re.compile(r"^\s*(\d+):([0-5]?\d)\s*$")


def now_ms() -> int:
    return int(time.time() * 1000)


def start(timer: Timer, now: int) -> bool:
    if timer.running:
        return False
    if timer.remaining_ms < 0:
        if timer.mode == MODE_COUNTUP:
            timer.remaining_ms = 0
        else:
            timer.remaining_ms = max(0, timer.initial_ms)
    timer.last_tick_ms = now
    timer.running = True
    return True


def pause(timer: Timer, now: int) -> bool:
    if not timer.running:
        return False
    if timer.last_tick_ms > 0:
        elapsed = max(0, now - timer.last_tick_ms)
        if timer.mode == MODE_COUNTUP:
            timer.remaining_ms += elapsed
        else:
            timer.remaining_ms = max(0, timer.remaining_ms - elapsed)
    timer.running = False
    return True


def toggle(timer: Timer, now: int) -> bool:
    if timer.running:
        return pause(timer, now)
    return start(timer, now)


def reset(timer: Timer) -> bool:
    before = (timer.remaining_ms, timer.running, timer.last_tick_ms)
    timer.remaining_ms = max(0, timer.initial_ms)
    timer.running = False
    timer.last_tick_ms = 0
    return before != (timer.remaining_ms, timer.running, timer.last_tick_ms)


def set_target_duration(timer: Timer, ms: int) -> bool:
    """Set both the target and the current value; refused while running."""
    if timer.running or ms < 0:
        return False
    if timer.initial_ms == ms and timer.remaining_ms == ms:
        return False
    timer.initial_ms = ms
    timer.remaining_ms = ms
    return True


def set_mode(timer: Timer, mode: str) -> bool:
    if timer.running or mode not in TIMER_MODES or mode == timer.mode:
        return False
    timer.mode = mode
    return True


def live_remaining_ms(timer: Timer, now: int) -> int:
    if not timer.running or timer.last_tick_ms <= 0:
        return timer.remaining_ms
    elapsed = max(0, now - timer.last_tick_ms)
    if timer.mode == MODE_COUNTDOWN:
        return max(0, timer.remaining_ms - elapsed)
    return timer.remaining_ms + elapsed


def format_mmss(ms: int) -> str:
    total_seconds = max(0, int(ms)) // 1000
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


def parse_mmss(text: str) -> int:
    """Parse ``mm:ss`` into milliseconds, or return ``PARSE_FAILED``."""
    if not isinstance(text, str):
        return PARSE_FAILED
    match = _MMSS_PATTERN.match(text)
    if match is None:
        return PARSE_FAILED
    minutes = int(match.group(1))
    seconds = int(match.group(2))
    return (minutes * 60 + seconds) * 1000
