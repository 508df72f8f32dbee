"""Per-section countdown and lock/open/expired state.

A section is LOCKED before its start_at, OPEN inside [start_at, end_at] and
EXPIRED afterwards. `SectionCountdown` ticks once per interval and, when the
section expires, submits whatever answers were captured exactly once. A manual
submit cancels the pending automatic one.
"""
import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from errors import SectionLocked, SectionClosed


class SectionState(str, Enum):
    LOCKED = 'locked'
    OPEN = 'open'
    EXPIRED = 'expired'


def section_state(start_at: datetime, end_at: datetime, now: datetime) -> SectionState:
    if now < start_at:
        return SectionState.LOCKED
    if now > end_at:
        return SectionState.EXPIRED
    return SectionState.OPEN


def remaining_seconds(end_at: datetime, now: datetime) -> int:
    return max(0, int((end_at - now).total_seconds()))


def format_remaining(seconds: int) -> str:
    """125 -> '02:05'"""
    seconds = max(0, int(seconds))
    return f'{seconds // 60:02d}:{seconds % 60:02d}'


class SectionCountdown:
    def __init__(self, section_id: int, start_at: datetime, end_at: datetime,
                 submit: Callable, collect_answers: Callable[[], List[dict]],
                 clock: Callable[[], datetime] = datetime.now, interval: float = 1.0,
                 on_tick: Optional[Callable[[int, str], None]] = None):
        self.section_id = section_id
        self.start_at = start_at
        self.end_at = end_at
        self.submit = submit
        self.collect_answers = collect_answers
        self.clock = clock
        self.interval = interval
        self.on_tick = on_tick
        self.result = None
        self._submitted = False
        self._cancelled = False
        self._timer = None
        self._lock = threading.Lock()

    @property
    def submitted(self):
        return self._submitted

    @property
    def cancelled(self):
        return self._cancelled

    def state(self) -> SectionState:
        return section_state(self.start_at, self.end_at, self.clock())

    def tick(self) -> int:
        """Recompute the remaining time; auto-submit once the section has expired."""
        now = self.clock()
        left = remaining_seconds(self.end_at, now)
        if self.on_tick:
            self.on_tick(left, format_remaining(left))
        if section_state(self.start_at, self.end_at, now) == SectionState.EXPIRED:
            self._fire(auto=True)
        return left

    def submit_now(self):
        """Manual submit. Cancels the pending automatic submission."""
        self.cancel()
        return self._fire(auto=False)

    def _fire(self, auto):
        with self._lock:
            if self._submitted:
                return self.result
            if auto and self._cancelled:
                return None
            self._submitted = True
        self.stop()
        self.result = self.submit(self.section_id, self.collect_answers(), auto=auto)
        return self.result

    def start(self):
        self._schedule()

    def _schedule(self):
        if self._submitted or self._cancelled:
            return
        self._timer = threading.Timer(self.interval, self._run)
        self._timer.daemon = True
        self._timer.start()

    def _run(self):
        self.tick()
        self._schedule()

    def stop(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def cancel(self):
        with self._lock:
            self._cancelled = True
        self.stop()


class CountdownBoard:
    """Independent countdowns for every section a student has open.

    Started countdowns tick on their own `threading.Timer` threads, so
    `submit` may be called concurrently for different sections. Each
    countdown still submits at most once. Callers that need a single thread
    leave `autostart` off and drive `tick_all()` themselves.
    """

    def __init__(self, submit: Callable, clock: Callable[[], datetime] = datetime.now,
                 interval: float = 1.0):
        self.submit = submit
        self.clock = clock
        self.interval = interval
        self.countdowns: Dict[int, SectionCountdown] = {}

    def open_section(self, section: dict, collect_answers: Callable[[], List[dict]],
                     on_tick=None, autostart=True) -> SectionCountdown:
        """Open a section from a resolved assessment tree (start_at/end_at as datetimes or ISO strings)."""
        start_at = _as_datetime(section['start_at'])
        end_at = _as_datetime(section['end_at'])
        state = section_state(start_at, end_at, self.clock())
        if state == SectionState.LOCKED:
            raise SectionLocked('Section not started yet.')
        if state == SectionState.EXPIRED:
            raise SectionClosed('Section has ended.')

        existing = self.countdowns.get(section['id'])
        if existing is not None and not existing.submitted:
            return existing
        countdown = SectionCountdown(section['id'], start_at, end_at, self.submit, collect_answers,
                                     clock=self.clock, interval=self.interval, on_tick=on_tick)
        self.countdowns[section['id']] = countdown
        if autostart:
            countdown.start()
        return countdown

    def tick_all(self):
        for countdown in list(self.countdowns.values()):
            countdown.tick()

    def submit_section(self, section_id):
        return self.countdowns[section_id].submit_now()

    def cancel(self, section_id):
        countdown = self.countdowns.pop(section_id, None)
        if countdown:
            countdown.cancel()

    def cancel_all(self):
        for section_id in list(self.countdowns):
            self.cancel(section_id)


def _as_datetime(value):
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
