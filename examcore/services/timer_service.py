"""
Timer Reconciler and countdown session
"""
import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Union

from flask import current_app, has_app_context

from examcore.domain import TimerState, utcnow
from examcore.services.timer_store import TimerPresetStore, TimerStore, format_timestamp

logger = logging.getLogger(__name__)

# "60 minutes", "45 min", "90 phút"
INSTRUCTIONS_DURATION_PATTERN = re.compile(r'(\d+)\s*(?:minutes?|mins?\b|phút)', re.IGNORECASE)


class TimerSource(str, Enum):
    """Candidate timer sources, highest precedence first"""
    PERSISTED = 'persisted'
    EXTERNAL = 'external'
    PRESET = 'preset'
    INSTRUCTIONS = 'instructions'
    NONE = 'none'


@dataclass
class Reconciliation:
    source: TimerSource
    state: Optional[TimerState]
    now: datetime

    @property
    def remaining_seconds(self) -> Optional[int]:
        return self.state.remaining_seconds(self.now) if self.state else None

    @property
    def total_seconds(self) -> Optional[int]:
        return self.state.total_seconds if self.state else None

    def to_dict(self) -> dict:
        if self.state is None:
            return {'source': self.source.value, 'remainingSeconds': None, 'totalSeconds': None,
                    'expiresAt': None, 'display': None, 'urgency': timer_urgency(0, 0)}
        remaining = self.remaining_seconds
        return {
            'source': self.source.value,
            'remainingSeconds': remaining,
            'totalSeconds': self.total_seconds,
            'expiresAt': format_timestamp(self.state.expires_at) if self.state.expires_at else None,
            'display': format_time(remaining),
            'urgency': timer_urgency(remaining, self.total_seconds),
        }


def parse_minutes(value: Union[str, int, float, None]) -> Optional[int]:
    """Positive whole minutes from an external parameter, else None"""
    if value is None or isinstance(value, bool):
        return None
    try:
        minutes = int(str(value).strip())
    except ValueError:
        return None
    return minutes if minutes > 0 else None


def parse_minutes_from_instructions(instructions: Optional[str]) -> Optional[int]:
    if not instructions:
        return None
    match = INSTRUCTIONS_DURATION_PATTERN.search(instructions)
    if match:
        return parse_minutes(match.group(1))
    return None


def format_time(seconds: int) -> str:
    """MM:SS display of a countdown"""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def timer_urgency(remaining: int, total: int) -> str:
    """Display bucket for how close a countdown is to zero"""
    if not total:
        return 'idle'
    if remaining <= 10:
        return 'critical'
    fraction = remaining / total
    if fraction > 0.75:
        return 'calm'
    if fraction > 0.5:
        return 'steady'
    if fraction > 0.25:
        return 'warning'
    return 'alert'


def is_deadline_passed(deadline: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if deadline is None:
        return False
    return (now or utcnow()) > deadline


class TimerReconciler:
    """Resolves the single authoritative timer for an instance"""

    def __init__(self, store: TimerStore, presets: TimerPresetStore,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.presets = presets
        self.clock = clock

    def reconcile(self, instance_id: str, external_minutes=None,
                  instructions: Optional[str] = None) -> Reconciliation:
        """
        Pick the timer for an instance and persist it.

        Precedence: running persisted timer > external duration >
        pre-configured duration > duration in the instructions > none.
        A newly selected duration is written back at once so the next
        reconciliation sees it as the persisted timer.
        """
        now = self.clock()

        persisted = self.store.load(instance_id)
        if persisted is not None and persisted.is_running(now):
            logger.info("[Timer] %s resumes persisted timer (%ss left)",
                        instance_id, persisted.remaining_seconds(now))
            return Reconciliation(TimerSource.PERSISTED, persisted, now)

        candidates = (
            (TimerSource.EXTERNAL, lambda: parse_minutes(external_minutes)),
            (TimerSource.PRESET, lambda: self.presets.get_minutes(instance_id)),
            (TimerSource.INSTRUCTIONS, lambda: parse_minutes_from_instructions(instructions)),
        )
        for source, resolve in candidates:
            minutes = resolve()
            if minutes:
                total = minutes * 60
                state = TimerState(total_seconds=total, expires_at=now + timedelta(seconds=total))
                self.store.save(instance_id, total, total)
                logger.info("[Timer] %s starts a %s-minute timer from %s", instance_id, minutes, source.value)
                return Reconciliation(source, state, now)

        if persisted is not None:
            # Expired leftover with nothing to replace it
            self.store.clear(instance_id)
        logger.info("[Timer] %s has no timer (unlimited time)", instance_id)
        return Reconciliation(TimerSource.NONE, None, now)


class CountdownSession:
    """
    Locally held countdown for one attempt.

    Presentation code reads remaining_seconds or subscribes to tick
    updates; only the session itself changes the value. State is saved
    every save_interval ticks and once more on flush(), and the expiry
    callback fires exactly once.
    """

    def __init__(self, instance_id: str, total_seconds: int, remaining_seconds: int,
                 store: TimerStore, save_interval: int = 10,
                 on_expire: Optional[Callable[[], None]] = None):
        self.instance_id = instance_id
        self.total_seconds = total_seconds
        self._remaining = max(0, int(remaining_seconds))
        self.store = store
        self.save_interval = save_interval
        self.on_expire = on_expire
        self._ticks_since_save = 0
        self._expired = False
        self._stopped = False
        self._listeners: List[Callable[[int], None]] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_reconciliation(cls, instance_id: str, reconciliation: Reconciliation,
                            store: TimerStore, **kwargs) -> Optional['CountdownSession']:
        if reconciliation.state is None:
            return None
        return cls(instance_id, reconciliation.total_seconds, reconciliation.remaining_seconds,
                   store, **kwargs)

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def stopped(self) -> bool:
        return self._stopped

    def subscribe(self, listener: Callable[[int], None]) -> Callable[[], None]:
        """Register a tick listener; returns a function that unregisters it"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def tick(self) -> None:
        """Advance the countdown by one second"""
        with self._lock:
            if self._stopped or self._expired:
                return

            if self._remaining > 0:
                self._remaining -= 1
                self._ticks_since_save += 1
            remaining = self._remaining

            if remaining == 0:
                self._expired = True
            elif self._ticks_since_save >= self.save_interval:
                self._save()

        # Callbacks run outside the lock: the expiry handler stops this session
        for listener in list(self._listeners):
            listener(remaining)
        if remaining == 0:
            logger.info("[Timer] %s expired", self.instance_id)
            if self.on_expire:
                self.on_expire()

    def _save(self) -> None:
        self.store.save(self.instance_id, self.total_seconds, self._remaining)
        self._ticks_since_save = 0

    def flush(self) -> None:
        """Final best-effort save when the user navigates away"""
        with self._lock:
            if not self._stopped and not self._expired:
                self._save()

    def stop(self) -> None:
        """Stop counting; further ticks are ignored"""
        self._stopped = True
        self._stop_event.set()

    def start(self, app=None) -> None:
        """
        Tick once per second on a background thread until stopped or expired

        Args:
            app: Flask app whose context the ticks (and so the expiry
                 auto-submit) run in. Defaults to the current app, if any.
        """
        if self._thread is not None:
            return
        if app is None and has_app_context():
            app = current_app._get_current_object()

        def run():
            if app is None:
                self._run_loop()
                return
            with app.app_context():
                self._run_loop()

        self._thread = threading.Thread(target=run, name=f"countdown-{self.instance_id}")
        self._thread.daemon = True
        self._thread.start()

    def _run_loop(self) -> None:
        while not self._stop_event.wait(1.0):
            self.tick()
            if self._expired or self._stopped:
                break

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
