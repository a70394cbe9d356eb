"""
Timer State Store

Persists the absolute expiry of each running countdown, never the countdown
value itself, so time spent with the page closed is accounted for on the
next load.
"""
import json
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from examcore.domain import TimerState, utcnow
from examcore.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

# Older clients kept one record per flow under these prefixes
LEGACY_KEY_PREFIXES = (
    'exam_session_',
    'essay_timer_',
    'exercise_session_',
    'essay_exercise_timer_',
)

PRESETS_KEY = 'timer_presets'


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime (None if blank)"""
    if value is None or value == '':
        return None
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


class TimerStore:
    """Durable timer records keyed by assessment instance"""

    def __init__(self, kv_store: KeyValueStore, key_prefix: str = 'timer:',
                 default_total_seconds: int = 3600,
                 clock: Callable[[], datetime] = utcnow):
        self.kv_store = kv_store
        self.key_prefix = key_prefix
        self.default_total_seconds = default_total_seconds
        self.clock = clock

    def _key(self, instance_id: str) -> str:
        return f"{self.key_prefix}{instance_id}"

    def save(self, instance_id: str, total_seconds: int, remaining_seconds: int) -> None:
        """Persist expiresAt = now + remaining_seconds"""
        now = self.clock()
        expires_at = now + timedelta(seconds=remaining_seconds) if remaining_seconds > 0 else None
        self._write(instance_id, TimerState(total_seconds=int(total_seconds), expires_at=expires_at), now)

    def _write(self, instance_id: str, state: TimerState, now: datetime) -> None:
        record = {
            'totalTime': state.total_seconds,
            'expiresAt': format_timestamp(state.expires_at) if state.expires_at else None,
            'lastUpdated': format_timestamp(now),
        }
        if not self.kv_store.set(self._key(instance_id), json.dumps(record)):
            logger.warning("[TimerStore] Could not persist timer for %s", instance_id)

    def load(self, instance_id: str) -> Optional[TimerState]:
        """Return the stored timer, or None when absent or unreadable"""
        raw = self.kv_store.get(self._key(instance_id))
        if raw is not None:
            return self._decode(instance_id, raw)
        return self._migrate_legacy(instance_id)

    def clear(self, instance_id: str) -> None:
        self.kv_store.delete(self._key(instance_id))
        for prefix in LEGACY_KEY_PREFIXES:
            self.kv_store.delete(f"{prefix}{instance_id}")

    def _decode(self, instance_id: str, raw: str) -> Optional[TimerState]:
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("timer record is not an object")
            total = data.get('totalTime')
            if isinstance(total, bool) or not isinstance(total, (int, float)):
                raise ValueError("totalTime missing or not a number")
            return TimerState(total_seconds=int(total), expires_at=parse_timestamp(data.get('expiresAt')))
        except (ValueError, TypeError, OverflowError) as e:
            logger.warning("[TimerStore] Ignoring corrupt timer record for %s: %s", instance_id, e)
            return None

    def _migrate_legacy(self, instance_id: str) -> Optional[TimerState]:
        for prefix in LEGACY_KEY_PREFIXES:
            legacy_key = f"{prefix}{instance_id}"
            raw = self.kv_store.get(legacy_key)
            if raw is None:
                continue

            state = self._normalize_legacy(instance_id, raw)
            if state is None:
                continue

            self._write(instance_id, state, self.clock())
            self.kv_store.delete(legacy_key)
            logger.info("[TimerStore] Migrated legacy timer record %s", legacy_key)
            return state
        return None

    def _normalize_legacy(self, instance_id: str, raw: str) -> Optional[TimerState]:
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                return None

            total = data.get('totalTime')
            if isinstance(total, bool) or not isinstance(total, (int, float)) or total <= 0:
                total = self.default_total_seconds

            expires_at = parse_timestamp(data.get('expiresAt'))
            if expires_at is None:
                # Oldest format: a raw countdown stamped with its save time
                time_left = data.get('timeLeft')
                last_updated = parse_timestamp(data.get('lastUpdated'))
                if not isinstance(time_left, (int, float)) or last_updated is None:
                    return None
                expires_at = last_updated + timedelta(seconds=time_left)

            return TimerState(total_seconds=int(total), expires_at=expires_at)
        except (ValueError, TypeError, OverflowError) as e:
            logger.warning("[TimerStore] Ignoring corrupt legacy record for %s: %s", instance_id, e)
            return None


class TimerPresetStore:
    """Durations configured ahead of time, as one map of instance id -> minutes"""

    def __init__(self, kv_store: KeyValueStore, key: str = PRESETS_KEY):
        self.kv_store = kv_store
        self.key = key

    def _read_all(self) -> Dict[str, int]:
        raw = self.kv_store.get(self.key)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("[TimerPresets] Preset map is corrupt, ignoring it")
            return {}
        return data if isinstance(data, dict) else {}

    def get_minutes(self, instance_id: str) -> Optional[int]:
        value = self._read_all().get(str(instance_id))
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if not math.isfinite(value) or value <= 0:
            return None
        return int(value)

    def set_minutes(self, instance_id: str, minutes: int) -> None:
        if minutes <= 0:
            raise ValueError("minutes must be positive")
        presets = self._read_all()
        presets[str(instance_id)] = int(minutes)
        self.kv_store.set(self.key, json.dumps(presets))

    def remove(self, instance_id: str) -> None:
        presets = self._read_all()
        if presets.pop(str(instance_id), None) is not None:
            self.kv_store.set(self.key, json.dumps(presets))
