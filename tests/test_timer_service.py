import json
from datetime import datetime, timedelta, timezone

import pytest

from examcore.services.timer_service import (CountdownSession, TimerReconciler, TimerSource,
                                             format_time, is_deadline_passed, parse_minutes,
                                             parse_minutes_from_instructions, timer_urgency)


@pytest.fixture
def reconciler(timer_store, presets, clock):
    return TimerReconciler(timer_store, presets, clock=clock)


def test_running_persisted_timer_wins(reconciler, timer_store, presets):
    timer_store.save('exam-1', 3600, 120)
    presets.set_minutes('exam-1', 45)

    result = reconciler.reconcile('exam-1', external_minutes=30, instructions='60 minutes')

    assert result.source is TimerSource.PERSISTED
    assert result.remaining_seconds == 120
    assert result.total_seconds == 3600


def test_external_duration_beats_preset_and_instructions(reconciler, presets, timer_store, clock):
    presets.set_minutes('exam-1', 45)

    result = reconciler.reconcile('exam-1', external_minutes='30', instructions='60 minutes')

    assert result.source is TimerSource.EXTERNAL
    assert result.remaining_seconds == 1800
    stored = timer_store.load('exam-1')
    assert stored.total_seconds == 1800
    assert stored.expires_at == clock() + timedelta(minutes=30)


def test_preset_beats_instructions(reconciler, presets):
    presets.set_minutes('exam-1', 45)
    result = reconciler.reconcile('exam-1', instructions='You have 60 minutes.')
    assert result.source is TimerSource.PRESET
    assert result.total_seconds == 2700


def test_instructions_duration_is_used_last(reconciler):
    result = reconciler.reconcile('exam-1', external_minutes='abc', instructions='Thời gian: 90 phút')
    assert result.source is TimerSource.INSTRUCTIONS
    assert result.total_seconds == 5400


def test_selected_timer_becomes_persisted_on_next_reconcile(reconciler, clock):
    reconciler.reconcile('exam-1', external_minutes=30)
    clock.advance(600)

    again = reconciler.reconcile('exam-1', external_minutes=30)

    assert again.source is TimerSource.PERSISTED
    assert again.remaining_seconds == 1200


def test_no_source_means_unlimited_time(reconciler):
    result = reconciler.reconcile('exam-1')
    assert result.source is TimerSource.NONE
    assert result.state is None
    assert result.to_dict()['remainingSeconds'] is None


def test_expired_persisted_timer_falls_through(reconciler, timer_store, presets, clock):
    timer_store.save('exam-1', 600, 60)
    presets.set_minutes('exam-1', 20)
    clock.advance(120)

    result = reconciler.reconcile('exam-1')

    assert result.source is TimerSource.PRESET
    assert result.remaining_seconds == 1200


def test_expired_persisted_timer_is_cleared_when_nothing_replaces_it(reconciler, timer_store,
                                                                     kv_store, clock):
    timer_store.save('exam-1', 600, 60)
    clock.advance(120)

    result = reconciler.reconcile('exam-1')

    assert result.source is TimerSource.NONE
    assert kv_store.get('timer:exam-1') is None


def test_reconciliation_to_dict(reconciler):
    data = reconciler.reconcile('exam-1', external_minutes=5).to_dict()
    assert data['source'] == 'external'
    assert data['remainingSeconds'] == 300
    assert data['display'] == '05:00'
    assert data['urgency'] == 'calm'
    assert data['expiresAt'] == '2024-01-01T09:05:00Z'


@pytest.mark.parametrize("value,expected", [
    ('30', 30), (45, 45), (' 15 ', 15), ('0', None), ('-5', None), ('abc', None), (None, None), (True, None),
])
def test_parse_minutes(value, expected):
    assert parse_minutes(value) == expected


@pytest.mark.parametrize("text,expected", [
    ('Complete within 60 minutes.', 60),
    ('Time limit: 45 min', 45),
    ('1 minute warm-up', 1),
    ('Làm bài trong 90 phút', 90),
    ('Answer all questions.', None),
    (None, None),
])
def test_parse_minutes_from_instructions(text, expected):
    assert parse_minutes_from_instructions(text) == expected


def test_format_time():
    assert format_time(0) == '00:00'
    assert format_time(65) == '01:05'
    assert format_time(3600) == '60:00'
    assert format_time(-3) == '00:00'


@pytest.mark.parametrize("remaining,total,expected", [
    (900, 1000, 'calm'),
    (600, 1000, 'steady'),
    (300, 1000, 'warning'),
    (100, 1000, 'alert'),
    (10, 1000, 'critical'),
    (0, 0, 'idle'),
])
def test_timer_urgency(remaining, total, expected):
    assert timer_urgency(remaining, total) == expected


def test_is_deadline_passed():
    deadline = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert not is_deadline_passed(None)
    assert not is_deadline_passed(deadline, deadline)
    assert is_deadline_passed(deadline, deadline + timedelta(seconds=1))


def test_countdown_saves_every_ten_ticks(timer_store, kv_store, clock):
    session = CountdownSession('exam-1', 600, 600, timer_store)

    for _ in range(9):
        clock.advance(1)
        session.tick()
    assert kv_store.get('timer:exam-1') is None

    clock.advance(1)
    session.tick()
    record = json.loads(kv_store.get('timer:exam-1'))
    assert record['expiresAt'] == '2024-01-01T09:10:00Z'
    assert session.remaining_seconds == 590


def test_flush_saves_current_remaining(timer_store, clock):
    session = CountdownSession('exam-1', 600, 600, timer_store)
    for _ in range(3):
        session.tick()

    session.flush()

    assert timer_store.load('exam-1').remaining_seconds(clock()) == 597


def test_expiry_fires_once(timer_store):
    fired = []
    session = CountdownSession('exam-1', 60, 2, timer_store, on_expire=lambda: fired.append(True))

    for _ in range(5):
        session.tick()

    assert fired == [True]
    assert session.expired
    assert session.remaining_seconds == 0


def test_background_countdown_expires_without_an_app(timer_store):
    fired = []
    session = CountdownSession('exam-1', 60, 1, timer_store, on_expire=lambda: fired.append(True))

    session.start()
    session.join(timeout=5)

    assert fired == [True]
    assert session.expired


def test_expired_session_does_not_save(timer_store, kv_store):
    session = CountdownSession('exam-1', 60, 1, timer_store)
    session.tick()
    session.flush()
    assert kv_store.get('timer:exam-1') is None


def test_listeners_see_each_tick_until_unsubscribed(timer_store):
    session = CountdownSession('exam-1', 60, 60, timer_store)
    seen = []
    unsubscribe = session.subscribe(seen.append)

    session.tick()
    session.tick()
    unsubscribe()
    session.tick()

    assert seen == [59, 58]


def test_stopped_session_ignores_ticks_and_flush(timer_store, kv_store):
    fired = []
    session = CountdownSession('exam-1', 60, 1, timer_store, on_expire=lambda: fired.append(True))
    session.stop()

    session.tick()
    session.flush()

    assert session.stopped
    assert fired == []
    assert session.remaining_seconds == 1
    assert kv_store.get('timer:exam-1') is None


def test_from_reconciliation(reconciler, timer_store):
    result = reconciler.reconcile('exam-1', external_minutes=2)
    session = CountdownSession.from_reconciliation('exam-1', result, timer_store, save_interval=5)

    assert session.total_seconds == 120
    assert session.remaining_seconds == 120
    assert session.save_interval == 5
    assert CountdownSession.from_reconciliation('exam-2', reconciler.reconcile('exam-2'), timer_store) is None
