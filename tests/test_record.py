import json
from datetime import datetime, timedelta, timezone

import pytest

from fastmutex import Record, Stats
from fastmutex._record import from_millis, to_millis


NOW = datetime(2010, 11, 12, 13, 14, 15, tzinfo=timezone.utc)


def test_wire_format():
    raw = Record(value='client', expires_at=1289567655000).encode()
    assert json.loads(raw) == {'expiresAt': 1289567655000, 'value': 'client'}


def test_decode_browser_record():
    record = Record.decode('{"expiresAt":1289567655000,"value":"0.4242"}')
    assert record == Record(value='0.4242', expires_at=1289567655000)


def test_decode_float_timestamp():
    record = Record.decode('{"expiresAt": 1289567655000.5, "value": "a"}')
    assert record is not None
    assert record.expires_at == 1289567655000


@pytest.mark.parametrize('raw', [
    None,
    '',
    'null',
    '42',
    '"value"',
    '[1, 2]',
    '{not json',
    '{}',
    '{"expiresAt": 1}',
    '{"value": "a"}',
    '{"expiresAt": null, "value": "a"}',
    '{"expiresAt": true, "value": "a"}',
    '{"expiresAt": "1", "value": "a"}',
    '{"expiresAt": NaN, "value": "a"}',
    '{"expiresAt": 1, "value": 2}',
])
def test_decode_malformed(raw):
    assert Record.decode(raw) is None


def test_expired_boundary():
    record = Record(value='a', expires_at=to_millis(NOW))
    assert record.expired(NOW - timedelta(milliseconds=1)) is False
    assert record.expired(NOW) is True
    assert record.expired(NOW + timedelta(milliseconds=1)) is True


def test_millis():
    assert to_millis(from_millis(1289567655123)) == 1289567655123
    assert from_millis(to_millis(NOW)) == NOW


def test_stats_defaults():
    stats = Stats()
    assert stats.restart_count == 0
    assert stats.locks_lost == 0
    assert stats.contention_count == 0
    assert stats.acquire_duration is None
    assert stats.acquire_duration_ms is None
    assert stats.lock_duration_ms is None


def test_stats_duration_ms():
    stats = Stats(acquire_duration=timedelta(milliseconds=1500), lock_duration=timedelta(seconds=2))
    assert stats.acquire_duration_ms == 1500
    assert stats.lock_duration_ms == 2000
