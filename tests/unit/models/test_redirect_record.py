"""Unit tests for RedirectRecord and RedirectStatus

Test coverage includes:

1. Persisted form
   - to_store() writes the packed `u, t, e, p, r, ca` fields.
   - from_store() accepts str, bytes and dict payloads and fills defaults.
   - Malformed payloads raise ValueError.

2. Expiry
   - 0 never expires; otherwise expired strictly after expires_at_ms.

3. Redirect status caching
"""

import json
from datetime import datetime, UTC

import pytest

from linkguard.models import RedirectRecord, RedirectStatus


# -------------------------------
# 1. Persisted form
# -------------------------------


def test_to_store_fields():
    record = RedirectRecord(
        url='https://example.com/page',
        expires_at_ms=1760490000000,
        redirect_status=RedirectStatus.MOVED_PERMANENTLY,
        created_at=datetime(2025, 10, 15, 12, 30, tzinfo=UTC),
    )

    assert json.loads(record.to_store()) == {
        'u': 'https://example.com/page',
        't': 1760490000000,
        'e': True,
        'p': False,
        'r': 301,
        'ca': '2025-10-15T12:30:00.000Z',
    }


@pytest.mark.parametrize('encode', [lambda raw: raw, lambda raw: raw.encode('utf-8'), json.loads])
def test_from_store_accepted_payloads(encode):
    record = RedirectRecord(url='https://example.com/page', created_at=datetime(2025, 10, 15, tzinfo=UTC))
    assert RedirectRecord.from_store(encode(record.to_store())) == record


def test_from_store_fills_defaults():
    record = RedirectRecord.from_store('{"u": "https://example.com"}')

    assert record.url == 'https://example.com'
    assert record.expires_at_ms == 0
    assert record.enabled is True
    assert record.protected is False
    assert record.redirect_status is RedirectStatus.PERMANENT_REDIRECT
    assert record.created_at == datetime.fromtimestamp(0, tz=UTC)


def test_from_store_disabled_record():
    assert RedirectRecord.from_store({'u': 'https://example.com', 'e': False}).enabled is False


@pytest.mark.parametrize(
    'raw',
    [
        '{broken',
        '"just a string"',
        '{"t": 0}',
        '{"u": ""}',
        '{"u": "https://example.com", "r": 307}',
    ],
)
def test_from_store_malformed(raw):
    with pytest.raises(ValueError):
        RedirectRecord.from_store(raw)


# -------------------------------
# 2. Expiry
# -------------------------------


@pytest.mark.parametrize(
    'expires_at_ms, now_ms, expected',
    [
        (0, 10**13, False),
        (1000, 999, False),
        (1000, 1000, False),
        (1000, 1001, True),
    ],
)
def test_is_expired(expires_at_ms, now_ms, expected):
    assert RedirectRecord(url='https://example.com', expires_at_ms=expires_at_ms).is_expired(now_ms) is expected


# -------------------------------
# 3. Redirect status caching
# -------------------------------


@pytest.mark.parametrize(
    'status, cacheable',
    [
        (RedirectStatus.MOVED_PERMANENTLY, True),
        (RedirectStatus.FOUND, False),
        (RedirectStatus.PERMANENT_REDIRECT, True),
    ],
)
def test_redirect_status_cacheable(status, cacheable):
    assert status.cacheable is cacheable
