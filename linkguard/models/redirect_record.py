import json
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import IntEnum
from typing import Any


class RedirectStatus(IntEnum):
    MOVED_PERMANENTLY = 301
    FOUND = 302
    PERMANENT_REDIRECT = 308

    @property
    def cacheable(self) -> bool:
        """Permanent redirects may be cached by browsers and CDNs; 302 is used for click tracking."""
        return self is not RedirectStatus.FOUND


@dataclass(frozen=True)
class RedirectRecord:
    """Represent the destination of one short code.

    Attributes:
        url (str):
            Destination URL the short code redirects to.
        expires_at_ms (int):
            Expiry as epoch milliseconds. 0 means the link never expires.
        enabled (bool):
            Disabled records are never served.
        protected (bool):
            Marks links behind an interstitial (e.g. password) page.
        redirect_status (RedirectStatus):
            HTTP status used for the redirect (301, 302 or 308).
        created_at (datetime):
            Creation time in UTC.

    Persisted form (packed JSON object):
        {"u": url, "t": expires_at_ms, "e": enabled, "p": protected, "r": status, "ca": ISO-8601}

    Example:
        >>> record = RedirectRecord(url='https://example.com/article/123')
        >>> record.to_store()
        '{"u": "https://example.com/article/123", "t": 0, "e": true, "p": false, "r": 308, "ca": "..."}'
        >>> RedirectRecord.from_store(record.to_store()).url
        'https://example.com/article/123'
    """

    url: str
    expires_at_ms: int = 0
    enabled: bool = True
    protected: bool = False
    redirect_status: RedirectStatus = RedirectStatus.PERMANENT_REDIRECT
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at_ms != 0 and now_ms > self.expires_at_ms

    def to_store(self) -> str:
        # fmt: off
        created_at = self.created_at.astimezone(UTC) \
                                    .isoformat(timespec='milliseconds') \
                                    .replace('+00:00', 'Z')
        # fmt: on
        return json.dumps(
            {
                'u': self.url,
                't': self.expires_at_ms,
                'e': self.enabled,
                'p': self.protected,
                'r': int(self.redirect_status),
                'ca': created_at,
            }
        )

    @classmethod
    def from_store(cls, raw: str | bytes | dict[str, Any]) -> 'RedirectRecord':
        """Deserialize a packed record.

        Missing optional fields fall back to their defaults, so records written
        without `e`/`p`/`r` still load.

        Raises:
            ValueError: if the payload isn't a JSON object with a `u` field,
                        or carries an unsupported redirect status.
        """
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        if not isinstance(data, dict) or not data.get('u'):
            raise ValueError(f'Malformed redirect record: {raw!r}')

        created_at = data.get('ca')
        return cls(
            url=data['u'],
            expires_at_ms=int(data.get('t') or 0),
            enabled=bool(data.get('e', True)),
            protected=bool(data.get('p', False)),
            redirect_status=RedirectStatus(int(data.get('r') or RedirectStatus.PERMANENT_REDIRECT)),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.fromtimestamp(0, tz=UTC),
        )
