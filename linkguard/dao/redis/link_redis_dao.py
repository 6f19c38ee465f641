"""Data Access Object (DAO) implementation for redirect records in Redis

Responsibilities:
    - Conditionally create redirect records (SET NX) so a shortcode is never overwritten;
    - Read redirect records on the redirect hot path;
    - Increment the global counter used to mint shortcodes;
    - Maintain per-link click counters;
    - Translate Redis connectivity failures into DataStoreError.

Key layout (see RedisKeySchema):
    <prefix>:links:<shortcode>          packed RedirectRecord JSON
    <prefix>:links:<shortcode>:clicks   click counter
    <prefix>:links:counter              global link counter

Example:
    >>> from linkguard.models import RedirectRecord
    >>> from linkguard.dao.redis import LinkRedisDAO

    >>> dao = LinkRedisDAO(prefix="linkguard:dev")
    >>> dao.insert('abc123', RedirectRecord(url='https://example.com/page'), ttl=3600)
    <LinkRedisDAO>
    >>> dao.get('abc123').url
    'https://example.com/page'
    >>> dao.hit('abc123')
    1
"""

from beartype import beartype

from linkguard.constants import TTL
from linkguard.models import RedirectRecord
from linkguard.dao.base import LinkBaseDAO
from linkguard.dao.redis.mixins import RedisClientMixin
from linkguard.dao.redis.helpers import handle_redis_connection_error
from linkguard.dao.exceptions import DataStoreError, LinkAlreadyExistsError, LinkNotFoundError


class LinkRedisDAO(RedisClientMixin, LinkBaseDAO):
    """Redis-based Data Access Object (DAO) for redirect records

    Attributes (see RedisClientMixin):
        redis (redis.Redis):
            Redis client used to communicate with the Redis datastore.
        keys (RedisKeySchema):
            Key schema helper for generating namespaced Redis keys.
    """

    @handle_redis_connection_error
    @beartype
    def insert(self, shortcode: str, record: RedirectRecord, ttl: int | None = None, **kwargs) -> 'LinkRedisDAO':
        """Create a redirect record unless the shortcode is already taken

        The record is written with a single `SET ... NX`, so two concurrent
        creations of the same shortcode can't both succeed.

        Records with a TTL keep living in Redis for an extra grace period after
        they expire, so redirects can answer 410 Gone before Redis evicts the key.

        Args:
            shortcode (str):
                Shortcode to create.
            record (RedirectRecord):
                Record to store.
            ttl (int | None):
                Link lifetime in seconds, or None for links that never expire.

        Returns:
            LinkRedisDAO: self (for method chaining)

        Raises:
            LinkAlreadyExistsError:
                If a record with the same shortcode exists.
            DataStoreError:
                If a Redis connection issue occurs.

        Example:
            >>> dao.insert('abc123', RedirectRecord(url='https://example.com'))
            <LinkRedisDAO>
        """
        expiry = ttl + TTL.EXPIRED_GRACE if ttl else None
        created = self.redis.set(self.keys.link_key(shortcode), record.to_store(), nx=True, ex=expiry)
        if not created:
            raise LinkAlreadyExistsError(f"Short URL with code '{shortcode}' already exists.")
        return self

    @handle_redis_connection_error
    @beartype
    def get(self, shortcode: str, **kwargs) -> RedirectRecord:
        """Retrieve a redirect record by shortcode (one GET round trip)

        Raises:
            LinkNotFoundError:
                If the record does not exist in Redis.
            DataStoreError:
                If Redis connectivity issues occur or the stored record is corrupt.
        """
        raw = self.redis.get(self.keys.link_key(shortcode))
        if raw is None:
            raise LinkNotFoundError(f"Short URL with code '{shortcode}' not found.")
        return self._deserialize(shortcode, raw)

    @handle_redis_connection_error
    @beartype
    def exists(self, shortcode: str, **kwargs) -> bool:
        return bool(self.redis.exists(self.keys.link_key(shortcode)))

    @handle_redis_connection_error
    def count(self, increment: bool = False, **kwargs) -> int:
        """Retrieve global link counter

        Example:
            >>> dao.count(increment=False)
            123
            >>> dao.count(increment=True)
            124
        """
        if increment:
            return int(self.redis.incr(self.keys.counter_key()))
        else:
            return int(self.redis.get(self.keys.counter_key()) or 0)

    @handle_redis_connection_error
    @beartype
    def hit(self, shortcode: str, **kwargs) -> int:
        """Increment the click counter of a shortcode

        NOTE: the counter is incremented blindly (no existence check) because it
              only runs after the redirect already resolved the record. Retried
              increments may count a click twice; click counts are best-effort.

        Example:
            >>> dao.hit('abc123')
            42
        """
        return int(self.redis.incr(self.keys.link_clicks_key(shortcode)))

    @handle_redis_connection_error
    @beartype
    def track(self, shortcode: str, **kwargs) -> tuple[RedirectRecord, int]:
        """Retrieve a redirect record and its click count in one pipeline

        Raises:
            LinkNotFoundError:
                If the record does not exist in Redis.
            DataStoreError:
                If Redis connectivity issues occur.

        Example:
            >>> record, clicks = dao.track('abc123')
            >>> clicks
            42
        """
        with self.redis.pipeline(transaction=False) as pipe:
            pipe.get(self.keys.link_key(shortcode))
            pipe.get(self.keys.link_clicks_key(shortcode))
            raw, clicks = pipe.execute()

        if raw is None:
            raise LinkNotFoundError(f"Short URL with code '{shortcode}' not found.")
        return self._deserialize(shortcode, raw), int(clicks or 0)

    @staticmethod
    def _deserialize(shortcode: str, raw: str | bytes) -> RedirectRecord:
        try:
            return RedirectRecord.from_store(raw)
        except ValueError as e:
            raise DataStoreError(f"Stored record for short URL '{shortcode}' is corrupt.") from e
