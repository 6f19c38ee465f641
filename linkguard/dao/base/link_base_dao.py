"""Abstract base class for redirect link data access objects (DAOs).

This class establishes a consistent contract for all link DAO implementations,
regardless of the underlying key-value store.

Responsibilities:
    - Provide an interface for conditionally creating and reading RedirectRecord objects.
    - Provide the global counter used to mint shortcodes.
    - Provide click counters.
    - Standardize error handling across data store implementations.

Example:
    Typical usage with a datastore-specific implementation:

        >>> from linkguard.models import RedirectRecord
        >>> from linkguard.dao.redis import LinkRedisDAO

        >>> dao = LinkRedisDAO(...)
        >>> dao.insert('a1b2c3', RedirectRecord(url='https://example.com/blog/article-123'))
        >>> dao.get('a1b2c3').url
        'https://example.com/blog/article-123'
"""

from abc import ABC, abstractmethod

from linkguard.models import RedirectRecord


class LinkBaseDAO(ABC):
    """Interface for redirect link data access objects (DAOs).

    Subclassing:
        Datastore-specific implementations (e.g., LinkRedisDAO) must extend
        this class and implement all abstract methods.

    NOTE:
        - Records are immutable once created and are never deleted by the DAO;
          expiry of stale keys is left to the data store.
    """

    @abstractmethod
    def insert(self, shortcode: str, record: RedirectRecord, ttl: int | None = None, **kwargs) -> 'LinkBaseDAO':
        """Create a redirect record if, and only if, the shortcode is free.

        The existence check and the write are a single atomic operation.

        Args:
            shortcode (str):
                Shortcode to create.
            record (RedirectRecord):
                Record to store.
            ttl (int | None):
                Seconds after which the record becomes expired. None means never.

        Returns:
            LinkBaseDAO: self (for method chaining)

        Raises:
            LinkAlreadyExistsError:
                If the shortcode is already taken.
            DataStoreError:
                If there is an error in the data store.
        """
        pass

    @abstractmethod
    def get(self, shortcode: str, **kwargs) -> RedirectRecord:
        """Retrieve a RedirectRecord by its shortcode.

        Raises:
            LinkNotFoundError:
                If no record with the given shortcode exists.
            DataStoreError:
                If there is an error in the data store.
        """
        pass

    @abstractmethod
    def exists(self, shortcode: str, **kwargs) -> bool:
        pass

    @abstractmethod
    def count(self, increment: bool = False, **kwargs) -> int:
        """Retrieve (and optionally increment) the global link counter.

        Raises:
            DataStoreError:
                If there is an error in the data store.
        """
        pass

    @abstractmethod
    def hit(self, shortcode: str, **kwargs) -> int:
        """Increment the click counter of a shortcode and return the new value.

        Raises:
            DataStoreError:
                If there is an error in the data store.
        """
        pass

    @abstractmethod
    def track(self, shortcode: str, **kwargs) -> tuple[RedirectRecord, int]:
        """Retrieve a record together with its click count.

        Raises:
            LinkNotFoundError:
                If no record with the given shortcode exists.
            DataStoreError:
                If there is an error in the data store.
        """
        pass

    @abstractmethod
    def ping(self) -> bool:
        """Return True if the data store is reachable, False otherwise."""
        pass
