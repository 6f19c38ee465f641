import threading
from collections import Counter

import pytest

from linkguard.dao.base import LinkBaseDAO
from linkguard.dao.exceptions import LinkAlreadyExistsError, LinkNotFoundError
from linkguard.models import RedirectRecord
from linkguard.services import reset_runtime


class InMemoryLinkDAO(LinkBaseDAO):
    """Thread-safe in-memory DAO with the same create-if-absent contract as LinkRedisDAO"""

    def __init__(self):
        self.records: dict[str, RedirectRecord] = {}
        self.ttls: dict[str, int | None] = {}
        self.clicks: Counter[str] = Counter()
        self.counter = 0
        self.gets = 0
        self.lock = threading.Lock()

    def insert(self, shortcode, record, ttl=None, **kwargs):
        with self.lock:
            if shortcode in self.records:
                raise LinkAlreadyExistsError(f"Short URL with code '{shortcode}' already exists.")
            self.records[shortcode] = record
            self.ttls[shortcode] = ttl
        return self

    def get(self, shortcode, **kwargs):
        with self.lock:
            self.gets += 1
            if shortcode not in self.records:
                raise LinkNotFoundError(f"Short URL with code '{shortcode}' not found.")
            return self.records[shortcode]

    def exists(self, shortcode, **kwargs):
        return shortcode in self.records

    def count(self, increment=False, **kwargs):
        with self.lock:
            if increment:
                self.counter += 1
            return self.counter

    def hit(self, shortcode, **kwargs):
        with self.lock:
            self.clicks[shortcode] += 1
            return self.clicks[shortcode]

    def track(self, shortcode, **kwargs):
        return self.get(shortcode), self.clicks[shortcode]

    def ping(self):
        return True


@pytest.fixture
def dao() -> InMemoryLinkDAO:
    return InMemoryLinkDAO()


@pytest.fixture(autouse=True)
def _reset_runtime():
    yield
    reset_runtime()
