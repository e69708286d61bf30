"""
Shared pytest fixtures for the SentinelVault test suite.

Key derivation runs with the smallest Argon2id costs so unlocking is
instant; the production defaults are exercised by the CLI tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from sentinelvault.crypto import KdfParams, KeyDerivation
from sentinelvault.engine import VaultEngine
from sentinelvault.storage import VaultStore

FAST_KDF = KdfParams(time_cost=1, memory_cost=8, parallelism=1)


class FakeScheduler:
    """Records the callback the engine arms instead of starting a timer."""

    def __init__(self):
        self.callback = None
        self.armed = 0
        self.cancelled = 0

    def on_unlock_timeout(self, callback):
        self.callback = callback
        self.armed += 1

    def cancel(self):
        self.callback = None
        self.cancelled += 1

    def fire(self):
        callback, self.callback = self.callback, None
        callback()


class TickingClock:
    """Returns a later UTC time on every call."""

    def __init__(self):
        self.now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def kdf():
    return KeyDerivation(FAST_KDF)


@pytest.fixture
def store(tmp_path):
    return VaultStore(str(tmp_path), "test")


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def engine(store, kdf, scheduler, clock):
    e = VaultEngine(store, kdf=kdf, scheduler=scheduler, clock=clock)
    yield e
    e.close()


@pytest.fixture
def make_engine(store, kdf, clock):
    """Build extra engines over the same store, as a restarted app would."""
    engines = []

    def factory(**kwargs):
        kwargs.setdefault("kdf", kdf)
        kwargs.setdefault("clock", clock)
        e = VaultEngine(kwargs.pop("store", store), **kwargs)
        engines.append(e)
        return e

    yield factory
    for e in engines:
        e.close()
