import pytest

from fakes import FakeClock, InMemoryQuizCache


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return InMemoryQuizCache(clock)
