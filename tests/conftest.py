import pytest

from helpers import FakeTimeline, ListSink


@pytest.fixture
def timeline():
    return FakeTimeline()


@pytest.fixture
def sink():
    return ListSink()
