import pytest

from fakes import FakeExchange


@pytest.fixture
def exchange():
    return FakeExchange()
