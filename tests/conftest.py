"""
Pytest Configuration and Fixtures
"""
import pytest

from tests.fakes import FakeChannel, InMemoryRunLock, T0


@pytest.fixture
def t0():
    """Last status change of the default ticket"""
    return T0


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def run_lock():
    return InMemoryRunLock()
