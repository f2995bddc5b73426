# backend/tests/conftest.py
import os
import sys
import time

import pytest

FAKE_ENGINE = os.path.join(os.path.dirname(__file__), "fake_engine.py")


def wait_until(predicate, timeout=5.0, interval=0.02):
    """Polls predicate until it returns truthy. Returns the last value."""
    deadline = time.monotonic() + timeout
    value = predicate()
    while not value and time.monotonic() < deadline:
        time.sleep(interval)
        value = predicate()
    return value


@pytest.fixture
def engine_command():
    """Command prefix that starts the fake engine under the current interpreter."""
    return [sys.executable, FAKE_ENGINE]


@pytest.fixture
def workdir(tmp_path):
    """Empty directory shared with the engine for input and memory dump files."""
    return str(tmp_path)


@pytest.fixture(name="wait_until")
def wait_until_fixture():
    return wait_until
