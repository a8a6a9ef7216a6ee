import os

# До импорта duelchess.main: без секрета приложение не собирается
os.environ.setdefault("RECONNECT_TOKEN_SECRET", "test-secret")

import pytest

from duelchess.config import Config
from duelchess.coordinator import Coordinator
from helpers import FakeClock, FakeScheduler


@pytest.fixture
def config():
    return Config(token_secret="test-secret")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def coordinator(config, clock, scheduler):
    return Coordinator(config, clock=clock, schedule=scheduler, wall_clock=clock)
