"""
Shared fixtures for the termcraft test suite.
"""
import pytest

from termcraft.context import new_context
from termcraft.models import ModelConfig
from termcraft.providers import MockBackend
from termcraft.ratelimit import RateLimiter
from termcraft.session import ChatSession
from termcraft.sysinfo import SystemInfo


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    # Start 10s into a minute so truncation is observable.
    return FakeClock(start=1_700_000_050.0)


@pytest.fixture
def system_info():
    return SystemInfo(
        os="linux",
        shell="bash",
        user="tester",
        home_dir="/home/tester",
        working_dir="/home/tester/project",
    )


@pytest.fixture
def small_model():
    return ModelConfig(
        name="test-model",
        input_token_limit=10_000,
        output_token_limit=1_000,
        rpm=3,
        tpm=10_000,
        rpd=5,
    )


@pytest.fixture
def backend():
    return MockBackend()


@pytest.fixture
def session(backend, small_model, clock, system_info):
    limiter = RateLimiter(small_model.limits, model_name=small_model.name, clock=clock)
    return ChatSession(
        backend=backend,
        model_config=small_model,
        rate_limiter=limiter,
        context=new_context(system_info),
    )
