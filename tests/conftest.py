import os

# app.main builds the default app at import time, which needs a provider key.
os.environ.setdefault("OPENWEATHER_API_KEY", "test-key")

import pytest

from app.core.rate_limit import limiter
from payloads import FakeClock, make_snapshot


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def snapshot():
    return make_snapshot()


@pytest.fixture(autouse=True)
def reset_route_limits():
    limiter.reset()
    yield
    limiter.reset()
