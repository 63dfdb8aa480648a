# =============================================
# File: tests/conftest.py
# Purpose: Shared fixtures: fake clock, isolated cache registry, in-memory DB, service graph, HTTP client
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest
from fastapi.testclient import TestClient

from companion.db.repo import make_engine
from companion.services.container import build_services, set_services
from companion.utils.cache_registry import CacheRegistry
from companion.utils.metrics import reset as metrics_reset


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return CacheRegistry(clock=clock)


@pytest.fixture
def services(registry):
    return build_services(engine=make_engine("sqlite://"), registry=registry)


@pytest.fixture
def client(services, monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "app.log"))
    metrics_reset()
    set_services(services)
    from companion.main import app
    with TestClient(app) as c:
        yield c
    set_services(None)
