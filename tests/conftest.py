"""Shared pytest fixtures for burn-harness tests.

This module provides common fixtures for testing the orchestrator and the
control panel bridge. Load tasks are replaced by thread-backed fake
processes whose completion the tests control.
"""

import errno
import signal
import threading
import time

import pytest
from prometheus_client import REGISTRY

from burn_harness.app import create_app
from burn_harness.services import Orchestrator, OrchestratorMetrics


def _clear_prometheus_registry():
    """Clear all Prometheus collectors to avoid duplicates between tests.

    Prometheus uses a global registry, so collectors registered in one test
    persist to the next. This helper ensures test isolation.
    """
    collectors = list(REGISTRY._collector_to_names.keys())
    for collector in collectors:
        try:
            REGISTRY.unregister(collector)
        except ValueError:
            # Collector was already unregistered
            pass


class FakeProcess:
    """Thread-backed stand-in for multiprocessing.Process.

    Behaviours:
        cooperative: exits 0 as soon as the stop event is set
        slow: exits 0 a little while after the stop event is set
        stubborn: ignores the stop event, dies on terminate()
        ignores_terminate: ignores stop event and terminate(), dies on kill()
        fail_start: start() raises OSError (EAGAIN)
        run_target: really runs the target in the thread
    """

    SLOW_STOP_SECONDS = 0.15

    def __init__(self, target, args, name, behavior):
        self.target = target
        self.args = args
        self.name = name
        self.unit = args[1]
        self.stop_event = args[2]
        self.behavior = behavior
        self.exitcode = None
        self.started = False
        self.terminate_calls = 0
        self.kill_calls = 0
        self._signal = None
        self._finish_code = None
        self._finished = threading.Event()

    def start(self):
        if self.behavior == "fail_start":
            raise OSError(errno.EAGAIN, "Resource temporarily unavailable")
        self.started = True
        runner = self._run_target if self.behavior == "run_target" else self._run
        threading.Thread(target=runner, daemon=True).start()

    def _run(self):
        stop_seen_at = None
        while True:
            if self._signal is not None:
                code = self._signal
                break
            if self._finish_code is not None:
                code = self._finish_code
                break
            if self.stop_event.is_set() and self.behavior in ("cooperative", "slow"):
                if self.behavior == "cooperative":
                    code = 0
                    break
                stop_seen_at = stop_seen_at or time.monotonic()
                if time.monotonic() - stop_seen_at >= self.SLOW_STOP_SECONDS:
                    code = 0
                    break
            time.sleep(0.002)
        self.exitcode = code
        self._finished.set()

    def _run_target(self):
        try:
            self.target(*self.args)
            code = 0
        except SystemExit as exc:
            code = exc.code
        self.exitcode = code
        self._finished.set()

    def finish(self, exitcode=0):
        """Make the task end on its own."""
        self._finish_code = exitcode

    def terminate(self):
        self.terminate_calls += 1
        if self.behavior not in ("ignores_terminate", "run_target"):
            self._signal = -signal.SIGTERM

    def kill(self):
        self.kill_calls += 1
        if self.behavior != "run_target":
            self._signal = -signal.SIGKILL

    def join(self, timeout=None):
        self._finished.wait(timeout)

    def is_alive(self):
        return self.started and not self._finished.is_set()


class FakeSpawner:
    """Spawner handing out FakeProcess objects and threading events.

    Records any spawn that happens while an earlier process of the same
    unit is still alive.
    """

    def __init__(self):
        self.processes = []
        self.behaviors = {}
        self.overlaps = []

    def event(self):
        return threading.Event()

    def process(self, target, args, name):
        unit = str(args[1])
        if any(p.is_alive() for p in self.processes_for(unit)):
            self.overlaps.append(unit)
        proc = FakeProcess(target, args, name, self.behaviors.get(unit, "cooperative"))
        self.processes.append(proc)
        return proc

    def processes_for(self, unit):
        return [p for p in self.processes if str(p.unit) == unit]

    def latest(self, unit):
        return self.processes_for(unit)[-1]

    def live(self, unit=None):
        return [
            p for p in self.processes
            if p.is_alive() and (unit is None or str(p.unit) == unit)
        ]


def _wait_until(predicate, timeout=2.0, interval=0.005):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture(autouse=True)
def clean_prometheus():
    """Automatically clean Prometheus registry before and after each test.

    This fixture runs automatically for every test to ensure clean state.
    """
    _clear_prometheus_registry()
    yield
    _clear_prometheus_registry()


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds or a timeout expires."""
    return _wait_until


@pytest.fixture
def spawner():
    """Fake spawner; set spawner.behaviors["gpu1"] etc. before starting."""
    return FakeSpawner()


@pytest.fixture
def orchestrator(spawner):
    """Orchestrator with 4 CPU units, 2 GPU units and a short grace period.

    Every unit is shut down after the test.
    """
    orch = Orchestrator(cpu_count=4, gpu_count=2, spawner=spawner, grace_period=0.3)
    yield orch
    orch.shutdown_all(grace_period=0.1)


@pytest.fixture
def app(spawner):
    """Create Flask application for testing with auth disabled.

    Returns:
        Flask app backed by a fake-spawner orchestrator with metrics.
    """
    orch = Orchestrator(
        cpu_count=4,
        gpu_count=1,
        spawner=spawner,
        grace_period=0.3,
        metrics=OrchestratorMetrics(),
    )
    test_app = create_app({"API_KEY": None}, orchestrator=orch)
    test_app.config["TESTING"] = True
    yield test_app
    orch.shutdown_all(grace_period=0.1)


@pytest.fixture
def client(app):
    """Create test client with auth disabled.

    Use this fixture for tests that don't require authentication.
    """
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def app_with_auth(spawner):
    """Create Flask application with authentication enabled.

    Returns:
        Flask app configured for testing with a known API key.
    """
    orch = Orchestrator(cpu_count=2, gpu_count=1, spawner=spawner, grace_period=0.3)
    test_app = create_app({"API_KEY": "test-api-key-12345"}, orchestrator=orch)
    test_app.config["TESTING"] = True
    yield test_app
    orch.shutdown_all(grace_period=0.1)


@pytest.fixture
def client_with_auth(app_with_auth):
    """Create test client with authentication enabled.

    The expected API key is 'test-api-key-12345'.
    """
    with app_with_auth.test_client() as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    """Return headers with valid API key for authenticated requests."""
    return {"X-API-Key": "test-api-key-12345"}
