"""Application factory for BurnHarness.

This module bootstraps the Flask application by wiring together:
- Swagger/OpenAPI documentation
- Authentication middleware (API key)
- Prometheus metrics (HTTP requests and unit lifecycle)
- The orchestrator owning every CPU and GPU unit
- Route handlers
"""

import atexit
import logging
import os
import signal
from typing import Optional

import psutil
from flask import Flask
from prometheus_flask_exporter import PrometheusMetrics

from burn_harness.constants import (
    CPU_DEFAULT_INTENSITY,
    DEFAULT_CPU_COUNT,
    DEFAULT_GPU_COUNT,
    GPU_DEFAULT_COMPLEXITY,
    STOP_GRACE_PERIOD_SECONDS,
)
from burn_harness.control_panel_service import ControlPanelService
from burn_harness.middleware import init_auth
from burn_harness.services import Orchestrator, OrchestratorMetrics
from burn_harness.swagger_config import init_swagger
from burn_harness.workers import UnitKind

logger = logging.getLogger(__name__)


def create_app(config_override: dict | None = None, orchestrator: Optional[Orchestrator] = None):
    """Application factory for creating the Flask app.

    Args:
        config_override: Optional config dict for testing. Supports:
            - API_KEY: Enable authentication with this key
            - CPU_COUNT / GPU_COUNT: Number of units per kind
            - STOP_GRACE_SECONDS: Cooperative stop grace period
            - CPU_INTENSITY / GPU_COMPLEXITY: Default task options
        orchestrator: Optional pre-built orchestrator. When omitted, one is
            built from config with multiprocessing workers.

    Returns:
        Flask application instance
    """
    app = Flask(__name__)

    # Base config from environment
    app.config.from_mapping(
        ENVIRONMENT=os.getenv("ENVIRONMENT", "local"),
        APP_VERSION=os.getenv("APP_VERSION", "dev"),
        CPU_COUNT=int(os.getenv("CPU_COUNT") or psutil.cpu_count(logical=True) or DEFAULT_CPU_COUNT),
        GPU_COUNT=int(os.getenv("GPU_COUNT", DEFAULT_GPU_COUNT)),
        STOP_GRACE_SECONDS=float(os.getenv("STOP_GRACE_SECONDS", STOP_GRACE_PERIOD_SECONDS)),
        CPU_INTENSITY=int(os.getenv("CPU_INTENSITY", CPU_DEFAULT_INTENSITY)),
        GPU_COMPLEXITY=int(os.getenv("GPU_COMPLEXITY", GPU_DEFAULT_COMPLEXITY)),
    )

    # Apply config overrides (for testing)
    if config_override:
        app.config.update(config_override)

    # Setup logging
    logging.basicConfig(level=logging.INFO)
    app.logger.setLevel(logging.INFO)

    # API key check, then docs (which advertise it only when enabled)
    init_auth(app, config_override)
    init_swagger(app)

    # Initialize Prometheus metrics
    metrics = PrometheusMetrics(app)

    if orchestrator is None:
        orchestrator = Orchestrator(
            cpu_count=app.config["CPU_COUNT"],
            gpu_count=app.config["GPU_COUNT"],
            task_defaults={
                UnitKind.CPU: {"intensity": app.config["CPU_INTENSITY"]},
                UnitKind.GPU: {"complexity": app.config["GPU_COMPLEXITY"]},
            },
            grace_period=app.config["STOP_GRACE_SECONDS"],
            metrics=OrchestratorMetrics(),
        )
    app.extensions["orchestrator"] = orchestrator
    app.logger.info(
        "Orchestrator ready: cpu_units=%s gpu_units=%s grace_period=%ss",
        orchestrator.unit_count(UnitKind.CPU),
        orchestrator.unit_count(UnitKind.GPU),
        orchestrator.grace_period,
    )

    # Register service (wires all routes)
    ControlPanelService(app=app, orchestrator=orchestrator, metrics=metrics)

    return app


def install_shutdown_handlers(orchestrator: Orchestrator) -> None:
    """Stop every unit on normal exit and on SIGINT/SIGTERM.

    Must be called from the main thread.
    """
    atexit.register(orchestrator.shutdown_all)

    def _handle_signal(signum, frame):
        logger.info("Received %s, stopping all units", signal.Signals(signum).name)
        orchestrator.shutdown_all()
        raise SystemExit(128 + signum)

    for signum in (signal.SIGINT, signal.SIGTERM):
        signal.signal(signum, _handle_signal)


def main():
    """Run the control panel bridge on localhost."""
    app = create_app()
    install_shutdown_handlers(app.extensions["orchestrator"])
    port = int(os.getenv("PORT", 5000))
    app.run(host=os.getenv("HOST", "127.0.0.1"), port=port, debug=False)


# For local use: `python -m burn_harness.app`
if __name__ == "__main__":
    main()
