"""ControlPanelService exposing the orchestrator over HTTP.

This module contains the ControlPanelService class which registers all API
routes a front-end needs to toggle CPU and GPU units and read back their
state.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict

import psutil
from flask import jsonify, request
from flasgger import swag_from

from burn_harness.openapi_specs import (
    APP_INFO_SPEC,
    HEALTH_CHECK_SPEC,
    READY_SPEC,
    SHUTDOWN_SPEC,
    SYSTEM_INFO_SPEC,
    UNIT_SPEC,
    UNIT_START_SPEC,
    UNIT_STOP_SPEC,
    UNIT_TOGGLE_SPEC,
    UNITS_BY_KIND_SPEC,
    UNITS_SPEC,
)
from burn_harness.services.orchestrator import (
    Orchestrator,
    SpawnError,
    UnknownUnitError,
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ControlPanelService:
    """
    Encapsulates all control panel endpoints.
    """

    def __init__(self, app, orchestrator: Orchestrator, metrics=None):
        """
        Initialize ControlPanelService with Flask app and orchestrator.

        Args:
            app: Flask application instance
            orchestrator: Orchestrator owning every load unit
            metrics: PrometheusMetrics instance (optional)
        """
        self.app = app
        self.orchestrator = orchestrator
        self.metrics = metrics
        self.logger = logging.getLogger(self.__class__.__name__)

        self._register_routes()

    def _register_routes(self):
        """Wire endpoints to Flask routes."""
        self.app.add_url_rule("/", "app_info", self.app_info, methods=["GET"])
        self.app.add_url_rule("/health", "health_check", self.health_check, methods=["GET"])
        self.app.add_url_rule("/ready", "ready_check", self.ready, methods=["GET"])
        self.app.add_url_rule("/system/info", "system_info", self.system_info, methods=["GET"])

        self.app.add_url_rule("/units", "units", self.units, methods=["GET"])
        self.app.add_url_rule("/units/shutdown", "units_shutdown", self.shutdown, methods=["POST"])
        self.app.add_url_rule("/units/<kind>", "units_by_kind", self.units_by_kind, methods=["GET"])
        self.app.add_url_rule("/units/<kind>/<int:unit_id>", "unit", self.unit, methods=["GET"])
        self.app.add_url_rule(
            "/units/<kind>/<int:unit_id>/toggle", "unit_toggle", self.unit_toggle, methods=["POST"]
        )
        self.app.add_url_rule(
            "/units/<kind>/<int:unit_id>/start", "unit_start", self.unit_start, methods=["POST"]
        )
        self.app.add_url_rule(
            "/units/<kind>/<int:unit_id>/stop", "unit_stop", self.unit_stop, methods=["POST"]
        )

    # ---- Endpoints ----

    @swag_from(APP_INFO_SPEC)
    def app_info(self):
        return jsonify({
            "message": "Burn Harness - CPU/GPU Load Control Panel",
            "timestamp": _now(),
            "version": os.getenv("APP_VERSION", "dev"),
            "environment": os.getenv("ENVIRONMENT", "local"),
        })

    @swag_from(HEALTH_CHECK_SPEC)
    def health_check(self):
        return jsonify({
            "status": "healthy",
            "timestamp": _now(),
        }), 200

    @swag_from(READY_SPEC)
    def ready(self):
        return jsonify({
            "status": "ready",
            "timestamp": _now(),
        })

    @swag_from(SYSTEM_INFO_SPEC)
    def system_info(self):
        """Return logical/physical core counts, configured units and memory."""
        try:
            memory = psutil.virtual_memory()
            memory_total_mb = memory.total // (1024 * 1024)
            memory_available_mb = memory.available // (1024 * 1024)
        except (OSError, RuntimeError):
            memory_total_mb = None
            memory_available_mb = None

        return jsonify({
            "cpu_cores_logical": psutil.cpu_count(logical=True),
            "cpu_cores_physical": psutil.cpu_count(logical=False),
            "cpu_units": self.orchestrator.unit_count("cpu"),
            "gpu_units": self.orchestrator.unit_count("gpu"),
            "memory_total_mb": memory_total_mb,
            "memory_available_mb": memory_available_mb,
            "timestamp": _now(),
        })

    @swag_from(UNITS_SPEC)
    def units(self):
        snapshot = self.orchestrator.snapshot()
        snapshot["timestamp"] = _now()
        return jsonify(snapshot)

    @swag_from(UNITS_BY_KIND_SPEC)
    def units_by_kind(self, kind):
        try:
            units = [
                self.orchestrator.describe(unit.kind, unit.unit_id)
                for unit in self.orchestrator.units(kind)
            ]
            active_count = self.orchestrator.active_count(kind)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 404

        return jsonify({
            "kind": kind.lower(),
            "active_count": active_count,
            "units": units,
            "timestamp": _now(),
        })

    @swag_from(UNIT_SPEC)
    def unit(self, kind, unit_id):
        try:
            return jsonify(self.orchestrator.describe(kind, unit_id))
        except UnknownUnitError as exc:
            return jsonify({"error": str(exc)}), 404

    @swag_from(UNIT_TOGGLE_SPEC)
    def unit_toggle(self, kind, unit_id):
        """Toggle a unit. Spawn failures come back as active=false."""
        options = self._task_options()
        if options is None:
            return jsonify({"error": "request body must be a JSON object"}), 400

        try:
            outcome = self.orchestrator.toggle_result(kind, unit_id, options)
        except UnknownUnitError as exc:
            return jsonify({"error": str(exc)}), 404
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        result = self._unit_result(kind, unit_id, outcome.active)
        if outcome.error:
            result["error"] = outcome.error
        return jsonify(result)

    @swag_from(UNIT_START_SPEC)
    def unit_start(self, kind, unit_id):
        options = self._task_options()
        if options is None:
            return jsonify({"error": "request body must be a JSON object"}), 400

        try:
            active = self.orchestrator.start(kind, unit_id, options)
        except UnknownUnitError as exc:
            return jsonify({"error": str(exc)}), 404
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        except SpawnError as exc:
            return jsonify({"error": str(exc)}), 503

        return jsonify(self._unit_result(kind, unit_id, active))

    @swag_from(UNIT_STOP_SPEC)
    def unit_stop(self, kind, unit_id):
        try:
            active = self.orchestrator.stop(kind, unit_id)
        except UnknownUnitError as exc:
            return jsonify({"error": str(exc)}), 404

        return jsonify(self._unit_result(kind, unit_id, active))

    @swag_from(SHUTDOWN_SPEC)
    def shutdown(self):
        """Stop every live unit."""
        stopped = self.orchestrator.shutdown_all()
        return jsonify({
            "status": "stopped",
            "stopped_units": [str(unit) for unit in stopped],
            "count": len(stopped),
            "active_counts": self.orchestrator.snapshot()["active_counts"],
            "timestamp": _now(),
        })

    # ---- Helpers ----

    @staticmethod
    def _task_options():
        """JSON body as task options; None if it is not an object."""
        data = request.get_json(silent=True)
        if data is None:
            return {}
        if not isinstance(data, dict):
            return None
        return data

    def _unit_result(self, kind, unit_id, active: bool) -> Dict[str, Any]:
        unit = self.orchestrator.unit(kind, unit_id)
        return {
            "kind": unit.kind.value,
            "id": unit.unit_id,
            "active": active,
            "state": self.orchestrator.unit_state(unit.kind, unit.unit_id).value,
            "active_count": self.orchestrator.active_count(unit.kind),
            "timestamp": _now(),
        }
