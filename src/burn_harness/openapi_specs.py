# src/burn_harness/openapi_specs.py
"""
OpenAPI/Swagger specifications for BurnHarness API endpoints.

Each spec is a dictionary that can be used with flasgger's swag_from decorator.
"""

# ---- Shared fragments ----

_ERROR_SCHEMA = {
    "type": "object",
    "properties": {
        "error": {"type": "string"},
    },
}

_KIND_PARAM = {
    "name": "kind",
    "in": "path",
    "type": "string",
    "enum": ["cpu", "gpu"],
    "required": True,
    "description": "Unit kind",
}

_UNIT_ID_PARAM = {
    "name": "unit_id",
    "in": "path",
    "type": "integer",
    "minimum": 1,
    "required": True,
    "description": "Unit number, starting at 1",
}

_UNIT_SCHEMA = {
    "type": "object",
    "properties": {
        "kind": {"type": "string", "example": "cpu"},
        "id": {"type": "integer", "example": 1},
        "state": {
            "type": "string",
            "enum": ["idle", "starting", "running", "stopping"],
            "example": "running",
        },
        "active": {"type": "boolean", "example": True},
        "last_status": {
            "type": "object",
            "description": "Outcome of the current or most recent task (null if never started)",
            "properties": {
                "unit": {"type": "string", "example": "cpu1"},
                "status": {
                    "type": "string",
                    "enum": ["running", "completed", "stopped", "terminated", "failed"],
                },
                "started_at": {"type": "string", "format": "date-time"},
                "finished_at": {"type": "string", "format": "date-time"},
                "exitcode": {"type": "integer"},
                "error": {"type": "string"},
                "config": {"type": "object"},
            },
        },
    },
}

_TASK_OPTIONS_PARAM = {
    "name": "body",
    "in": "body",
    "required": False,
    "schema": {
        "type": "object",
        "properties": {
            "intensity": {
                "type": "integer",
                "minimum": 1,
                "maximum": 10,
                "default": 5,
                "description": "CPU units only. Computational intensity (1-10).",
            },
            "complexity": {
                "type": "integer",
                "minimum": 1,
                "maximum": 100,
                "default": 100,
                "description": "GPU units only. Render complexity in percent.",
            },
            "duration_seconds": {
                "type": "integer",
                "minimum": 1,
                "maximum": 86400,
                "description": "Stop on its own after this many seconds. Omit to run until stopped.",
            },
        },
        "example": {"complexity": 50},
    },
}

_UNIT_RESULT_SCHEMA = {
    "type": "object",
    "properties": {
        "kind": {"type": "string", "example": "gpu"},
        "id": {"type": "integer", "example": 1},
        "active": {"type": "boolean"},
        "state": {"type": "string", "example": "running"},
        "active_count": {"type": "integer", "example": 1},
        "timestamp": {"type": "string", "format": "date-time"},
    },
}

# ---- Health Endpoints ----

APP_INFO_SPEC = {
    "tags": ["Health"],
    "summary": "Application Info",
    "description": "Returns Burn Harness application info and version details.",
    "responses": {
        200: {
            "description": "Application info",
            "schema": {
                "type": "object",
                "properties": {
                    "message": {
                        "type": "string",
                        "example": "Burn Harness - CPU/GPU Load Control Panel",
                    },
                    "timestamp": {"type": "string", "format": "date-time"},
                    "version": {"type": "string", "example": "dev"},
                    "environment": {"type": "string", "example": "local"},
                },
            },
        },
    },
}

HEALTH_CHECK_SPEC = {
    "tags": ["Health"],
    "summary": "Health Check",
    "description": "Returns health status. Stays responsive while every unit is loaded.",
    "responses": {
        200: {
            "description": "Service is healthy",
            "schema": {
                "type": "object",
                "properties": {
                    "status": {"type": "string", "example": "healthy"},
                    "timestamp": {"type": "string", "format": "date-time"},
                },
            },
        },
    },
}

READY_SPEC = {
    "tags": ["Health"],
    "summary": "Readiness Check",
    "description": "Returns readiness status for front-ends waiting on the control panel.",
    "responses": {
        200: {
            "description": "Service is ready to accept toggles",
            "schema": {
                "type": "object",
                "properties": {
                    "status": {"type": "string", "example": "ready"},
                    "timestamp": {"type": "string", "format": "date-time"},
                },
            },
        },
    },
}

SYSTEM_INFO_SPEC = {
    "tags": ["System"],
    "summary": "System Information",
    "description": "Returns the logical CPU count, configured units and memory totals.",
    "responses": {
        200: {
            "description": "System information",
            "schema": {
                "type": "object",
                "properties": {
                    "cpu_cores_logical": {"type": "integer", "example": 8},
                    "cpu_cores_physical": {"type": "integer", "example": 4},
                    "cpu_units": {"type": "integer", "example": 8},
                    "gpu_units": {"type": "integer", "example": 1},
                    "memory_total_mb": {"type": "integer", "example": 16384},
                    "memory_available_mb": {"type": "integer", "example": 8192},
                    "timestamp": {"type": "string", "format": "date-time"},
                },
            },
        },
    },
}

# ---- Unit Endpoints ----

UNITS_SPEC = {
    "tags": ["Units"],
    "summary": "All Units",
    "description": "Returns every CPU and GPU unit with its state and the active counts per kind.",
    "responses": {
        200: {
            "description": "Unit snapshot",
            "schema": {
                "type": "object",
                "properties": {
                    "units": {
                        "type": "object",
                        "properties": {
                            "cpu": {"type": "array", "items": _UNIT_SCHEMA},
                            "gpu": {"type": "array", "items": _UNIT_SCHEMA},
                        },
                    },
                    "active_counts": {
                        "type": "object",
                        "properties": {
                            "cpu": {"type": "integer", "example": 2},
                            "gpu": {"type": "integer", "example": 0},
                        },
                    },
                    "timestamp": {"type": "string", "format": "date-time"},
                },
            },
        },
    },
}

UNITS_BY_KIND_SPEC = {
    "tags": ["Units"],
    "summary": "Units of One Kind",
    "description": "Returns the units of one kind and how many of them are active.",
    "parameters": [_KIND_PARAM],
    "responses": {
        200: {
            "description": "Units of the requested kind",
            "schema": {
                "type": "object",
                "properties": {
                    "kind": {"type": "string", "example": "cpu"},
                    "active_count": {"type": "integer", "example": 2},
                    "units": {"type": "array", "items": _UNIT_SCHEMA},
                    "timestamp": {"type": "string", "format": "date-time"},
                },
            },
        },
        404: {"description": "Unknown unit kind", "schema": _ERROR_SCHEMA},
    },
}

UNIT_SPEC = {
    "tags": ["Units"],
    "summary": "One Unit",
    "description": "Returns the state of one unit and the outcome of its latest task.",
    "parameters": [_KIND_PARAM, _UNIT_ID_PARAM],
    "responses": {
        200: {"description": "Unit state", "schema": _UNIT_SCHEMA},
        404: {"description": "Unknown unit", "schema": _ERROR_SCHEMA},
    },
}

UNIT_TOGGLE_SPEC = {
    "tags": ["Units"],
    "summary": "Toggle Unit",
    "description": "Starts the load task of an idle unit or stops a live one. "
    "Stopping waits until the task has actually exited; GPU tasks are stopped "
    "cooperatively and escalated after the grace period. A failed start is "
    "reported as active=false with an error message.",
    "parameters": [_KIND_PARAM, _UNIT_ID_PARAM, _TASK_OPTIONS_PARAM],
    "responses": {
        200: {"description": "New unit state", "schema": _UNIT_RESULT_SCHEMA},
        400: {"description": "Invalid task options", "schema": _ERROR_SCHEMA},
        404: {"description": "Unknown unit", "schema": _ERROR_SCHEMA},
    },
}

UNIT_START_SPEC = {
    "tags": ["Units"],
    "summary": "Start Unit",
    "description": "Starts the load task of a unit. Starting a live unit is a no-op.",
    "parameters": [_KIND_PARAM, _UNIT_ID_PARAM, _TASK_OPTIONS_PARAM],
    "responses": {
        200: {"description": "Unit is active", "schema": _UNIT_RESULT_SCHEMA},
        400: {"description": "Invalid task options", "schema": _ERROR_SCHEMA},
        404: {"description": "Unknown unit", "schema": _ERROR_SCHEMA},
        503: {"description": "Load task could not be spawned", "schema": _ERROR_SCHEMA},
    },
}

UNIT_STOP_SPEC = {
    "tags": ["Units"],
    "summary": "Stop Unit",
    "description": "Stops the load task of a unit and waits for it to exit. "
    "Stopping an idle unit is a no-op.",
    "parameters": [_KIND_PARAM, _UNIT_ID_PARAM],
    "responses": {
        200: {"description": "Unit state after the stop", "schema": _UNIT_RESULT_SCHEMA},
        404: {"description": "Unknown unit", "schema": _ERROR_SCHEMA},
    },
}

SHUTDOWN_SPEC = {
    "tags": ["Units"],
    "summary": "Stop All Units",
    "description": "Stops every live unit, waiting up to the grace period for GPU tasks "
    "before terminating them.",
    "responses": {
        200: {
            "description": "All units idle",
            "schema": {
                "type": "object",
                "properties": {
                    "status": {"type": "string", "example": "stopped"},
                    "stopped_units": {
                        "type": "array",
                        "items": {"type": "string"},
                        "example": ["cpu1", "gpu1"],
                    },
                    "count": {"type": "integer", "example": 2},
                    "active_counts": {"type": "object"},
                    "timestamp": {"type": "string", "format": "date-time"},
                },
            },
        },
    },
}
