"""Swagger/OpenAPI setup for the BurnHarness control panel bridge."""

from flasgger import Swagger

from burn_harness.workers import UnitKind

API_TITLE = "BurnHarness API"

API_DESCRIPTION = (
    "Control panel bridge for synthetic CPU and GPU load. One load task runs "
    "per logical core or GPU device; toggle units and read back their state "
    "and the active count per kind."
)

API_KEY_SECURITY = {
    "ApiKeyAuth": {
        "type": "apiKey",
        "in": "header",
        "name": "X-API-Key",
        "description": "Required on every endpoint except probes, metrics and docs.",
    }
}


def _tags():
    kinds = " and ".join(kind.value.upper() for kind in UnitKind)
    return [
        {"name": "Health", "description": "Liveness and readiness"},
        {"name": "System", "description": "Host cores, memory and configured units"},
        {"name": "Units", "description": f"Per-unit {kinds} load toggles"},
    ]


def build_template(version, api_key_enabled):
    """OpenAPI template for the current configuration.

    The security section is only advertised when an API key is configured.
    """
    template = {
        "info": {
            "title": API_TITLE,
            "description": API_DESCRIPTION,
            "version": version,
        },
        "basePath": "/",
        "schemes": ["http"],
        "tags": _tags(),
    }
    if api_key_enabled:
        template["securityDefinitions"] = API_KEY_SECURITY
        template["security"] = [{"ApiKeyAuth": []}]
    return template


def init_swagger(app):
    """Serve the UI at /apidocs and the spec at /apispec.json.

    Call after init_auth so API_KEY is resolved.
    """
    app.config["SWAGGER"] = {
        "headers": [],
        "specs": [
            {
                "endpoint": "apispec",
                "route": "/apispec.json",
                "rule_filter": lambda rule: True,
                "model_filter": lambda tag: True,
            }
        ],
        "static_url_path": "/flasgger_static",
        "swagger_ui": True,
        "specs_route": "/apidocs",
    }
    template = build_template(
        app.config.get("APP_VERSION", "dev"),
        bool(app.config.get("API_KEY")),
    )
    return Swagger(app, template=template)
