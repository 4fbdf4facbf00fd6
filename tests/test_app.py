"""Core application tests for burn-harness.

Tests for health checks, system info and the unit control endpoints.
Common fixtures (client, app, client_with_auth, spawner) are provided by
conftest.py. Load tasks are fake processes, so nothing here burns CPU.
"""

import json

import psutil

from burn_harness.app import create_app
from burn_harness.services import Orchestrator


def test_app_info(client):
    """Test the root endpoint returns application info."""
    response = client.get('/')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert 'message' in data
    assert 'timestamp' in data
    assert 'version' in data
    assert 'environment' in data
    assert data['message'] == 'Burn Harness - CPU/GPU Load Control Panel'

def test_health_check(client):
    """Test the health check endpoint."""
    response = client.get('/health')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert data['status'] == 'healthy'
    assert 'timestamp' in data

def test_ready_check(client):
    """Test the readiness check endpoint."""
    response = client.get('/ready')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert data['status'] == 'ready'

def test_metrics_endpoint(client):
    """Test the metrics endpoint exposes HTTP and unit metrics."""
    client.post('/units/cpu/1/toggle')

    response = client.get('/metrics')
    assert response.status_code == 200

    body = response.data.decode('utf-8')
    assert 'flask_http_request' in body
    assert 'burn_harness_active_units{kind="cpu"} 1.0' in body
    assert 'burn_harness_active_units{kind="gpu"} 0.0' in body

def test_system_info_endpoint(client):
    """Test the system info endpoint reports cores and configured units."""
    response = client.get('/system/info')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert data['cpu_cores_logical'] >= 1
    assert 'cpu_cores_physical' in data
    assert data['cpu_units'] == 4
    assert data['gpu_units'] == 1
    assert 'memory_total_mb' in data

def test_invalid_endpoint(client):
    """Test that invalid endpoints return 404."""
    response = client.get('/nonexistent')
    assert response.status_code == 404

def test_app_creation(app):
    """Test that the app is created correctly."""
    assert app is not None
    assert app.config['TESTING'] is True
    assert isinstance(app.extensions['orchestrator'], Orchestrator)

def test_app_reads_unit_counts_from_config():
    """Test create_app builds its own orchestrator from config."""
    app = create_app({'API_KEY': None, 'CPU_COUNT': 3, 'GPU_COUNT': 2})
    orchestrator = app.extensions['orchestrator']

    assert orchestrator.unit_count('cpu') == 3
    assert orchestrator.unit_count('gpu') == 2

def test_app_defaults_to_four_cpu_units_when_core_count_unknown(monkeypatch):
    """Test CPU_COUNT falls back to 4 units when psutil cannot count cores."""
    monkeypatch.delenv('CPU_COUNT', raising=False)
    monkeypatch.setattr(psutil, 'cpu_count', lambda logical=True: None)

    app = create_app({'API_KEY': None})

    assert app.config['CPU_COUNT'] == 4
    assert app.extensions['orchestrator'].unit_count('cpu') == 4


# ---- Unit State Tests ----

def test_units_snapshot(client):
    """Test /units lists every unit and the active counts."""
    response = client.get('/units')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert len(data['units']['cpu']) == 4
    assert len(data['units']['gpu']) == 1
    assert data['active_counts'] == {'cpu': 0, 'gpu': 0}
    assert data['units']['cpu'][0] == {
        'kind': 'cpu',
        'id': 1,
        'state': 'idle',
        'active': False,
        'last_status': None,
    }

def test_units_by_kind(client):
    """Test /units/<kind> filters to one kind."""
    client.post('/units/gpu/1/toggle')

    response = client.get('/units/GPU')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert data['kind'] == 'gpu'
    assert data['active_count'] == 1
    assert [u['id'] for u in data['units']] == [1]

def test_units_by_unknown_kind(client):
    """Test /units/<kind> rejects unknown kinds."""
    response = client.get('/units/tpu')
    assert response.status_code == 404

    data = json.loads(response.data)
    assert 'error' in data

def test_single_unit(client):
    """Test /units/<kind>/<id> after a start reports a running task."""
    client.post('/units/cpu/2/start')

    response = client.get('/units/cpu/2')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert data['active'] is True
    assert data['state'] == 'running'
    assert data['last_status']['status'] == 'running'
    assert data['last_status']['config']['intensity'] == 5

def test_single_unit_out_of_range(client):
    """Test unit ids outside 1..count return 404."""
    assert client.get('/units/cpu/0').status_code == 404
    assert client.get('/units/cpu/5').status_code == 404
    assert client.get('/units/gpu/2').status_code == 404


# ---- Toggle / Start / Stop Tests ----

def test_toggle_on_and_off(client, spawner):
    """Test toggling a unit twice starts then stops its task."""
    response = client.post('/units/cpu/1/toggle')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert data['kind'] == 'cpu'
    assert data['id'] == 1
    assert data['active'] is True
    assert data['active_count'] == 1
    assert len(spawner.live('cpu1')) == 1

    response = client.post('/units/cpu/1/toggle')
    data = json.loads(response.data)
    assert data['active'] is False
    assert data['state'] == 'idle'
    assert data['active_count'] == 0
    assert spawner.live('cpu1') == []

def test_toggle_with_options(client, spawner):
    """Test toggle passes the JSON body to the load task."""
    payload = {'complexity': 25, 'duration_seconds': 60}
    response = client.post('/units/gpu/1/toggle',
                           data=json.dumps(payload),
                           content_type='application/json')
    assert response.status_code == 200

    task = spawner.latest('gpu1').args[0]
    assert task.config.complexity == 25
    assert task.config.duration_seconds == 60

def test_toggle_invalid_options(client):
    """Test toggle rejects invalid task options."""
    payload = {'intensity': 0}
    response = client.post('/units/cpu/1/toggle',
                           data=json.dumps(payload),
                           content_type='application/json')
    assert response.status_code == 400

    data = json.loads(response.data)
    assert 'error' in data

def test_toggle_non_object_body(client):
    """Test toggle rejects a JSON body that is not an object."""
    response = client.post('/units/cpu/1/toggle',
                           data=json.dumps([1, 2]),
                           content_type='application/json')
    assert response.status_code == 400

def test_toggle_spawn_failure(client, spawner):
    """Test a failed spawn leaves the unit inactive and says so."""
    spawner.behaviors['cpu3'] = 'fail_start'

    response = client.post('/units/cpu/3/toggle')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert data['active'] is False
    assert data['active_count'] == 0
    assert 'error' in data

def test_toggle_stopping_unit_started_elsewhere(app, client, monkeypatch):
    """Test toggling a unit another caller just started stops it without an error."""
    orchestrator = app.extensions['orchestrator']
    orchestrator.start('cpu', 2)
    # A reader that still believes the unit is idle
    monkeypatch.setattr(orchestrator, 'unit_active', lambda kind, unit_id: False)

    response = client.post('/units/cpu/2/toggle')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert data['active'] is False
    assert data['active_count'] == 0
    assert 'error' not in data

def test_start_is_idempotent(client, spawner):
    """Test starting a live unit does not spawn a second task."""
    client.post('/units/cpu/4/start')
    response = client.post('/units/cpu/4/start')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert data['active'] is True
    assert data['active_count'] == 1
    assert len(spawner.processes_for('cpu4')) == 1

def test_start_spawn_failure(client, spawner):
    """Test /start reports spawn failures as 503."""
    spawner.behaviors['gpu1'] = 'fail_start'

    response = client.post('/units/gpu/1/start')
    assert response.status_code == 503

    data = json.loads(response.data)
    assert 'error' in data

def test_stop_idle_unit(client):
    """Test stopping an idle unit is a no-op."""
    response = client.post('/units/gpu/1/stop')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert data['active'] is False
    assert data['active_count'] == 0

def test_stop_unknown_unit(client):
    """Test stopping a unit that does not exist returns 404."""
    response = client.post('/units/cpu/99/stop')
    assert response.status_code == 404

def test_shutdown_all(client, spawner):
    """Test /units/shutdown stops every live unit."""
    client.post('/units/cpu/1/toggle')
    client.post('/units/cpu/2/toggle')
    client.post('/units/gpu/1/toggle')

    response = client.post('/units/shutdown')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert data['status'] == 'stopped'
    assert data['count'] == 3
    assert data['stopped_units'] == ['cpu1', 'cpu2', 'gpu1']
    assert data['active_counts'] == {'cpu': 0, 'gpu': 0}
    assert spawner.live() == []


# ---- OpenAPI/Swagger Documentation Tests ----

def test_swagger_ui_endpoint(client):
    """Test that Swagger UI is accessible at /apidocs."""
    response = client.get('/apidocs')
    if response.status_code == 308:  # Redirect
        response = client.get('/apidocs/')
    assert response.status_code == 200
    assert b'swagger' in response.data.lower()


def test_openapi_spec_contains_all_endpoints(client):
    """Test that OpenAPI spec documents all API endpoints."""
    response = client.get('/apispec.json')
    assert response.status_code == 200

    data = json.loads(response.data)
    assert data['info']['title'] == 'BurnHarness API'

    paths = data.get('paths', {})
    expected_paths = [
        '/',
        '/health',
        '/ready',
        '/system/info',
        '/units',
        '/units/shutdown',
        '/units/{kind}',
        '/units/{kind}/{unit_id}',
        '/units/{kind}/{unit_id}/toggle',
        '/units/{kind}/{unit_id}/start',
        '/units/{kind}/{unit_id}/stop',
    ]

    for path in expected_paths:
        assert path in paths, f"Path {path} not found in OpenAPI spec"

    tags = [t['name'] for t in data.get('tags', [])]
    assert 'Units' in tags


# ---- API Key Authentication Tests ----
# Note: client_with_auth fixture is provided by conftest.py


def test_health_no_auth_required(client_with_auth):
    """Test /health endpoint works without API key."""
    response = client_with_auth.get('/health')
    assert response.status_code == 200


def test_metrics_no_auth_required(client_with_auth):
    """Test /metrics endpoint works without API key (Prometheus scraping)."""
    response = client_with_auth.get('/metrics')
    assert response.status_code == 200


def test_protected_endpoint_requires_auth(client_with_auth):
    """Test unit endpoints return 401 without API key."""
    response = client_with_auth.post('/units/cpu/1/toggle')
    assert response.status_code == 401

    data = json.loads(response.data)
    assert data['error'] == 'Unauthorized'


def test_invalid_api_key_rejected(client_with_auth):
    """Test a wrong API key returns 401."""
    response = client_with_auth.get('/units', headers={'X-API-Key': 'wrong-key'})
    assert response.status_code == 401


def test_valid_api_key_accepted(client_with_auth, auth_headers):
    """Test a valid API key allows access to unit endpoints."""
    response = client_with_auth.post('/units/cpu/2/toggle', headers=auth_headers)
    assert response.status_code == 200

    data = json.loads(response.data)
    assert data['active'] is True
