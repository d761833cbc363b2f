"""
Tests for the code generation web API.
"""

import os

import pytest

from codegen_bridge.config import BridgeConfig, create_manager
from web_interface.app import create_app


FIXTURES = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'fixtures')

with open(os.path.join(FIXTURES, 'simple_workspace.xml'), 'r', encoding='utf-8') as _f:
    WORKSPACE = _f.read()


@pytest.fixture
def manager():
    config = BridgeConfig(engine='python', resource_dir=FIXTURES, generation_timeout=5.0)
    manager = create_manager(config)
    yield manager
    manager.on_pause()


@pytest.fixture
def client(manager):
    config = BridgeConfig(engine='python', resource_dir=FIXTURES)
    app = create_app(config, manager)
    app.config['TESTING'] = True
    return app.test_client()


def lua_payload(**overrides):
    payload = {
        'workspace': WORKSPACE,
        'language': 'lua',
        'block_definitions': ['default/test_blocks.json'],
        'generator_scripts': ['generators/lua_generator.py'],
        'timeout': 10,
    }
    payload.update(overrides)
    return payload


class TestCodegenApi:
    """Test cases for the /api/codegen routes."""

    def test_health(self, client):
        """Test the health check reports an active manager."""
        data = client.get('/api/health').get_json()
        assert data == {'success': True, 'active': True}

    def test_languages(self, client):
        """Test listing built-in languages."""
        data = client.get('/api/codegen/languages').get_json()
        languages = {entry['name']: entry for entry in data['languages']}
        assert languages['dart']['generator_namespace'] == 'Blockly.Dart'
        assert languages['javascript']['required_scripts'] == []

    def test_status(self, client):
        """Test the status report."""
        data = client.get('/api/codegen/status').get_json()
        assert data['active'] is True
        assert data['pending'] == 0
        assert data['session_state'] == 'ready'

    def test_generate(self, client):
        """Test generating Lua for the fixture workspace."""
        response = client.post('/api/codegen/generate', json=lua_payload())
        assert response.status_code == 200
        assert response.get_json() == {'success': True, 'language': 'lua', 'code': "local _ = 'test'"}

    def test_missing_generator_script(self, client):
        """Test that a load failure names the resource."""
        response = client.post('/api/codegen/generate',
                               json=lua_payload(generator_scripts=['generators/missing.py']))
        assert response.status_code == 422
        assert response.get_json()['resource'] == 'generators/missing.py'

    @pytest.mark.parametrize('overrides', [
        {'workspace': ''},
        {'language': 'cobol'},
        {'generator_scripts': 'generators/lua_generator.py'},
        {'timeout': 'soon'},
    ])
    def test_bad_requests(self, client, overrides):
        """Test request validation."""
        response = client.post('/api/codegen/generate', json=lua_payload(**overrides))
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_generation_times_out_while_paused(self, client, manager):
        """Test that a request queued on a paused manager times out."""
        manager.on_pause()
        response = client.post('/api/codegen/generate', json=lua_payload(timeout=0.1))

        assert response.status_code == 504
        status = client.get('/api/codegen/status').get_json()
        assert status['active'] is False
        assert status['pending'] == 1

    def test_unreadable_resource_id(self, client):
        """Test that a resource id the filesystem rejects fails only that request."""
        response = client.post('/api/codegen/generate',
                               json=lua_payload(block_definitions=['default/test\u0000blocks.json']))
        assert response.status_code == 422

        response = client.post('/api/codegen/generate', json=lua_payload())
        assert response.status_code == 200
