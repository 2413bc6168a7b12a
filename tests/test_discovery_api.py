"""API endpoint tests for the discovery routes."""

import json

import pytest

from blewatch.app import create_app
from blewatch.bluetooth import AdvertisementSourceError, DiscoveryTracker

from conftest import ADDR_A, ADDR_B, make_sighting


class BrokenSource:
    def start(self, on_sighting, on_stopped):
        raise AdvertisementSourceError("No Bluetooth adapter found")

    def stop(self):
        pass


class PairingSource:
    def __init__(self, result=True):
        self.result = result

    def start(self, on_sighting, on_stopped):
        pass

    def stop(self):
        pass

    def pair(self, address):
        return self.result


@pytest.fixture
def app(tracker):
    """Create Flask application for testing."""
    app = create_app(tracker=tracker)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def populated(tracker):
    """Listening tracker with two devices."""
    tracker.start()
    tracker.on_sighting(make_sighting(ADDR_A, 'Alpha', rssi=-70, t=0))
    tracker.on_sighting(make_sighting(ADDR_B, 'Bravo', rssi=-40, t=1))
    return tracker


class TestLifecycleEndpoints:
    """Tests for start/stop endpoints."""

    def test_start(self, client, tracker):
        response = client.post('/api/discovery/start')

        assert response.status_code == 200
        assert response.get_json()['status'] == 'started'
        assert tracker.is_listening

    def test_start_twice(self, client):
        client.post('/api/discovery/start')
        response = client.post('/api/discovery/start')

        assert response.get_json()['status'] == 'already_listening'

    def test_start_source_failure(self, clock):
        with DiscoveryTracker(source=BrokenSource(), sweep_interval=None, clock=clock) as tracker:
            client = create_app(tracker=tracker).test_client()

            response = client.post('/api/discovery/start')

            assert response.status_code == 503
            data = response.get_json()
            assert data['status'] == 'error'
            assert 'adapter' in data['error']

    def test_stop_clears_devices(self, client, populated):
        response = client.post('/api/discovery/stop')

        assert response.get_json()['status'] == 'stopped'
        assert not populated.is_listening
        assert populated.current_devices() == ()

    def test_status(self, client, populated):
        data = client.get('/api/discovery/status').get_json()

        assert data['listening'] is True
        assert data['heartbeat_timeout'] == 5.0
        assert data['device_count'] == 2


class TestHeartbeatEndpoint:
    """Tests for heartbeat configuration."""

    def test_set_heartbeat(self, client, tracker):
        response = client.post('/api/discovery/heartbeat', json={'timeout': 12})

        assert response.status_code == 200
        assert response.get_json()['heartbeat_timeout'] == 12.0
        assert tracker.heartbeat_timeout == 12.0

    @pytest.mark.parametrize('body', [{'timeout': 0}, {'timeout': -3}, {'timeout': 'soon'}, {}])
    def test_invalid_heartbeat(self, client, tracker, body):
        response = client.post('/api/discovery/heartbeat', json=body)

        assert response.status_code == 400
        assert tracker.heartbeat_timeout == 5.0


class TestDeviceEndpoints:
    """Tests for device listing and lookup."""

    def test_list_devices_default_order(self, client, populated):
        data = client.get('/api/discovery/devices').get_json()

        assert data['count'] == 2
        # Most recently seen first
        assert [d['name'] for d in data['devices']] == ['Bravo', 'Alpha']

    def test_list_devices_sorted_by_rssi(self, client, populated):
        data = client.get('/api/discovery/devices?sort=rssi&order=asc').get_json()

        assert [d['rssi'] for d in data['devices']] == [-70, -40]

    def test_list_devices_sorted_by_name(self, client, populated):
        data = client.get('/api/discovery/devices?sort=name&order=asc').get_json()

        assert [d['name'] for d in data['devices']] == ['Alpha', 'Bravo']

    def test_list_devices_empty(self, client):
        data = client.get('/api/discovery/devices').get_json()

        assert data == {'count': 0, 'devices': []}

    def test_get_device(self, client, populated):
        response = client.get('/api/discovery/devices/AA:BB:CC:DD:EE:01')

        assert response.status_code == 200
        data = response.get_json()
        assert data['address'] == 'AA:BB:CC:DD:EE:01'
        assert data['name'] == 'Alpha'

    def test_get_device_lower_case_address(self, client, populated):
        response = client.get('/api/discovery/devices/aa:bb:cc:dd:ee:02')

        assert response.get_json()['name'] == 'Bravo'

    def test_get_unknown_device(self, client, populated):
        response = client.get('/api/discovery/devices/00:11:22:33:44:55')

        assert response.status_code == 404

    def test_get_device_bad_address(self, client, populated):
        response = client.get('/api/discovery/devices/not-a-mac')

        assert response.status_code == 400


class TestPairEndpoint:
    """Tests for pairing."""

    def test_pair_when_stopped(self, client):
        response = client.post('/api/discovery/devices/AA:BB:CC:DD:EE:01/pair')

        assert response.status_code == 409

    def test_pair_without_pairing_support(self, client, tracker):
        tracker.start()

        response = client.post('/api/discovery/devices/AA:BB:CC:DD:EE:01/pair')

        assert response.status_code == 409

    @pytest.mark.parametrize('result,status', [(True, 'paired'), (False, 'failed')])
    def test_pair(self, clock, result, status):
        with DiscoveryTracker(source=PairingSource(result), sweep_interval=None, clock=clock) as tracker:
            tracker.start()
            client = create_app(tracker=tracker).test_client()

            response = client.post('/api/discovery/devices/AA:BB:CC:DD:EE:01/pair')

            assert response.status_code == 200
            assert response.get_json()['status'] == status

    def test_pair_bad_address(self, client, tracker):
        tracker.start()

        response = client.post('/api/discovery/devices/zz/pair')

        assert response.status_code == 400


class TestSweepEndpoint:
    """Tests for on-demand sweeps."""

    def test_sweep_with_override(self, client, populated, clock):
        clock.advance(2)

        data = client.post('/api/discovery/sweep', json={'timeout': 1.5}).get_json()

        assert data['evicted_count'] == 1
        assert data['evicted'][0]['address'] == 'AA:BB:CC:DD:EE:01'
        assert populated.device_count == 1

    def test_sweep_default_timeout(self, client, populated):
        data = client.post('/api/discovery/sweep').get_json()

        assert data['evicted_count'] == 0

    def test_sweep_bad_timeout(self, client, populated):
        response = client.post('/api/discovery/sweep', json={'timeout': 'later'})

        assert response.status_code == 400


class TestStreamEndpoint:
    """Tests for the SSE event stream."""

    def test_stream_delivers_events(self, client, tracker):
        response = client.get('/api/discovery/stream')

        assert response.status_code == 200
        assert response.mimetype == 'text/event-stream'

        tracker.start()
        chunk = next(response.iter_encoded()).decode()

        assert chunk.startswith('event: started\n')
        payload = json.loads(chunk.split('data: ', 1)[1])
        assert payload == {'type': 'started', 'device': None}

        response.close()
