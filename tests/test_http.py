import json
import urllib.error
import urllib.request

import pytest

from conftest import FakeDetector, FakeRenderer, FakeSource
from live_detector.config import LoopConfig
from live_detector.controller import DetectionLoopController
from live_detector.events import SessionEvents
from live_detector.http_server import SharedState, start_http_server
from live_detector.lifecycle import CameraLifecycle
from live_detector.logging_utils import log, set_level
from live_detector.overlay import OverlayRenderer
from live_detector.summary import SummaryTracker


class Source(FakeSource):
    def latest_frame(self):
        return None


@pytest.fixture
def server(cfg):
    source = Source()
    renderer = OverlayRenderer(cfg.frame_size)
    tracker = SummaryTracker()
    controller = DetectionLoopController(source, FakeDetector(), renderer, cfg, on_result=tracker)
    session = SessionEvents()
    lifecycle = CameraLifecycle(controller, session)
    shared = SharedState(lifecycle, source, renderer, tracker, session)
    srv = start_http_server('127.0.0.1', 0, shared)
    base = f'http://127.0.0.1:{srv.server_address[1]}'
    yield base, lifecycle, source
    lifecycle.close()
    srv.shutdown()
    srv.server_close()


def request(url, method='GET', body=None):
    data = json.dumps(body).encode() if body is not None else (b'' if method != 'GET' else None)
    req = urllib.request.Request(url, data=data, method=method, headers={'Content-Type': 'application/json'})
    with urllib.request.urlopen(req, timeout=5) as resp:
        return resp.status, resp.read()


def test_status_and_control(server):
    base, lifecycle, source = server
    status, body = request(base + '/status')
    assert status == 200
    assert json.loads(body)['status'] == 'idle'

    status, body = request(base + '/control/start', 'POST')
    assert json.loads(body)['status'] == 'running'
    lifecycle.controller.tick()
    _, body = request(base + '/detections')
    assert json.loads(body)['detections'][0]['label'] == 'cat'
    _, body = request(base + '/summary')
    assert json.loads(body)['total_frames'] == 1

    _, body = request(base + '/session/suspend', 'POST')
    assert json.loads(body)['status'] == 'idle'
    _, body = request(base + '/session/resume', 'POST')
    assert json.loads(body)['status'] == 'running'

    _, body = request(base + '/control/toggle', 'POST')
    assert json.loads(body)['status'] == 'idle'
    assert source.release_calls == 2


def test_snapshot_without_frame_is_503(server):
    base, _, _ = server
    with pytest.raises(urllib.error.HTTPError) as exc:
        request(base + '/snapshot')
    assert exc.value.code == 503


def test_config_update(server, cfg):
    base, _, _ = server
    status, body = request(base + '/config', 'PUT', {'interval_ms': 200, 'quality': 0.5})
    assert status == 200
    assert json.loads(body)['updated'] == {'interval_ms': 200, 'quality': 0.5}
    assert cfg.interval_ms == 200
    with pytest.raises(urllib.error.HTTPError) as exc:
        request(base + '/config', 'PUT', {'target_id': 'other'})
    assert exc.value.code == 400


def put_error(base, body):
    with pytest.raises(urllib.error.HTTPError) as exc:
        request(base + '/config', 'PUT', body)
    return exc.value.code, json.loads(exc.value.read())


@pytest.mark.parametrize('body', [
    {'max_failures': 0},
    {'quality': 7.5},
    {'interval_ms': -5},
    {'threshold': 300},
    {'compress': 'nope'},
    {'max_failures': True},
    {'interval_ms': 'fast'},
    {'min_area': 60000},
])
def test_config_update_rejects_bad_values(server, cfg, body):
    base, _, _ = server
    before = LoopConfig(**vars(cfg))
    code, payload = put_error(base, body)
    assert code == 400
    assert 'error' in payload
    assert cfg == before


def test_config_update_is_all_or_nothing(server, cfg):
    base, _, _ = server
    code, _ = put_error(base, {'interval_ms': 250, 'quality': 2.0})
    assert code == 400
    assert cfg.interval_ms == 60_000


def test_config_update_parses_boolean_strings(server, cfg):
    base, _, _ = server
    cfg.compress = True
    status, body = request(base + '/config', 'PUT', {'compress': 'false'})
    assert status == 200
    assert cfg.compress is False
    request(base + '/config', 'PUT', {'compress': 'TRUE'})
    assert cfg.compress is True


def test_config_update_applies_log_level(server, cfg, capsys):
    base, _, _ = server
    try:
        status, _ = request(base + '/config', 'PUT', {'log_level': 'ERROR'})
        assert status == 200
        assert cfg.log_level == 'error'
        capsys.readouterr()
        log('routine message', 'info')
        log('broken camera', 'error')
        out = capsys.readouterr().out
        assert 'routine message' not in out
        assert 'broken camera' in out
        code, _ = put_error(base, {'log_level': 'loud'})
        assert code == 400
        assert cfg.log_level == 'error'
    finally:
        set_level('info')
