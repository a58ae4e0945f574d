"""HTTP control surface for the live detection loop.

Endpoints:
  GET  /health                  -> uptime ok
  GET  /status                  -> loop state (status, failures, error)
  GET  /config                  -> current config JSON
  PUT  /config                  -> update subset of loop fields (JSON body)
  GET  /snapshot                -> latest captured JPEG frame
  GET  /overlay                 -> latest overlay PNG (transparent)
  GET  /detections              -> detections from the latest tick
  GET  /summary                 -> per-label summary of detections so far
  POST /control/start|stop|toggle
  POST /session/suspend|resume  -> raise session lifecycle signals
"""

from __future__ import annotations
import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional
from urllib.parse import urlparse

from .config import MUTABLE_FIELDS, coerce_value, config_to_dict, save_config
from .logging_utils import log, set_level


class SharedState:
    def __init__(self, lifecycle, source, renderer, tracker=None, session=None, detector=None):
        self.lock = threading.Lock()
        self.start_time = time.time()
        self.lifecycle = lifecycle
        self.source = source
        self.renderer = renderer
        self.tracker = tracker
        self.session = session
        self.detector = detector
        self.cfg: Optional[Any] = lifecycle.controller.cfg
        self.cfg_path: Optional[str] = None


class DetectorHTTPHandler(BaseHTTPRequestHandler):
    protocol_version = 'HTTP/1.1'
    shared: SharedState = None  # type: ignore

    # ---------- helpers ----------
    def log_message(self, format, *args):  # silence
        return

    def _send_bytes(self, code: int, body: bytes, content_type: str = 'text/plain'):
        self.send_response(code)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(body)))
        self.send_header('Cache-Control', 'no-store')
        self.send_header('Access-Control-Allow-Origin', '*')
        self.end_headers()
        try:
            self.wfile.write(body)
        except BrokenPipeError:
            pass

    def _send_json(self, obj, code: int = 200):
        self._send_bytes(code, json.dumps(obj).encode(), 'application/json')

    def _surface(self) -> str:
        return self.shared.cfg.surface_id

    # ---------- verbs ----------
    def do_OPTIONS(self):  # CORS
        self.send_response(204)
        self.send_header('Access-Control-Allow-Origin', '*')
        self.send_header('Access-Control-Allow-Methods', 'GET,PUT,POST,OPTIONS')
        self.send_header('Access-Control-Allow-Headers', 'Content-Type')
        self.send_header('Content-Length', '0')
        self.end_headers()

    def do_GET(self):  # noqa: N802
        path = urlparse(self.path).path
        try:
            if path == '/health':
                self._send_json({'ok': True, 'uptime': time.time() - self.shared.start_time}); return
            if path == '/status':
                self._send_json(self.shared.lifecycle.status()); return
            if path == '/config':
                self._send_json(config_to_dict(self.shared.cfg)); return
            if path == '/snapshot':
                data = self.shared.source.latest_frame()
                if not data:
                    self._send_bytes(503, b'No frame yet'); return
                self._send_bytes(200, data, 'image/jpeg'); return
            if path == '/overlay':
                data = self.shared.renderer.latest_png(self._surface())
                if not data:
                    self._send_bytes(204, b''); return
                self._send_bytes(200, data, 'image/png'); return
            if path == '/detections':
                dets = self.shared.renderer.latest_detections(self._surface())
                self._send_json({'detections': [d.to_dict() for d in dets]}); return
            if path == '/summary':
                if self.shared.tracker is None:
                    self._send_json({'error': 'summary disabled'}, 404); return
                self._send_json(self.shared.tracker.to_dict()); return
            self._send_bytes(404, b'not found')
        except Exception as e:  # pragma: no cover
            log(f'HTTP GET error {path}: {e}', 'error')
            try:
                self._send_bytes(500, b'Internal Error')
            except OSError:
                pass

    def do_PUT(self):  # config update
        if urlparse(self.path).path != '/config':
            self._send_bytes(404, b'not found'); return
        length = int(self.headers.get('Content-Length', '0') or 0)
        raw = self.rfile.read(length) if length > 0 else b'{}'
        try:
            data = json.loads(raw.decode() or '{}')
        except json.JSONDecodeError:
            self._send_json({'error': 'invalid json'}, 400); return
        if not isinstance(data, dict):
            self._send_json({'error': 'expected a JSON object'}, 400); return
        rejected = sorted(k for k in data if k not in MUTABLE_FIELDS)
        if rejected:
            self._send_json({'error': f'fields not editable: {", ".join(rejected)}'}, 400); return
        with self.shared.lock:
            cfg = self.shared.cfg
            updated = {}
            for k, v in data.items():
                try:
                    updated[k] = coerce_value(k, v)
                except (TypeError, ValueError) as e:
                    self._send_json({'error': f'invalid value for {k}: {e}'}, 400); return
            if updated.get('max_area', cfg.max_area) < updated.get('min_area', cfg.min_area):
                self._send_json({'error': 'max_area must be >= min_area'}, 400); return
            for k, v in updated.items():
                setattr(cfg, k, v)
            if 'log_level' in updated:
                set_level(cfg.log_level)
            if self.shared.detector is not None and hasattr(self.shared.detector, 'configure'):
                self.shared.detector.configure(cfg)
            if self.shared.cfg_path:
                try:
                    save_config(cfg, self.shared.cfg_path)
                except Exception as e:
                    self._send_json({'error': f'failed to save: {e}'}, 500); return
        self._send_json({'updated': updated})

    def do_POST(self):  # control & session signals
        path = urlparse(self.path).path
        lifecycle = self.shared.lifecycle
        if path == '/control/start':
            lifecycle.start()
            self._send_json(lifecycle.status()); return
        if path == '/control/stop':
            lifecycle.stop()
            self._send_json(lifecycle.status()); return
        if path == '/control/toggle':
            lifecycle.toggle()
            self._send_json(lifecycle.status()); return
        if path in ('/session/suspend', '/session/resume'):
            if self.shared.session is None:
                self._send_json({'error': 'no session hub'}, 404); return
            if path == '/session/suspend':
                self.shared.session.suspend()
            else:
                self.shared.session.resume()
            self._send_json(lifecycle.status()); return
        self._send_bytes(404, b'not found')


def start_http_server(host: str, port: int, shared: SharedState) -> Optional[ThreadingHTTPServer]:
    try:
        DetectorHTTPHandler.shared = shared
        server = ThreadingHTTPServer((host, port), DetectorHTTPHandler)
    except OSError as e:
        log(f'HTTP bind failed: {e}', 'error'); return None
    log(f'HTTP on http://{host}:{server.server_address[1]} (endpoints: /health /status /config /snapshot /overlay /detections /summary /control/start|stop|toggle /session/suspend|resume)')
    threading.Thread(target=server.serve_forever, name='http-server', daemon=True).start()
    return server
