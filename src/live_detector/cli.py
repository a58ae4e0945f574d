from __future__ import annotations
import argparse
import signal
import sys
import threading
import time

from .camera import CameraFrameSource, SyntheticFrameSource
from .config import load_config
from .controller import DetectionLoopController
from .detector import MotionDetector
from .events import SessionEvents
from .http_server import SharedState, start_http_server
from .lifecycle import CameraLifecycle
from .logging_utils import log, set_level
from .overlay import OverlayRenderer
from .summary import SummaryTracker, format_summary, load_frames, summarize


def parse_args(argv=None):
    p = argparse.ArgumentParser(description='Live object detection loop')
    p.add_argument('--config', default='config.yaml')
    p.add_argument('--synthetic', action='store_true', help='Use a generated moving target instead of a camera')
    p.add_argument('--http-port', type=int, default=None)
    p.add_argument('--http-host', default='0.0.0.0')
    p.add_argument('--run-seconds', type=float, default=None)
    p.add_argument('--interval-ms', type=int, default=None, help='Override config interval_ms')
    p.add_argument('--compress', action='store_true', help='Gzip frames between capture and detection')
    p.add_argument('--log-level', choices=['debug', 'info', 'warn', 'error'], help='Override config log_level')
    p.add_argument('--auto-start', action='store_true', help='Begin detection immediately (else require /control/start)')
    p.add_argument('--require-camera', action='store_true', help='Exit instead of idling when the camera cannot start')
    p.add_argument('--summarize', metavar='RESULTS_JSON', help='Print a per-label summary of recorded detections and exit')
    return p.parse_args(argv)


def run_summary(path: str) -> int:
    try:
        frames = load_frames(path)
    except (OSError, ValueError) as e:
        log(f'Could not read detection results from {path}: {e}', 'error')
        return 2
    print(format_summary(summarize(frames)))
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.summarize:
        return run_summary(args.summarize)
    cfg = load_config(args.config)
    if args.log_level:
        cfg.log_level = args.log_level
    if args.interval_ms is not None:
        cfg.interval_ms = args.interval_ms
    if args.compress:
        cfg.compress = True
    set_level(cfg.log_level)

    renderer = OverlayRenderer(tuple(cfg.frame_size))
    source = SyntheticFrameSource(cfg, renderer) if args.synthetic else CameraFrameSource(cfg, renderer)
    detector = MotionDetector.from_config(cfg)
    tracker = SummaryTracker()
    controller = DetectionLoopController(source, detector, renderer, cfg, on_result=tracker)
    session = SessionEvents()
    lifecycle = CameraLifecycle(controller, session)

    stop_flag = threading.Event()
    server = None
    if args.http_port is not None:
        shared = SharedState(lifecycle, source, renderer, tracker, session, detector)
        shared.cfg_path = args.config
        server = start_http_server(args.http_host, args.http_port, shared)

    def handle_sigint(sig, frame):  # type: ignore
        stop_flag.set()
    prev_handlers = {s: signal.getsignal(s) for s in (signal.SIGINT, signal.SIGTERM)}
    for s in prev_handlers:
        signal.signal(s, handle_sigint)

    exit_code = 0
    try:
        with lifecycle:
            if args.auto_start and not lifecycle.start():
                log(lifecycle.error or 'Detection loop did not start', 'error')
                if args.require_camera:
                    exit_code = 5
                    stop_flag.set()
            deadline = None if args.run_seconds is None else time.time() + args.run_seconds
            while not stop_flag.is_set():
                if deadline is not None and time.time() >= deadline:
                    break
                stop_flag.wait(0.1)
            state = controller.state
            log(f'Shutting down (status={state.status.value}, ticks={state.ticks})')
    finally:
        for s, handler in prev_handlers.items():
            signal.signal(s, handler)
        if server is not None:
            server.shutdown()
            server.server_close()
    summary = tracker.to_dict()
    log(f'Frames processed: {summary["total_frames"]} ({summary["frames_with_detections"]} with detections)')
    return exit_code


if __name__ == '__main__':  # pragma: no cover
    sys.exit(main())
