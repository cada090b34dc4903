#!/usr/bin/env python3
"""
HUEMAP Segment Server - HTTP surface for hue segmentation

Run with: python3 segment_server.py --config ~/.config/huemap/huemap.cfg --port 3770

Endpoints:
    GET  /status                      service status
    GET  /segments?s=60&l=50          all segments at once (memoized), &sort=hue for display order
    GET  /swatches/stream?s=60&l=50   NDJSON, one {"segments": [...]} snapshot per line
    POST /clear_cache                 drop memoized segmentations
    POST /reload                      re-read the config file
"""

import argparse
import asyncio
import concurrent.futures
import json
import logging
import os
import sys
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from threading import Lock
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import parse_qs, urlsplit

from huemap import HueMap
from huemap_lib import HueSegment, OracleError, read_percentage_param, text_tone

_logger = logging.getLogger(__name__)

NDJSON_CONTENT_TYPE = 'text/x-ndjson; charset=utf-8'
# Upper bound for one collect-all request (seconds)
SEGMENTS_TIMEOUT = 300.0

# Handlers run on server threads; the service and its memo live on one event loop
_service: Optional[HueMap] = None
_loop: Optional[asyncio.AbstractEventLoop] = None
_loop_thread: Optional[threading.Thread] = None
_request_count = 0
_request_lock = Lock()


def start_service(service: HueMap) -> asyncio.AbstractEventLoop:
    """Run the service's event loop on a background thread."""
    global _service, _loop, _loop_thread

    _service = service
    _loop = asyncio.new_event_loop()
    _loop_thread = threading.Thread(target=_loop.run_forever, name="huemap-loop", daemon=True)
    _loop_thread.start()
    return _loop


def stop_service() -> None:
    global _service, _loop, _loop_thread

    if _loop is None:
        return
    if _service is not None:
        _run(_service.close(), timeout=5.0)
    _loop.call_soon_threadsafe(_loop.stop)
    if _loop_thread is not None:
        _loop_thread.join(timeout=5.0)
    _loop.close()
    _service = None
    _loop = None
    _loop_thread = None


def _run(coro, timeout: Optional[float] = None) -> Any:
    """Run a coroutine on the service loop and wait for its result."""
    future = asyncio.run_coroutine_threadsafe(coro, _loop)
    try:
        return future.result(timeout)
    except concurrent.futures.TimeoutError:
        future.cancel()
        raise


async def _next_line(lines: AsyncIterator[str]) -> Optional[str]:
    try:
        return await lines.__anext__()
    except StopAsyncIteration:
        return None


async def _close_lines(lines) -> None:
    await lines.aclose()


async def _clear_cache() -> int:
    return _service.clear_cache()


def _segment_payload(segment: HueSegment) -> Dict[str, Any]:
    payload = segment.to_dict()
    payload['tone'] = text_tone(segment.color)
    return payload


class Handler(BaseHTTPRequestHandler):
    def log_message(self, format, *args):
        pass  # Suppress default HTTP logging

    def _send_json(self, code: int, payload: Dict):
        body = json.dumps(payload).encode()
        self.send_response(code)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _next_request_id(self) -> int:
        global _request_count
        with _request_lock:
            _request_count += 1
            return _request_count

    def _read_params(self, query: Dict):
        settings = _service.settings
        saturation = read_percentage_param(query, 's', settings.default_saturation)
        lightness = read_percentage_param(query, 'l', settings.default_lightness)
        return saturation, lightness

    def do_GET(self):
        url = urlsplit(self.path)
        query = parse_qs(url.query)

        if url.path == '/status':
            self._send_json(200, {**_service.status(), 'requests_served': _request_count})
        elif url.path == '/segments':
            self._handle_segments(query)
        elif url.path == '/swatches/stream':
            self._handle_stream(query)
        else:
            self._send_json(404, {'error': 'not found'})

    def do_POST(self):
        url = urlsplit(self.path)

        if url.path == '/clear_cache':
            cleared = _run(_clear_cache())
            self._send_json(200, {'result': 'ok', 'cleared': cleared})
        elif url.path == '/reload':
            self._send_json(200, _run(_service.reload()))
        else:
            self._send_json(404, {'error': 'not found'})

    def _handle_segments(self, query: Dict):
        req_id = self._next_request_id()
        saturation, lightness = self._read_params(query)
        sort = (query.get('sort') or [''])[-1] == 'hue'
        _logger.info(f"[{req_id}] segments: s={saturation:g} l={lightness:g} sort={sort}")

        try:
            segments = _run(_service.segments(saturation, lightness, sort=sort), timeout=SEGMENTS_TIMEOUT)
        except OracleError as e:
            _logger.warning(f"[{req_id}] segments failed: {e}")
            self._send_json(502, {'error': str(e)})
            return
        except concurrent.futures.TimeoutError:
            _logger.warning(f"[{req_id}] segments timed out after {SEGMENTS_TIMEOUT:g}s")
            self._send_json(504, {'error': f'segmentation timed out after {SEGMENTS_TIMEOUT:g}s'})
            return
        except Exception as e:
            _logger.exception(f"[{req_id}] segments crashed: {e}")
            self._send_json(500, {'error': 'internal error'})
            return

        _logger.info(f"[{req_id}] segments done: {len(segments)} colors")
        self._send_json(200, {'segments': [_segment_payload(s) for s in segments]})

    def _handle_stream(self, query: Dict):
        req_id = self._next_request_id()
        saturation, lightness = self._read_params(query)
        _logger.info(f"[{req_id}] stream: s={saturation:g} l={lightness:g}")

        self.send_response(200)
        self.send_header('Content-Type', NDJSON_CONTENT_TYPE)
        self.send_header('Cache-Control', 'no-cache')
        self.end_headers()

        lines = _service.stream(saturation, lightness)
        sent = 0
        try:
            while True:
                line = _run(_next_line(lines))
                if line is None:
                    break
                self.wfile.write(line.encode('utf-8'))
                self.wfile.flush()
                sent += 1
        except (BrokenPipeError, ConnectionResetError):
            _logger.info(f"[{req_id}] client disconnected after {sent} lines, cancelling")
        finally:
            _run(_close_lines(lines), timeout=5.0)

        _logger.info(f"[{req_id}] stream done: {sent} lines")


def main():
    p = argparse.ArgumentParser(description='Serve hue segmentations over HTTP')
    p.add_argument('--config', type=str, default=None, help='Path to huemap.cfg')
    p.add_argument('--port', type=int, default=None)
    p.add_argument('--host', type=str, default=None)
    args = p.parse_args()

    logging.basicConfig(level=logging.INFO, format='[HUEMAP] %(asctime)s.%(msecs)03d %(message)s', datefmt='%H:%M:%S')

    service = HueMap(args.config)
    host = args.host or service.settings.host
    port = args.port or service.settings.port

    _logger.info(f"Starting segment server on {host}:{port}")
    _logger.info(f"Python: {sys.executable}, PID: {os.getpid()}")

    start_service(service)
    httpd = ThreadingHTTPServer((host, port), Handler)
    httpd.daemon_threads = True

    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        _logger.info("Stopping")
    finally:
        httpd.server_close()
        stop_service()


if __name__ == '__main__':
    main()
