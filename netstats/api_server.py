"""Lightweight HTTP API exposing collector status and the debug toggle."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional

from netstats.context import CollectorContext

MAX_BODY_BYTES = 4096


@dataclass
class ApiServerConfig:
    host: str
    port: int


def build_status(context: CollectorContext) -> Dict[str, Any]:
    """Read-only view over configs and current stats; never includes passwords."""

    now = datetime.now(timezone.utc)
    stats = context.snapshot()
    targets: Dict[str, Any] = {}
    for key, poller in sorted(context.pollers.items()):
        profile = poller.profile
        snapshot = stats.get(key)
        targets[key] = {
            "host": profile.host,
            "query": poller.query.name,
            "freq": profile.freq_seconds,
            "retries": profile.retries,
            "timeout": profile.timeout_seconds,
            "sender": poller.sender.config.name,
            "debug": poller.debug_enabled,
            "stats": snapshot.to_dict() if snapshot else None,
        }
    senders: Dict[str, Any] = {}
    for name, sender in sorted(context.senders.items()):
        cfg = sender.config
        senders[name] = {
            "url": cfg.url,
            "database": cfg.database,
            "retention_policy": cfg.retention_policy,
            "batch_size": cfg.batch_size,
            "queue_size": cfg.queue_size,
            "flush_interval_seconds": cfg.flush_interval_seconds,
            "stats": sender.stats().to_dict(),
        }
    return {
        "started": context.started.isoformat(),
        "uptime_s": round((now - context.started).total_seconds(), 3),
        "targets": targets,
        "senders": senders,
    }


class ApiServer:
    """Simple JSON API server running in a background thread."""

    def __init__(self, config: ApiServerConfig, context: CollectorContext, logger: Optional[logging.Logger] = None) -> None:
        self.config = config
        self.context = context
        self.logger = logger or logging.getLogger(__name__)
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        if self._server:
            return self._server.server_address[1]
        return self.config.port

    def start(self) -> None:
        if self._server:
            return

        context = self.context
        logger = self.logger

        class Handler(BaseHTTPRequestHandler):
            def _send_json(self, status_code: int, payload: dict) -> None:
                body = json.dumps(payload).encode("utf-8")
                self.send_response(status_code)
                self.send_header("Content-Type", "application/json; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, format: str, *args) -> None:  # noqa: A003
                logger.debug("API %s - %s", self.address_string(), format % args)

            def _parse_json(self) -> Optional[dict]:
                length = self.headers.get("Content-Length")
                try:
                    content_length = int(length) if length else 0
                except ValueError:
                    self._send_json(400, {"error": "bad_length"})
                    return None
                if content_length > MAX_BODY_BYTES:
                    self._send_json(413, {"error": "payload_too_large"})
                    return None
                body = self.rfile.read(content_length) if content_length > 0 else b""
                try:
                    payload = json.loads(body.decode("utf-8")) if body else {}
                except (json.JSONDecodeError, UnicodeDecodeError):
                    self._send_json(400, {"error": "bad_json"})
                    return None
                if not isinstance(payload, dict):
                    self._send_json(400, {"error": "bad_json"})
                    return None
                return payload

            def do_GET(self) -> None:  # noqa: N802
                if self.path == "/healthz":
                    self._send_json(200, {"status": "ok"})
                    return
                if self.path == "/api/v1/status":
                    try:
                        self._send_json(200, build_status(context))
                    except Exception as exc:  # pylint: disable=broad-except
                        logger.exception("Error building status: %s", exc)
                        self._send_json(500, {"error": "internal_error"})
                    return
                self._send_json(404, {"error": "not_found"})

            def do_POST(self) -> None:  # noqa: N802
                if self.path != "/api/v1/targets/debug":
                    self._send_json(404, {"error": "not_found"})
                    return
                payload = self._parse_json()
                if payload is None:
                    return
                target = payload.get("target")
                enabled = payload.get("enabled")
                if not isinstance(target, str) or not isinstance(enabled, bool):
                    self._send_json(400, {"error": "target (string) and enabled (bool) are required"})
                    return
                try:
                    context.set_debug(target, enabled)
                except KeyError:
                    self._send_json(404, {"error": "unknown_target", "target": target})
                    return
                self._send_json(202, {"target": target, "enabled": enabled})

        self._server = ThreadingHTTPServer((self.config.host, self.config.port), Handler)
        self._server.daemon_threads = True
        self._thread = threading.Thread(target=self._server.serve_forever, name="api-server", daemon=True)
        self._thread.start()
        self.logger.info("Status API listening on %s:%s", self.config.host, self.port)

    def stop(self) -> None:
        if not self._server:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread:
            self._thread.join(timeout=2)
        self._server = None
        self._thread = None
