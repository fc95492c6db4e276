"""InfluxDB 1.x HTTP store."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from netstats.tsdb.base import Batch, TimeseriesStore
from netstats.tsdb.line_protocol import encode_points


class InfluxWriteError(RuntimeError):
    def __init__(self, status_code: Optional[int], message: str, endpoint: str) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(f"{endpoint}: HTTP {status_code}: {message}")


class InfluxHttpStore(TimeseriesStore):
    """Writes batches to InfluxDB using line protocol over HTTP."""

    def __init__(
        self,
        url: str,
        username: str = "",
        password: str = "",
        consistency: str = "",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.consistency = consistency
        self.timeout = float(timeout or 10.0)
        self.session = session or requests.Session()
        if username:
            self.session.auth = (username, password or "")
        self.logger = logger or logging.getLogger(__name__)

    @property
    def hostname(self) -> str:
        host = self.url.split("://", 1)[-1]
        return host.split("/", 1)[0].split(":", 1)[0]

    def _raise_for_status(self, response: requests.Response, endpoint: str) -> None:
        if response.status_code < 300:
            return
        message = response.text.strip()
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and payload.get("error"):
            message = str(payload["error"])
        raise InfluxWriteError(response.status_code, message or "no body", endpoint)

    def ping(self, timeout: float) -> None:
        response = self.session.get(f"{self.url}/ping", timeout=timeout)
        self._raise_for_status(response, "/ping")
        version = response.headers.get("X-Influxdb-Version")
        self.logger.debug("Connected to %s (version %s)", self.url, version or "unknown")

    def database_exists(self, database: str) -> bool:
        response = self.session.get(
            f"{self.url}/query",
            params={"q": "SHOW DATABASES"},
            timeout=self.timeout,
        )
        self._raise_for_status(response, "/query")
        payload: Dict[str, Any] = response.json()
        for result in payload.get("results", []):
            if result.get("error"):
                raise InfluxWriteError(response.status_code, str(result["error"]), "/query")
            for series in result.get("series", []):
                for row in series.get("values", []):
                    if row and row[0] == database:
                        return True
        return False

    def write_batch(self, batch: Batch) -> None:
        if batch.is_empty():
            return
        params = {"db": batch.database, "precision": "ns"}
        if batch.retention_policy:
            params["rp"] = batch.retention_policy
        if self.consistency:
            params["consistency"] = self.consistency
        response = self.session.post(
            f"{self.url}/write",
            params=params,
            data=encode_points(batch.points),
            headers={"Content-Type": "text/plain; charset=utf-8"},
            timeout=self.timeout,
        )
        self._raise_for_status(response, "/write")
