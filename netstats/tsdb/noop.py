"""Store used in testing mode: log the batch, save nothing."""

from __future__ import annotations

import logging
from typing import Optional

from netstats.tsdb.base import Batch, TimeseriesStore
from netstats.tsdb.line_protocol import point_to_line


class LoggingTimeseriesStore(TimeseriesStore):
    """Print each point instead of writing it."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.batches_seen = 0

    def ping(self, timeout: float) -> None:  # noqa: ARG002
        return

    def database_exists(self, database: str) -> bool:  # noqa: ARG002
        return True

    def write_batch(self, batch: Batch) -> None:
        self.batches_seen += 1
        for point in batch.points:
            self.logger.info("[%s] %s", batch.database, point_to_line(point))
