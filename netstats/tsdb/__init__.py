"""TSDB package exports."""

from netstats.tsdb.base import Batch, FieldValue, Point, TimeseriesStore  # noqa: F401
from netstats.tsdb.influx import InfluxHttpStore  # noqa: F401
from netstats.tsdb.noop import LoggingTimeseriesStore  # noqa: F401
from netstats.tsdb.retry import RetryPolicy  # noqa: F401
from netstats.tsdb.sender import Sender, SenderConfig, SenderStats  # noqa: F401
