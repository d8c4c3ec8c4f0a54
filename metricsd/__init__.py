from metricsd.config import ClientConfig
from metricsd.metrics import (
    Batch,
    Client,
    InvalidArgument,
    StatsEmitter,
    metrics_count,
    metrics_gauge,
    metrics_timer,
    stat_name,
)
from metricsd.timer import Timer
from metricsd.transport import UDPTransport

__all__ = [
    "Batch",
    "Client",
    "ClientConfig",
    "InvalidArgument",
    "StatsEmitter",
    "Timer",
    "UDPTransport",
    "metrics_count",
    "metrics_gauge",
    "metrics_timer",
    "stat_name",
]
