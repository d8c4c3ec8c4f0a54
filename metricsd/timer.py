# Copyright 2024, William Bradley, All rights reserved.
import time
from typing import TYPE_CHECKING, Any, Optional, Union

if TYPE_CHECKING:
    from metricsd.metrics import StatsEmitter


class Timer:
    """Times a block and reports it as a timer metric when the block exits normally."""

    def __init__(self, client: "StatsEmitter", stat: Any, sample_rate: Union[int, float] = 1) -> None:
        self.client = client
        self.stat = stat
        self.sample_rate = sample_rate
        self.ms: Optional[int] = None

    def __enter__(self) -> "Timer":
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            return None
        end_time = time.monotonic()
        elapsed_time = end_time - self.start_time
        self.ms = int(elapsed_time * 1000)
        self.client.logger.debug(f"{self.stat} took {self.ms}ms")
        self.client.timer(self.stat, self.ms, self.sample_rate)
