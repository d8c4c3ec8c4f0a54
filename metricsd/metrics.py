# Copyright 2024, William Bradley, All rights reserved.
import logging
import random
import re
import threading
import weakref
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, Tuple, TypeVar, Union

from metricsd.config import DEFAULT_BATCH_SIZE, DEFAULT_HOST, DEFAULT_PORT, ClientConfig
from metricsd.timer import Timer
from metricsd.transport import UDPTransport

T = TypeVar("T")
SampleRate = Union[int, float]

# Per-thread transports, one per client. Never shared between threads.
_local = threading.local()

_RESERVED_CHARS = re.compile(r"[/@:|]")


class InvalidArgument(TypeError, ValueError):
    pass


def stat_name(stat: Any) -> str:
    if isinstance(stat, type) or (callable(stat) and hasattr(stat, "__qualname__")):
        name = f"{stat.__module__}.{stat.__qualname__}"
    else:
        name = str(stat)
    return _RESERVED_CHARS.sub("_", name.replace("::", "."))


def _check_sample_rate(sample_rate: SampleRate) -> None:
    if isinstance(sample_rate, bool) or not isinstance(sample_rate, (int, float)):
        raise InvalidArgument(f"sample_rate must be a number, got {sample_rate!r}")
    if not 0 < sample_rate <= 1:
        raise InvalidArgument(f"sample_rate must be in (0, 1], got {sample_rate!r}")


def _check_batch_size(batch_size: int) -> int:
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
        raise InvalidArgument(f"batch_size must be a positive integer, got {batch_size!r}")
    return batch_size


class StatsEmitter:
    """Formats and samples stat lines; subclasses decide where the lines go."""

    namespace: Optional[str]
    postfix: Optional[str]
    batch_size: int
    logger: logging.Logger

    def increment(self, stat: Any, sample_rate: SampleRate = 1) -> None:
        return self.send_stats(stat, 1, "c", sample_rate)

    def decrement(self, stat: Any, sample_rate: SampleRate = 1) -> None:
        return self.send_stats(stat, -1, "c", sample_rate)

    def gauge(self, stat: Any, value: int, sample_rate: SampleRate = 1) -> None:
        return self.send_stats(stat, value, "g", sample_rate)

    def timer(self, stat: Any, ms: int, sample_rate: SampleRate = 1) -> None:
        return self.send_stats(stat, ms, "ms", sample_rate)

    def time(self, stat: Any, sample_rate: SampleRate = 1) -> Timer:
        return Timer(self, stat, sample_rate)

    def timed(
        self,
        stat: Any,
        operation: Callable[..., T],
        *args: Any,
        sample_rate: SampleRate = 1,
        **kwargs: Any,
    ) -> T:
        with self.time(stat, sample_rate):
            return operation(*args, **kwargs)

    def send_stats(self, stat: Any, value: Optional[int], metric_type: str, sample_rate: SampleRate = 1) -> None:
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise InvalidArgument(f"value must be an integer or None, got {value!r}")
        _check_sample_rate(sample_rate)
        if not self._sampled(sample_rate):
            return None

        name = stat_name(stat)
        if self.namespace:
            name = f"{self.namespace}.{name}"
        if self.postfix:
            name = f"{name}.{self.postfix}"
        rate = "" if sample_rate == 1 else f"|@{sample_rate}"
        return self._send_to_socket(f"{name}:{value}|{metric_type}{rate}")

    def _sampled(self, sample_rate: SampleRate) -> bool:
        raise NotImplementedError()

    def _send_to_socket(self, message: str) -> None:
        raise NotImplementedError()


class Client(StatsEmitter):
    """StatsD client sending each metric as a UDP datagram.

    Metric calls never raise on network failures: the error is logged and the
    call returns None, exactly as if the metric had been sampled out.
    """

    # Called with (host, port) the first time a thread sends to that address.
    transport_class: Callable[[str, int], Any] = UDPTransport

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        namespace: Optional[str] = None,
        postfix: Optional[str] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.namespace = namespace
        self.postfix = postfix
        self.batch_size = batch_size
        self.logger = logger or logging.getLogger("metricsd")

    @classmethod
    def from_config(cls, config: ClientConfig, logger: Optional[logging.Logger] = None) -> "Client":
        return cls(
            host=config.host,
            port=config.port,
            namespace=config.namespace,
            postfix=config.postfix,
            batch_size=config.batch_size,
            logger=logger,
        )

    @property
    def host(self) -> str:
        return self._host

    @host.setter
    def host(self, host: Optional[str]) -> None:
        self._host = host or DEFAULT_HOST

    @property
    def port(self) -> int:
        return self._port

    @port.setter
    def port(self, port: Optional[int]) -> None:
        self._port = port or DEFAULT_PORT

    @property
    def namespace(self) -> Optional[str]:
        return self._namespace

    @namespace.setter
    def namespace(self, namespace: Optional[str]) -> None:
        self._namespace = namespace or None

    @property
    def postfix(self) -> Optional[str]:
        return self._postfix

    @postfix.setter
    def postfix(self, postfix: Optional[str]) -> None:
        self._postfix = postfix or None

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @batch_size.setter
    def batch_size(self, batch_size: int) -> None:
        self._batch_size = _check_batch_size(batch_size)

    @contextmanager
    def batch(self) -> Iterator["Batch"]:
        with Batch(self) as batch:
            yield batch

    def _sampled(self, sample_rate: SampleRate) -> bool:
        return sample_rate == 1 or sample_rate >= self._rand()

    def _rand(self) -> float:
        return random.random()

    def _send_to_socket(self, message: str) -> None:
        self.logger.debug(f"Metrics: {message}")
        try:
            self._socket().send(message.encode())
        except (OSError, UnicodeError) as e:
            # UnicodeError comes from IDNA-encoding an invalid host name.
            self.logger.warning(f"Metrics: {type(e).__name__} {e} ({message})")
        return None

    def _socket(self) -> Any:
        transports: "weakref.WeakKeyDictionary[Client, Tuple[Tuple[str, int], Any]]" = _local.__dict__.setdefault(
            "transports", weakref.WeakKeyDictionary()
        )
        address = (self.host, self.port)
        entry = transports.get(self)
        if entry is not None and entry[0] == address:
            return entry[1]
        if entry is not None and hasattr(entry[1], "close"):
            entry[1].close()
        transport = self.transport_class(self.host, self.port)
        transports[self] = (address, transport)
        return transport


class Batch(StatsEmitter):
    """Buffers stat lines from a client and sends them as newline-joined datagrams."""

    def __init__(self, client: Client, batch_size: Optional[int] = None) -> None:
        self._client = client
        self.batch_size = client.batch_size if batch_size is None else batch_size
        self._backlog: List[str] = []

    @property
    def host(self) -> str:
        return self._client.host

    @host.setter
    def host(self, host: Optional[str]) -> None:
        self._client.host = host

    @property
    def port(self) -> int:
        return self._client.port

    @port.setter
    def port(self, port: Optional[int]) -> None:
        self._client.port = port

    @property
    def namespace(self) -> Optional[str]:
        return self._client.namespace

    @namespace.setter
    def namespace(self, namespace: Optional[str]) -> None:
        self._client.namespace = namespace

    @property
    def postfix(self) -> Optional[str]:
        return self._client.postfix

    @postfix.setter
    def postfix(self, postfix: Optional[str]) -> None:
        self._client.postfix = postfix

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @batch_size.setter
    def batch_size(self, batch_size: int) -> None:
        self._batch_size = _check_batch_size(batch_size)

    @property
    def logger(self) -> logging.Logger:
        return self._client.logger

    def __enter__(self) -> "Batch":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.flush()

    def flush(self) -> None:
        if not self._backlog:
            return None
        message = "\n".join(self._backlog)
        self._backlog = []
        return self._client._send_to_socket(message)

    def _sampled(self, sample_rate: SampleRate) -> bool:
        return self._client._sampled(sample_rate)

    def _send_to_socket(self, message: str) -> None:
        self._backlog.append(message)
        if len(self._backlog) >= self.batch_size:
            self.flush()
        return None


client = Client()


def metrics_count(stat: Any, sample_rate: SampleRate = 1) -> None:
    client.increment(stat, sample_rate)


def metrics_gauge(stat: Any, value: int, sample_rate: SampleRate = 1) -> None:
    client.gauge(stat, value, sample_rate)


def metrics_timer(stat: Any, sample_rate: SampleRate = 1) -> Timer:
    return client.time(stat, sample_rate)
