"""
Prometheus metrics for the tailer.

Every tailer owns a private CollectorRegistry holding the start time and
the number of log bytes read. The registry is handed to the processor so
plugins can register their own collectors next to ours, and it is served
on ``/metrics`` when a listen address is configured.

Usage:
    metrics = TailMetrics()
    metrics.mark_started(clock)
    metrics.serve(":9187")      # scrape http://host:9187/metrics
    ...
    metrics.shutdown()
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server

from .interfaces import ClockInterface

logger = logging.getLogger(__name__)

METRICS_PREFIX = "csvtail"


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split ``host:port`` into its parts.

    An empty host (``":9187"``) listens on all interfaces; IPv6 hosts are
    written in brackets (``"[::1]:9187"``).

    Raises:
        ValueError: If the address has no port or the port is invalid.
    """
    host, sep, port_text = address.rpartition(":")
    if not sep:
        raise ValueError(f"invalid metrics address {address!r}, expected 'host:port'")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"invalid port in metrics address {address!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"port out of range in metrics address {address!r}")
    return host or "0.0.0.0", port


class TailMetrics:
    """Collectors exported by a running tailer."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.start_time = Gauge(
            f"{METRICS_PREFIX}_start_time_seconds",
            "Start time of the process since unix epoch in seconds.",
            registry=self.registry,
        )
        self.read_bytes = Counter(
            f"{METRICS_PREFIX}_read_bytes",
            "The total number of log bytes read since process start.",
            registry=self.registry,
        )
        self._server = None
        self._thread = None

    @property
    def serving(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> Optional[int]:
        """Bound port of the metrics listener (useful with port 0)."""
        if self._server is None:
            return None
        return self._server.server_address[1]

    def mark_started(self, clock: ClockInterface) -> None:
        self.start_time.set(clock.timestamp())

    def record_bytes(self, nbytes: int) -> None:
        self.read_bytes.inc(nbytes)

    def serve(self, address: str) -> None:
        """Start serving the registry on a background thread.

        Raises:
            ValueError: If *address* cannot be parsed.
            OSError: If the listener cannot be bound.
        """
        if self._server is not None:
            return
        host, port = parse_listen_address(address)
        self._server, self._thread = start_http_server(port, addr=host, registry=self.registry)
        logger.info("Serving metrics on http://%s:%d/metrics", host, self.port)

    def shutdown(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        self._server = None
        self._thread = None
