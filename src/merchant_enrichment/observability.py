"""Structured resolution events and optional StatsD metrics.

Every resolver, batch and correction call emits one JSON log line through the
``merchant_enrichment.observability`` logger. Counters and timings go to StatsD
only when ``observability.statsd_host`` is configured; otherwise they are dropped.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
from datetime import datetime, timezone
from typing import Any, Mapping

from merchant_enrichment.settings import Settings, get_settings

_LOGGER = logging.getLogger("merchant_enrichment.observability")
_STATSD_LOCK = threading.Lock()
_SHARED_STATSD: "_StatsdClient | None" = None


class Observability:
    """Event and metric emitter bound to one component (resolver, batch, corrections)."""

    def __init__(
        self,
        *,
        settings: Settings,
        component: str | None = None,
        statsd: "_StatsdClient | None" = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.component = component or "merchants"
        self._logger = logger or _LOGGER
        self._structured_logging = bool(settings.observability.structured_logging)
        self._statsd = statsd

    def emit_event(self, event: str, **fields: Any) -> None:
        """Log ``event`` with ``fields``; JSON when structured logging is on."""

        payload = {
            "event": event,
            "component": self.component,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **fields,
        }
        if self._structured_logging:
            self._logger.info(json.dumps(payload, default=str))
        else:
            self._logger.info("%s | %s", event, payload)

    def increment(self, metric: str, *, value: float = 1.0, tags: Mapping[str, Any] | None = None) -> None:
        if self._statsd is not None:
            self._statsd.send(metric, value, metric_type="c", tags=tags)

    def record_timing(self, metric: str, value_ms: float, *, tags: Mapping[str, Any] | None = None) -> None:
        if self._statsd is not None:
            self._statsd.send(metric, value_ms, metric_type="ms", tags=tags)


def get_observability(*, component: str | None = None, settings: Settings | None = None) -> Observability:
    """Return an emitter for ``component`` sharing the process-wide StatsD client."""

    resolved = settings or get_settings()
    return Observability(settings=resolved, component=component, statsd=_shared_statsd(resolved))


def reset_observability_cache() -> None:
    """Forget the shared StatsD client so the next call rereads settings."""

    global _SHARED_STATSD
    with _STATSD_LOCK:
        _SHARED_STATSD = None


class _StatsdClient:
    """Fire-and-forget StatsD sender over UDP with DogStatsD-style tags."""

    def __init__(self, host: str, port: int, prefix: str = "") -> None:
        self.address = (host, port)
        self.prefix = prefix
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def format_payload(self, metric: str, value: float, *, metric_type: str, tags: Mapping[str, Any] | None) -> str:
        name = f"{self.prefix}.{metric}" if self.prefix else metric
        number = f"{value:.6f}".rstrip("0").rstrip(".") or "0"
        payload = f"{name}:{number}|{metric_type}"
        pairs = sorted((str(key), str(val)) for key, val in (tags or {}).items() if val is not None)
        if pairs:
            payload += "|#" + ",".join(f"{key}:{val}" for key, val in pairs)
        return payload

    def send(self, metric: str, value: float, *, metric_type: str, tags: Mapping[str, Any] | None = None) -> None:
        payload = self.format_payload(metric, value, metric_type=metric_type, tags=tags)
        try:
            self._socket.sendto(payload.encode("utf-8"), self.address)
        except OSError:
            _LOGGER.debug("StatsD send failed for metric %s", metric, exc_info=True)


def _shared_statsd(settings: Settings) -> _StatsdClient | None:
    global _SHARED_STATSD
    with _STATSD_LOCK:
        if _SHARED_STATSD is None and settings.observability.statsd_host:
            _SHARED_STATSD = _StatsdClient(
                settings.observability.statsd_host,
                settings.observability.statsd_port,
                settings.observability.statsd_prefix,
            )
        return _SHARED_STATSD


__all__ = ["Observability", "get_observability", "reset_observability_cache"]
