"""Tracing and structured logging set-up."""

from __future__ import annotations

import json
import logging
import os
import re
import secrets
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

_TRACEPARENT = re.compile(r"^([0-9a-f]{2})-([0-9a-f]{32})-([0-9a-f]{16})-([0-9a-f]{2})$")
_INVALID_TRACE_ID = "0" * 32
_INVALID_SPAN_ID = "0" * 16

_current_span: ContextVar["Span | None"] = ContextVar("current_span", default=None)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ObservabilityConfig:
    """Settings for tracing and log shipping."""

    service_name: str = ""
    env: str = ""
    otlp_endpoint: str = ""
    otlp_username: str = ""
    otlp_password: str = ""
    kafka_sasl_user: str = ""
    kafka_sasl_pass: str = ""
    kafka_addrs: tuple[str, ...] = ("",)
    kafka_log_topic: str = ""
    log_mode: str = "json"
    log_level: str = "info"

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> "ObservabilityConfig":
        env = os.environ if env is None else env
        return ObservabilityConfig(
            service_name=env.get("SERVICE_NAME", ""),
            env=env.get("APP_ENV", ""),
            otlp_endpoint=env.get("OTEL_EXPORTER_OTLP_ENDPOINT", ""),
            otlp_username=env.get("OTEL_EXPORTER_OTLP_USERNAME", ""),
            otlp_password=env.get("OTEL_EXPORTER_OTLP_PASSWORD", ""),
            kafka_sasl_user=env.get("KAFKA_SASL_USER", ""),
            kafka_sasl_pass=env.get("KAFKA_SASL_PASS", ""),
            kafka_addrs=tuple(env.get("KAFKA_ADDRS", "").split(",")),
            kafka_log_topic=env.get("KAFKA_LOG_TOPIC", ""),
        )


@dataclass
class Span:
    """A timed unit of work within a trace."""

    name: str
    trace_id: str
    span_id: str
    parent_span_id: str = ""
    attributes: dict[str, Any] = field(default_factory=dict)
    start_time: datetime = field(default_factory=_now)
    end_time: datetime | None = None
    _token: Token | None = field(default=None, repr=False, compare=False)

    @property
    def traceparent(self) -> str:
        """The W3C traceparent header value for this span."""
        return f"00-{self.trace_id}-{self.span_id}-01"

    @property
    def ended(self) -> bool:
        return self.end_time is not None

    def set_attributes(self, attributes: Mapping[str, Any]) -> None:
        self.attributes.update(attributes)

    def end(self) -> None:
        if self.end_time is None:
            self.end_time = _now()

    def __enter__(self) -> "Span":
        self._token = _current_span.set(self)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._token is not None:
            _current_span.reset(self._token)
            self._token = None
        if exc is not None:
            self.attributes["error"] = str(exc)
        self.end()


def _parse_traceparent(value: str) -> tuple[str, str] | None:
    match = _TRACEPARENT.match(value.strip().lower())
    if not match:
        return None
    version, trace_id, span_id, _ = match.groups()
    if version == "ff" or trace_id == _INVALID_TRACE_ID or span_id == _INVALID_SPAN_ID:
        return None
    return trace_id, span_id


class Tracer:
    """Creates spans for one service."""

    def __init__(self, service_name: str) -> None:
        self.service_name = service_name

    def start_span(self, name: str, traceparent: str | None = None) -> Span:
        """Start a span.

        With a traceparent the span continues that remote trace; without one it
        is a child of the current span, or the root of a new trace.
        """
        parent: tuple[str, str] | None = None
        if traceparent is not None:
            parent = _parse_traceparent(traceparent)
        else:
            current = _current_span.get()
            if current is not None:
                parent = (current.trace_id, current.span_id)

        trace_id, parent_span_id = parent if parent else (secrets.token_hex(16), "")
        return Span(
            name=name,
            trace_id=trace_id,
            span_id=secrets.token_hex(8),
            parent_span_id=parent_span_id,
            attributes={"service.name": self.service_name},
        )


def extract_traceparent() -> str:
    """Return the traceparent of the current span, or an empty string."""
    span = _current_span.get()
    return span.traceparent if span is not None else ""


class _JsonFormatter(logging.Formatter):
    def __init__(self, config: ObservabilityConfig) -> None:
        super().__init__()
        self._config = config

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "message": record.getMessage(),
            "service": self._config.service_name,
            "env": self._config.env,
        }
        traceparent = extract_traceparent()
        if traceparent:
            payload["traceparent"] = traceparent
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def new_observability(
    env: Mapping[str, str] | None = None,
) -> tuple[Tracer, Callable[[], None]]:
    """Set up JSON logging and a tracer; return the tracer and a close function."""
    config = ObservabilityConfig.from_env(env)
    handler = logging.StreamHandler()
    handler.setFormatter(_JsonFormatter(config))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    def close() -> None:
        if handler in root.handlers:
            handler.flush()
            root.removeHandler(handler)

    return Tracer(config.service_name), close