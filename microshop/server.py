"""HTTP server start-up and shutdown, and request-log redaction."""

from __future__ import annotations

import logging
import threading
from socketserver import ThreadingMixIn
from typing import Any, Callable, Collection, Mapping
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = frozenset({"password"})
REDACTED = "[REDACTED]"
INTERNAL_ERROR_MESSAGE = "internal server error"
DEFAULT_SHUTDOWN_TIMEOUT = 10.0
_IO_TIMEOUT_SECONDS = 5


def redact_sensitive(data: Any, fields: Collection[str] = SENSITIVE_FIELDS) -> Any:
    """Return a copy of ``data`` with the values of sensitive keys masked.

    Keys are matched without regard to case, at any depth of nested
    objects and lists.
    """
    wanted = {name.lower() for name in fields}

    def walk(value: Any) -> Any:
        if isinstance(value, Mapping):
            return {
                key: REDACTED
                if isinstance(key, str) and key.lower() in wanted
                else walk(item)
                for key, item in value.items()
            }
        if isinstance(value, list):
            return [walk(item) for item in value]
        return value

    return walk(data)


class _ThreadingServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _RequestHandler(WSGIRequestHandler):
    timeout = _IO_TIMEOUT_SECONDS

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug(format, *args)


class _ServerHandle:
    """A running server that can be shut down."""

    def __init__(self, server: WSGIServer, thread: threading.Thread) -> None:
        self._server = server
        self._thread = thread

    @property
    def port(self) -> int:
        return self._server.server_port

    def shutdown(self, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> None:
        """Stop accepting requests, waiting at most ``timeout`` seconds."""
        stopper = threading.Thread(target=self._server.shutdown, daemon=True)
        stopper.start()
        stopper.join(timeout)
        if stopper.is_alive():
            logger.warning("server shutdown: timed out after %s seconds", timeout)
        self._server.server_close()
        logger.info("shutdown server successfully")


def start_server(app: Callable[..., Any], port: int | str) -> _ServerHandle:
    """Serve a WSGI application on all interfaces in a background thread.

    An empty port lets the system choose one. Binding errors are raised here.
    """
    text = str(port).strip()
    server = make_server(
        "",
        int(text) if text else 0,
        app,
        server_class=_ThreadingServer,
        handler_class=_RequestHandler,
    )

    def serve() -> None:
        try:
            server.serve_forever()
        except Exception:
            logger.exception("listen failed")

    thread = threading.Thread(target=serve, name="http-server", daemon=True)
    thread.start()
    logger.info("server listening on port %d", server.server_port)
    return _ServerHandle(server, thread)