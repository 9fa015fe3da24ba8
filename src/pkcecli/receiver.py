"""Loopback HTTP receiver for the OAuth2 redirect.

:class:`RedirectReceiver` binds an OS-assigned port on ``127.0.0.1``,
serves the callback path on a background thread and hands exactly one
outcome to the orchestrator through a :class:`~pkcecli.context.OneShot`.

Lifecycle::

    IDLE --bind()--> LISTENING --callback--> RECEIVED --> CLOSED
                               --cancel----> CANCELLED --> CLOSED

The listening socket is released exactly once, on every exit path. Once an
outcome is recorded the listener is torn down, so a second redirect is
either answered with ``410 Gone`` (same connection backlog) or refused.
"""

from __future__ import annotations

import enum
import html
import logging
import secrets
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional, Union
from urllib.parse import parse_qs, urlparse

from pkcecli.context import POLL_INTERVAL, FlowContext, OneShot
from pkcecli.exceptions import (
    CsrfMismatchError,
    FlowCancelledError,
    ListenerError,
    PkcecliError,
)
from pkcecli.models import CodeResult, ErrorResult, RedirectResult

logger = logging.getLogger(__name__)

_BIND_ADDRESS = "127.0.0.1"

# Seconds a single connection may take to send its request line and headers.
# The listener serves one connection at a time, so an idle connection (browsers
# open speculative ones) delays the callback by at most this long.
_REQUEST_TIMEOUT = 1.0

_PAGE = (
    "<!DOCTYPE html><html><head><meta charset=\"utf-8\"><title>{title}</title></head>"
    "<body style=\"font-family: sans-serif; text-align: center; margin-top: 15vh\">"
    "<h2>{title}</h2><p>{body}</p></body></html>"
)

_SUCCESS_PAGE = _PAGE.format(
    title="Authorization successful",
    body="You can close this window and return to the terminal.",
)

_FAILURE_PAGE = _PAGE.format(
    title="Authorization failed",
    body="Something went wrong. Return to the terminal for details.",
)

_GONE_PAGE = _PAGE.format(
    title="Already handled",
    body="This login request has already been completed.",
)


class ReceiverState(str, enum.Enum):
    """States of a :class:`RedirectReceiver`."""

    IDLE = "idle"
    LISTENING = "listening"
    RECEIVED = "received"
    CANCELLED = "cancelled"
    CLOSED = "closed"


Outcome = Union[CodeResult, ErrorResult, PkcecliError]


class _CallbackServer(HTTPServer):
    """Single-threaded HTTP server that knows which receiver owns it."""

    def __init__(self, receiver: RedirectReceiver) -> None:
        self.receiver = receiver
        super().__init__((_BIND_ADDRESS, 0), _CallbackHandler)
        self.timeout = POLL_INTERVAL * 2

    def handle_error(self, request: Any, client_address: Any) -> None:
        # No tracebacks on the operator's terminal.
        logger.debug("Error while handling callback from %s", client_address, exc_info=True)


class _CallbackHandler(BaseHTTPRequestHandler):
    """Routes requests on the loopback listener."""

    server: _CallbackServer
    timeout = _REQUEST_TIMEOUT

    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        receiver = self.server.receiver
        if parsed.path != receiver.callback_path:
            self._respond(404, _PAGE.format(title="Not found", body=""))
            return
        status, page = receiver._record(parse_qs(parsed.query))
        self._respond(status, page)

    def _respond(self, status: int, page: str) -> None:
        body = page.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("Callback server: %s", format % args)


def _first(params: dict[str, list[str]], name: str) -> str:
    values = params.get(name)
    return values[0] if values else ""


class RedirectReceiver:
    """Receive one OAuth2 redirect on a loopback port.

    Args:
        expected_state: The ``state`` sent in the authorization URL.
        host: Host name written into :attr:`redirect_uri`. The socket is
            always bound to ``127.0.0.1``.
        callback_path: Path the provider redirects to.

    Example::

        with RedirectReceiver(state) as receiver:
            url = build_authorization_url(config, challenge, state, receiver.redirect_uri)
            receiver.start(ctx)
            result = receiver.wait(ctx)
    """

    def __init__(
        self,
        expected_state: str,
        host: str = _BIND_ADDRESS,
        callback_path: str = "/callback",
    ) -> None:
        self._expected_state = expected_state
        self._host = host
        self.callback_path = callback_path
        self._state = ReceiverState.IDLE
        self._server: Optional[_CallbackServer] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._stopping = threading.Event()
        self._outcome: OneShot[Outcome] = OneShot()
        self._port: Optional[int] = None

    @property
    def state(self) -> ReceiverState:
        return self._state

    @property
    def port(self) -> int:
        if self._port is None:
            raise RuntimeError("receiver is not bound")
        return self._port

    @property
    def redirect_uri(self) -> str:
        """Redirect URI of the bound listener."""
        return f"http://{self._host}:{self.port}{self.callback_path}"

    def __enter__(self) -> RedirectReceiver:
        self.bind()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def bind(self) -> str:
        """Bind the listener on an ephemeral port and return the redirect URI.

        Raises:
            ListenerError: If the socket cannot be bound.
        """
        if self._state is not ReceiverState.IDLE:
            raise RuntimeError(f"cannot bind a receiver in state {self._state.value}")
        try:
            self._server = _CallbackServer(self)
        except OSError as exc:
            raise ListenerError(f"Could not start the local redirect listener: {exc}") from exc
        self._port = self._server.server_address[1]
        self._state = ReceiverState.LISTENING
        logger.debug("Redirect listener bound on %s:%d", _BIND_ADDRESS, self._port)
        return self.redirect_uri

    def start(self, ctx: FlowContext) -> None:
        """Serve callback requests on a daemon thread until one is recorded or *ctx* ends."""
        if self._state is not ReceiverState.LISTENING or self._server is None:
            raise RuntimeError("receiver must be bound before it is started")
        self._thread = threading.Thread(
            target=self._serve, args=(ctx,), name="pkcecli-receiver", daemon=True
        )
        self._thread.start()

    def wait(self, ctx: FlowContext) -> RedirectResult:
        """Block until the redirect arrives or *ctx* is cancelled.

        Returns:
            A :class:`~pkcecli.models.CodeResult` or
            :class:`~pkcecli.models.ErrorResult`.

        Raises:
            CsrfMismatchError: If the redirect carried the wrong ``state``.
            FlowCancelledError: If *ctx* was cancelled first.
        """
        try:
            outcome = self._outcome.get(ctx)
        except FlowCancelledError:
            with self._lock:
                if self._state is ReceiverState.LISTENING:
                    self._state = ReceiverState.CANCELLED
            self.close()
            raise
        self.close()
        if isinstance(outcome, PkcecliError):
            raise outcome
        return outcome

    def close(self) -> None:
        """Stop serving and release the socket. Safe to call more than once."""
        self._stopping.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(_REQUEST_TIMEOUT + 1.0)
        self._release()

    def _serve(self, ctx: FlowContext) -> None:
        try:
            while not (self._stopping.is_set() or self._outcome.is_set or ctx.cancelled):
                server = self._server
                if server is None:
                    break
                server.handle_request()
        except (OSError, ValueError):
            # socket closed underneath us during shutdown
            logger.debug("Redirect listener stopped", exc_info=True)
        finally:
            if ctx.cancelled:
                with self._lock:
                    if self._state is ReceiverState.LISTENING:
                        self._state = ReceiverState.CANCELLED
            self._release()

    def _release(self) -> None:
        with self._lock:
            server, self._server = self._server, None
            if self._state is not ReceiverState.IDLE:
                self._state = ReceiverState.CLOSED
        if server is not None:
            server.server_close()
            logger.debug("Redirect listener on port %s closed", self._port)

    def _record(self, params: dict[str, list[str]]) -> tuple[int, str]:
        """Turn the first callback into an outcome; reject any later one."""
        with self._lock:
            if self._outcome.is_set or self._state is not ReceiverState.LISTENING:
                return 410, _GONE_PAGE

            error = _first(params, "error")
            state = _first(params, "state")
            code = _first(params, "code")

            outcome: Outcome
            if error:
                description = _first(params, "error_description")
                logger.debug("Provider returned error %r", error)
                outcome = ErrorResult(error=error, description=description)
                page = _PAGE.format(
                    title="Authorization failed",
                    body=html.escape(f"{error}: {description}" if description else error),
                )
                status = 400
            elif not secrets.compare_digest(
                state.encode("utf-8"), self._expected_state.encode("utf-8")
            ):
                logger.warning("State parameter mismatch on redirect - possible CSRF attempt")
                outcome = CsrfMismatchError()
                page, status = _FAILURE_PAGE, 400
            elif code:
                outcome = CodeResult(code=code)
                page, status = _SUCCESS_PAGE, 200
            else:
                outcome = ErrorResult(
                    error="invalid_request",
                    description="The redirect carried neither a code nor an error",
                )
                page, status = _FAILURE_PAGE, 400

            self._state = ReceiverState.RECEIVED
            self._outcome.put(outcome)
        return status, page
