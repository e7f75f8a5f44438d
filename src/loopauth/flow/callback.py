"""One-shot loopback listener for the provider's redirect.

Two layers live here:

* :func:`parse_request_line` -- a socket-free parser that turns the first
  line of an HTTP request (``GET /?code=...&state=... HTTP/1.1``) into a
  :class:`~loopauth.models.RedirectResult` or raises
  :class:`~loopauth.exceptions.MalformedRedirectError`.
* :class:`LoopbackListener` -- binds a TCP socket on a loopback address,
  accepts exactly one connection, reads its request line, writes a small
  fixed ``200 OK`` page, and closes both the connection and itself.

The listener is a single-use value: ``created -> bound -> closed``. Once
:meth:`LoopbackListener.wait` returns or raises, the listening socket is
gone and any further connection attempt is refused by the OS.
"""

from __future__ import annotations

import enum
import logging
import re
import socket
import threading
import time
from typing import Optional, Union
from urllib.parse import parse_qs, urlsplit

from loopauth.exceptions import (
    AuthorizationDeniedError,
    ListenerAcceptError,
    ListenerBindError,
    MalformedRedirectError,
    TimeoutError_,
)
from loopauth.flow.authorize import redirect_uri_for
from loopauth.models import RedirectResult

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Go back to your terminal :)"
FAILURE_MESSAGE = (
    "Authorization could not be completed. Go back to your terminal for details."
)
MAX_REQUEST_LINE = 8192
MAX_HEADER_BYTES = 65536

_HTTP_VERSION = re.compile(r"HTTP/\d+(?:\.\d+)?")


def parse_request_line(line: Union[str, bytes]) -> RedirectResult:
    """Parse an HTTP request line into the redirect's ``code`` and ``state``.

    The request target may be in origin form (``/callback?code=...``) or
    absolute form (``http://127.0.0.1:8080/?code=...``). Headers and body
    are never looked at.

    Args:
        line: The raw request line, with or without the trailing CRLF.

    Returns:
        The parsed :class:`~loopauth.models.RedirectResult`.

    Raises:
        AuthorizationDeniedError: If the provider sent an ``error`` parameter.
        MalformedRedirectError: If the line is not ``<method> <target>
            <version>`` or ``code``/``state`` is missing or empty.
    """
    if isinstance(line, bytes):
        line = line.decode("iso-8859-1")

    tokens = line.split()
    if len(tokens) != 3:
        raise MalformedRedirectError(
            "Malformed redirect request line (expected '<method> <target> <version>')"
        )
    _method, target, version = tokens
    if not _HTTP_VERSION.fullmatch(version):
        raise MalformedRedirectError(f"Malformed redirect request: unknown protocol {version!r}")

    if target.startswith("/"):
        target = "http://localhost" + target
    elif not target.startswith(("http://", "https://")):
        raise MalformedRedirectError("Malformed redirect request: unsupported request target")

    try:
        query = urlsplit(target).query
    except ValueError as exc:
        raise MalformedRedirectError(f"Malformed redirect URL: {exc}") from exc
    params = parse_qs(query)

    if "error" in params:
        description = params.get("error_description", [None])[0]
        raise AuthorizationDeniedError(params["error"][0], description)

    missing = [name for name in ("code", "state") if not params.get(name)]
    if missing:
        raise MalformedRedirectError(
            "Redirect is missing the " + " and ".join(f"'{m}'" for m in missing)
            + " query parameter" + ("s" if len(missing) > 1 else "")
        )

    return RedirectResult(code=params["code"][0], state=params["state"][0])


def _http_response(message: str) -> bytes:
    body = message.encode("utf-8")
    head = (
        "HTTP/1.1 200 OK\r\n"
        "content-type: text/plain; charset=utf-8\r\n"
        f"content-length: {len(body)}\r\n"
        "connection: close\r\n"
        "\r\n"
    )
    return head.encode("ascii") + body


def _drain_headers(conn: socket.socket, received: bytes, poll_interval: float) -> None:
    """Consume the rest of the request head so closing the socket does not reset the connection.

    Stops at the blank line, on EOF, after one quiet poll interval, or once
    :data:`MAX_HEADER_BYTES` have been read.
    """
    conn.settimeout(poll_interval)
    try:
        while (
            b"\r\n\r\n" not in received
            and b"\n\n" not in received
            and len(received) < MAX_HEADER_BYTES
        ):
            chunk = conn.recv(4096)
            if not chunk:
                return
            received += chunk
    except OSError as exc:
        logger.debug("Stopped reading redirect headers: %s", exc)


class ListenerState(str, enum.Enum):
    """Lifecycle of a :class:`LoopbackListener`."""

    CREATED = "created"
    BOUND = "bound"
    CLOSED = "closed"


class LoopbackListener:
    """Capture a single redirect on a loopback address.

    Bind first (so the redirect URI can be shown knowing the port is ours),
    then call :meth:`wait` exactly once. The socket is closed when
    :meth:`wait` finishes, whatever the outcome.

    Args:
        host: Address to bind. Defaults to ``127.0.0.1``.
        port: Port to bind. ``0`` picks a free port; read it back from
            :attr:`port` after :meth:`bind`.
        read_timeout: Seconds to wait for the request line once a
            connection has been accepted.

    Example::

        with LoopbackListener(port=8080) as listener:
            print("redirect to", listener.redirect_uri)
            result = listener.wait(timeout=300)
    """

    poll_interval = 0.25

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8080,
        read_timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._read_timeout = read_timeout
        self._sock: Optional[socket.socket] = None
        self._state = ListenerState.CREATED

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        """The bound port (the requested one until :meth:`bind` has run)."""
        return self._port

    @property
    def redirect_uri(self) -> str:
        return redirect_uri_for(self._host, self._port)

    def __enter__(self) -> LoopbackListener:
        self.bind()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def bind(self) -> None:
        """Bind and listen on the configured address.

        Raises:
            ListenerBindError: If the address is unavailable or the listener
                has already been bound or closed.
        """
        if self._state is not ListenerState.CREATED:
            raise ListenerBindError(f"Listener is already {self._state.value}")

        family = socket.AF_INET6 if ":" in self._host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.bind((self._host, self._port))
            sock.listen(1)
        except OSError as exc:
            sock.close()
            raise ListenerBindError(
                f"Cannot listen on {self._host}:{self._port}: {exc.strerror or exc}"
            ) from exc

        sock.settimeout(self.poll_interval)
        self._sock = sock
        self._port = sock.getsockname()[1]
        self._state = ListenerState.BOUND
        logger.debug("Listening for redirect on %s", self.redirect_uri)

    def close(self) -> None:
        """Close the listening socket. Safe to call more than once."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        self._state = ListenerState.CLOSED

    def wait(
        self,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> RedirectResult:
        """Block until one redirect arrives, answer it, and close.

        Binds first if :meth:`bind` has not been called.

        Args:
            timeout: Seconds to wait for the redirect, including reading its
                request line. ``None`` waits until *cancel* is set.
            cancel: Event that aborts the wait when set from another thread.

        Returns:
            The :class:`~loopauth.models.RedirectResult` from the request line.

        Raises:
            TimeoutError_: If *timeout* expires or *cancel* is set first.
            ListenerAcceptError: If accepting or reading the connection
                fails, or the listener was already used.
            MalformedRedirectError: If the request line is not a usable
                redirect. The user still receives a response page.
        """
        if self._state is ListenerState.CLOSED:
            raise ListenerAcceptError("Listener has already handled its redirect")
        if self._state is ListenerState.CREATED:
            self.bind()

        deadline = None if timeout is None else time.monotonic() + timeout
        try:
            conn = self._accept(deadline, timeout, cancel)
            with conn:
                return self._handle(conn, deadline, timeout, cancel)
        finally:
            self.close()

    @staticmethod
    def _check_wait(
        deadline: Optional[float], timeout: Optional[float], cancel: Optional[threading.Event]
    ) -> Optional[float]:
        """Raise if the caller's wait is over, else return the seconds left (``None`` if unbounded)."""
        if cancel is not None and cancel.is_set():
            raise TimeoutError_("Waiting for the redirect was cancelled")
        if deadline is None:
            return None
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TimeoutError_(f"No redirect received within {timeout:g} seconds")
        return remaining

    def _accept(
        self,
        deadline: Optional[float],
        timeout: Optional[float],
        cancel: Optional[threading.Event],
    ) -> socket.socket:
        assert self._sock is not None

        while True:
            remaining = self._check_wait(deadline, timeout, cancel)
            slice_ = self.poll_interval if remaining is None else min(self.poll_interval, remaining)
            self._sock.settimeout(slice_)

            try:
                conn, peer = self._sock.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                raise ListenerAcceptError(f"Failed to accept connection: {exc}") from exc

            logger.debug("Accepted redirect connection from %s:%s", peer[0], peer[1])
            return conn

    def _read_request_line(
        self,
        conn: socket.socket,
        deadline: Optional[float],
        timeout: Optional[float],
        cancel: Optional[threading.Event],
    ) -> bytes:
        """Read up to the first newline, in poll-sized slices bounded by both timeouts."""
        read_deadline = time.monotonic() + self._read_timeout
        received = b""
        while b"\n" not in received and len(received) <= MAX_REQUEST_LINE:
            remaining = self._check_wait(deadline, timeout, cancel)
            read_remaining = read_deadline - time.monotonic()
            if read_remaining <= 0:
                raise ListenerAcceptError("Failed to read redirect request: timed out")
            slice_ = min(self.poll_interval, read_remaining)
            if remaining is not None:
                slice_ = min(slice_, remaining)
            conn.settimeout(slice_)

            try:
                chunk = conn.recv(4096)
            except socket.timeout:
                continue
            except OSError as exc:
                raise ListenerAcceptError(f"Failed to read redirect request: {exc}") from exc
            if not chunk:
                break
            received += chunk
        return received

    def _handle(
        self,
        conn: socket.socket,
        deadline: Optional[float],
        timeout: Optional[float],
        cancel: Optional[threading.Event],
    ) -> RedirectResult:
        received = self._read_request_line(conn, deadline, timeout, cancel)
        line, newline, _rest = received.partition(b"\n")
        line += newline

        try:
            if not line:
                raise MalformedRedirectError("Connection closed before a request line was sent")
            if len(line) > MAX_REQUEST_LINE:
                raise MalformedRedirectError("Redirect request line is too long")
            _drain_headers(conn, received, self.poll_interval)
            result = parse_request_line(line)
        except MalformedRedirectError:
            self._respond(conn, FAILURE_MESSAGE)
            raise

        self._respond(conn, SUCCESS_MESSAGE)
        return result

    def _respond(self, conn: socket.socket, message: str) -> None:
        try:
            conn.sendall(_http_response(message))
        except OSError as exc:
            # The redirect has already been read; a browser that hung up
            # early does not change the outcome.
            logger.debug("Could not write redirect response: %s", exc)
