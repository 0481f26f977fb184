"""Publishing world moments and vibe updates to a NATS server."""

from __future__ import annotations

import collections
import json
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol
from urllib.parse import unquote, urlsplit

from ..models import BinaryDataError, DataEncoding, Vibe, WorldMoment
from .access_control import get_accessible_content

logger = logging.getLogger(__name__)

DEFAULT_STREAM_ID = "ies"
DEFAULT_PORT = 4222
_ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)
_MAX_LINE = 64 * 1024


class NatsError(RuntimeError):
    """Raised when talking to the NATS server fails."""


class NatsConnection(Protocol):
    """The connection operations the client relies on."""

    def publish(self, subject: str, data: bytes) -> None: ...

    def is_connected(self) -> bool: ...

    def close(self) -> None: ...

    def connected_server_id(self) -> str: ...

    def connected_url(self) -> str: ...

    def rtt(self) -> float: ...


ErrorHandler = Callable[[Any, Exception], None]
ClosedHandler = Callable[[Any], None]


class SocketNatsConnection:
    """A publish-only connection speaking the NATS text protocol over TCP."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 5.0,
        name: str = "vibespace",
        on_error: Optional[ErrorHandler] = None,
        on_disconnect: Optional[ErrorHandler] = None,
        on_closed: Optional[ClosedHandler] = None,
    ) -> None:
        parts = urlsplit(url if "://" in url else f"nats://{url}")
        if parts.scheme not in ("nats", "tcp"):
            raise NatsError(f"unsupported URL scheme: {parts.scheme}")
        self._host = parts.hostname or "localhost"
        try:
            self._port = parts.port or DEFAULT_PORT
        except ValueError as exc:
            raise NatsError(f"invalid NATS URL: {url}") from exc
        self._timeout = timeout
        self._on_error = on_error
        self._on_disconnect = on_disconnect
        self._on_closed = on_closed
        self._send_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._pong_waiters: collections.deque[threading.Event] = collections.deque()
        self._closed = False
        self._connected = False
        self.info: dict[str, Any] = {}

        try:
            self._sock = socket.create_connection((self._host, self._port), timeout)
        except OSError as exc:
            raise NatsError(f"cannot reach {self._host}:{self._port}: {exc}") from exc
        self._file = self._sock.makefile("rb")
        try:
            self._handshake(name, parts.username, parts.password)
        except (OSError, ValueError, NatsError) as exc:
            self._sock.close()
            if isinstance(exc, NatsError):
                raise
            raise NatsError(f"handshake failed: {exc}") from exc

        self._sock.settimeout(None)
        self._connected = True
        self._reader = threading.Thread(target=self._read_loop, daemon=True)
        self._reader.start()

    def _read_line(self) -> bytes:
        line = self._file.readline(_MAX_LINE)
        if not line:
            raise ConnectionError("connection closed by server")
        return line.rstrip(b"\r\n")

    def _handshake(self, name: str, user: Optional[str], password: Optional[str]) -> None:
        line = self._read_line()
        op, _, rest = line.partition(b" ")
        if op.upper() != b"INFO":
            raise NatsError(f"unexpected greeting from server: {line!r}")
        self.info = json.loads(rest)

        options: dict[str, Any] = {
            "verbose": False,
            "pedantic": False,
            "name": name,
            "lang": "python",
            "version": "1.0.0",
            "protocol": 1,
        }
        if user:
            options["user"] = unquote(user)
        if password:
            options["pass"] = unquote(password)
        self._send(b"CONNECT " + json.dumps(options).encode() + b"\r\nPING\r\n")

        while True:
            line = self._read_line()
            op, _, rest = line.partition(b" ")
            op = op.upper()
            if op == b"PONG":
                return
            if op == b"PING":
                self._send(b"PONG\r\n")
            elif op == b"-ERR":
                raise NatsError(f"server rejected connection: {rest.decode(errors='replace')}")
            elif op == b"INFO":
                self.info = json.loads(rest)

    def _send(self, payload: bytes) -> None:
        with self._send_lock:
            self._sock.sendall(payload)

    def _read_loop(self) -> None:
        try:
            while True:
                line = self._read_line()
                op, _, rest = line.partition(b" ")
                op = op.upper()
                if op == b"PING":
                    self._send(b"PONG\r\n")
                elif op == b"PONG":
                    with self._state_lock:
                        waiter = self._pong_waiters.popleft() if self._pong_waiters else None
                    if waiter is not None:
                        waiter.set()
                elif op == b"INFO":
                    self.info = json.loads(rest)
                elif op == b"-ERR":
                    error = NatsError(rest.decode(errors="replace").strip("'"))
                    if self._on_error is not None:
                        self._on_error(self, error)
        except (OSError, ValueError) as exc:
            with self._state_lock:
                was_closed = self._closed
                self._connected = False
            if not was_closed and self._on_disconnect is not None:
                self._on_disconnect(self, exc)
        finally:
            self._wake_waiters()

    def _wake_waiters(self) -> None:
        with self._state_lock:
            waiters = list(self._pong_waiters)
            self._pong_waiters.clear()
        for waiter in waiters:
            waiter.set()

    def publish(self, subject: str, data: bytes) -> None:
        """Send ``data`` to ``subject``."""
        if not subject or any(c.isspace() for c in subject):
            raise NatsError(f"invalid subject: {subject!r}")
        if not self.is_connected():
            raise NatsError("connection closed")
        max_payload = self.info.get("max_payload")
        if max_payload is not None and len(data) > max_payload:
            raise NatsError("maximum payload exceeded")
        header = f"PUB {subject} {len(data)}\r\n".encode()
        try:
            self._send(header + bytes(data) + b"\r\n")
        except OSError as exc:
            raise NatsError(f"write failed: {exc}") from exc

    def is_connected(self) -> bool:
        with self._state_lock:
            return self._connected and not self._closed

    def close(self) -> None:
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            self._connected = False
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._sock.close()
        self._wake_waiters()
        if self._on_closed is not None:
            self._on_closed(self)

    def connected_server_id(self) -> str:
        return str(self.info.get("server_id", "")) if self.is_connected() else ""

    def connected_url(self) -> str:
        return f"nats://{self._host}:{self._port}" if self.is_connected() else ""

    def rtt(self) -> float:
        """Round-trip time of a PING to the server, in seconds."""
        if not self.is_connected():
            raise NatsError("connection closed")
        waiter = threading.Event()
        with self._state_lock:
            self._pong_waiters.append(waiter)
        start = time.perf_counter()
        try:
            self._send(b"PING\r\n")
        except OSError as exc:
            raise NatsError(f"write failed: {exc}") from exc
        if not waiter.wait(self._timeout):
            raise NatsError("timeout waiting for PONG")
        if not self.is_connected():
            raise NatsError("connection closed")
        return time.perf_counter() - start


ConnectionFactory = Callable[..., NatsConnection]


class RateLimiter:
    """Token bucket: ``max_tokens`` burst, ``refill_rate`` tokens per interval."""

    def __init__(
        self,
        max_tokens: int,
        refill_rate: int,
        interval_ms: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._tokens = max_tokens
        self._max_tokens = max_tokens
        self._refill_rate = refill_rate
        self._interval_ms = interval_ms
        self._clock = clock
        self._last_refill = clock()
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        """Take one token if any is available."""
        with self._lock:
            now = self._clock()
            elapsed_ms = int((now - self._last_refill) * 1000)
            if elapsed_ms >= self._interval_ms:
                intervals = elapsed_ms // self._interval_ms
                self._tokens = min(
                    self._tokens + self._refill_rate * intervals, self._max_tokens
                )
                self._last_refill = now
            if self._tokens > 0:
                self._tokens -= 1
                return True
            return False


def _format_duration(seconds: float) -> str:
    ns = round(seconds * 1_000_000_000)
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    for unit_ns, suffix in ((1_000_000_000, "s"), (1_000_000, "ms"), (1_000, "µs")):
        if ns >= unit_ns:
            whole, rem = divmod(ns, unit_ns)
            if rem:
                width = len(str(unit_ns)) - 1
                return f"{sign}{whole}.{str(rem).rjust(width, '0').rstrip('0')}{suffix}"
            return f"{sign}{whole}{suffix}"
    return f"{sign}{ns}ns"


@dataclass
class ConnectionStatus:
    """A snapshot of the client's connection state."""

    is_connected: bool = False
    url: str = ""
    reconnect_count: int = 0
    disconnect_count: int = 0
    last_connect_time: datetime = field(default=_ZERO_TIME)
    last_error_message: str = ""
    server_id: str = ""
    connected_url: str = ""
    rtt: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "isConnected": self.is_connected,
            "url": self.url,
            "reconnectCount": self.reconnect_count,
            "disconnectCount": self.disconnect_count,
            "lastConnectTime": self.last_connect_time.isoformat().replace(
                "+00:00", "Z"
            ),
        }
        for key, value in (
            ("lastErrorMessage", self.last_error_message),
            ("serverId", self.server_id),
            ("connectedUrl", self.connected_url),
            ("rtt", self.rtt),
        ):
            if value:
                result[key] = value
        return result


class NATSClient:
    """Publishes world moments and vibe updates under a stream namespace."""

    def __init__(
        self,
        url: str,
        stream_id: str = DEFAULT_STREAM_ID,
        *,
        connection_factory: Optional[ConnectionFactory] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.url = url
        self.stream_id = stream_id
        self._factory = connection_factory or SocketNatsConnection
        # A burst of 100 messages, then 10 per second.
        self._rate_limiter = rate_limiter or RateLimiter(100, 10, 1000)
        self._conn: Optional[NatsConnection] = None
        self._connected = False
        self._ever_connected = False
        self._reconnect_count = 0
        self._disconnect_count = 0
        self._last_connect_time = _ZERO_TIME
        self._last_error: Optional[Exception] = None
        self._lock = threading.RLock()

    # Connection lifecycle

    def _handle_error(self, conn: Any, error: Exception) -> None:
        with self._lock:
            self._last_error = error
        logger.warning("NATS error: %s", error)

    def _handle_disconnect(self, conn: Any, error: Exception) -> None:
        with self._lock:
            if conn is not self._conn:
                return
            self._connected = False
            self._disconnect_count += 1
            self._last_error = error
        logger.warning("NATS disconnected: %s", error)

    def _handle_closed(self, conn: Any) -> None:
        with self._lock:
            if conn is self._conn:
                self._connected = False
        logger.info("NATS connection closed")

    def connect(self) -> None:
        """Open a connection unless a live one already exists."""
        with self._lock:
            if self._connected and self._conn is not None and self._conn.is_connected():
                return
            if self._conn is not None:
                old, self._conn = self._conn, None
                old.close()
            self._last_connect_time = datetime.now(timezone.utc)
            try:
                conn = self._factory(
                    self.url,
                    on_error=self._handle_error,
                    on_disconnect=self._handle_disconnect,
                    on_closed=self._handle_closed,
                )
            except (OSError, NatsError) as exc:
                self._last_error = exc
                raise NatsError(f"failed to connect to NATS: {exc}") from exc
            self._conn = conn
            self._connected = True
            if self._ever_connected:
                self._reconnect_count += 1
            self._ever_connected = True
        logger.info("Successfully connected to NATS server at %s", self.url)

    def close(self) -> None:
        """Disconnect from the server."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
            self._connected = False

    def is_connected(self) -> bool:
        with self._lock:
            return (
                self._connected
                and self._conn is not None
                and self._conn.is_connected()
            )

    # World moments

    def prepare_world_moment(self, moment: WorldMoment, user_id: str) -> WorldMoment:
        """Fill in the creator and check the moment can be published."""
        if not moment.creator_id:
            moment.creator_id = user_id
        if not moment.world_id:
            raise NatsError("world ID is required")
        return moment

    def create_moment_subjects(self, moment: WorldMoment) -> dict[str, bytes]:
        """Map each subject the moment goes to onto the payload for it."""
        if not moment.world_id:
            raise NatsError("world ID is required")

        prefix = f"{self.stream_id}.world.moment.{moment.world_id}"
        data = moment.to_json()
        subjects: dict[str, bytes] = {}
        if moment.sharing.is_public:
            subjects[prefix] = data
        subjects[f"{prefix}.user.{moment.creator_id}"] = data

        for allowed in moment.sharing.allowed_users:
            if allowed == moment.creator_id:
                continue
            filtered = get_accessible_content(allowed, moment)
            if filtered is None:
                continue
            subjects[f"{prefix}.user.{allowed}"] = filtered.to_json()
        return subjects

    def publish_world_moment(self, moment: WorldMoment, user_id: str) -> None:
        """Publish ``moment`` to every subject it is visible on."""
        if not self.is_connected():
            raise NatsError("not connected to NATS server")
        if not self._rate_limiter.try_acquire():
            raise NatsError("rate limit exceeded, too many messages being published")

        try:
            prepared = self.prepare_world_moment(moment, user_id)
        except NatsError as exc:
            raise NatsError(f"failed to prepare world moment: {exc}") from exc

        binary = prepared.binary_data
        if binary is not None and binary.encoding == DataEncoding.BINARY:
            try:
                prepared.get_binary_data()
            except BinaryDataError as exc:
                raise NatsError(f"invalid binary data: {exc}") from exc

        try:
            subject_data = self.create_moment_subjects(prepared)
        except NatsError as exc:
            raise NatsError(f"failed to create subject mappings: {exc}") from exc

        with self._lock:
            if not self._connected or self._conn is None:
                raise NatsError("not connected to NATS server")
            for subject, data in subject_data.items():
                try:
                    self._conn.publish(subject, data)
                except (OSError, NatsError) as exc:
                    raise NatsError(
                        f"failed to publish to subject {subject}: {exc}"
                    ) from exc
        logger.info(
            "Published world moment for %s to %d subjects",
            moment.world_id,
            len(subject_data),
        )

    # Vibe updates

    def prepare_vibe_update(
        self, world_id: str, vibe: Optional[Vibe]
    ) -> tuple[str, bytes]:
        """Return the subject and JSON payload for a vibe update."""
        if not world_id:
            raise NatsError("world ID is required")
        if vibe is None:
            raise NatsError("vibe is required")
        subject = f"{self.stream_id}.world.vibe.{world_id}"
        data = json.dumps(vibe.to_dict(), separators=(",", ":")).encode("utf-8")
        return subject, data

    def publish_vibe_update(self, world_id: str, vibe: Optional[Vibe]) -> None:
        """Publish the vibe now in effect for ``world_id``."""
        if not self.is_connected():
            raise NatsError("not connected to NATS server")
        if not self._rate_limiter.try_acquire():
            raise NatsError("rate limit exceeded, too many messages being published")

        try:
            subject, data = self.prepare_vibe_update(world_id, vibe)
        except NatsError as exc:
            raise NatsError(f"failed to prepare vibe update: {exc}") from exc

        with self._lock:
            if not self._connected or self._conn is None:
                raise NatsError("not connected to NATS server")
            try:
                self._conn.publish(subject, data)
            except (OSError, NatsError) as exc:
                raise NatsError(f"failed to publish vibe update: {exc}") from exc
        logger.info("Published vibe update for world %s", world_id)

    # Status

    def connection_status(self) -> ConnectionStatus:
        """Describe the connection, including server details when connected."""
        with self._lock:
            status = ConnectionStatus(
                is_connected=self._connected,
                url=self.url,
                reconnect_count=self._reconnect_count,
                disconnect_count=self._disconnect_count,
                last_connect_time=self._last_connect_time,
                last_error_message=str(self._last_error) if self._last_error else "",
            )
            conn = self._conn if self._connected else None
        if conn is not None:
            status.server_id = conn.connected_server_id()
            status.connected_url = conn.connected_url()
            try:
                status.rtt = _format_duration(conn.rtt())
            except (OSError, NatsError):
                pass
        return status