"""
Protocol Connection

Owns one blocking TCP socket to one bloomd server and implements the
line-based request/response discipline on top of it:

- ``send`` writes one rendered command
- ``read_line`` reads one newline-terminated reply
- ``read_block`` reads a START ... END block
- ``send_and_receive`` / ``send_and_receive_block`` run a full exchange

Only one command may be outstanding at a time. Any I/O failure or oversized
line marks the connection unhealthy and every later send or read refuses
to run until the caller closes and reconnects, so a late reply can never be
taken as the answer to a newer command. The composite exchanges hold
an internal lock for the whole send+receive so threads sharing a connection
through the facades cannot interleave; raw ``send``/``read_*`` calls are
unlocked and leave that discipline to the caller. There is no pipelining, no
retry and no reconnection.
"""
from __future__ import annotations

import socket
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog

from bloomd.config import settings
from bloomd.engine.codec import (
    BLOCK_END,
    BLOCK_START,
    Command,
    classify_status,
    parse_command,
)
from bloomd.exceptions import (
    ConnectionClosedError,
    ConnectionError as BloomdConnectionError,
    ConnectionRefusedError as BloomdConnectionRefusedError,
    ConnectionTimeoutError,
    FilterNotFoundError,
    IncompleteBlockError,
    InvalidArgument,
    MalformedLineError,
    ReceiveError,
    ReceiveTimeoutError,
    RemoteError,
    SendError,
)
from bloomd.models import Status

logger = structlog.get_logger()

_NEWLINE = b"\n"


def parse_address(address: str) -> Tuple[str, int]:
    """Split ``host[:port]`` into a (host, port) tuple, defaulting the port"""
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, settings.port
    try:
        return host.strip("[]"), int(port)
    except ValueError as exc:
        raise InvalidArgument(
            f"Invalid port in server address {address!r}",
            details={"address": address},
        ) from exc


class Connection:
    """
    A persistent, blocking connection to a bloomd server.

    Not safe for unsynchronised concurrent use of the raw ``send`` and
    ``read_*`` methods; use one Connection per thread or go through the
    composite exchange methods.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        timeout_sec: Optional[float] = None,
    ):
        self.host = host or settings.host
        self.port = port or settings.port
        self.timeout_sec = timeout_sec if timeout_sec is not None else settings.timeout_sec

        self._sock: Optional[socket.socket] = None
        self._buffer = bytearray()
        self._lock = threading.RLock()

        self.healthy: bool = True

        # Statistics
        self.created_at: Optional[datetime] = None
        self.last_send: Optional[datetime] = None
        self.last_recv: Optional[datetime] = None
        self.bytes_sent: int = 0
        self.bytes_received: int = 0
        self.send_count: int = 0
        self.recv_count: int = 0

    @classmethod
    def from_address(cls, address: str, timeout_sec: Optional[float] = None) -> "Connection":
        host, port = parse_address(address)
        return cls(host, port, timeout_sec)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        """
        Open the socket. A no-op when already connected.

        Raises:
            ConnectionTimeoutError: Dial timed out
            ConnectionRefusedError: Server refused the connection
            ConnectionError: Any other dial failure
        """
        if self._sock is not None:
            return

        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.timeout_sec)
        except socket.timeout as e:
            self.healthy = False
            raise ConnectionTimeoutError(
                f"Connection timeout to {self.address}",
                details={"timeout_sec": self.timeout_sec},
            ) from e
        except ConnectionRefusedError as e:
            self.healthy = False
            raise BloomdConnectionRefusedError(
                f"Connection refused by {self.address}",
                details={"error": str(e)},
            ) from e
        except OSError as e:
            self.healthy = False
            raise BloomdConnectionError(
                f"Failed to connect to {self.address}: {e}",
                details={"error": str(e)},
            ) from e

        self._sock = sock
        self._buffer.clear()
        self.healthy = True
        self.created_at = datetime.utcnow()
        logger.debug("bloomd_connected", host=self.host, port=self.port)

    def send(self, command: Union[Command, str]) -> None:
        """
        Write one command. Does not wait for the reply.

        Raises:
            InvalidArgument: Command has an empty or whitespace-bearing token
            SendError: The write failed or timed out
        """
        if isinstance(command, str):
            command = parse_command(command)
        data = command.render()

        sock = self._require_socket()
        try:
            sock.sendall(data)
        except OSError as e:
            self.healthy = False
            raise SendError(
                f"Failed to send command to {self.address}",
                details={"error": str(e), "verb": command.verb, "data_size": len(data)},
            ) from e

        self.last_send = datetime.utcnow()
        self.bytes_sent += len(data)
        self.send_count += 1
        logger.debug("bloomd_command_sent", host=self.host, port=self.port, verb=command.verb)

    def read_line(self) -> str:
        """
        Block until one full reply line is available and return it without
        its terminator.

        Raises:
            ReceiveTimeoutError: No full line before the timeout
            ConnectionClosedError: Peer closed the stream mid-line
            ReceiveError: Any other read failure
            MalformedLineError: Line exceeds max_line_bytes or is not decodable
        """
        sock = self._require_socket()

        while True:
            index = self._buffer.find(_NEWLINE)
            if index >= 0:
                raw = bytes(self._buffer[:index])
                del self._buffer[: index + 1]
                break

            if len(self._buffer) > settings.max_line_bytes:
                self.healthy = False
                raise MalformedLineError(
                    f"Reply line from {self.address} exceeds {settings.max_line_bytes} bytes",
                    details={"buffered": len(self._buffer)},
                )

            try:
                chunk = sock.recv(settings.recv_buffer_size)
            except socket.timeout as e:
                self.healthy = False
                raise ReceiveTimeoutError(
                    f"Receive timeout from {self.address}",
                    details={"timeout_sec": self.timeout_sec},
                ) from e
            except OSError as e:
                self.healthy = False
                raise ReceiveError(
                    f"Failed to read from {self.address}: {e}",
                    details={"error": str(e)},
                ) from e

            if not chunk:
                self.healthy = False
                raise ConnectionClosedError(
                    f"Connection closed by {self.address}",
                    details={"buffered": len(self._buffer)},
                )

            self._buffer.extend(chunk)
            self.bytes_received += len(chunk)

        self.last_recv = datetime.utcnow()
        self.recv_count += 1

        try:
            return raw.decode(settings.encoding)
        except UnicodeDecodeError as e:
            raise MalformedLineError(
                f"Undecodable reply line from {self.address}",
                details={"line": raw},
            ) from e

    def read_block(self) -> List[str]:
        """
        Read a START ... END block and return the lines between the sentinels.

        A first line other than START is the server's error reply and is
        raised as a RemoteError carrying that text.

        Raises:
            IncompleteBlockError: Stream ended before END
            FilterNotFoundError / RemoteError: Server replied with an error line
            ConnectionError: Underlying I/O failure
        """
        first = self.read_line()
        if first != BLOCK_START:
            if classify_status(first) is Status.FILTER_NOT_FOUND:
                raise FilterNotFoundError("Filter does not exist", response=first)
            raise RemoteError(f"Expected block start, got {first!r}", response=first)

        lines: List[str] = []
        while True:
            try:
                line = self.read_line()
            except ConnectionClosedError as e:
                if self._sock is None:
                    # Closed locally to abort the read
                    raise
                raise IncompleteBlockError(
                    f"Stream from {self.address} ended before {BLOCK_END}",
                    details={"lines_read": len(lines)},
                ) from e
            if line == BLOCK_END:
                return lines
            lines.append(line)

    def send_and_receive(self, command: Union[Command, str]) -> str:
        """Send a command and read its single-line reply as one exchange."""
        with self._lock:
            self.send(command)
            return self.read_line()

    def send_and_receive_block(self, command: Union[Command, str]) -> List[str]:
        """Send a command and read its block reply as one exchange."""
        with self._lock:
            self.send(command)
            return self.read_block()

    def close(self) -> None:
        """
        Close the socket.

        Safe to call from another thread to abort a blocked read, which then
        fails with a ConnectionError.
        """
        sock, self._sock = self._sock, None
        self._buffer.clear()
        if sock is None:
            return

        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            # Peer already gone
            logger.debug("bloomd_shutdown_skipped", host=self.host, port=self.port, error=str(e))
        sock.close()

        logger.debug(
            "bloomd_closed",
            host=self.host,
            port=self.port,
            bytes_sent=self.bytes_sent,
            bytes_received=self.bytes_received,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Connection statistics"""
        return {
            "address": self.address,
            "connected": self.connected,
            "healthy": self.healthy,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_send": self.last_send.isoformat() if self.last_send else None,
            "last_recv": self.last_recv.isoformat() if self.last_recv else None,
            "bytes_sent": self.bytes_sent,
            "bytes_received": self.bytes_received,
            "send_count": self.send_count,
            "recv_count": self.recv_count,
        }

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise BloomdConnectionError("Not connected", details={"address": self.address})
        if not self.healthy:
            # A late reply to the failed command may still be in flight
            raise BloomdConnectionError(
                f"Connection to {self.address} is unhealthy; close it and reconnect",
                details={"address": self.address},
            )
        return self._sock

    def __enter__(self) -> "Connection":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Connection({self.address!r}, connected={self.connected})"
