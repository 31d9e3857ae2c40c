"""
bloomd client

Administrative commands against one server, plus factory methods for Filter
handles that share the client's connection.

Example:
    client = Client("10.0.0.30:8673")
    flt = client.create_filter("coolfilter", capacity=100000, prob=0.001)
    flt.set("alice")
    assert "alice" in flt
    print(client.list_filters())

Pointing the client at a bloomd proxy is the way to use several servers.
"""
import threading
from typing import Dict, Optional, Union

import structlog
from pydantic import ValidationError

from bloomd.config import settings
from bloomd.engine import block_parser
from bloomd.engine.codec import (
    CREATE_CMD,
    FLUSH_CMD,
    INFO_CMD,
    LIST_CMD,
    Command,
    expect_status,
    format_probability,
)
from bloomd.engine.connection import Connection
from bloomd.exceptions import InvalidArgument
from bloomd.filter import Filter
from bloomd.models import FilterSpec, Status

logger = structlog.get_logger()


class Client:
    """Client for a single bloomd server (or proxy)"""

    def __init__(
        self,
        server: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        hash_keys: Optional[bool] = None,
    ):
        self.server = server or f"{settings.host}:{settings.port}"
        self.timeout_sec = timeout_sec
        self.hash_keys = settings.hash_keys if hash_keys is None else hash_keys
        self._conn: Optional[Connection] = None
        self._conn_lock = threading.Lock()

    @property
    def conn(self) -> Connection:
        """The shared connection, opened on first use"""
        with self._conn_lock:
            if self._conn is None:
                self._conn = Connection.from_address(self.server, self.timeout_sec)
            if not self._conn.connected:
                self._conn.connect()
            return self._conn

    def create_filter(
        self,
        spec: Union[FilterSpec, str],
        capacity: Optional[int] = None,
        prob: Optional[float] = None,
        in_memory: bool = False,
    ) -> Filter:
        """
        Create a filter on the server and return a handle to it.

        ``spec`` is either a FilterSpec or a filter name, in which case the
        keyword parameters describe the filter. An existing filter with the
        same name counts as success. A zero probability means "server default".

        Raises:
            InvalidArgument: Out of range parameters, or a probability without a capacity
            RemoteError: Server rejected the create
        """
        if isinstance(spec, str):
            try:
                spec = FilterSpec(name=spec, capacity=capacity, prob=prob, in_memory=in_memory)
            except ValidationError as exc:
                raise InvalidArgument(
                    f"Invalid parameters for filter {spec!r}",
                    details={"errors": exc.errors()},
                ) from exc

        if spec.prob and not spec.capacity:
            raise InvalidArgument(
                "A false positive probability requires a capacity",
                details={"filter": spec.name, "prob": spec.prob},
            )

        args = [spec.name]
        if spec.capacity:
            args.append(f"capacity={spec.capacity}")
        if spec.prob:
            args.append(f"prob={format_probability(spec.prob)}")
        if spec.in_memory:
            args.append("in_memory=1")

        reply = self.conn.send_and_receive(Command(CREATE_CMD, tuple(args)))
        status = expect_status(reply, Status.DONE, Status.EXISTS)
        logger.info("bloomd_filter_created", filter=spec.name, status=status.value)

        return Filter(
            spec.name,
            self.conn,
            hash_keys=self.hash_keys,
            capacity=spec.capacity,
            prob=spec.prob,
            in_memory=spec.in_memory,
        )

    def filter(self, name: str) -> Filter:
        """Handle to an existing filter, without a round-trip"""
        return Filter(name, self.conn, hash_keys=self.hash_keys)

    def get_filter(self, name: str) -> Filter:
        """
        Handle to an existing filter, populated from its info block.

        Raises:
            FilterNotFoundError: No such filter on the server
            MalformedLineError: The info block lacks a known field
        """
        lines = self.conn.send_and_receive_block(Command(INFO_CMD, (name,)))
        info = block_parser.parse_filter_info(name, lines)
        return Filter(
            name,
            self.conn,
            hash_keys=self.hash_keys,
            capacity=info.capacity,
            prob=info.probability,
            in_memory=info.in_memory,
        )

    def list_filters(self) -> Dict[str, str]:
        """Map of filter name to the rest of its list line"""
        lines = self.conn.send_and_receive_block(Command(LIST_CMD))
        return block_parser.to_mapping(lines)

    def flush(self) -> None:
        """Instruct the server to flush every filter to disk"""
        reply = self.conn.send_and_receive(Command(FLUSH_CMD))
        expect_status(reply, Status.DONE)

    def close(self) -> None:
        """Close the connection; the next call reconnects"""
        if self._conn is not None:
            self._conn.close()

    def __getitem__(self, name: str) -> Filter:
        return self.filter(name)

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Client({self.server!r})"
