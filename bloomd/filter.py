"""
Filter handle

A Filter names one remote bloom filter and turns its operations into
commands on a shared Connection. Creating or dropping the filter happens on
the server; the handle itself holds no state besides its parameters.
"""
from typing import Dict, Iterable, List, Optional, Union

import structlog

from bloomd.config import settings
from bloomd.engine import block_parser
from bloomd.engine.codec import (
    BULK_CMD,
    CHECK_CMD,
    CLEAR_CMD,
    CLOSE_CMD,
    DROP_CMD,
    FLUSH_CMD,
    INFO_CMD,
    MULTI_CMD,
    SET_CMD,
    Command,
    classify_status,
    expect_status,
    hash_key,
)
from bloomd.engine.connection import Connection
from bloomd.exceptions import InvalidArgument, RemoteError
from bloomd.models import FilterInfo, Status

logger = structlog.get_logger()

Key = Union[str, bytes]


class Filter:
    """Handle to a named filter on a bloomd server"""

    def __init__(
        self,
        name: str,
        conn: Connection,
        hash_keys: bool = False,
        capacity: Optional[int] = None,
        prob: Optional[float] = None,
        in_memory: bool = False,
    ):
        self.name = name
        self.conn = conn
        self.hash_keys = hash_keys
        self.capacity = capacity
        self.prob = prob
        self.in_memory = in_memory

    def _wire_key(self, key: Key) -> str:
        if self.hash_keys:
            return hash_key(key)
        if isinstance(key, bytes):
            try:
                return key.decode(settings.encoding)
            except UnicodeDecodeError as exc:
                raise InvalidArgument(
                    "Binary keys must be sent with hash_keys enabled",
                    details={"filter": self.name},
                ) from exc
        return key

    def _single(self, verb: str, key: Key) -> bool:
        command = Command(verb, (self.name, self._wire_key(key)))
        reply = self.conn.send_and_receive(command)
        return expect_status(reply, Status.YES, Status.NO) is Status.YES

    def _group(self, verb: str, keys: Iterable[Key]) -> List[bool]:
        wire_keys = [self._wire_key(key) for key in keys]
        if not wire_keys:
            raise InvalidArgument(f"{verb} requires at least one key")

        command = Command(verb, (self.name, *wire_keys))
        reply = self.conn.send_and_receive(command)

        statuses = [classify_status(token) for token in reply.split(" ")]
        if any(status not in (Status.YES, Status.NO) for status in statuses):
            # Raised against the whole reply so "Filter does not exist" keeps its type
            expect_status(reply, Status.YES, Status.NO)
        results = [status is Status.YES for status in statuses]

        if len(results) != len(wire_keys):
            logger.warning(
                "bloomd_group_reply_mismatch",
                filter=self.name,
                verb=verb,
                sent=len(wire_keys),
                received=len(results),
            )
            raise RemoteError(
                f"{verb} sent {len(wire_keys)} keys but the reply has {len(results)} results",
                response=reply,
                details={"sent": len(wire_keys), "received": len(results)},
            )
        return results

    def _command(self, verb: str) -> None:
        reply = self.conn.send_and_receive(Command(verb, (self.name,)))
        expect_status(reply, Status.DONE)

    def set(self, key: Key) -> bool:
        """Add a key; True if it was newly added, False if it was likely present"""
        return self._single(SET_CMD, key)

    def check(self, key: Key) -> bool:
        """True if the key is probably in the filter"""
        return self._single(CHECK_CMD, key)

    def bulk(self, keys: Iterable[Key]) -> List[bool]:
        """Set several keys at once; results are aligned with ``keys``"""
        return self._group(BULK_CMD, keys)

    def multi(self, keys: Iterable[Key]) -> List[bool]:
        """Check several keys at once; results are aligned with ``keys``"""
        return self._group(MULTI_CMD, keys)

    def drop(self) -> None:
        """Delete the filter permanently from the server"""
        self._command(DROP_CMD)
        logger.info("bloomd_filter_dropped", filter=self.name)

    def close(self) -> None:
        """Unload the filter from server memory, keeping it on disk"""
        self._command(CLOSE_CMD)

    def clear(self) -> None:
        """Remove a closed filter from the server's list without deleting its data"""
        self._command(CLEAR_CMD)

    def flush(self) -> None:
        """Force the filter to be written to disk"""
        self._command(FLUSH_CMD)

    def info(self) -> Dict[str, str]:
        """The filter's info block as a field -> value mapping"""
        lines = self.conn.send_and_receive_block(Command(INFO_CMD, (self.name,)))
        return block_parser.to_mapping(lines)

    def stats(self) -> FilterInfo:
        """The filter's info block parsed into a FilterInfo"""
        lines = self.conn.send_and_receive_block(Command(INFO_CMD, (self.name,)))
        return block_parser.parse_filter_info(self.name, lines)

    def __contains__(self, key: Key) -> bool:
        return self.check(key)

    def __repr__(self) -> str:
        return f"Filter({self.name!r}, conn={self.conn!r})"
