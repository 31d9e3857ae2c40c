"""
Wire Codec

Pure translation between commands and the bytes written to the socket, and
classification of single-line replies. Nothing in this module does I/O.
"""
import hashlib
from dataclasses import dataclass
from decimal import Decimal
from typing import Tuple, Union

from bloomd.config import settings
from bloomd.exceptions import FilterNotFoundError, InvalidArgument, RemoteError
from bloomd.models import Status

LINE_TERMINATOR = "\n"

# Block sentinels
BLOCK_START = "START"
BLOCK_END = "END"

# Server commands
CREATE_CMD = "create"
LIST_CMD = "list"
INFO_CMD = "info"
FLUSH_CMD = "flush"

# Filter commands
SET_CMD = "set"
CHECK_CMD = "check"
BULK_CMD = "bulk"
MULTI_CMD = "multi"
DROP_CMD = "drop"
CLOSE_CMD = "close"
CLEAR_CMD = "clear"

_STATUS_BY_TEXT = {status.value: status for status in Status if status is not Status.UNRECOGNIZED}


def _check_token(token: str) -> str:
    if not token:
        raise InvalidArgument("Empty token cannot be sent on the wire")
    if any(ch.isspace() for ch in token):
        raise InvalidArgument(
            "Token contains whitespace; enable key hashing or sanitize it first",
            details={"token": token},
        )
    return token


@dataclass(frozen=True)
class Command:
    """A verb plus its ordered argument tokens"""

    verb: str
    args: Tuple[str, ...] = ()

    def render(self) -> bytes:
        return render(self.verb, *self.args)

    def __str__(self) -> str:
        return " ".join((self.verb,) + self.args)


def render(verb: str, *args: str) -> bytes:
    """
    Render a command line ready to be written to the socket.

    Tokens are joined with single spaces and terminated with a newline.

    Raises:
        InvalidArgument: If any token is empty or contains whitespace
    """
    tokens = [_check_token(verb)]
    tokens.extend(_check_token(str(arg)) for arg in args)
    return (" ".join(tokens) + LINE_TERMINATOR).encode(settings.encoding)


def classify_status(line: str) -> Status:
    """Map a reply line onto a known status, or Status.UNRECOGNIZED"""
    return _STATUS_BY_TEXT.get(line, Status.UNRECOGNIZED)


def expect_status(line: str, *accepted: Status) -> Status:
    """
    Classify a reply line and require it to be one of ``accepted``.

    Raises:
        FilterNotFoundError: Server reported the filter does not exist
        RemoteError: Any other reply outside ``accepted``
    """
    status = classify_status(line)
    if status in accepted:
        return status
    if status is Status.FILTER_NOT_FOUND:
        raise FilterNotFoundError("Filter does not exist", response=line)
    expected = ", ".join(s.value for s in accepted)
    raise RemoteError(
        f"Unexpected server reply {line!r} (expected {expected})",
        response=line,
    )


def hash_key(key: Union[str, bytes]) -> str:
    """
    Digest a key into a whitespace-free wire token.

    The SHA-1 hex digest of the key's bytes is always 40 lowercase hex
    characters, whatever the key contains.
    """
    if isinstance(key, str):
        key = key.encode(settings.encoding)
    return hashlib.sha1(key).hexdigest()


def format_probability(prob: float) -> str:
    """Shortest positional decimal that round-trips ``prob`` (no exponent)"""
    return format(Decimal(repr(float(prob))), "f")


def parse_command(text: str) -> Command:
    """
    Build a Command from a single-space separated command line.

    Raises:
        InvalidArgument: On empty tokens, doubled spaces or embedded newlines
    """
    verb, *args = text.split(" ")
    command = Command(verb, tuple(args))
    # Validate eagerly so a bad line never reaches the socket
    command.render()
    return command
