"""
Block Parser

Turns the raw lines of a START/END block into the shapes the facades need.
Malformed lines fail the parse; nothing is dropped or defaulted silently.
"""
import re
from typing import Dict, List, Sequence, Tuple

from bloomd.exceptions import MalformedLineError
from bloomd.models import FilterInfo

# Info field lines are "<name> <value>"; "<name>:<value>" is accepted too
_FIELD_LINE = re.compile(r"^(?P<name>[^\s:]+)[ :](?P<value>.*)$")

CAPACITY_FIELD = "capacity"
PROBABILITY_FIELD = "probability"
IN_MEMORY_FIELD = "in_memory"


def to_pairs(lines: Sequence[str]) -> List[Tuple[str, str]]:
    """
    Split every line on its first space into a (key, value) pair.

    The value keeps any further spaces verbatim.

    Raises:
        MalformedLineError: If a line has no space to split on
    """
    pairs = []
    for index, line in enumerate(lines):
        key, sep, value = line.partition(" ")
        if not sep or not key:
            raise MalformedLineError(
                f"Block line {index} has no key/value separator: {line!r}",
                details={"line": line, "index": index},
            )
        pairs.append((key, value))
    return pairs


def to_mapping(lines: Sequence[str]) -> Dict[str, str]:
    """Build an insertion-ordered mapping from block lines; a repeated key keeps its last value"""
    return dict(to_pairs(lines))


def extract_field(lines: Sequence[str], name: str) -> str:
    """
    Return the value of the field line named ``name``.

    Raises:
        MalformedLineError: If no line carries that field name
    """
    for line in lines:
        match = _FIELD_LINE.match(line)
        if match and match.group("name") == name:
            return match.group("value").strip()
    raise MalformedLineError(
        f"Field {name!r} missing from info block",
        details={"field": name, "lines": list(lines)},
    )


def _parse_number(name: str, raw: str, kind):
    try:
        return kind(raw)
    except ValueError as exc:
        raise MalformedLineError(
            f"Field {name!r} is not a valid {kind.__name__}: {raw!r}",
            details={"field": name, "value": raw},
        ) from exc


def parse_capacity(lines: Sequence[str]) -> int:
    return _parse_number(CAPACITY_FIELD, extract_field(lines, CAPACITY_FIELD), int)


def parse_probability(lines: Sequence[str]) -> float:
    return _parse_number(PROBABILITY_FIELD, extract_field(lines, PROBABILITY_FIELD), float)


def parse_in_memory(lines: Sequence[str]) -> bool:
    raw = extract_field(lines, IN_MEMORY_FIELD)
    if raw not in ("0", "1"):
        raise MalformedLineError(
            f"Field {IN_MEMORY_FIELD!r} must be 0 or 1, got {raw!r}",
            details={"field": IN_MEMORY_FIELD, "value": raw},
        )
    return raw == "1"


def parse_filter_info(name: str, lines: Sequence[str]) -> FilterInfo:
    """Build a FilterInfo from the lines of an ``info`` block"""
    fields = {}
    for line in lines:
        match = _FIELD_LINE.match(line)
        if match:
            fields[match.group("name")] = match.group("value").strip()

    return FilterInfo(
        name=name,
        capacity=parse_capacity(lines),
        probability=parse_probability(lines),
        in_memory=parse_in_memory(lines),
        fields=fields,
    )
