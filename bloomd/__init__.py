"""
Client for the bloomd bloom filter server.
"""
from bloomd.client import Client
from bloomd.engine.codec import Command, hash_key, render
from bloomd.engine.connection import Connection
from bloomd.exceptions import (
    BloomdError,
    ConnectionError,
    FilterNotFoundError,
    InvalidArgument,
    ProtocolError,
    RemoteError,
)
from bloomd.filter import Filter
from bloomd.models import FilterInfo, FilterSpec, Status

__all__ = [
    "BloomdError",
    "Client",
    "Command",
    "Connection",
    "ConnectionError",
    "Filter",
    "FilterInfo",
    "FilterNotFoundError",
    "FilterSpec",
    "InvalidArgument",
    "ProtocolError",
    "RemoteError",
    "Status",
    "hash_key",
    "render",
]

__version__ = "0.1.0"
