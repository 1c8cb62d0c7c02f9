"""Data models for pyfelicity."""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from .const import DEFAULT_PORT, DEFAULT_TIMEOUT_MS
from .exceptions import FelicityError

# Decoded status JSON; values are numbers, strings or nested numeric arrays.
DeviceReading = Dict[str, Any]


@dataclass(frozen=True)
class DeviceTarget:
    """One battery unit on the local network."""
    host: str
    port: int = DEFAULT_PORT

    @property
    def topic_prefix(self) -> str:
        """Topic segment for this unit (dots replaced by dashes)."""
        return self.host.replace(".", "-")

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class QueryOptions:
    """Per-query settings.

    Attributes:
        timeout_ms: Overall deadline for the exchange, counted from connect.
        delimiter: If set, the response ends at its first occurrence.
    """
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    delimiter: Optional[bytes] = None


@dataclass(frozen=True)
class QuerySuccess:
    """Response bytes of a completed exchange."""
    response: bytes

    ok = True


@dataclass(frozen=True)
class QueryFailure:
    """Failed exchange; ``error`` is one of the pyfelicity exceptions."""
    error: FelicityError

    ok = False

    @property
    def reason(self) -> str:
        return str(self.error)


QueryOutcome = Union[QuerySuccess, QueryFailure]


class QueryState(enum.Enum):
    """Lifecycle of a single query."""

    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"


@dataclass(frozen=True)
class FieldSpec:
    """One published field: where to find it in the reading and how to scale it.

    Attributes:
        name: Topic suffix under the device prefix.
        key: Top-level key in the reading.
        path: Indices into nested arrays below ``key``.
        scale: Divisor applied to numeric values (1 = unscaled).
    """
    name: str
    key: str
    path: Tuple[int, ...] = field(default=())
    scale: int = 1
