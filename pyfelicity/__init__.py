"""
Felicity battery local monitor client library.

Talks to the plaintext TCP service (port 53970) of Felicity battery systems:
send a status query, collect the JSON reply, acknowledge with a single dot.
"""

import asyncio
import logging
from typing import Optional

from .const import (
    ACK,
    DEFAULT_DELIMITER,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT_MS,
    QUERY_REAL_INFO,
    READ_CHUNK_SIZE,
    RELEASE_TIMEOUT_S,
)
from .exceptions import (
    FelicityError,
    ParseError,
    QueryTimeoutError,
    SocketError,
    WriteError,
)
from .models import (
    DeviceReading,
    DeviceTarget,
    FieldSpec,
    QueryFailure,
    QueryOptions,
    QueryOutcome,
    QueryState,
    QuerySuccess,
)
from .parsers import REAL_INFO_FIELDS, decode_reading, extract_fields, format_value

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "DeviceQueryClient",
    "QueryAttempt",
    # Exceptions
    "FelicityError",
    "WriteError",
    "QueryTimeoutError",
    "SocketError",
    "ParseError",
    # Models
    "DeviceReading",
    "DeviceTarget",
    "FieldSpec",
    "QueryOptions",
    "QueryOutcome",
    "QueryState",
    "QuerySuccess",
    "QueryFailure",
    # Parsing
    "REAL_INFO_FIELDS",
    "decode_reading",
    "extract_fields",
    "format_value",
    # Protocol
    "ACK",
    "DEFAULT_DELIMITER",
    "DEFAULT_PORT",
    "DEFAULT_TIMEOUT_MS",
    "QUERY_REAL_INFO",
]


class QueryAttempt:
    """
    State of one query exchange.

    Moves CONNECTING -> STREAMING -> COMPLETED. Only the first transition
    into COMPLETED sets the outcome; later ones are ignored.
    """

    def __init__(self, target: DeviceTarget, options: QueryOptions) -> None:
        self.target = target
        self.options = options
        self.state = QueryState.CONNECTING
        self.buffer = bytearray()
        self.outcome: Optional[QueryOutcome] = None
        self.writer: Optional[asyncio.StreamWriter] = None

    @property
    def finished(self) -> bool:
        return self.state is QueryState.COMPLETED

    def connected(self, writer: asyncio.StreamWriter) -> None:
        self.writer = writer
        if self.state is QueryState.CONNECTING:
            self.state = QueryState.STREAMING

    def feed(self, chunk: bytes) -> None:
        """Append a received chunk and complete on the first delimiter."""
        if self.finished:
            return
        # Resume the search where a delimiter split across chunks could start.
        delimiter = self.options.delimiter
        start = max(0, len(self.buffer) - len(delimiter) + 1) if delimiter else 0
        self.buffer += chunk
        if delimiter:
            index = self.buffer.find(delimiter, start)
            if index != -1:
                self.succeed(bytes(self.buffer[:index]))

    def end_of_stream(self) -> bool:
        return self.succeed(bytes(self.buffer))

    def succeed(self, response: bytes) -> bool:
        return self._finish(QuerySuccess(response))

    def fail(self, error: FelicityError) -> bool:
        return self._finish(QueryFailure(error))

    def _finish(self, outcome: QueryOutcome) -> bool:
        if self.finished:
            return False
        self.state = QueryState.COMPLETED
        self.outcome = outcome
        return True


class DeviceQueryClient:
    """
    Async query client for the Felicity local monitor service.

    Every call to :meth:`query` opens its own connection, so calls for
    different devices can run concurrently on one event loop.

    Attributes:
        chunk_size: Maximum bytes requested per read
        release_timeout: Seconds allowed for the acknowledgement and close
    """

    def __init__(
        self,
        chunk_size: int = READ_CHUNK_SIZE,
        release_timeout: float = RELEASE_TIMEOUT_S,
    ) -> None:
        self.chunk_size = chunk_size
        self.release_timeout = release_timeout

    async def query(
        self,
        target: DeviceTarget,
        payload: bytes = QUERY_REAL_INFO,
        options: Optional[QueryOptions] = None,
    ) -> QueryOutcome:
        """
        Run one query/response exchange with a device.

        Device-level faults never raise; they come back as a
        :class:`QueryFailure` wrapping a :class:`FelicityError`.

        Args:
            target: Device to query
            payload: Bytes to send once connected
            options: Timeout and delimiter settings

        Returns:
            Exactly one QuerySuccess or QueryFailure
        """
        options = options or QueryOptions()
        attempt = QueryAttempt(target, options)
        try:
            await asyncio.wait_for(
                self._exchange(attempt, payload),
                timeout=options.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            attempt.fail(QueryTimeoutError(options.timeout_ms))
        except OSError as err:
            attempt.fail(SocketError(err))
        finally:
            await self._release(attempt)

        _LOGGER.debug("Query %s finished: %s", target, attempt.outcome)
        return attempt.outcome

    async def _exchange(self, attempt: QueryAttempt, payload: bytes) -> None:
        target = attempt.target
        reader, writer = await asyncio.open_connection(target.host, target.port)
        attempt.connected(writer)

        try:
            writer.write(payload)
            await writer.drain()
        except OSError as err:
            attempt.fail(WriteError(err))
            return

        while not attempt.finished:
            chunk = await reader.read(self.chunk_size)
            if not chunk:
                attempt.end_of_stream()
                break
            attempt.feed(chunk)

    async def _release(self, attempt: QueryAttempt) -> None:
        """Acknowledge and close; runs on every exit path."""
        writer = attempt.writer
        if writer is None:
            return
        try:
            if not writer.is_closing():
                writer.write(ACK)
                await asyncio.wait_for(writer.drain(), timeout=self.release_timeout)
        except (OSError, asyncio.TimeoutError) as err:
            _LOGGER.debug("Acknowledgement to %s failed: %s", attempt.target, err)
        finally:
            writer.close()
            try:
                await asyncio.wait_for(writer.wait_closed(), timeout=self.release_timeout)
            except (OSError, asyncio.TimeoutError) as err:
                _LOGGER.debug("Closing connection to %s failed: %s", attempt.target, err)
