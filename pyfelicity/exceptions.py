"""Exceptions raised by pyfelicity."""


class FelicityError(Exception):
    """Base exception for Felicity errors."""


class WriteError(FelicityError):
    """Sending the query to the device failed."""

    def __init__(self, detail: object) -> None:
        super().__init__(f"write failed: {detail}")


class QueryTimeoutError(FelicityError):
    """No complete response within the deadline."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"timeout after {timeout_ms} ms")


class SocketError(FelicityError):
    """Transport failure while connecting or reading."""

    def __init__(self, detail: object) -> None:
        super().__init__(f"socket error: {detail}")


class ParseError(ValueError, FelicityError):
    """Response is not a JSON object, even after brace repair."""
