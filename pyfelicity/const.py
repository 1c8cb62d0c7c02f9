"""Constants for the Felicity battery local monitor protocol."""

from typing import Final

DEFAULT_PORT: Final = 53970

# Real-time status query; the device needs no terminator after it.
QUERY_REAL_INFO: Final = b"wifilocalMonitor:get dev real infor"

# Courtesy acknowledgement written back before closing the connection.
ACK: Final = b"."

# The JSON payload is framed on the first closing brace.
DEFAULT_DELIMITER: Final = b"}"

DEFAULT_TIMEOUT_MS: Final = 5000

READ_CHUNK_SIZE: Final = 4096

# Upper bound for the acknowledgement write and socket teardown.
RELEASE_TIMEOUT_S: Final = 1.0
