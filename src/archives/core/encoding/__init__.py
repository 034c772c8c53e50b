"""Wire encodings for query results."""

from archives.core.encoding.wire import (
    agent_log_record,
    encode_data_points,
    encode_log_entry,
    encode_logs,
)

__all__ = [
    "agent_log_record",
    "encode_data_points",
    "encode_log_entry",
    "encode_logs",
]
