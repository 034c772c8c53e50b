"""Store-wide statistics and health snapshots."""

import logging
from typing import Any

from archives.core.errors import ArchivesError
from archives.core.models import LogSeverity
from archives.core.time_range import last_hours
from archives.core.translator import QueryTranslator

logger = logging.getLogger(__name__)

_KB = 1024
_MB = _KB * 1024
_GB = _MB * 1024


def format_bytes(size: int) -> str:
    """Render a byte count in the largest binary unit not exceeding it.

    Args:
        size: Number of bytes.

    Returns:
        ``"N bytes"`` below 1 KB, otherwise a two-decimal KB/MB/GB string
        (e.g. ``"1.50 KB"``).
    """
    if size >= _GB:
        return f"{size / _GB:.2f} GB"
    if size >= _MB:
        return f"{size / _MB:.2f} MB"
    if size >= _KB:
        return f"{size / _KB:.2f} KB"
    return f"{size} bytes"


async def _count_or_zero(
    translator: QueryTranslator,
    what: str,
    min_severity: LogSeverity | None = None,
) -> int:
    try:
        return await translator.count_logs(last_hours(1), min_severity)
    except ArchivesError as e:
        logger.warning("Health report: %s unavailable, reporting 0: %s", what, e)
        return 0


async def collect_system_health(translator: QueryTranslator) -> dict[str, Any]:
    """Compose storage totals with the last hour's log and error volume.

    Storage statistics are required and their failure propagates. The two
    last-hour counts degrade to 0 when the store fails them.
    """
    stats = await translator.get_stats()
    total_logs = await _count_or_zero(translator, "log count")
    error_count = await _count_or_zero(translator, "error count", LogSeverity.ERROR)
    return {
        "status": "operational",
        "storage": {
            "log_count": stats.log_count,
            "log_bytes": stats.log_bytes,
            "log_bytes_human": format_bytes(stats.log_bytes),
            "metric_count": stats.metric_count,
            "metric_bytes": stats.metric_bytes,
            "metric_bytes_human": format_bytes(stats.metric_bytes),
        },
        "last_hour": {
            "total_logs": total_logs,
            "error_count": error_count,
        },
    }


async def status_report(translator: QueryTranslator, version: str) -> dict[str, Any]:
    """Build the status payload served by the HTTP API.

    On a store failure the counters are zero and ``status`` is ``"error"``.
    """
    try:
        stats = await translator.get_stats()
    except ArchivesError as e:
        logger.error("Failed to collect database stats: %s", e)
        return {
            "status": "error",
            "version": version,
            "log_count": 0,
            "log_bytes": 0,
            "metric_count": 0,
            "metric_bytes": 0,
        }
    return {
        "status": "ok",
        "version": version,
        "log_count": stats.log_count,
        "log_bytes": stats.log_bytes,
        "metric_count": stats.metric_count,
        "metric_bytes": stats.metric_bytes,
    }
