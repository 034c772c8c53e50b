"""Example: serve the query API over a local SQLite store with demo data.

Run with:
    uvicorn examples.sqlite_api:app --reload

Endpoints:
    /health                 - Store reachability (200 or 503)
    /v1/status              - Row and byte totals
    /v1/logs/search         - POST {start, end, query?, min_severity?, ...}
    /v1/metrics/query       - POST {start, end, metric_name, aggregation?, ...}
    /v1/metrics/names       - Distinct metric names

Importing the module seeds archives-demo.db with an hour of logs and a
"cpu_percent" gauge, so the endpoints have something to return.
"""

import asyncio
import json
import math
import random
import time

from archives.adapters.logging import configure_logging
from archives.adapters.storage.sqlite import SQLiteExecutor
from archives.config import load_settings
from archives.server import create_api_app

SERVICES = ["checkout", "cart", "gateway"]
MESSAGES = [
    (9, "request served"),
    (9, "cache refreshed"),
    (13, "slow upstream response"),
    (17, "payment provider timeout"),
]


async def seed(executor: SQLiteExecutor) -> None:
    """Insert one hour of logs and a gauge sampled every 10 seconds."""
    now = time.time()
    async with executor.async_connection() as db:
        for i in range(360):
            ts = now - 3600 + i * 10
            severity, body = random.choice(MESSAGES)
            service = random.choice(SERVICES)
            await db.execute(
                "INSERT INTO otel_logs (Timestamp, ObservedTimestamp, SeverityNumber,"
                " ServiceName, Body, ResourceAttributes) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    ts,
                    ts,
                    severity,
                    service,
                    body,
                    json.dumps({"service.name": service}),
                ),
            )
            await db.execute(
                "INSERT INTO otel_metrics_gauge (MetricName, TimeUnix, Value)"
                " VALUES (?, ?, ?)",
                ("cpu_percent", ts, 50 + 30 * math.sin(i / 20)),
            )
        await db.commit()


async def seed_file(path: str) -> None:
    executor = SQLiteExecutor(path)
    try:
        await seed(executor)
    finally:
        await executor.close()


settings = load_settings(
    store={"backend": "sqlite"}, sqlite={"path": "archives-demo.db"}
)
configure_logging(settings.logging.level, settings.logging.json_output)
asyncio.run(seed_file(settings.sqlite.path))
app = create_api_app(settings)
