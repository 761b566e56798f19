"""
Ingestion Metrics

Prometheus collectors shared by the loader, queue and scheduler.
"""

from prometheus_client import Counter, Gauge, Histogram

INGESTION_RUNS = Counter(
    "sales_ingestion_runs_total",
    "Total number of ingestion runs by terminal status",
    ["status"],
)

INGESTION_ROWS = Counter(
    "sales_ingestion_rows_total",
    "Source rows processed by outcome",
    ["outcome"],
)

INGESTION_RUN_TIME = Histogram(
    "sales_ingestion_run_seconds",
    "Wall time of ingestion runs",
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800, 3600),
)

JOB_QUEUE_DEPTH = Gauge(
    "sales_job_queue_depth",
    "Jobs waiting in the background job queue",
)

JOBS_PROCESSED = Counter(
    "sales_jobs_total",
    "Background jobs executed by kind and status",
    ["kind", "status"],
)
