"""
Gunicorn Configuration

Runs the FastAPI app on a Uvicorn worker. Each worker hosts its own job
queue, daily timer and ingestion lock, so keep WORKERS at 1 unless the
daily refresh is disabled (INGEST_DAILY_REFRESH_PATH unset) and loads are
triggered against a single instance.
"""

import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = int(os.getenv("WORKERS", 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
# Large loads run inside the worker; do not recycle it mid-run
max_requests = 0
timeout = 0
keepalive = 5
graceful_timeout = 60

# Process naming
proc_name = "sales-analytics-api"

# Server mechanics
daemon = False
pidfile = os.getenv("PIDFILE", "/tmp/sales-analytics.pid")

# Logging
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = None


def on_starting(server):
    server.log.info("Starting %s with %d worker(s)", proc_name, workers)


def worker_int(worker):
    worker.log.info("Worker interrupted; in-flight ingestion run will be cancelled")
