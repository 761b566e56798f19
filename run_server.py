#!/usr/bin/env python
"""
Server Entry Point

Starts the FastAPI app together with its in-process ingestion worker.
Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py

    Or with Gunicorn:
    gunicorn src.main:app -c gunicorn.conf.py

The ingestion lock and job queue live in the serving process, so the
server runs a single worker unless WORKERS says otherwise.
"""

import argparse
import os
import subprocess
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from src.config import get_settings


def run_dev_server(host: str, port: int):
    """Run development server with auto-reload."""
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=host,
        port=port,
        reload=True,
        reload_dirs=["src"],
        log_level="debug",
        access_log=True,
    )


def run_prod_server(host: str, port: int):
    """Run production server with Uvicorn directly."""
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=host,
        port=port,
        workers=int(os.getenv("WORKERS", 1)),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        access_log=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


def run_gunicorn():
    """Run with Gunicorn."""
    sys.exit(subprocess.run(["gunicorn", "src.main:app", "-c", "gunicorn.conf.py"]).returncode)


if __name__ == "__main__":
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Sales Analytics API Server")
    parser.add_argument("--dev", action="store_true", help="Run in development mode with auto-reload")
    parser.add_argument("--gunicorn", action="store_true", help="Run with Gunicorn")
    parser.add_argument("--host", default=settings.api_host, help="Interface to bind")
    parser.add_argument("--port", type=int, default=settings.api_port, help="Port to run on")

    args = parser.parse_args()
    os.environ["BIND"] = f"{args.host}:{args.port}"

    if args.dev:
        print("Starting development server...")
        run_dev_server(args.host, args.port)
    elif args.gunicorn:
        print("Starting server with Gunicorn...")
        run_gunicorn()
    else:
        print("Starting server with Uvicorn...")
        run_prod_server(args.host, args.port)
