#!/usr/bin/env python
"""
Production Server Entry Point

Starts the Order Analytics API (and its Kafka consumer) with Uvicorn.
Usage:
    Development:    python run_server.py --dev
    Production:     python run_server.py
    Consumer only:  python run_server.py --consumer-only

    Or with Gunicorn:
    gunicorn "order_analytics.main:create_app()" -c gunicorn.conf.py
"""

import argparse
import os
import subprocess

APP_FACTORY = "order_analytics.main:create_app"


def run_dev_server(port: int):
    """Run development server with auto-reload."""
    import uvicorn

    uvicorn.run(
        APP_FACTORY,
        factory=True,
        host="0.0.0.0",
        port=port,
        reload=True,
        reload_dirs=["order_analytics"],
        log_level="debug",
        access_log=True,
    )


def run_prod_server(port: int):
    """Run production server with Uvicorn directly."""
    import uvicorn

    uvicorn.run(
        APP_FACTORY,
        factory=True,
        host="0.0.0.0",
        port=port,
        workers=int(os.getenv("WORKERS", 2)),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        access_log=True,
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


def run_gunicorn():
    """Run with Gunicorn (recommended for production)."""
    subprocess.run(["gunicorn", f"{APP_FACTORY}()", "-c", "gunicorn.conf.py"])


def run_consumer_only():
    """Run the Kafka consumer without the HTTP API."""
    from order_analytics.ingestion.stream_consumer import main

    main()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Order Analytics Service")
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Run in development mode with auto-reload"
    )
    parser.add_argument(
        "--gunicorn",
        action="store_true",
        help="Run with Gunicorn (production)"
    )
    parser.add_argument(
        "--consumer-only",
        action="store_true",
        help="Run only the Kafka consumer"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("API_PORT", 3007)),
        help="Port to run on (default: %(default)s)"
    )

    args = parser.parse_args()

    if args.consumer_only:
        print("Starting Kafka consumer...")
        run_consumer_only()
    elif args.dev:
        print("Starting development server...")
        run_dev_server(args.port)
    elif args.gunicorn:
        print("Starting production server with Gunicorn...")
        run_gunicorn()
    else:
        print("Starting production server with Uvicorn...")
        run_prod_server(args.port)
