"""
Production Server Configuration

Run FastAPI with Uvicorn workers under Gunicorn for production deployment.
Each worker runs its own Kafka consumer in the shared consumer group, so
partitions are spread across workers.

    gunicorn "order_analytics.main:create_app()" -c gunicorn.conf.py
"""

import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:3007")
backlog = 2048

# Worker processes
workers = int(os.getenv("WORKERS", 2))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
max_requests = 10000
max_requests_jitter = 1000
timeout = 120
keepalive = 5
graceful_timeout = 30

# Process naming
proc_name = "order-analytics"

# Server mechanics
daemon = False
pidfile = "/tmp/gunicorn.pid"
user = None
group = None
tmp_upload_dir = None

# Logging
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info")
accesslog = "-"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'
