"""Gunicorn configuration for production deployment.

Run with: gunicorn -c gunicorn.conf.py studio_analytics.main:app
"""

import multiprocessing
import os

# Server socket
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
backlog = 512

# A dashboard request fans out into several concurrent DB sessions, so keep
# workers * (DATABASE_POOL_SIZE + DATABASE_MAX_OVERFLOW) under the server limit
workers = int(os.getenv("GUNICORN_WORKERS", min(multiprocessing.cpu_count() + 1, 4)))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 2000
max_requests_jitter = 200

# Full recomputation over the whole history can take a while on a cold cache
timeout = int(os.getenv("GUNICORN_TIMEOUT", 90))
graceful_timeout = 30
keepalive = 5

proc_name = "studio-analytics-api"

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
