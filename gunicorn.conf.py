"""
Gunicorn configuration for the MarketSync API.

Run with:
    gunicorn marketsync.main:app -c gunicorn.conf.py

The arq worker (order poll and reconcile schedules) runs as a separate
process: ``arq marketsync.tasks.task_queue.WorkerSettings``.
"""

import multiprocessing
import os

# ─── Server Socket ───────────────────────────────────────────
bind = f"0.0.0.0:{os.getenv('PORT', os.getenv('APP_PORT', '8000'))}"

# ─── Worker Processes ────────────────────────────────────────
worker_class = "uvicorn.workers.UvicornWorker"

# Capped so the shared marketplace rate budget is not split across too many processes
workers = min(multiprocessing.cpu_count() + 1, int(os.getenv("WEB_CONCURRENCY", "2")))
threads = 1

# ─── Timeouts ────────────────────────────────────────────────
# Batch requests make several sequential eBay calls per product
timeout = int(os.getenv("GUNICORN_TIMEOUT", "300"))
graceful_timeout = 30
keepalive = 5

# ─── Worker Lifecycle ────────────────────────────────────────
max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", "1000"))
max_requests_jitter = 50
preload_app = False  # async engines don't fork well

# ─── Logging ─────────────────────────────────────────────────
# structlog LoggingMiddleware writes the request lines
accesslog = None
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()

# ─── Server Mechanics ────────────────────────────────────────
forwarded_allow_ips = "*"
