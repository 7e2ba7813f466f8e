"""Gunicorn settings for serving server:app behind uvicorn workers.

    gunicorn -c gunicorn_conf.py server:app
"""

import multiprocessing
import os

host = os.getenv("HOST", "0.0.0.0")
port = os.getenv("PORT", "8000")
bind_env = os.getenv("BIND", None)
use_bind = bind_env if bind_env else f"{host}:{port}"

workers_per_core_str = os.getenv("WORKERS_PER_CORE", "1")
max_workers_str = os.getenv("MAX_WORKERS")
web_concurrency_str = os.getenv("WEB_CONCURRENCY", None)


def compute_workers(web_concurrency: str | None, workers_per_core: str, max_workers: str | None, cores: int) -> int:
    if web_concurrency:
        workers = int(web_concurrency)
        if workers <= 0:
            raise ValueError("WEB_CONCURRENCY must be positive")
        return workers
    default_web_concurrency = float(workers_per_core) * cores
    if max_workers:
        workers = min(int(default_web_concurrency), int(max_workers))
    else:
        workers = int(default_web_concurrency)
    return max(int(workers), 2)  # Ensure at least 2 workers


bind = use_bind
keepalive = 120
errorlog = "-"
accesslog = "-"
workers = compute_workers(web_concurrency_str, workers_per_core_str, max_workers_str, multiprocessing.cpu_count())
loglevel = os.getenv("LOG_LEVEL", "info").lower()
worker_class = "uvicorn.workers.UvicornWorker"
