"""
Gunicorn configuration for the Curator ranking API.

    gunicorn curator.main:app -c deploy/gunicorn.conf.py

Tournament sessions live in worker memory, so a client must keep talking to
the worker that opened its session. Run one worker unless the load balancer
pins sessions.
"""
import os

# Server socket
bind = os.environ.get("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = int(os.environ.get("GUNICORN_WORKERS", "1"))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
timeout = 60
keepalive = 5

# Logging
accesslog = os.environ.get("GUNICORN_ACCESS_LOG", "-")
errorlog = os.environ.get("GUNICORN_ERROR_LOG", "-")
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "curator"

# Server mechanics
daemon = False
pidfile = "/tmp/curator-gunicorn.pid"

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def when_ready(server):
    server.log.info(f"Curator ranking API ready with {workers} worker(s)")
    if workers > 1:
        server.log.warning("Tournament sessions are per worker; pin clients or run one worker")
