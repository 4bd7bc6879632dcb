"""
Gunicorn configuration for production deployment.

Sessions and open streams live in process memory, so exactly one worker
serves the whole service.
"""
import os

# Server Socket
bind = f"0.0.0.0:{os.getenv('PORT', '3000')}"
backlog = 2048

# Worker Processes
workers = 1
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000

# Streams stay open for as long as a visitor or dashboard is connected
timeout = 0
graceful_timeout = 30
keepalive = 75

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.getenv('LOG_LEVEL', 'info')
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process Naming
proc_name = 'livechat-broker'

# Server Mechanics
daemon = False
pidfile = '/tmp/livechat-broker.pid'
user = None
group = None
tmp_upload_dir = None


def when_ready(server):
    """Called just after the server is started."""
    server.log.info("Live chat broker ready (single worker)")


def worker_int(worker):
    """Called just after a worker exited on SIGINT or SIGQUIT."""
    worker.log.info("Worker interrupted")


def worker_abort(worker):
    """Called when a worker received the SIGABRT signal."""
    worker.log.info("Worker aborted")
