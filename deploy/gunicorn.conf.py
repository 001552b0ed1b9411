# ==============================================================================
# Gunicorn Configuration for the TechMate subscription API
# ==============================================================================
# Run with: gunicorn -c deploy/gunicorn.conf.py techmate_site.wsgi:application
# Sweeps run separately: celery -A techmate_site worker --beat

import multiprocessing
import os

# Server socket - Use PORT from environment or default to 8000
port = os.environ.get("PORT", "8000")
bind = f"0.0.0.0:{port}"

# Worker processes: (2 x CPU cores) + 1
workers = int(os.environ.get("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))
worker_class = "sync"
timeout = 30
keepalive = 5
max_requests = 1000
max_requests_jitter = 50

proc_name = "techmate-subscriptions"

# Logging - Use stdout/stderr for cloud platforms
accesslog = "-"
errorlog = "-"
loglevel = "info"

daemon = False

raw_env = [
    "DJANGO_SETTINGS_MODULE=techmate_site.settings",
]
