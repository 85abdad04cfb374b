import os

def cpu():
    return max(1, (os.cpu_count() or 1))

wsgi_app = "storefront.wsgi:application"
bind = f"0.0.0.0:{os.getenv('PORT', '3333')}"

# Procesos (workers). The default in-memory order store lives inside one
# process, so more than one worker needs ORDER_STORE=db.
workers = int(os.getenv("GUNI_WORKERS", "1" if os.getenv("ORDER_STORE", "memory") == "memory" else str(min(max(2, cpu() * 2), 8))))

# Threads por worker: finalize blocks on the gateway, generation and packaging
worker_class = "gthread"
threads = int(os.getenv("GTHREADS", "8"))

# Timeouts: must exceed one finalize: payment lookup (~30s with retries),
# GENERATION_DEADLINE_SECS (60s) and PACKAGING_TIMEOUT_SECS (30s)
timeout = int(os.getenv("GUNI_TIMEOUT", "150"))
graceful_timeout = int(os.getenv("GUNI_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNI_KEEPALIVE", "5"))

preload_app = True
max_requests = int(os.getenv("GUNI_MAX_REQUESTS", "2000"))
max_requests_jitter = int(os.getenv("GUNI_MAX_REQUESTS_JITTER", "200"))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNI_LOGLEVEL", "info")
