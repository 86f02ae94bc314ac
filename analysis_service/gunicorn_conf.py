# File: analysis_service/gunicorn_conf.py
import os
from analysis_service.core.config import settings

# Gunicorn config variables
workers = settings.WORKERS
worker_class = "uvicorn.workers.UvicornWorker"

# Bind to 0.0.0.0 to be accessible from outside the container
host = os.getenv("ANALYSIS_HOST", "0.0.0.0")
port = os.getenv("ANALYSIS_PORT", str(settings.PORT))
bind = f"{host}:{port}"

# Logging is handled by structlog through the app
# accesslog = "-"
# errorlog = "-"

# The analysis pipeline can hold a request for the full upstream timeout.
timeout = int(os.getenv("ANALYSIS_GUNICORN_TIMEOUT", str(settings.HTTP_CLIENT_TIMEOUT + 30)))

print("--- Gunicorn Configuration ---")
print(f"Workers: {workers}")
print(f"Worker Class: {worker_class}")
print(f"Bind: {bind}")
print(f"Timeout: {timeout}")
print("----------------------------")
