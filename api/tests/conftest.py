import os

# Tests never export spans; keep the FastAPI app from installing a tracer provider.
os.environ.setdefault("WM_OTEL_ENABLED", "false")
