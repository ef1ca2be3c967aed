r"""backend\app\main.py

Main entrypoint for the FastAPI application.

The API exposes demand forecasts, stockout risks, reorder suggestions and
product recommendations computed from a tenant's point-of-sale history. A
health endpoint is also provided for readiness/liveness checks.
Configuration is read from environment variables and YAML files in
`configs/`.
"""

import logging
from pathlib import Path

from dotenv import load_dotenv

# Load .env from repo root before the routers read their settings
BASE_DIR = Path(__file__).resolve().parents[2]  # repo root
load_dotenv(BASE_DIR / ".env")

import uvicorn  # noqa: E402
from fastapi import FastAPI, Response  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import RedirectResponse  # noqa: E402

from .api.v1 import data, health, inventory, recommendations  # noqa: E402
from .core.config import get_settings  # noqa: E402
from .core.observability import TokenAndRateLimitMiddleware, metrics_endpoint  # noqa: E402

settings = get_settings()

logging.getLogger(__name__).info(
    "Serving point-of-sale data from %s (default tenant %s)",
    settings.data_dir,
    settings.default_tenant_id,
)

app = FastAPI(title="Inventory Insights API", version="0.1.0")

# Allow cross-origin requests from the dashboard (and others).
origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,  # In production specify your UI domain(s)
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TokenAndRateLimitMiddleware)

# Include versioned routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(inventory.router, prefix="/api/v1")
app.include_router(recommendations.router, prefix="/api/v1")
app.include_router(data.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
def _root() -> RedirectResponse:
    """Redirect the root path to the interactive docs."""

    return RedirectResponse(url="/docs")


@app.get("/metrics", include_in_schema=False)
async def _metrics() -> Response:
    """Expose Prometheus metrics."""

    return metrics_endpoint()


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""

    uvicorn.run("backend.app.main:app", host=settings.api_host, port=settings.api_port)
