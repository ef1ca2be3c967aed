r"""backend\app\api\v1\health.py

Health check endpoints.

These endpoints can be used by orchestrators and load balancers to verify
that the service is running.  A simple GET request to `/api/v1/health`
returns a JSON payload with status information and whether the
point-of-sale tables are in place.
"""

from fastapi import APIRouter

from ...core.config import get_settings
from ...services.inventory_service import InventoryService

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Return a basic health indicator."""
    data_ready = InventoryService(data_root=get_settings().data_dir).data_files_present()
    return {"status": "ok", "data": "ready" if data_ready else "missing"}
