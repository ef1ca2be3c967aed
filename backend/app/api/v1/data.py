r"""backend\app\api\v1\data.py"""

from __future__ import annotations

from fastapi import APIRouter

from ...core.config import get_settings
from ...services.validation_service import ValidationService

router = APIRouter()
_validation_service = ValidationService(get_settings().data_dir)


@router.get("/data/validate")
def validate() -> dict:
    """Report which point-of-sale tables are present and well formed."""
    return _validation_service.run()
