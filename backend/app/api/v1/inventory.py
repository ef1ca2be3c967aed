"""Routes for demand forecasts, stockout risks and reorder suggestions."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...core.config import get_settings
from ...models import schemas
from ...services.forecasting_service import ForecastingService
from ...services.inventory_service import InventoryService
from .deps import error_payload, service_errors, tenant_id

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["inventory"])

MAX_FORECAST_DAYS = 365

_settings = get_settings()
_inventory_service = InventoryService(data_root=_settings.data_dir)
_forecast_service = ForecastingService(_inventory_service, config_root=_settings.config_dir)


@router.get("/forecast/{product_id}", response_model=schemas.ForecastResult)
def get_forecast(
    product_id: str,
    days: int = Query(30, ge=1, le=MAX_FORECAST_DAYS, description="Forecast horizon in days"),
    tenant: str = Depends(tenant_id),
) -> schemas.ForecastResult:
    """Return the demand forecast and order suggestion for one product."""

    LOGGER.info("Forecast request received for product_id=%s days=%s tenant=%s", product_id, days, tenant)
    with service_errors(f"forecasting product {product_id}"):
        result = _forecast_service.forecast_demand(product_id, tenant, forecast_days=days)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_payload("product_not_found", f"Product '{product_id}' was not found."),
        )
    return result


@router.get("/stockout-risks", response_model=List[schemas.StockoutRisk])
def get_stockout_risks(
    days_threshold: int = Query(7, ge=0, description="Include products running out within this many days"),
    tenant: str = Depends(tenant_id),
) -> List[schemas.StockoutRisk]:
    with service_errors("scanning stockout risks"):
        return _forecast_service.get_stockout_risks(tenant, days_threshold=days_threshold)


@router.get("/reorder-recommendations", response_model=List[schemas.ReorderRecommendation])
def get_reorder_recommendations(tenant: str = Depends(tenant_id)) -> List[schemas.ReorderRecommendation]:
    with service_errors("scanning reorder recommendations"):
        return _forecast_service.get_reorder_recommendations(tenant)


@router.get("/health", response_model=schemas.InventoryHealth)
def get_inventory_health(tenant: str = Depends(tenant_id)) -> schemas.InventoryHealth:
    """Return stock counts and queue sizes for the tenant."""

    with service_errors("summarising inventory health"):
        return _forecast_service.get_inventory_health(tenant)
