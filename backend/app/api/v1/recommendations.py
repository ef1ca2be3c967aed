"""Routes for product recommendations."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ...core.config import get_settings
from ...models import schemas
from ...services.inventory_service import InventoryService
from ...services.recommendation_service import (
    CART_LIMIT,
    FREQUENTLY_BOUGHT_TOGETHER_LIMIT,
    RecommendationService,
)
from .deps import service_errors, tenant_id

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/recommendations", tags=["recommendations"])

MAX_LIMIT = 100

_recommendation_service = RecommendationService(InventoryService(data_root=get_settings().data_dir))


class CartRequest(BaseModel):
    cart_items: List[str] = Field(default_factory=list)
    limit: int = Field(CART_LIMIT, ge=1, le=MAX_LIMIT)


@router.get("/popular", response_model=List[schemas.ProductRecommendation])
def popular(
    limit: int = Query(10, ge=1, le=MAX_LIMIT),
    days: int = Query(30, ge=1),
    tenant: str = Depends(tenant_id),
) -> List[schemas.ProductRecommendation]:
    with service_errors("ranking popular products"):
        return _recommendation_service.get_popular_products(tenant, limit=limit, days=days)


@router.get("/new-arrivals", response_model=List[schemas.ProductRecommendation])
def new_arrivals(
    limit: int = Query(10, ge=1, le=MAX_LIMIT),
    days: int = Query(30, ge=1),
    tenant: str = Depends(tenant_id),
) -> List[schemas.ProductRecommendation]:
    with service_errors("listing new arrivals"):
        return _recommendation_service.get_new_arrivals(tenant, limit=limit, days=days)


@router.get("/customers/{customer_id}", response_model=List[schemas.ProductRecommendation])
def personalized(
    customer_id: str,
    limit: int = Query(10, ge=1, le=MAX_LIMIT),
    tenant: str = Depends(tenant_id),
) -> List[schemas.ProductRecommendation]:
    """Return suggestions tailored to a customer's purchase history."""

    with service_errors(f"personalising for customer {customer_id}"):
        return _recommendation_service.get_personalized_recommendations(customer_id, tenant, limit=limit)


@router.get(
    "/products/{product_id}/frequently-bought-together",
    response_model=List[schemas.ProductRecommendation],
)
def frequently_bought_together(
    product_id: str,
    limit: int = Query(FREQUENTLY_BOUGHT_TOGETHER_LIMIT, ge=1, le=MAX_LIMIT),
    tenant: str = Depends(tenant_id),
) -> List[schemas.ProductRecommendation]:
    with service_errors(f"finding co-purchases for product {product_id}"):
        return _recommendation_service.get_frequently_bought_together(product_id, tenant, limit=limit)


@router.get("/products/{product_id}/similar", response_model=List[schemas.ProductRecommendation])
def similar(
    product_id: str,
    limit: int = Query(10, ge=1, le=MAX_LIMIT),
    tenant: str = Depends(tenant_id),
) -> List[schemas.ProductRecommendation]:
    """Return products close in category, brand and price; empty for unknown products."""

    with service_errors(f"finding products similar to {product_id}"):
        return _recommendation_service.get_similar_products(product_id, tenant, limit=limit)


@router.post("/cart", response_model=List[schemas.ProductRecommendation])
def cart(payload: CartRequest, tenant: str = Depends(tenant_id)) -> List[schemas.ProductRecommendation]:
    with service_errors("recommending for cart"):
        return _recommendation_service.get_cart_recommendations(payload.cart_items, tenant, limit=payload.limit)


@router.post("", response_model=schemas.RecommendationBundle)
def recommendations(
    context: schemas.RecommendationContext, tenant: str = Depends(tenant_id)
) -> schemas.RecommendationBundle:
    """Return one list per strategy the context asks for."""

    LOGGER.info(
        "Recommendation bundle requested tenant=%s customer=%s product=%s cart_items=%s",
        tenant,
        context.customer_id,
        context.product_id,
        len(context.cart_items),
    )
    with service_errors("assembling recommendations"):
        return _recommendation_service.get_recommendations(context, tenant)
