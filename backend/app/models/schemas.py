r"""backend\app\models\schemas.py

Pydantic models used throughout the API.

The data source converts raw table rows into the snapshot/candidate models
below, the engines only ever see these typed records, and the result models
double as response schemas for the HTTP layer.
"""

from __future__ import annotations

import datetime as dt
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Trend = Literal["increasing", "stable", "decreasing"]
RiskLevel = Literal["critical", "high", "medium", "low"]
Priority = Literal["urgent", "high", "medium", "low"]


# ---------------------------------------------------------------------------
# Records returned by the historical data source


class ProductSnapshot(BaseModel):
    """Stock position of a sellable product."""

    id: str
    name: str
    sku: str
    cost_price: int = Field(0, description="Unit cost in minor currency units")
    low_stock_threshold: Optional[int] = None
    current_stock: int = Field(0, description="Units on hand summed over all locations")


class DailySalesPoint(BaseModel):
    """Aggregate quantity sold for one product on one calendar day."""

    date: dt.date
    quantity_sold: int = Field(..., ge=0)


class CatalogProduct(BaseModel):
    """Product attributes needed to present a recommendation."""

    id: str
    name: str
    sku: str
    price_cents: int = 0
    image_url: Optional[str] = None
    category_id: Optional[str] = None
    brand_id: Optional[str] = None
    category_name: Optional[str] = None
    brand_name: Optional[str] = None


class CoPurchase(BaseModel):
    """A product that shares completed orders with one or more anchor products."""

    product: CatalogProduct
    co_purchase_count: int = Field(..., ge=0)


class RecommendationCandidate(BaseModel):
    """A ranked catalogue row together with the signal that ranked it."""

    product: CatalogProduct
    signal: float = 0.0
    reason: str = ""


class PurchasedProduct(BaseModel):
    """One distinct product from a customer's purchase history."""

    product_id: str
    category_id: Optional[str] = None
    brand_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Forecasting results


class ForecastResult(BaseModel):
    """Demand forecast, stockout horizon and order suggestion for one product."""

    product_id: str
    product_name: str
    sku: str
    current_stock: int
    forecast_demand: int = Field(..., ge=0)
    recommended_order_quantity: int = Field(..., ge=0)
    days_until_stockout: int = Field(..., description="999 when there is no sales velocity")
    confidence: int = Field(..., ge=0, le=100)
    trend: Trend
    seasonality_factor: float


class StockoutRisk(BaseModel):
    """A product expected to run out within the requested horizon."""

    product_id: str
    product_name: str
    sku: str
    current_stock: int
    daily_avg_sales: float
    days_until_stockout: int
    risk_level: RiskLevel
    recommended_action: str


class ReorderRecommendation(BaseModel):
    """Suggested purchase for a product below its reorder point or threshold."""

    product_id: str
    product_name: str
    sku: str
    current_stock: int
    reorder_point: int
    recommended_quantity: int = Field(..., ge=0)
    estimated_cost: int = Field(..., description="recommended_quantity x cost_price")
    priority: Priority
    reason: str


class InventoryHealth(BaseModel):
    """Tenant-wide stock counts and the size of the risk/reorder queues."""

    total_products: int
    in_stock: int
    low_stock: int
    out_of_stock: int
    healthy_stock: int
    total_inventory_value: int
    stockout_risk_count: int
    reorder_needed_count: int


# ---------------------------------------------------------------------------
# Recommendation results


class ProductRecommendation(BaseModel):
    """A ranked product suggestion."""

    product_id: str
    product_name: str
    sku: str
    price_cents: int = 0
    image_url: Optional[str] = None
    category_name: Optional[str] = None
    brand_name: Optional[str] = None
    recommendation_score: float = Field(..., description="Relative ranking unit, not a probability")
    recommendation_reason: str
    confidence: int = Field(..., ge=0, le=100)


class RecommendationContext(BaseModel):
    """Situational input for the comprehensive recommendation bundle."""

    customer_id: Optional[str] = None
    product_id: Optional[str] = None
    cart_items: List[str] = Field(default_factory=list)
    limit: int = Field(10, ge=1, le=100)


class RecommendationBundle(BaseModel):
    """One independently ranked list per strategy that was invoked."""

    personalized: Optional[List[ProductRecommendation]] = None
    frequently_bought_together: Optional[List[ProductRecommendation]] = None
    similar: Optional[List[ProductRecommendation]] = None
    cart: Optional[List[ProductRecommendation]] = None
    popular: List[ProductRecommendation] = Field(default_factory=list)
    new_arrivals: List[ProductRecommendation] = Field(default_factory=list)
