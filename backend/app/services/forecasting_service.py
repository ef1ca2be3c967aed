r"""backend\app\services\forecasting_service.py

Heuristic demand forecasting over point-of-sale history.

Each product's daily sales series (days without sales are absent, not zero)
is reduced to a handful of statistics: a 30-point moving average, a 7-point
recent average and an exponentially smoothed level. From these the service
derives the trend, a short-horizon seasonality multiplier, the demand
forecast, the days of stock remaining and an order suggestion. The tenant
wide scans (stockout risks, reorder recommendations, health) share one
batched sales read instead of querying product by product.

All constants live in :class:`ForecastParameters` and can be tuned through
the ``forecasting`` section of ``configs/settings.yaml``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..core.config import load_section
from ..models.schemas import (
    DailySalesPoint,
    ForecastResult,
    InventoryHealth,
    Priority,
    ProductSnapshot,
    ReorderRecommendation,
    RiskLevel,
    StockoutRisk,
    Trend,
)
from .inventory_service import HistoricalDataSource, InventoryService

LOGGER = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Parameters


@dataclass(frozen=True)
class ForecastParameters:
    """Named constants of the forecasting heuristics."""

    smoothing_alpha: float = 0.3
    lookback_days: int = 90
    velocity_window_days: int = 30
    moving_average_window: int = 30
    recent_window: int = 7
    trend_up_ratio: float = 1.2
    trend_down_ratio: float = 0.8
    lead_time_days: int = 7
    safety_stock_days: int = 3
    target_supply_days: int = 30
    no_velocity_sentinel: int = 999
    default_reorder_quantity: int = 10
    # Exclusive upper bound on stock for stockout candidates; None scans everything.
    stockout_stock_prefilter: Optional[int] = None
    risk_critical_days: int = 2
    risk_high_days: int = 5
    risk_medium_days: int = 7
    priority_urgent_days: int = 3
    priority_high_days: int = 7
    health_risk_threshold_days: int = 7

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ForecastParameters":
        """Return defaults overridden by the known keys of ``values``."""

        defaults = cls()
        overrides: Dict[str, Any] = {}
        for field in fields(cls):
            if field.name not in values:
                continue
            raw = values[field.name]
            current = getattr(defaults, field.name)
            if raw is None:
                overrides[field.name] = None
            elif isinstance(current, float):
                overrides[field.name] = float(raw)
            else:
                overrides[field.name] = int(raw)
        unknown = sorted(set(values) - {field.name for field in fields(cls)})
        if unknown:
            LOGGER.warning("Ignoring unknown forecasting settings: %s", ", ".join(unknown))
        return replace(defaults, **overrides)


# ---------------------------------------------------------------------------
# Series statistics (kept top-level for straightforward unit testing)


def moving_average(values: Sequence[float], window: int) -> float:
    """Mean of the last ``window`` points (all points when fewer); 0 when empty."""

    if not values or window <= 0:
        return 0.0
    return float(np.mean(np.asarray(values[-window:], dtype=float)))


def exponential_smoothing(values: Sequence[float], alpha: float) -> float:
    """Final level of simple exponential smoothing seeded with the first point."""

    if not values:
        return 0.0
    level = float(values[0])
    for value in values[1:]:
        level = alpha * float(value) + (1.0 - alpha) * level
    return level


def classify_trend(recent_avg: float, long_avg: float, up_ratio: float = 1.2, down_ratio: float = 0.8) -> Trend:
    if long_avg <= 0:
        return "stable"
    if recent_avg > long_avg * up_ratio:
        return "increasing"
    if recent_avg < long_avg * down_ratio:
        return "decreasing"
    return "stable"


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positive values (``round`` would bank them)."""

    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def confidence_from_dispersion(values: Sequence[float], long_avg: float) -> int:
    """Map the coefficient of variation around ``long_avg`` onto 0-100.

    The dispersion is measured against the moving average rather than the
    series mean, so a series whose recent window differs from its full
    history is penalised as well. A zero average means no confidence.
    """

    if not values or long_avg <= 0:
        return 0
    series = np.asarray(values, dtype=float)
    cv = float(np.sqrt(np.mean((series - long_avg) ** 2))) / long_avg
    return int(max(0, min(100, round_half_up((1.0 - cv) * 100))))


def days_of_stock(current_stock: int, daily_avg: float, sentinel: int = 999) -> int:
    """Whole days the stock lasts at ``daily_avg``; ``sentinel`` without velocity."""

    if daily_avg <= 0:
        return sentinel
    return int(math.floor(current_stock / daily_avg))


def risk_band(days: int, params: ForecastParameters) -> Tuple[RiskLevel, str]:
    """Return the risk level and the suggested action for ``days`` of stock."""

    if days <= params.risk_critical_days:
        return "critical", "Urgent: Order immediately with expedited shipping"
    if days <= params.risk_high_days:
        return "high", "Order within 24 hours"
    if days <= params.risk_medium_days:
        return "medium", "Plan to order within this week"
    return "low", "Monitor stock and reorder on the normal cycle"


def reorder_priority(days: int, below_threshold: bool, params: ForecastParameters) -> Tuple[Priority, str]:
    """Return the priority and reason for a triggered reorder.

    Every triggered product lands in urgent, high or medium; ``low`` is part
    of the ordering scale but never assigned here.
    """

    if days <= params.priority_urgent_days:
        return "urgent", f"Critical: Only {days} days of stock remaining"
    if days <= params.priority_high_days:
        return "high", f"{days} days of stock remaining"
    if below_threshold:
        return "medium", "Below low stock threshold"
    return "medium", "Below reorder point"


_PRIORITY_ORDER: Dict[str, int] = {"urgent": 0, "high": 1, "medium": 2, "low": 3}


def _quantities(points: Sequence[DailySalesPoint]) -> List[float]:
    return [float(point.quantity_sold) for point in points]


def _below_threshold(product: ProductSnapshot) -> bool:
    threshold = product.low_stock_threshold
    return threshold is not None and product.current_stock < threshold


# ---------------------------------------------------------------------------
# Core service implementation


class ForecastingService:
    """Demand forecasts, stockout risks and reorder suggestions per tenant."""

    def __init__(
        self,
        data_source: Optional[HistoricalDataSource] = None,
        config_root: str = "configs",
        params: Optional[ForecastParameters] = None,
    ) -> None:
        self.data_source: HistoricalDataSource = data_source if data_source is not None else InventoryService()
        self.config_root = config_root
        self.params = params if params is not None else self._load_configuration()

    # ------------------------------------------------------------------
    def _load_configuration(self) -> ForecastParameters:
        return ForecastParameters.from_mapping(load_section(self.config_root, "forecasting"))

    # ------------------------------------------------------------------
    def forecast_demand(self, product_id: str, tenant_id: str, forecast_days: int = 30) -> Optional[ForecastResult]:
        """Forecast demand for ``forecast_days`` and size the next order.

        Returns ``None`` when the product does not exist for the tenant.
        """

        if forecast_days <= 0:
            raise ValueError("forecast_days must be a positive integer")

        params = self.params
        product = self.data_source.get_product_snapshot(product_id, tenant_id)
        if product is None:
            return None

        history = self.data_source.get_daily_sales(product_id, tenant_id, params.lookback_days)
        values = _quantities(history)

        if not values:
            LOGGER.info("No sales history for product %s (tenant %s)", product_id, tenant_id)
            return ForecastResult(
                product_id=product.id,
                product_name=product.name,
                sku=product.sku,
                current_stock=product.current_stock,
                forecast_demand=0,
                recommended_order_quantity=(
                    product.low_stock_threshold or params.default_reorder_quantity
                ),
                days_until_stockout=params.no_velocity_sentinel,
                confidence=0,
                trend="stable",
                seasonality_factor=1.0,
            )

        long_avg = moving_average(values, params.moving_average_window)
        recent_avg = moving_average(values, params.recent_window)
        smoothed = exponential_smoothing(values, params.smoothing_alpha)

        trend = classify_trend(recent_avg, long_avg, params.trend_up_ratio, params.trend_down_ratio)
        seasonality = recent_avg / long_avg if long_avg > 0 else 1.0
        demand = int(math.ceil(smoothed * seasonality * forecast_days))

        days_left = days_of_stock(product.current_stock, long_avg, params.no_velocity_sentinel)
        safety_stock = int(math.ceil((max(values) - long_avg) * params.lead_time_days))
        reorder_point = int(math.ceil(long_avg * params.lead_time_days))
        order_quantity = max(0, reorder_point + safety_stock - product.current_stock)

        result = ForecastResult(
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            current_stock=product.current_stock,
            forecast_demand=max(demand, 0),
            recommended_order_quantity=order_quantity,
            days_until_stockout=days_left,
            confidence=confidence_from_dispersion(values, long_avg),
            trend=trend,
            seasonality_factor=round_half_up(seasonality, 2),
        )
        LOGGER.info(
            "Forecast for %s (tenant %s): demand=%s over %s days, trend=%s, confidence=%s",
            product_id,
            tenant_id,
            result.forecast_demand,
            forecast_days,
            result.trend,
            result.confidence,
        )
        return result

    # ------------------------------------------------------------------
    def _velocities(
        self, tenant_id: str, prefilter: Optional[int] = None
    ) -> List[Tuple[ProductSnapshot, float]]:
        """Active products paired with their average daily sales.

        Two reads per call: the product list and one batched sales aggregate.
        """

        products = self.data_source.list_active_products(tenant_id, prefilter=prefilter)
        if not products:
            return []
        series = self.data_source.get_daily_sales_batch(
            [product.id for product in products], tenant_id, self.params.velocity_window_days
        )
        pairs: List[Tuple[ProductSnapshot, float]] = []
        for product in products:
            values = _quantities(series.get(product.id, []))
            pairs.append((product, float(np.mean(values)) if values else 0.0))
        return pairs

    # ------------------------------------------------------------------
    def _risks_from(
        self, pairs: Sequence[Tuple[ProductSnapshot, float]], days_threshold: int
    ) -> List[StockoutRisk]:
        prefilter = self.params.stockout_stock_prefilter
        risks: List[StockoutRisk] = []
        for product, daily_avg in pairs:
            if daily_avg <= 0:
                continue
            if prefilter is not None and product.current_stock >= prefilter:
                continue
            days_left = days_of_stock(product.current_stock, daily_avg)
            if days_left > days_threshold:
                continue
            level, action = risk_band(days_left, self.params)
            risks.append(
                StockoutRisk(
                    product_id=product.id,
                    product_name=product.name,
                    sku=product.sku,
                    current_stock=product.current_stock,
                    daily_avg_sales=round_half_up(daily_avg, 2),
                    days_until_stockout=days_left,
                    risk_level=level,
                    recommended_action=action,
                )
            )
        risks.sort(key=lambda risk: risk.days_until_stockout)
        return risks

    # ------------------------------------------------------------------
    def _reorders_from(self, pairs: Sequence[Tuple[ProductSnapshot, float]]) -> List[ReorderRecommendation]:
        params = self.params
        recommendations: List[ReorderRecommendation] = []
        for product, daily_avg in pairs:
            if daily_avg <= 0:
                continue
            reorder_point = int(math.ceil(daily_avg * (params.lead_time_days + params.safety_stock_days)))
            below_threshold = _below_threshold(product)
            if not (product.current_stock < reorder_point or below_threshold):
                continue

            target_stock = int(math.ceil(daily_avg * params.target_supply_days))
            quantity = max(0, target_stock - product.current_stock)
            days_left = days_of_stock(product.current_stock, daily_avg)
            priority, reason = reorder_priority(days_left, below_threshold, params)
            recommendations.append(
                ReorderRecommendation(
                    product_id=product.id,
                    product_name=product.name,
                    sku=product.sku,
                    current_stock=product.current_stock,
                    reorder_point=reorder_point,
                    recommended_quantity=quantity,
                    estimated_cost=quantity * product.cost_price,
                    priority=priority,
                    reason=reason,
                )
            )
        recommendations.sort(key=lambda rec: _PRIORITY_ORDER[rec.priority])
        return recommendations

    # ------------------------------------------------------------------
    def get_stockout_risks(self, tenant_id: str, days_threshold: int = 7) -> List[StockoutRisk]:
        """Products expected to run out within ``days_threshold`` days, most urgent first."""

        pairs = self._velocities(tenant_id, prefilter=self.params.stockout_stock_prefilter)
        risks = self._risks_from(pairs, days_threshold)
        LOGGER.info(
            "Stockout scan for tenant %s: %s of %s products within %s days",
            tenant_id,
            len(risks),
            len(pairs),
            days_threshold,
        )
        return risks

    # ------------------------------------------------------------------
    def get_reorder_recommendations(self, tenant_id: str) -> List[ReorderRecommendation]:
        """Order suggestions for products below their reorder point or threshold."""

        pairs = self._velocities(tenant_id)
        recommendations = self._reorders_from(pairs)
        LOGGER.info(
            "Reorder scan for tenant %s: %s of %s products need stock",
            tenant_id,
            len(recommendations),
            len(pairs),
        )
        return recommendations

    # ------------------------------------------------------------------
    def get_inventory_health(self, tenant_id: str) -> InventoryHealth:
        # One scan feeds the counts and both queues.
        pairs = self._velocities(tenant_id)
        products = [product for product, _ in pairs]

        in_stock = sum(1 for product in products if product.current_stock > 0)
        low_stock = sum(
            1
            for product in products
            if product.low_stock_threshold is not None
            and 0 < product.current_stock <= product.low_stock_threshold
        )
        health = InventoryHealth(
            total_products=len(products),
            in_stock=in_stock,
            low_stock=low_stock,
            out_of_stock=len(products) - in_stock,
            healthy_stock=in_stock - low_stock,
            total_inventory_value=sum(product.current_stock * product.cost_price for product in products),
            stockout_risk_count=len(self._risks_from(pairs, self.params.health_risk_threshold_days)),
            reorder_needed_count=len(self._reorders_from(pairs)),
        )
        LOGGER.info("Inventory health for tenant %s: %s", tenant_id, health.model_dump())
        return health
