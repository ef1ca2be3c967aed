r"""backend\app\services\recommendation_service.py

Ranked product suggestions from purchase co-occurrence, catalogue
similarity and recency.

Six strategies share one result type. Each scores its candidates by rank
position with a fixed formula, so scores are relative ranking units rather
than probabilities. ``get_recommendations`` composes them into a bundle
keyed by strategy; lists are deduplicated within a key but never across
keys, which leaves the presentation of overlaps to the caller.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional, Sequence

from ..models.schemas import (
    CatalogProduct,
    ProductRecommendation,
    RecommendationBundle,
    RecommendationContext,
)
from .inventory_service import HistoricalDataSource, InventoryService

LOGGER = logging.getLogger(__name__)

FREQUENTLY_BOUGHT_TOGETHER_LIMIT = 5
CART_LIMIT = 5
SIMILAR_PRICE_BAND = 0.3


def _recommend(
    product: CatalogProduct, score: float, reason: str, confidence: int
) -> ProductRecommendation:
    return ProductRecommendation(
        product_id=product.id,
        product_name=product.name,
        sku=product.sku,
        price_cents=product.price_cents,
        image_url=product.image_url,
        category_name=product.category_name,
        brand_name=product.brand_name,
        recommendation_score=float(score),
        recommendation_reason=reason,
        confidence=int(max(0, min(100, confidence))),
    )


def dedupe_recommendations(
    recommendations: Iterable[ProductRecommendation], limit: Optional[int] = None
) -> List[ProductRecommendation]:
    """Keep one entry per product id (the highest score) in first-seen order."""

    best: dict[str, ProductRecommendation] = {}
    for rec in recommendations:
        current = best.get(rec.product_id)
        if current is None or rec.recommendation_score > current.recommendation_score:
            best[rec.product_id] = rec
    # dict preserves first insertion position even when the value is replaced
    unique = list(best.values())
    return unique if limit is None else unique[: max(limit, 0)]


def similarity_tier(candidate: CatalogProduct, focal: CatalogProduct) -> int:
    """3 for same category and brand, 2 for category, 1 for brand, else 0."""

    same_category = focal.category_id is not None and candidate.category_id == focal.category_id
    same_brand = focal.brand_id is not None and candidate.brand_id == focal.brand_id
    if same_category and same_brand:
        return 3
    if same_category:
        return 2
    if same_brand:
        return 1
    return 0


_SIMILARITY_REASONS = {
    3: "Same category and brand",
    2: "Same category",
    1: "Same brand",
    0: "Similar price range",
}


class RecommendationService:
    """Compute product recommendation lists for a tenant."""

    def __init__(self, data_source: Optional[HistoricalDataSource] = None) -> None:
        self.data_source: HistoricalDataSource = data_source if data_source is not None else InventoryService()

    # ------------------------------------------------------------------
    def get_popular_products(self, tenant_id: str, limit: int = 10, days: int = 30) -> List[ProductRecommendation]:
        """Best sellers of the trailing ``days`` window."""

        candidates = self.data_source.get_popular_products(tenant_id, days, limit)
        recs = [
            _recommend(candidate.product, 100 - index * 5, candidate.reason or "Popular product", 80)
            for index, candidate in enumerate(candidates)
        ]
        return dedupe_recommendations(recs, limit)

    # ------------------------------------------------------------------
    def get_new_arrivals(self, tenant_id: str, limit: int = 10, days: int = 30) -> List[ProductRecommendation]:
        products = self.data_source.get_new_arrivals(tenant_id, days, limit)
        recs = [_recommend(product, 90 - index * 4, "New arrival", 75) for index, product in enumerate(products)]
        return dedupe_recommendations(recs, limit)

    # ------------------------------------------------------------------
    def get_frequently_bought_together(
        self, product_id: str, tenant_id: str, limit: int = FREQUENTLY_BOUGHT_TOGETHER_LIMIT
    ) -> List[ProductRecommendation]:
        """Products sharing the most completed orders with ``product_id``."""

        if not product_id:
            return []
        pairs = self.data_source.get_co_purchases([product_id], tenant_id, limit=limit)
        recs = [
            _recommend(
                pair.product,
                100 - index * 10,
                "Frequently bought together",
                min(95, 60 + pair.co_purchase_count * 5),
            )
            for index, pair in enumerate(pairs)
        ]
        return dedupe_recommendations(recs, limit)

    # ------------------------------------------------------------------
    def get_similar_products(self, product_id: str, tenant_id: str, limit: int = 10) -> List[ProductRecommendation]:
        """Products priced within 30% of the focal product, closest match first.

        The list keeps the similarity rank (tier, then price distance); since
        the score subtracts the tier, it is not sorted by score.
        """

        if not product_id:
            return []
        focal = self.data_source.get_catalog_product(product_id, tenant_id)
        if focal is None:
            return []

        low = focal.price_cents * (1 - SIMILAR_PRICE_BAND)
        high = focal.price_cents * (1 + SIMILAR_PRICE_BAND)
        candidates = self.data_source.get_products_in_price_band(tenant_id, low, high, exclude_ids=[focal.id])
        ranked = sorted(
            ((similarity_tier(candidate, focal), candidate) for candidate in candidates),
            key=lambda item: (-item[0], abs(item[1].price_cents - focal.price_cents), item[1].id),
        )[: max(limit, 0)]

        recs = [
            _recommend(candidate, 100 - tier * 30 - index * 3, _SIMILARITY_REASONS[tier], 70 + tier * 10)
            for index, (tier, candidate) in enumerate(ranked)
        ]
        return dedupe_recommendations(recs, limit)

    # ------------------------------------------------------------------
    def get_cart_recommendations(
        self, cart_items: Sequence[str], tenant_id: str, limit: int = CART_LIMIT
    ) -> List[ProductRecommendation]:
        """Complements for the cart; popular products when the cart is empty."""

        cart = [item for item in dict.fromkeys(cart_items) if item]
        if not cart:
            return self.get_popular_products(tenant_id, limit)

        pairs = self.data_source.get_co_purchases(cart, tenant_id, limit=limit)
        recs = [
            _recommend(
                pair.product,
                100 - index * 8,
                "Complete your purchase with this",
                min(90, 65 + pair.co_purchase_count * 5),
            )
            for index, pair in enumerate(pairs)
        ]
        return dedupe_recommendations(recs, limit)

    # ------------------------------------------------------------------
    def get_personalized_recommendations(
        self, customer_id: str, tenant_id: str, limit: int = 10
    ) -> List[ProductRecommendation]:
        """Blend co-purchase and favourite category/brand suggestions.

        Half of the limit (rounded up) goes to each source. Products the
        customer already bought never appear. Customers without history
        get the popular list.
        """

        history = self.data_source.get_customer_purchase_history(customer_id, tenant_id)
        if not history:
            LOGGER.info("Customer %s has no purchase history; using popular products", customer_id)
            return self.get_popular_products(tenant_id, limit)

        purchased = [item.product_id for item in history]
        category_ids = list(dict.fromkeys(item.category_id for item in history if item.category_id))
        brand_ids = list(dict.fromkeys(item.brand_id for item in history if item.brand_id))
        half = int(math.ceil(limit / 2))

        recs: List[ProductRecommendation] = []
        for index, pair in enumerate(self.data_source.get_co_purchases(purchased, tenant_id, limit=half)):
            recs.append(
                _recommend(
                    pair.product,
                    100 - index * 5,
                    "Customers who bought your items also bought this",
                    min(95, 70 + pair.co_purchase_count * 5),
                )
            )

        selected = {rec.product_id for rec in recs}
        content = self.data_source.get_products_by_category_or_brand(
            category_ids, brand_ids, tenant_id, exclude_ids=set(purchased) | selected, limit=half
        )
        for index, candidate in enumerate(content):
            recs.append(_recommend(candidate.product, 50 - index * 2, candidate.reason, 60))

        purchased_ids = set(purchased)
        recs = [rec for rec in recs if rec.product_id not in purchased_ids]
        recs.sort(key=lambda rec: rec.recommendation_score, reverse=True)
        return dedupe_recommendations(recs, limit)

    # ------------------------------------------------------------------
    def get_recommendations(self, context: RecommendationContext, tenant_id: str) -> RecommendationBundle:
        """Run every strategy the context calls for and return them keyed by name."""

        limit = context.limit
        bundle = RecommendationBundle()
        if context.customer_id:
            bundle.personalized = self.get_personalized_recommendations(context.customer_id, tenant_id, limit)
        if context.product_id:
            bundle.frequently_bought_together = self.get_frequently_bought_together(
                context.product_id, tenant_id, FREQUENTLY_BOUGHT_TOGETHER_LIMIT
            )
            bundle.similar = self.get_similar_products(context.product_id, tenant_id, limit)
        if context.cart_items:
            bundle.cart = self.get_cart_recommendations(context.cart_items, tenant_id, CART_LIMIT)
        bundle.popular = self.get_popular_products(tenant_id, limit)
        bundle.new_arrivals = self.get_new_arrivals(tenant_id, limit)

        LOGGER.info(
            "Recommendation bundle for tenant %s: %s",
            tenant_id,
            {key: len(value) for key, value in bundle.model_dump().items() if value is not None},
        )
        return bundle
