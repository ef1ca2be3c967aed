r"""backend\app\services\inventory_service.py

Read-only access to the point-of-sale history.

``InventoryService`` is the historical data source both engines consume. It
serves tenant-scoped queries over six tables (``products``, ``inventory``,
``orders``, ``order_items``, ``categories`` and ``brands``) that are read
from CSV/Parquet files under ``DATA_DIR`` or handed over as in-memory
``pandas.DataFrame`` objects. Every query converts raw rows into the typed
records of :mod:`backend.app.models.schemas` and reports failures as
:class:`~backend.app.core.errors.DataAccessError`.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Sequence

import pandas as pd

from ..core.errors import DataAccessError
from ..core.observability import record_data_read
from ..models.schemas import (
    CatalogProduct,
    CoPurchase,
    DailySalesPoint,
    ProductSnapshot,
    PurchasedProduct,
    RecommendationCandidate,
)
from .io_utils import load_table, table_available

LOGGER = logging.getLogger(__name__)

# Columns each table must provide. Optional columns are filled with defaults.
TABLE_COLUMNS: Dict[str, List[str]] = {
    "products": ["id", "tenant_id", "name", "sku"],
    "inventory": ["product_id", "tenant_id", "quantity"],
    "orders": ["id", "tenant_id", "status", "created_at"],
    "order_items": ["order_id", "tenant_id", "product_id", "quantity"],
    "categories": ["id", "tenant_id", "name"],
    "brands": ["id", "tenant_id", "name"],
}

OPTIONAL_COLUMNS: Dict[str, Dict[str, Any]] = {
    "products": {
        "price_cents": 0,
        "cost_price": 0,
        "low_stock_threshold": pd.NA,
        "category_id": pd.NA,
        "brand_id": pd.NA,
        "image_url": pd.NA,
        "is_active": 1,
        "created_at": pd.NA,
    },
    "orders": {"customer_id": pd.NA},
}

REQUIRED_TABLES = ("products", "inventory", "orders", "order_items")
LOOKUP_TABLES = ("categories", "brands")

_ID_COLUMNS = {"id", "tenant_id", "product_id", "order_id", "customer_id", "category_id", "brand_id"}
_NUMERIC_COLUMNS = {"quantity", "price_cents", "cost_price", "low_stock_threshold"}
_EXCLUDED_ORDER_STATUSES = {"cancelled", "refunded"}
PURCHASE_HISTORY_LIMIT = 50


class HistoricalDataSource(Protocol):
    """Read operations the forecasting and recommendation engines depend on."""

    def get_product_snapshot(self, product_id: str, tenant_id: str) -> Optional[ProductSnapshot]: ...

    def get_daily_sales(self, product_id: str, tenant_id: str, window_days: int) -> List[DailySalesPoint]: ...

    def get_daily_sales_batch(
        self, product_ids: Sequence[str], tenant_id: str, window_days: int
    ) -> Dict[str, List[DailySalesPoint]]: ...

    def list_active_products(self, tenant_id: str, prefilter: Optional[int] = None) -> List[ProductSnapshot]: ...

    def get_catalog_product(self, product_id: str, tenant_id: str) -> Optional[CatalogProduct]: ...

    def get_co_purchases(
        self,
        product_ids: Sequence[str],
        tenant_id: str,
        exclude_ids: Iterable[str] = (),
        limit: int = 10,
    ) -> List[CoPurchase]: ...

    def get_customer_purchase_history(self, customer_id: str, tenant_id: str) -> List[PurchasedProduct]: ...

    def get_products_by_category_or_brand(
        self,
        category_ids: Sequence[str],
        brand_ids: Sequence[str],
        tenant_id: str,
        exclude_ids: Iterable[str] = (),
        limit: int = 10,
    ) -> List[RecommendationCandidate]: ...

    def get_products_in_price_band(
        self, tenant_id: str, min_price: float, max_price: float, exclude_ids: Iterable[str] = ()
    ) -> List[CatalogProduct]: ...

    def get_popular_products(self, tenant_id: str, days: int, limit: int) -> List[RecommendationCandidate]: ...

    def get_new_arrivals(self, tenant_id: str, days: int, limit: int) -> List[CatalogProduct]: ...


# ---------------------------------------------------------------------------
# Row conversion helpers


def _is_missing(value: Any) -> bool:
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _opt_str(value: Any) -> Optional[str]:
    if value is None or _is_missing(value):
        return None
    text = str(value).strip()
    return text or None


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or _is_missing(value):
        return default
    return int(value)


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "t", "yes", "y"}
    if _is_missing(value):
        return False
    return bool(value)


def _matches(column: pd.Series, value: str) -> pd.Series:
    """Equality mask that treats missing cells as non-matching."""

    return (column == value).fillna(False).astype(bool)


class InventoryService:
    """Tenant-scoped historical queries over the point-of-sale tables."""

    def __init__(
        self,
        data_root: str = "data",
        frames: Optional[Mapping[str, pd.DataFrame]] = None,
        as_of: Optional[datetime] = None,
    ) -> None:
        self.data_root = Path(os.getenv("DATA_DIR", data_root)) if frames is None else Path(data_root)
        self._frames = dict(frames) if frames is not None else None
        self.as_of = as_of

    # ------------------------------------------------------------------
    def data_files_present(self) -> bool:
        if self._frames is not None:
            return all(name in self._frames for name in REQUIRED_TABLES)
        return all(table_available(self.data_root, name) for name in REQUIRED_TABLES)

    # ------------------------------------------------------------------
    def _now(self) -> pd.Timestamp:
        if self.as_of is None:
            return pd.Timestamp.now(tz="UTC").tz_localize(None)
        stamp = pd.Timestamp(self.as_of)
        if stamp.tzinfo is not None:
            stamp = stamp.tz_convert("UTC").tz_localize(None)
        return stamp

    # ------------------------------------------------------------------
    @contextmanager
    def _reading(self, operation: str) -> Iterator[None]:
        record_data_read(operation)
        try:
            yield
        except DataAccessError:
            raise
        except (OSError, ValueError, KeyError) as exc:
            LOGGER.warning("Historical read %s failed: %s", operation, exc)
            raise DataAccessError(operation, str(exc)) from exc

    # ------------------------------------------------------------------
    def _table(self, name: str) -> pd.DataFrame:
        required = name in REQUIRED_TABLES
        if self._frames is not None:
            raw = self._frames.get(name)
            if raw is None:
                if required:
                    raise FileNotFoundError(f"Table '{name}' was not provided")
                return pd.DataFrame(columns=TABLE_COLUMNS[name])
            frame = raw.copy()
        else:
            if not required and not table_available(self.data_root, name):
                return pd.DataFrame(columns=TABLE_COLUMNS[name])
            dtype = {col: "string" for col in _ID_COLUMNS}
            frame = load_table(self.data_root, name, dtype=dtype)
        return self._normalise(name, frame)

    # ------------------------------------------------------------------
    def _normalise(self, name: str, frame: pd.DataFrame) -> pd.DataFrame:
        missing = [col for col in TABLE_COLUMNS[name] if col not in frame.columns]
        if missing:
            raise KeyError(f"Table '{name}' is missing columns: {', '.join(missing)}")

        for column, default in OPTIONAL_COLUMNS.get(name, {}).items():
            if column not in frame.columns:
                frame[column] = default

        for column in frame.columns:
            if column in _ID_COLUMNS:
                frame[column] = frame[column].astype("string").str.strip()
            elif column in _NUMERIC_COLUMNS:
                frame[column] = pd.to_numeric(frame[column], errors="coerce")
            elif column == "created_at":
                stamps = pd.to_datetime(frame[column], errors="coerce", utc=True, format="ISO8601")
                frame[column] = stamps.dt.tz_localize(None)
        return frame

    # ------------------------------------------------------------------
    def _products(self, tenant_id: str, *, active_only: bool = False) -> pd.DataFrame:
        products = self._table("products")
        products = products[_matches(products["tenant_id"], tenant_id)]
        if active_only:
            products = products[products["is_active"].map(_truthy).astype(bool)]
        return products

    def _stock_levels(self, tenant_id: str) -> pd.Series:
        inventory = self._table("inventory")
        inventory = inventory[_matches(inventory["tenant_id"], tenant_id)]
        return inventory.groupby("product_id")["quantity"].sum()

    def _name_lookup(self, table: str, tenant_id: str) -> Dict[str, str]:
        frame = self._table(table)
        frame = frame[_matches(frame["tenant_id"], tenant_id)]
        return {str(row_id): str(name) for row_id, name in zip(frame["id"], frame["name"])}

    def _completed_lines(self, tenant_id: str, window_days: Optional[int] = None) -> pd.DataFrame:
        """Order lines of non-cancelled, non-refunded orders, optionally windowed."""

        orders = self._table("orders")
        orders = orders[_matches(orders["tenant_id"], tenant_id)]
        status = orders["status"].astype("string").str.strip().str.lower()
        orders = orders[~status.isin(_EXCLUDED_ORDER_STATUSES).fillna(False).astype(bool)]
        if window_days is not None:
            now = self._now()
            start = now - pd.Timedelta(days=int(window_days))
            orders = orders[(orders["created_at"] >= start) & (orders["created_at"] <= now)]

        items = self._table("order_items")
        items = items[_matches(items["tenant_id"], tenant_id)]
        lines = items.merge(
            orders[["id", "created_at", "customer_id"]].rename(columns={"id": "order_id"}),
            on="order_id",
            how="inner",
        )
        lines["quantity"] = lines["quantity"].fillna(0)
        return lines

    # ------------------------------------------------------------------
    def _snapshot(self, row: Mapping[str, Any], stock: pd.Series) -> ProductSnapshot:
        product_id = str(row["id"])
        threshold = row.get("low_stock_threshold")
        return ProductSnapshot(
            id=product_id,
            name=str(row["name"]),
            sku=str(row["sku"]),
            cost_price=_as_int(row.get("cost_price")),
            low_stock_threshold=None if _is_missing(threshold) else int(threshold),
            current_stock=_as_int(stock.get(product_id)),
        )

    def _catalog_products(self, frame: pd.DataFrame, tenant_id: str) -> List[CatalogProduct]:
        if frame.empty:
            return []
        categories = self._name_lookup("categories", tenant_id)
        brands = self._name_lookup("brands", tenant_id)
        products: List[CatalogProduct] = []
        for row in frame.to_dict("records"):
            category_id = _opt_str(row.get("category_id"))
            brand_id = _opt_str(row.get("brand_id"))
            products.append(
                CatalogProduct(
                    id=str(row["id"]),
                    name=str(row["name"]),
                    sku=str(row["sku"]),
                    price_cents=_as_int(row.get("price_cents")),
                    image_url=_opt_str(row.get("image_url")),
                    category_id=category_id,
                    brand_id=brand_id,
                    category_name=categories.get(category_id) if category_id else None,
                    brand_name=brands.get(brand_id) if brand_id else None,
                )
            )
        return products

    @staticmethod
    def _sales_points(daily: pd.Series) -> List[DailySalesPoint]:
        return [
            DailySalesPoint(date=pd.Timestamp(day).date(), quantity_sold=max(int(quantity), 0))
            for day, quantity in daily.items()
        ]

    # ------------------------------------------------------------------
    # Forecasting queries

    def get_product_snapshot(self, product_id: str, tenant_id: str) -> Optional[ProductSnapshot]:
        """Return the product with its stock summed over locations, or ``None``."""

        with self._reading("get_product_snapshot"):
            products = self._products(tenant_id)
            match = products[_matches(products["id"], str(product_id))]
            if match.empty:
                return None
            return self._snapshot(match.iloc[0].to_dict(), self._stock_levels(tenant_id))

    def get_daily_sales(self, product_id: str, tenant_id: str, window_days: int) -> List[DailySalesPoint]:
        """Return the product's per-day sales inside the window, oldest first.

        Days without recorded sales are absent from the series.
        """

        with self._reading("get_daily_sales"):
            return self._daily_sales([str(product_id)], tenant_id, window_days).get(str(product_id), [])

    def get_daily_sales_batch(
        self, product_ids: Sequence[str], tenant_id: str, window_days: int
    ) -> Dict[str, List[DailySalesPoint]]:
        """Return daily series for many products from one grouped aggregate."""

        with self._reading("get_daily_sales_batch"):
            return self._daily_sales([str(pid) for pid in product_ids], tenant_id, window_days)

    def _daily_sales(
        self, product_ids: List[str], tenant_id: str, window_days: int
    ) -> Dict[str, List[DailySalesPoint]]:
        result: Dict[str, List[DailySalesPoint]] = {pid: [] for pid in product_ids}
        if not product_ids:
            return result

        lines = self._completed_lines(tenant_id, window_days)
        lines = lines[lines["product_id"].isin(product_ids)]
        if lines.empty:
            return result

        lines = lines.assign(sale_date=lines["created_at"].dt.normalize())
        daily = lines.groupby(["product_id", "sale_date"], sort=True)["quantity"].sum()
        for product_id, series in daily.groupby(level="product_id"):
            result[str(product_id)] = self._sales_points(series.droplevel("product_id"))
        return result

    def list_active_products(self, tenant_id: str, prefilter: Optional[int] = None) -> List[ProductSnapshot]:
        """Return active products, optionally only those with stock below ``prefilter``."""

        with self._reading("list_active_products"):
            products = self._products(tenant_id, active_only=True)
            stock = self._stock_levels(tenant_id)
            snapshots = [self._snapshot(row, stock) for row in products.to_dict("records")]
            if prefilter is not None:
                snapshots = [snap for snap in snapshots if snap.current_stock < prefilter]
            return snapshots

    # ------------------------------------------------------------------
    # Recommendation queries

    def get_catalog_product(self, product_id: str, tenant_id: str) -> Optional[CatalogProduct]:
        with self._reading("get_catalog_product"):
            products = self._products(tenant_id)
            match = products[_matches(products["id"], str(product_id))]
            catalog = self._catalog_products(match.head(1), tenant_id)
            return catalog[0] if catalog else None

    def get_co_purchases(
        self,
        product_ids: Sequence[str],
        tenant_id: str,
        exclude_ids: Iterable[str] = (),
        limit: int = 10,
    ) -> List[CoPurchase]:
        """Rank products by the number of completed orders shared with the anchors.

        The anchors themselves and ``exclude_ids`` never appear in the result.
        """

        with self._reading("get_co_purchases"):
            anchors = {str(pid) for pid in product_ids}
            if not anchors or limit <= 0:
                return []
            excluded = anchors | {str(pid) for pid in exclude_ids}

            lines = self._completed_lines(tenant_id)
            anchor_orders = lines.loc[lines["product_id"].isin(anchors), "order_id"].unique()
            companions = lines[lines["order_id"].isin(anchor_orders) & ~lines["product_id"].isin(excluded)]
            if companions.empty:
                return []

            counts = companions.groupby("product_id")["order_id"].nunique().rename("co_purchase_count")
            active = self._products(tenant_id, active_only=True)
            ranked = active.merge(counts, left_on="id", right_index=True, how="inner")
            ranked = ranked.sort_values(["co_purchase_count", "id"], ascending=[False, True]).head(limit)

            catalog = self._catalog_products(ranked, tenant_id)
            return [
                CoPurchase(product=product, co_purchase_count=int(count))
                for product, count in zip(catalog, ranked["co_purchase_count"])
            ]

    def get_customer_purchase_history(self, customer_id: str, tenant_id: str) -> List[PurchasedProduct]:
        """Return the customer's most recently purchased distinct products."""

        with self._reading("get_customer_purchase_history"):
            lines = self._completed_lines(tenant_id)
            lines = lines[_matches(lines["customer_id"], str(customer_id))]
            if lines.empty:
                return []

            recent = (
                lines.sort_values(["created_at", "product_id"], ascending=[False, True])
                .drop_duplicates("product_id")
                .head(PURCHASE_HISTORY_LIMIT)
            )
            products = self._products(tenant_id).drop_duplicates("id").set_index("id")
            history: List[PurchasedProduct] = []
            for product_id in recent["product_id"]:
                if product_id not in products.index:
                    continue
                row = products.loc[product_id]
                history.append(
                    PurchasedProduct(
                        product_id=str(product_id),
                        category_id=_opt_str(row.get("category_id")),
                        brand_id=_opt_str(row.get("brand_id")),
                    )
                )
            return history

    def get_products_by_category_or_brand(
        self,
        category_ids: Sequence[str],
        brand_ids: Sequence[str],
        tenant_id: str,
        exclude_ids: Iterable[str] = (),
        limit: int = 10,
    ) -> List[RecommendationCandidate]:
        """Return active products sharing a category or brand, most ordered first."""

        with self._reading("get_products_by_category_or_brand"):
            categories = {str(cid) for cid in category_ids}
            brands = {str(bid) for bid in brand_ids}
            if (not categories and not brands) or limit <= 0:
                return []

            products = self._products(tenant_id, active_only=True)
            products = products[~products["id"].isin({str(pid) for pid in exclude_ids})]
            in_category = products["category_id"].isin(categories).fillna(False).astype(bool)
            in_brand = products["brand_id"].isin(brands).fillna(False).astype(bool)
            matches = products.assign(in_category=in_category, in_brand=in_brand)
            matches = matches[matches["in_category"] | matches["in_brand"]]
            if matches.empty:
                return []

            items = self._table("order_items")
            popularity = items[_matches(items["tenant_id"], tenant_id)].groupby("product_id").size()
            matches = matches.assign(popularity=matches["id"].map(popularity).fillna(0).astype(int))
            matches = matches.sort_values(["popularity", "id"], ascending=[False, True]).head(limit)

            candidates: List[RecommendationCandidate] = []
            for product, row in zip(self._catalog_products(matches, tenant_id), matches.to_dict("records")):
                if row["in_category"] and row["in_brand"]:
                    reason = "Based on your favorite brands and categories"
                elif row["in_category"]:
                    reason = "Based on your favorite categories"
                else:
                    reason = "Based on your favorite brands"
                candidates.append(
                    RecommendationCandidate(product=product, signal=float(row["popularity"]), reason=reason)
                )
            return candidates

    def get_products_in_price_band(
        self, tenant_id: str, min_price: float, max_price: float, exclude_ids: Iterable[str] = ()
    ) -> List[CatalogProduct]:
        """Return active products priced within ``[min_price, max_price]``."""

        with self._reading("get_products_in_price_band"):
            products = self._products(tenant_id, active_only=True)
            products = products[~products["id"].isin({str(pid) for pid in exclude_ids})]
            price = products["price_cents"].fillna(0)
            products = products[(price >= min_price) & (price <= max_price)]
            return self._catalog_products(products.sort_values("id"), tenant_id)

    def get_popular_products(self, tenant_id: str, days: int, limit: int) -> List[RecommendationCandidate]:
        """Return active products ranked by units sold inside the trailing window."""

        with self._reading("get_popular_products"):
            if limit <= 0:
                return []
            lines = self._completed_lines(tenant_id, days)
            if lines.empty:
                return []
            totals = lines.groupby("product_id").agg(
                quantity_sold=("quantity", "sum"),
                order_count=("order_id", "nunique"),
            )
            active = self._products(tenant_id, active_only=True)
            ranked = active.merge(totals, left_on="id", right_index=True, how="inner")
            ranked = ranked[ranked["order_count"] > 0]
            ranked = ranked.sort_values(
                ["quantity_sold", "order_count", "id"], ascending=[False, False, True]
            ).head(limit)
            return [
                RecommendationCandidate(product=product, signal=float(quantity), reason="Popular product")
                for product, quantity in zip(self._catalog_products(ranked, tenant_id), ranked["quantity_sold"])
            ]

    def get_new_arrivals(self, tenant_id: str, days: int, limit: int) -> List[CatalogProduct]:
        """Return active products created inside the trailing window, newest first."""

        with self._reading("get_new_arrivals"):
            if limit <= 0:
                return []
            products = self._products(tenant_id, active_only=True)
            now = self._now()
            start = now - pd.Timedelta(days=int(days))
            created = products["created_at"]
            recent = products[(created >= start) & (created <= now)]
            recent = recent.sort_values(["created_at", "id"], ascending=[False, True]).head(limit)
            return self._catalog_products(recent, tenant_id)
