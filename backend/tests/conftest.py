r"""backend/tests/conftest.py

Shared fixtures: deterministic point-of-sale snapshots held as in-memory
DataFrames, evaluated against a fixed reference clock.
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.services.inventory_service import InventoryService  # noqa: E402

AS_OF = datetime(2024, 6, 30, 12, 0, 0)
TENANT = "default"


def product_row(product_id: str, **overrides) -> dict:
    row = {
        "id": product_id,
        "tenant_id": TENANT,
        "name": f"Product {product_id}",
        "sku": f"SKU-{product_id}",
        "price_cents": 1000,
        "cost_price": 100,
        "low_stock_threshold": None,
        "category_id": None,
        "brand_id": None,
        "image_url": None,
        "is_active": 1,
        "created_at": "2024-01-01T00:00:00",
    }
    row.update(overrides)
    return row


def build_frames(
    products: Sequence[dict],
    stock: Optional[Dict[str, int]] = None,
    orders: Iterable[dict] = (),
    categories: Sequence[Tuple[str, str]] = (),
    brands: Sequence[Tuple[str, str]] = (),
) -> Dict[str, pd.DataFrame]:
    """Assemble the six tables from compact descriptions.

    ``orders`` entries carry ``id``, ``created_at``, optional ``status``,
    ``customer_id`` and ``tenant_id`` plus ``items`` as ``(product_id, qty)``.
    """

    inventory = [
        {"product_id": pid, "tenant_id": TENANT, "location_id": "main", "quantity": qty}
        for pid, qty in (stock or {}).items()
    ]
    order_rows: List[dict] = []
    item_rows: List[dict] = []
    for order in orders:
        tenant = order.get("tenant_id", TENANT)
        order_rows.append(
            {
                "id": order["id"],
                "tenant_id": tenant,
                "customer_id": order.get("customer_id"),
                "status": order.get("status", "completed"),
                "created_at": order["created_at"],
            }
        )
        for pid, qty in order["items"]:
            item_rows.append({"order_id": order["id"], "tenant_id": tenant, "product_id": pid, "quantity": qty})

    return {
        "products": pd.DataFrame(list(products)),
        "inventory": pd.DataFrame(inventory, columns=["product_id", "tenant_id", "location_id", "quantity"]),
        "orders": pd.DataFrame(order_rows, columns=["id", "tenant_id", "customer_id", "status", "created_at"]),
        "order_items": pd.DataFrame(item_rows, columns=["order_id", "tenant_id", "product_id", "quantity"]),
        "categories": pd.DataFrame(
            [{"id": cid, "tenant_id": TENANT, "name": name} for cid, name in categories],
            columns=["id", "tenant_id", "name"],
        ),
        "brands": pd.DataFrame(
            [{"id": bid, "tenant_id": TENANT, "name": name} for bid, name in brands],
            columns=["id", "tenant_id", "name"],
        ),
    }


def daily_orders(product_id: str, quantities: Sequence[int], prefix: Optional[str] = None) -> List[dict]:
    """One order per day, oldest first, the last one on the reference day."""

    prefix = prefix or f"D-{product_id}"
    first_day = AS_OF.replace(hour=9) - timedelta(days=len(quantities) - 1)
    return [
        {
            "id": f"{prefix}-{index}",
            "created_at": (first_day + timedelta(days=index)).isoformat(),
            "items": [(product_id, qty)],
        }
        for index, qty in enumerate(quantities)
    ]


class CountingSource:
    """Proxy that records the name of every data-source call."""

    def __init__(self, inner):
        self._inner = inner
        self.calls: List[str] = []

    def __getattr__(self, name):
        attr = getattr(self._inner, name)
        if not callable(attr):
            return attr

        def _wrapped(*args, **kwargs):
            self.calls.append(name)
            return attr(*args, **kwargs)

        return _wrapped


@pytest.fixture
def make_source():
    def _make(frames: Dict[str, pd.DataFrame]) -> InventoryService:
        return InventoryService(frames=frames, as_of=AS_OF)

    return _make


@pytest.fixture
def catalog_frames() -> Dict[str, pd.DataFrame]:
    """A small hardware store with co-purchases, a cancelled order and a second tenant."""

    products = [
        product_row("P1", name="Hammer", price_cents=1000, category_id="C1", brand_id="B1",
                    created_at="2024-01-10T00:00:00"),
        product_row("P2", name="Nails", price_cents=1100, category_id="C1", brand_id="B1",
                    created_at="2024-06-25T00:00:00"),
        product_row("P3", name="Wrench", price_cents=900, category_id="C1", brand_id="B2",
                    created_at="2024-06-20T00:00:00"),
        product_row("P4", name="Rake", price_cents=1200, category_id="C2", brand_id="B1",
                    created_at="2024-03-01T00:00:00"),
        product_row("P5", name="Mower", price_cents=50000, category_id="C2", brand_id="B2",
                    created_at="2024-06-28T00:00:00"),
        product_row("P6", name="Old hammer", price_cents=1000, category_id="C1", brand_id="B1",
                    is_active=0, created_at="2024-06-29T00:00:00"),
        product_row("P7", name="Spatula", price_cents=1250, category_id="C3", brand_id="B3",
                    created_at="2024-02-01T00:00:00"),
        product_row("Q1", tenant_id="t2", name="Other tenant hammer", price_cents=1000,
                    category_id="C1", brand_id="B1"),
    ]
    orders = [
        {"id": "O1", "created_at": "2024-06-01T10:00:00", "customer_id": "K1", "items": [("P1", 1), ("P2", 3)]},
        {"id": "O2", "created_at": "2024-06-05T10:00:00", "customer_id": "K1",
         "items": [("P1", 1), ("P2", 1), ("P3", 1)]},
        {"id": "O3", "created_at": "2024-06-10T10:00:00", "customer_id": "K2", "items": [("P1", 2), ("P3", 1)]},
        {"id": "O4", "created_at": "2024-06-12T10:00:00", "customer_id": "K2", "items": [("P1", 1), ("P2", 2)]},
        {"id": "O5", "created_at": "2024-06-15T10:00:00", "customer_id": "K3", "status": "cancelled",
         "items": [("P1", 1), ("P7", 10)]},
        {"id": "O6", "created_at": "2024-06-20T10:00:00", "items": [("P4", 1), ("P5", 1)]},
        {"id": "O7", "created_at": "2024-04-01T10:00:00", "customer_id": "K2", "items": [("P7", 5)]},
        {"id": "O8", "created_at": "2024-06-22T10:00:00", "customer_id": "K2", "items": [("P1", 1), ("P6", 4)]},
        {"id": "O9", "created_at": "2024-06-25T10:00:00", "customer_id": "K3", "items": [("P7", 1), ("P4", 2)]},
        {"id": "O10", "created_at": "2024-06-20T10:00:00", "tenant_id": "t2", "customer_id": "K1",
         "items": [("Q1", 1)]},
    ]
    frames = build_frames(
        products,
        stock={"P2": 3},
        orders=orders,
        categories=[("C1", "Tools"), ("C2", "Garden"), ("C3", "Kitchen")],
        brands=[("B1", "Acme"), ("B2", "Globex"), ("B3", "Initech")],
    )
    # Hammer is stocked at two locations.
    extra = pd.DataFrame(
        [
            {"product_id": "P1", "tenant_id": TENANT, "location_id": "main", "quantity": 5},
            {"product_id": "P1", "tenant_id": TENANT, "location_id": "back", "quantity": 7},
        ]
    )
    frames["inventory"] = pd.concat([frames["inventory"], extra], ignore_index=True)
    return frames
