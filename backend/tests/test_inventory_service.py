r"""backend/tests/test_inventory_service.py"""

from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

import pytest

from backend.app.core.errors import DataAccessError
from backend.app.services.inventory_service import InventoryService

from conftest import AS_OF, TENANT, build_frames, product_row


def test_daily_sales_skip_cancelled_orders_and_empty_days(make_source, catalog_frames):
    source = make_source(catalog_frames)

    points = source.get_daily_sales("P1", TENANT, 30)

    assert [p.date for p in points] == [
        date(2024, 6, 1),
        date(2024, 6, 5),
        date(2024, 6, 10),
        date(2024, 6, 12),
        date(2024, 6, 22),
    ]
    assert [p.quantity_sold for p in points] == [1, 1, 2, 1, 1]


def test_daily_sales_respect_the_window(make_source, catalog_frames):
    source = make_source(catalog_frames)

    assert [(p.date, p.quantity_sold) for p in source.get_daily_sales("P7", TENANT, 30)] == [
        (date(2024, 6, 25), 1)
    ]
    assert [p.quantity_sold for p in source.get_daily_sales("P7", TENANT, 120)] == [5, 1]


def test_daily_sales_batch_returns_every_requested_id(make_source, catalog_frames):
    batch = make_source(catalog_frames).get_daily_sales_batch(["P1", "P4", "ZZZ"], TENANT, 30)

    assert set(batch) == {"P1", "P4", "ZZZ"}
    assert len(batch["P1"]) == 5
    assert [p.quantity_sold for p in batch["P4"]] == [1, 2]
    assert batch["ZZZ"] == []


def test_snapshot_sums_locations_and_is_tenant_scoped(make_source, catalog_frames):
    source = make_source(catalog_frames)

    snapshot = source.get_product_snapshot("P1", TENANT)
    assert snapshot is not None
    assert snapshot.current_stock == 12
    assert snapshot.low_stock_threshold is None

    assert source.get_product_snapshot("Q1", TENANT) is None
    assert source.get_product_snapshot("Q1", "t2") is not None


def test_list_active_products_and_prefilter(make_source, catalog_frames):
    source = make_source(catalog_frames)

    active = {p.id: p.current_stock for p in source.list_active_products(TENANT)}
    assert set(active) == {"P1", "P2", "P3", "P4", "P5", "P7"}
    assert active["P1"] == 12

    filtered = {p.id for p in source.list_active_products(TENANT, prefilter=10)}
    assert "P1" not in filtered
    assert "P2" in filtered


def test_catalog_product_carries_lookup_names(make_source, catalog_frames):
    product = make_source(catalog_frames).get_catalog_product("P3", TENANT)

    assert product is not None
    assert product.category_name == "Tools"
    assert product.brand_name == "Globex"


def test_lookup_tables_are_optional(make_source, catalog_frames):
    frames = {name: frame for name, frame in catalog_frames.items() if name not in {"categories", "brands"}}
    product = make_source(frames).get_catalog_product("P3", TENANT)

    assert product is not None
    assert product.category_id == "C1"
    assert product.category_name is None


def test_co_purchases_count_distinct_completed_orders(make_source, catalog_frames):
    pairs = make_source(catalog_frames).get_co_purchases(["P1"], TENANT)

    assert [(pair.product.id, pair.co_purchase_count) for pair in pairs] == [("P2", 3), ("P3", 2)]

    excluded = make_source(catalog_frames).get_co_purchases(["P1"], TENANT, exclude_ids=["P2"])
    assert [pair.product.id for pair in excluded] == ["P3"]


def test_purchase_history_is_most_recent_first(make_source, catalog_frames):
    history = make_source(catalog_frames).get_customer_purchase_history("K2", TENANT)

    assert [item.product_id for item in history] == ["P1", "P6", "P2", "P3", "P7"]
    assert make_source(catalog_frames).get_customer_purchase_history("nobody", TENANT) == []


def test_popular_products_ignore_cancelled_orders(make_source, catalog_frames):
    popular = make_source(catalog_frames).get_popular_products(TENANT, 30, 10)

    assert [c.product.id for c in popular] == ["P1", "P2", "P4", "P3", "P5", "P7"]
    assert popular[0].signal == 6


def test_new_arrivals_newest_first(make_source, catalog_frames):
    arrivals = make_source(catalog_frames).get_new_arrivals(TENANT, 30, 10)

    assert [p.id for p in arrivals] == ["P5", "P2", "P3"]


def test_missing_table_raises_data_access_error():
    source = InventoryService(frames={"products": build_frames([product_row("A")])["products"]}, as_of=AS_OF)

    with pytest.raises(DataAccessError) as excinfo:
        source.list_active_products(TENANT)
    assert excinfo.value.operation == "list_active_products"


def test_missing_column_raises_data_access_error(catalog_frames):
    frames = dict(catalog_frames)
    frames["products"] = frames["products"].drop(columns=["sku"])

    with pytest.raises(DataAccessError, match="sku"):
        InventoryService(frames=frames, as_of=AS_OF).get_product_snapshot("P1", TENANT)


def test_reads_csv_tables_from_data_directory(monkeypatch, tmp_path: Path, catalog_frames):
    monkeypatch.delenv("DATA_DIR", raising=False)
    for name, frame in catalog_frames.items():
        frame.to_csv(tmp_path / f"{name}.csv", index=False)

    source = InventoryService(data_root=str(tmp_path), as_of=AS_OF)

    assert source.data_files_present()
    assert [c.product.id for c in source.get_popular_products(TENANT, 30, 3)] == ["P1", "P2", "P4"]
    snapshot = source.get_product_snapshot("P1", TENANT)
    assert snapshot is not None and snapshot.current_stock == 12


def test_missing_data_directory_raises_data_access_error(monkeypatch, tmp_path: Path):
    monkeypatch.delenv("DATA_DIR", raising=False)
    source = InventoryService(data_root=str(tmp_path / "absent"), as_of=AS_OF)

    assert not source.data_files_present()
    with pytest.raises(DataAccessError):
        source.get_popular_products(TENANT, 30, 10)
