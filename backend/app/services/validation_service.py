r"""backend\app\services\validation_service.py"""

from __future__ import annotations

import os
from pathlib import Path

import pandas as pd

from .inventory_service import LOOKUP_TABLES, REQUIRED_TABLES, TABLE_COLUMNS
from .io_utils import table_available


class ValidationService:
    def __init__(self, data_root: str | None = None):
        self.data_root = data_root or os.getenv("DATA_DIR", "data")

    def _header(self, name: str) -> list[str]:
        csv_path = Path(self.data_root) / f"{name}.csv"
        parquet_path = csv_path.with_suffix(".parquet")
        if parquet_path.exists():
            return list(pd.read_parquet(parquet_path).columns)
        return list(pd.read_csv(csv_path, nrows=0).columns)

    def run(self) -> dict:
        checks = []

        def add(name: str, ok: bool, msg: str = "") -> None:
            checks.append({"name": name, "ok": bool(ok), "message": msg})

        for table in (*REQUIRED_TABLES, *LOOKUP_TABLES):
            present = table_available(self.data_root, table)
            if table in REQUIRED_TABLES:
                add(f"file_{table}_exists", present, os.path.join(self.data_root, f"{table}.csv"))
            if not present:
                continue

            try:
                columns = self._header(table)
            except (OSError, ValueError) as exc:
                add(f"{table}_readable", False, str(exc))
                continue
            missing = [col for col in TABLE_COLUMNS[table] if col not in columns]
            message = f"missing: {missing}" if missing else f"have: {columns[:8]}..."
            add(f"{table}_columns_ok", not missing, message)

        overall = all(x["ok"] for x in checks)
        return {"ok": overall, "checks": checks}
