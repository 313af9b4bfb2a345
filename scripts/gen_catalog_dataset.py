#!/usr/bin/env python3
"""Synthetic supplier catalog generator for performance runs.

Generates workbooks (or CSV) in the layout the checker expects:
- Row 1: Header row (dotted field paths)
- Row 2+: Product rows

Optional error injection produces a realistic share of duplicate catalog
numbers, bad currencies, negative prices and blank booleans so that the
diagnostic paths are exercised too.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

ESSENTIAL_COLUMNS = [
    "name",
    "catalog_number",
    "supplier_catalog_number",
    "supplier.id",
    "price.buy.currency",
    "price.buy.amount",
    "price.promotion_price.amount",
    "shipment.dry_ice",
    "size",
    "available",
    "display",
]

SPECIES = ["Human", "homo sapiens", "Mouse", "mus musculus", "Rat", "human, mouse"]
CURRENCIES = ["EUR", "usd", " gbp ", "PLN", "JPY"]
BOOLEANS = ["true", "false", "yes", "no", "vrai", "FAUX"]


def generate_catalog(
    rows: int,
    supplier_id: int,
    *,
    start: int = 0,
    error_rate: float = 0.0,
    seed: int = 42,
) -> pd.DataFrame:
    """Generate one sheet of products.

    Args:
        rows: Number of product rows
        supplier_id: Supplier id written to every row
        start: Offset for generated catalog numbers (keeps sheets distinct)
        error_rate: Share of rows that get one injected defect (0.0 - 1.0)
        seed: Random seed for reproducible data
    """
    rng = np.random.default_rng(seed + start)
    numbers = np.arange(start, start + rows)

    data: dict[str, list[Any]] = {
        "name": [f"Antibody {n}" for n in numbers],
        "catalog_number": [f"CAT-{n:07d}" for n in numbers],
        "supplier_catalog_number": [f"S{supplier_id}-{n}" for n in numbers],
        "supplier.id": [supplier_id] * rows,
        "price.buy.currency": rng.choice(CURRENCIES, rows).tolist(),
        "price.buy.amount": np.round(rng.uniform(5, 2500, rows), 2).tolist(),
        "price.promotion_price.amount": [
            "" if flag else round(float(v), 2)
            for flag, v in zip(rng.random(rows) < 0.7, rng.uniform(1, 2000, rows))
        ],
        "shipment.dry_ice": rng.choice(BOOLEANS, rows).tolist(),
        "size": rng.choice(["50 ul", "100 ul", "1 mg", "10 ug"], rows).tolist(),
        "available": rng.choice(BOOLEANS, rows).tolist(),
        "display": rng.choice(BOOLEANS, rows).tolist(),
        "species": rng.choice(SPECIES, rows).tolist(),
        "application": rng.choice(["WB", "IHC, WB", "ELISA", "N/A"], rows).tolist(),
    }
    df = pd.DataFrame(data)

    if error_rate > 0:
        # 数値列にも文字列の欠陥を入れるため object に揃える
        defect_columns = ("catalog_number", "price.buy.currency", "price.buy.amount", "available", "species")
        df = df.astype({col: object for col in defect_columns})
        defect_rows = np.flatnonzero(rng.random(rows) < error_rate)
        for i in defect_rows:
            kind = int(rng.integers(0, 5))
            if kind == 0 and i > 0:
                df.at[i, "catalog_number"] = df.at[i - 1, "catalog_number"]
            elif kind == 1:
                df.at[i, "price.buy.currency"] = "XYZ"
            elif kind == 2:
                df.at[i, "price.buy.amount"] = f"-{df.at[i, 'price.buy.amount']}"
            elif kind == 3:
                df.at[i, "available"] = ""
            else:
                df.at[i, "species"] = "zebrafish"
    return df


def write_catalog(
    output_path: Path,
    rows: int,
    supplier_id: int,
    sheets: list[str],
    *,
    error_rate: float = 0.0,
    seed: int = 42,
) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if output_path.suffix.lower() == ".csv":
        generate_catalog(rows, supplier_id, error_rate=error_rate, seed=seed).to_csv(
            output_path, index=False
        )
    else:
        with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
            for idx, sheet_name in enumerate(sheets):
                df = generate_catalog(
                    rows, supplier_id, start=idx * rows, error_rate=error_rate, seed=seed
                )
                df.to_excel(writer, sheet_name=sheet_name, index=False)

    print(f"Created catalog: {output_path}")
    print(f"  Sheets: {len(sheets)} ({', '.join(sheets)})")
    print(f"  Rows per sheet: {rows:,} (+ 1 header row)")
    print(f"  Supplier id: {supplier_id}  error rate: {error_rate:.2%}")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate synthetic supplier catalogs for checker performance runs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # 50k clean products in one sheet
  %(prog)s temp/catalog.xlsx

  # Three sheets with 2%% defective rows
  %(prog)s temp/multi.xlsx --rows 20000 --sheets A B C --error-rate 0.02

  # CSV upload
  %(prog)s temp/catalog.csv --rows 100000
        """,
    )
    parser.add_argument("output", type=Path, help="Output .xlsx or .csv path")
    parser.add_argument("--rows", type=int, default=50_000, help="Rows per sheet (default: 50,000)")
    parser.add_argument("--supplier-id", type=int, default=5, help="Supplier id (default: 5)")
    parser.add_argument("--sheets", nargs="+", default=["Sheet1"], help="Sheet names (default: Sheet1)")
    parser.add_argument("--error-rate", type=float, default=0.0, help="Share of defective rows")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    if not 0.0 <= args.error_rate <= 1.0:
        print("Error: --error-rate must be between 0 and 1", file=sys.stderr)
        return 1

    try:
        write_catalog(
            args.output,
            args.rows,
            args.supplier_id,
            args.sheets,
            error_rate=args.error_rate,
            seed=args.seed,
        )
    except OSError as e:
        print(f"\nError generating catalog: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
