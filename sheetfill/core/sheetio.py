from __future__ import annotations

from pathlib import Path

import pandas as pd

from sheetfill.domain import Sheet

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}


def load_sheet(path: Path) -> Sheet:
    """Read a CSV or Excel file into a :class:`Sheet`; the first row is the header."""

    if path.suffix.lower() in EXCEL_SUFFIXES:
        df = pd.read_excel(path, dtype=object, engine="openpyxl")
    else:
        df = pd.read_csv(path, dtype=object, keep_default_na=False)
    df = df.astype(object).where(df.notna(), "")
    headers = [str(column) for column in df.columns]
    rows = [list(record) for record in df.itertuples(index=False, name=None)]
    return Sheet([headers, *rows])


def save_sheet(sheet: Sheet, path: Path) -> Path:
    values = sheet.values()
    df = pd.DataFrame(values[1:], columns=sheet.headers())
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() in EXCEL_SUFFIXES:
        df.to_excel(path, index=False, engine="openpyxl")
    else:
        df.to_csv(path, index=False)
    return path
