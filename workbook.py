# -*- coding: utf-8 -*-
"""
Created on Mon Oct 13 11:02:17 2025

@author: aless
"""

# - Load the raw diagram tables from an Excel workbook or a JSON payload.
# - Sheets are named 'snky_<dataset>_<table>' with table in TABLES; 'sparse' sheets are skipped.
# - Result shape: {table: {dataset_id: DataFrame}}.

import json
import logging
import os
from typing import Dict, Optional

import pandas as pd

from errors import MalformedPayload

logger = logging.getLogger("pipeline")

SHEET_PREFIX = "snky_"
TABLES = ("links", "nodes", "remarks", "legend", "settings", "rectangles")

Library = Dict[str, Dict[str, pd.DataFrame]]


def _split_sheet_name(sheet_name: str):
    """'snky_system_links' -> ('system', 'links'); None if the sheet is not a diagram table."""
    if not sheet_name.startswith(SHEET_PREFIX) or "sparse" in sheet_name:
        return None
    rest = sheet_name[len(SHEET_PREFIX):]
    if "_" not in rest:
        return None
    dataset_id, table = rest.rsplit("_", 1)
    if table not in TABLES or not dataset_id:
        return None
    return dataset_id, table


def library_from_sheets(sheets: Dict[str, pd.DataFrame]) -> Library:
    """Group named sheets into the {table: {dataset: df}} library."""
    library: Library = {}
    for sheet_name, df in sheets.items():
        parts = _split_sheet_name(str(sheet_name))
        if parts is None:
            continue
        dataset_id, table = parts
        library.setdefault(table, {})[dataset_id] = df
    logger.info(f"[library_from_sheets] datasets={sorted(library.get('links', {}).keys())}")
    return library


def read_workbook(excel_path: str) -> Library:
    """Read every diagram sheet of an Excel workbook."""
    if not os.path.exists(excel_path):
        raise FileNotFoundError(f"Workbook not found: {excel_path}")
    sheets = pd.read_excel(excel_path, sheet_name=None, engine="openpyxl")
    return library_from_sheets(sheets)


def parse_payload(text: str) -> Library:
    """
    Parse a JSON payload. Two shapes are accepted:
      - {"links": {"system": [rows]}, "nodes": {...}, ...}
      - {"snky_system_links": [rows], ...}  (sheet dump)
    """
    try:
        raw = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedPayload(f"Diagram payload is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise MalformedPayload(f"Diagram payload must be a JSON object, got {type(raw).__name__}.")

    if any(str(k).startswith(SHEET_PREFIX) for k in raw):
        try:
            sheets = {k: pd.DataFrame(v) for k, v in raw.items()}
        except (TypeError, ValueError) as e:
            raise MalformedPayload(f"Sheet rows could not be tabulated: {e}") from e
        return library_from_sheets(sheets)

    library: Library = {}
    for table, per_dataset in raw.items():
        if table not in TABLES:
            continue
        if not isinstance(per_dataset, dict):
            raise MalformedPayload(f"Table '{table}' must map dataset ids to row lists.")
        for dataset_id, rows in per_dataset.items():
            try:
                library.setdefault(table, {})[str(dataset_id)] = pd.DataFrame(rows)
            except (TypeError, ValueError) as e:
                raise MalformedPayload(f"Rows of '{table}/{dataset_id}' could not be tabulated: {e}") from e
    return library


def read_payload(json_path: str) -> Library:
    with open(json_path, "r", encoding="utf-8") as f:
        return parse_payload(f.read())


def load_library(cfg_input: dict) -> Library:
    """Load from 'excel_path' or 'json_path' of an input config block."""
    excel_path: Optional[str] = cfg_input.get("excel_path")
    json_path: Optional[str] = cfg_input.get("json_path")
    if excel_path:
        return read_workbook(excel_path)
    if json_path:
        return read_payload(json_path)
    raise KeyError("Input config needs 'excel_path' or 'json_path'.")


def dataset_tables(library: Library, dataset_id: str) -> Dict[str, Optional[pd.DataFrame]]:
    """Pick the tables of one dataset; missing optional tables come back as None."""
    if dataset_id not in library.get("links", {}):
        raise KeyError(f"Dataset '{dataset_id}' has no links table. Available: {sorted(library.get('links', {}))}")
    return {table: library.get(table, {}).get(dataset_id) for table in TABLES}
