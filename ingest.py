# -*- coding: utf-8 -*-
"""
Created on Mon Oct 13 11:48:22 2025

@author: aless
"""

# - Ingestion & normalization: raw link/node/legend/settings/remark rows -> NormalizedDataset.
# - Link values are divided by the settings scale factors exactly once per raw DataFrame.

import logging
from dataclasses import fields
from typing import Dict, List, Optional, Union

import matplotlib.colors as mcolors
import numpy as np
import pandas as pd

from model import (
    CO2_CATEGORY,
    DEFAULT_LINK_COLOR,
    SCENARIO_MARKER,
    SCOPES,
    BackgroundRectangle,
    NormalizedDataset,
    NormalizedLink,
    NormalizedNode,
    ScenarioDescriptor,
    Settings,
)
from errors import MalformedPayload, UnknownLegendCategory
from placement import build_order
from workbook import dataset_tables

logger = logging.getLogger("pipeline")

Rows = Union[pd.DataFrame, List[dict], None]

SCALED_FLAG = "flowdiagram_scaled"
LINK_ID_COLUMNS = ("source.id", "target.id")


# --- utility ---
def _frame(rows: Rows) -> pd.DataFrame:
    if rows is None:
        return pd.DataFrame()
    if isinstance(rows, pd.DataFrame):
        return rows
    return pd.DataFrame(list(rows))


def _clean(value):
    """NaN/NA/None -> None, numpy scalars -> python scalars."""
    if isinstance(value, np.generic):
        value = value.item()
    if value is None or (not isinstance(value, (str, list, dict, tuple)) and pd.isna(value)):
        return None
    return value


def _as_id(value) -> str:
    """Stable string id; integral floats (1.0 from a NaN-holed column) become '1'."""
    value = _clean(value)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _as_float(value) -> Optional[float]:
    value = _clean(value)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _num_or(value, default: float) -> float:
    """parseFloat(v) || default: zero and non-numeric both fall back."""
    v = _as_float(value)
    return v if v else default


def _as_index(value, name: str, node_id) -> int:
    v = _as_float(value)
    if v is None:
        logger.warning(f"[ingest] node '{node_id}' has no {name}; placing it at 0.")
        return 0
    if v < 0:
        raise MalformedPayload(f"Node '{node_id}' has negative {name} ({v}).")
    return int(v)


def _truthy(value) -> bool:
    value = _clean(value)
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in ("x", "1", "true", "yes", "ja")
    return bool(value)


# ---------- Settings ----------

def settings_from_rows(rows: Union[Rows, dict]) -> Dict[str, object]:
    """
    Fold settings into a plain mapping.
    Accepts the sheet layout (rows of {setting, waarde}), a one-row wide frame, or a dict.
    """
    if rows is None:
        return {}
    if isinstance(rows, dict):
        return {k: _clean(v) for k, v in rows.items()}
    df = _frame(rows)
    if df.empty:
        return {}
    if {"setting", "waarde"}.issubset(df.columns):
        return {str(k): _clean(v) for k, v in zip(df["setting"], df["waarde"]) if _clean(k) is not None}
    return {str(k): _clean(v) for k, v in df.iloc[0].items()}


def build_settings(raw: Dict[str, object]) -> Settings:
    known = {f.name: f for f in fields(Settings) if f.name != "extra"}
    kwargs, extra = {}, {}
    for key, value in raw.items():
        if key in known:
            default = known[key].default
            if isinstance(default, float):
                v = _as_float(value)
                if v is None:
                    continue
                kwargs[key] = v
            elif value is not None:
                kwargs[key] = str(value)
        else:
            extra[key] = value
    for key in ("scaleDataValue", "scaleDataValueCO2flow"):
        if key in kwargs and kwargs[key] == 0:
            logger.warning(f"[build_settings] {key}=0 would divide by zero; using 1.")
            kwargs[key] = 1.0
    return Settings(extra=extra, **kwargs)


# ---------- Scaling ----------

def scale_links(links_df: pd.DataFrame, settings: Settings) -> pd.DataFrame:
    """
    Divide every numeric link cell (ids excluded) by the energy or CO2 scale factor, per row by legend.
    Runs once per DataFrame object: a flag in df.attrs guards against double scaling.
    """
    if links_df.attrs.get(SCALED_FLAG):
        logger.info("[scale_links] payload already scaled; skipping.")
        return links_df
    # scenario columns with blank cells arrive as object dtype
    for c in links_df.columns:
        if SCENARIO_MARKER in str(c) and not pd.api.types.is_numeric_dtype(links_df[c]):
            links_df[c] = pd.to_numeric(links_df[c], errors="coerce")
    num_cols = [c for c in links_df.select_dtypes(include="number").columns if c not in LINK_ID_COLUMNS]
    if len(num_cols) and not links_df.empty:
        if "legend" in links_df.columns:
            is_co2 = links_df["legend"].eq(CO2_CATEGORY).to_numpy()
        else:
            is_co2 = np.zeros(len(links_df), dtype=bool)
        factor = np.where(is_co2, settings.scaleDataValueCO2flow, settings.scaleDataValue)
        links_df[num_cols] = links_df[num_cols].div(factor, axis=0)
    links_df.attrs[SCALED_FLAG] = True
    return links_df


# ---------- Scenarios ----------

def discover_scenarios(columns) -> List[ScenarioDescriptor]:
    """Scenario columns in discovery order; title is everything after the first underscore."""
    scenarios = []
    for key in columns:
        key = str(key)
        if SCENARIO_MARKER not in key:
            continue
        _, sep, rest = key.partition("_")
        scenarios.append(ScenarioDescriptor(id=key, title=rest if sep else key))
    return scenarios


# ---------- Legend ----------

def legend_colors(legend: Rows) -> Dict[str, str]:
    df = _frame(legend)
    if df.empty:
        return {}
    for col in ("id", "color"):
        if col not in df.columns:
            raise MalformedPayload(f"Legend table lacks column '{col}'.")
    colors = {}
    for cat, color in zip(df["id"], df["color"]):
        cat, color = _clean(cat), _clean(color)
        if cat is None:
            continue
        if color is None or not mcolors.is_color_like(color):
            logger.warning(f"[legend_colors] legend '{cat}' has invalid color {color!r}; using {DEFAULT_LINK_COLOR}.")
            color = DEFAULT_LINK_COLOR
        colors.setdefault(str(cat), str(color))
    return colors


def legend_color(category, colors: Dict[str, str]) -> str:
    if category not in colors:
        raise UnknownLegendCategory(f"No legend entry for category '{category}'.")
    return colors[category]


def get_color(category, colors: Dict[str, str], _warned: Optional[set] = None) -> str:
    """Legend colour for a carrier category; unknown categories fail soft to the default colour."""
    try:
        return legend_color(category, colors)
    except UnknownLegendCategory as e:
        if _warned is None or category not in _warned:
            logger.warning(f"[get_color] {e} Using '{DEFAULT_LINK_COLOR}'.")
            if _warned is not None:
                _warned.add(category)
    return DEFAULT_LINK_COLOR


# ---------- Nodes / links / rectangles ----------

def _build_nodes(nodes_df: pd.DataFrame, remarks_df: pd.DataFrame) -> List[NormalizedNode]:
    if "id" not in nodes_df.columns:
        raise MalformedPayload("Nodes table lacks column 'id'.")
    # empty cells are kept: remark text is looked up by column position
    remark_rows = [
        {str(k): _clean(v) for k, v in row.items()}
        for row in remarks_df.to_dict("records")
    ] if not remarks_df.empty else []

    nodes = []
    for i, row in enumerate(nodes_df.to_dict("records")):
        node_id = _as_id(row.get("id"))
        node = NormalizedNode(
            id=node_id,
            index=i,
            column=_as_index(row.get("column"), "column", node_id),
            cluster=_as_index(row.get("cluster"), "cluster", node_id),
            row=_as_index(row.get("row"), "row", node_id),
            direction=_clean(row.get("direction")),
            dummy=_truthy(row.get("dummy")),
            remark=remark_rows[i] if i < len(remark_rows) else {},
        )
        for scope in SCOPES:
            s = scope.value
            node.x_by_scope[s] = _as_float(row.get(f"x.{s}"))
            node.y_by_scope[s] = _as_float(row.get(f"y.{s}"))
            title = _clean(row.get(f"title.{s}"))
            node.title_by_scope[s] = None if title is None else str(title)
        node.apply_scope(SCOPES[0])
        nodes.append(node)
    return nodes


def _build_links(links_df: pd.DataFrame, scenarios: List[ScenarioDescriptor],
                 colors: Dict[str, str]) -> List[NormalizedLink]:
    for col in ("source.id", "target.id"):
        if col not in links_df.columns:
            raise MalformedPayload(f"Links table lacks column '{col}'.")
    warned = set()
    links = []
    for i, row in enumerate(links_df.to_dict("records")):
        legend = _clean(row.get("legend"))
        legend = "" if legend is None else str(legend)
        filters = {}
        for scope in SCOPES:
            flag = _clean(row.get(f"filter_{scope.value}"))
            filters[scope.value] = "" if flag is None else str(flag).strip()
        values = {}
        for sc in scenarios:
            v = _as_float(row.get(sc.id))
            if v is not None:
                values[sc.id] = v
        links.append(NormalizedLink(
            index=i,
            source=_as_id(row.get("source.id")),
            target=_as_id(row.get("target.id")),
            legend=legend,
            type=_clean(row.get("type")),
            color=get_color(legend, colors, warned),
            filters=filters,
            scenario_values=values,
        ))
    return links


def build_rectangles(rows: Rows) -> List[BackgroundRectangle]:
    """Custom backdrop rectangles with the viewer's per-field defaults."""
    df = _frame(rows)
    rects = []
    for i, row in enumerate(df.to_dict("records")):
        row = {k: _clean(v) for k, v in row.items()}
        shadow = row.get("shadowEnabled")
        rects.append(BackgroundRectangle(
            id=str(row.get("id") or f"rect_{i}"),
            x=_num_or(row.get("x"), 0.0),
            y=_num_or(row.get("y"), 0.0),
            width=_num_or(row.get("width"), 300.0),
            height=_num_or(row.get("height"), 200.0),
            title=str(row.get("title") or ""),
            titlePosition=str(row.get("titlePosition") or "top-left"),
            titleFontSize=_num_or(row.get("titleFontSize"), 14.0),
            titleFontWeight=str(row.get("titleFontWeight") or "normal"),
            titleColor=str(row.get("titleColor") or "#666666"),
            fill=str(row.get("fill") or "#dee6ee"),
            fillOpacity=_num_or(row.get("fillOpacity"), 100.0),
            stroke=str(row.get("stroke") or "#ffffff"),
            strokeOpacity=_num_or(row.get("strokeOpacity"), 100.0),
            strokeWidth=_num_or(row.get("strokeWidth"), 0.0),
            cornerRadius=_num_or(row.get("cornerRadius"), 10.0),
            shadowEnabled=shadow is True or shadow == 1 or str(shadow).lower() == "true",
        ))
    return rects


# ---------- Entry point ----------

def ingest(
    raw_links: Rows,
    raw_nodes: Rows,
    legend: Rows = None,
    settings=None,
    remarks: Rows = None,
    rectangles: Rows = None,
    dataset_id: str = "system",
) -> NormalizedDataset:
    """
    Normalize one dataset.
    - raw_links is scaled in place (once); scenario order follows its column order.
    - Dangling source/target ids are kept: they are only detected at render time.
    - No nodes -> an empty (valid) dataset.
    """
    st = settings if isinstance(settings, Settings) else build_settings(settings_from_rows(settings))
    links_df = _frame(raw_links)
    nodes_df = _frame(raw_nodes)
    colors = legend_colors(legend)
    rects = build_rectangles(rectangles) if rectangles is not None else []

    if nodes_df.empty:
        logger.warning(f"[ingest] dataset '{dataset_id}' has no nodes; producing an empty dataset.")
        return NormalizedDataset(dataset_id=dataset_id, nodes=[], links=[], order=[], scenarios=[],
                                 legend=colors, settings=st, rectangles=rects)
    if links_df.empty:
        logger.warning(f"[ingest] dataset '{dataset_id}' has no links.")

    scale_links(links_df, st)
    scenarios = discover_scenarios(links_df.columns)
    nodes = _build_nodes(nodes_df, _frame(remarks))
    links = _build_links(links_df, scenarios, colors) if not links_df.empty else []
    order = build_order(nodes)

    logger.info(
        f"[ingest] dataset='{dataset_id}', nodes={len(nodes)}, links={len(links)}, scenarios={len(scenarios)}"
    )
    return NormalizedDataset(
        dataset_id=dataset_id,
        nodes=nodes,
        links=links,
        order=order,
        scenarios=scenarios,
        legend=colors,
        settings=st,
        rectangles=rects,
    )


def ingest_library(library: dict, dataset_id: str) -> NormalizedDataset:
    """Ingest one dataset out of a workbook library ({table: {dataset: df}})."""
    tables = dataset_tables(library, dataset_id)
    return ingest(
        tables["links"],
        tables["nodes"],
        legend=tables["legend"],
        settings=tables["settings"],
        remarks=tables["remarks"],
        rectangles=tables["rectangles"],
        dataset_id=dataset_id,
    )
