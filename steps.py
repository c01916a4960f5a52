# -*- coding: utf-8 -*-
"""
Created on Wed Sep 24 09:40:17 2025

@author: aless
"""

# - Single file containing the registry and the flow diagram steps.
# - Add new steps by writing a function with the decorator @step("name").
# - df is the resolved flow table of the active diagram; ctx["engine"] is the FlowDiagramEngine.

import logging
import os
import re
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pandas as pd

from engine import FLOW_COLUMNS, overlay_frame
from model import Scope
from scope import SCENE_GEOMETRY
from units import ENERGY_UNITS, display_unit_label, to_display_unit

logger = logging.getLogger("pipeline")


# --- utility ---
def _slugify(text: str) -> str:
    text = re.sub(r"\s+", "_", text.strip())
    text = re.sub(r"[^\w\-\.]", "", text)
    return text


# ---------- Registry ----------

STEP_REGISTRY: Dict[str, Callable] = {}

def step(name: str):
    """Decorator to register pipeline steps by name."""
    def deco(fn: Callable):
        if name in STEP_REGISTRY:
            raise ValueError(f"Step '{name}' already registered.")
        STEP_REGISTRY[name] = fn
        return fn
    return deco


def _ensure_parent_dir(path: str):
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def _engine(ctx: dict):
    engine = ctx.get("engine")
    if engine is None:
        raise RuntimeError("engine not found in ctx. Build it with runner.build_engine first.")
    return engine


def _out_path(ctx: dict, out_dir: Optional[str], filename: str) -> str:
    out_dir = out_dir or ctx.get("base_out_dir", "./out")
    path = os.path.join(out_dir, filename)
    _ensure_parent_dir(path)
    return path


def _selection_tag(ctx: dict) -> str:
    sel = _engine(ctx).selection
    return _slugify(f"{sel.scenario_id}_{sel.year_id}_{sel.scope.value}")


# ----------- Selection -----------

@step("select")
def select(
    df: pd.DataFrame,
    ctx: dict,
    scenario: Optional[str] = None,
    year=None,
    scope: Optional[str] = None,
    diagram: Optional[str] = None,
    unit: Optional[str] = None,
    **_,
):
    """Apply any subset of diagram/scenario/year/scope/unit as one coalesced selection change."""
    engine = _engine(ctx)
    with engine.batch():
        if diagram is not None:
            engine.switch_diagram(diagram)
        if scenario is not None:
            engine.set_scenario(scenario)
        if year is not None:
            engine.set_year(year)
        if scope is not None:
            engine.set_scope(scope)
        if unit is not None:
            engine.set_unit(unit)

    message = engine.status_message()
    if message:
        logger.warning(f"[select] {message}: {engine.selection}")
        ctx.setdefault("messages", []).append(message)
    return engine.flow_frame(), ctx


@step("flow_table")
def flow_table(df: pd.DataFrame, ctx: dict, visible_only: bool = False, **_):
    """Refresh df from the engine's current resolved state."""
    out = _engine(ctx).flow_frame()
    if visible_only:
        out = out[out["visibility"] == 1].reset_index(drop=True)
    logger.info(f"[flow_table] rows={len(out)}")
    return out, ctx


@step("convert_units")
def convert_units(df: pd.DataFrame, ctx: dict, unit: str = "PJ", **_):
    """Recompute display_value / display_unit for `unit`; stored values are untouched."""
    if unit not in ENERGY_UNITS:
        raise ValueError(f"Unknown energy unit '{unit}'. Expected one of {ENERGY_UNITS}.")
    for col in ("value", "legend"):
        if col not in df.columns:
            raise KeyError(f"Column '{col}' not found in df. Run 'flow_table' first.")
    co2_scale = _engine(ctx).active_dataset.settings.scaleDataValueCO2flow
    df = df.copy()
    df["display_value"] = [to_display_unit(v, c, unit, co2_scale) for v, c in zip(df["value"], df["legend"])]
    df["display_unit"] = [display_unit_label(c, unit) for c in df["legend"]]
    return df, ctx


# ----------- Aggregation -----------

@step("flow_totals")
def flow_totals_step(df: pd.DataFrame, ctx: dict, **_):
    totals = _engine(ctx).flow_totals()
    ctx["flow_totals"] = totals
    logger.info(f"[flow_totals] energy={totals['energy']}, co2={totals['co2']}")
    return df, ctx


@step("totals_by_legend")
def totals_by_legend(
    df: pd.DataFrame,
    ctx: dict,
    out_dir: str = None,
    save_csv: bool = True,
    **_,
):
    """Sum of display values per carrier category over visible links."""
    visible = df[df["visibility"] == 1]
    res = (
        visible.groupby(["legend", "display_unit"], dropna=False)["display_value"]
        .agg(total="sum", links="count")
        .reset_index()
        .sort_values("total", ascending=False)
    )
    ctx["totals_by_legend"] = res
    if save_csv:
        out_csv = _out_path(ctx, out_dir, f"totals_by_legend_{_selection_tag(ctx)}.csv")
        res.to_csv(out_csv, index=False)
        ctx.setdefault("artifacts", []).append(out_csv)
        logger.info(f"[totals_by_legend] Saved {out_csv}")
    return df, ctx


# ----------- Export -----------

@step("export_flows")
def export_flows(
    df: pd.DataFrame,
    ctx: dict,
    out_dir: str = None,
    filename: str = None,
    visible_only: bool = True,
    columns: Optional[List[str]] = None,
    **_,
):
    out = df[df["visibility"] == 1] if visible_only and "visibility" in df.columns else df
    if columns:
        missing = [c for c in columns if c not in out.columns]
        if missing:
            raise KeyError(f"Columns not found in df: {missing}. Available: {FLOW_COLUMNS}")
        out = out[columns]
    out_csv = _out_path(ctx, out_dir, filename or f"flows_{_selection_tag(ctx)}.csv")
    out.to_csv(out_csv, index=False)
    ctx.setdefault("artifacts", []).append(out_csv)
    logger.info(f"[export_flows] Saved {len(out)} rows to {out_csv}")
    return df, ctx


@step("availability_report")
def availability_report(
    df: pd.DataFrame,
    ctx: dict,
    out_dir: str = None,
    filename: str = "scenario_availability.csv",
    **_,
):
    """One row per scenario: available flag and the years it has in the lookup."""
    engine = _engine(ctx)
    titles = {str(s["id"]): s.get("title", s["id"]) for s in engine.scenarios if "id" in s}
    rows = []
    for scenario_id, available in engine.availability().items():
        rows.append({
            "scenario": scenario_id,
            "title": titles.get(scenario_id, scenario_id),
            "years": ";".join(sorted(engine.lookup.get(scenario_id, {}))),
            "available": available,
        })
    res = pd.DataFrame(rows, columns=["scenario", "title", "years", "available"])
    ctx["availability"] = res
    out_csv = _out_path(ctx, out_dir, filename)
    res.to_csv(out_csv, index=False)
    ctx.setdefault("artifacts", []).append(out_csv)
    logger.info(f"[availability_report] {int(res['available'].sum())}/{len(res)} available; saved {out_csv}")
    return df, ctx


@step("scope_overlays")
def scope_overlays(
    df: pd.DataFrame,
    ctx: dict,
    scope: Optional[str] = None,
    out_dir: str = None,
    visible_only: bool = False,
    **_,
):
    """Overlay geometry of the current scope (or of `scope`, system backdrop only) as CSV."""
    engine = _engine(ctx)
    if scope is None:
        overlays = engine.overlays()
        scope_id = engine.scene.scope.value
    else:
        scope_id = Scope.parse(scope).value
        overlays = SCENE_GEOMETRY[Scope.parse(scope)]
    res = overlay_frame(overlays)
    if visible_only:
        res = res[res["opacity"] > 0].reset_index(drop=True)
    out_csv = _out_path(ctx, out_dir, f"overlays_{scope_id}.csv")
    res.to_csv(out_csv, index=False)
    ctx.setdefault("artifacts", []).append(out_csv)
    logger.info(f"[scope_overlays] {len(res)} overlays for '{scope_id}' saved to {out_csv}")
    return df, ctx
