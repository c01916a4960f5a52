# -*- coding: utf-8 -*-
"""
Created on Wed Sep 24 09:32:07 2025

@author: aless
"""

# - Minimal runner to load config, ingest the diagram workbook(s), build the engine, mount instances,
#   execute a declarative pipeline (registered steps), and save the final flow table as CSV.

import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, Optional

import yaml

from engine import FlowDiagramEngine
from errors import ErrorReporter, MalformedPayload
from ingest import ingest_library
from model import NormalizedDataset
from render import PlotlySankeyBackend, RecordingBackend
from steps import STEP_REGISTRY  # registry and steps live together for simplicity
from workbook import load_library

logger = logging.getLogger("pipeline")

LOAD_ERRORS = (MalformedPayload, FileNotFoundError)


def ensure_parent_dir(path: str):
    """Ensure the parent directory of 'path' exists."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def load_yaml_config(path: str) -> dict:
    """Load YAML as a plain dict (no pydantic for simplicity)."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def load_viewer_config(config: dict) -> dict:
    """Inline 'viewer' block, or the JSON file at 'viewer_config_path'."""
    if config.get("viewer") is not None:
        return dict(config["viewer"])
    path = config.get("viewer_config_path")
    if path:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    return {}


def load_datasets(cfg_input: dict, reporter: ErrorReporter) -> Dict[str, NormalizedDataset]:
    """
    Ingest every diagram named by the input block.
    - 'diagrams': [{id, excel_path|json_path, dataset}] -> one dataset per diagram id
    - otherwise: every dataset of the single workbook/payload, keyed by its dataset id
    A malformed or missing source is reported and skipped; the other diagrams still load.
    """
    datasets: Dict[str, NormalizedDataset] = {}
    diagrams = cfg_input.get("diagrams")
    if diagrams:
        for item in diagrams:
            diagram_id = str(item["id"])
            try:
                library = load_library(item)
                dataset_id = item.get("dataset") or next(iter(library.get("links", {})), diagram_id)
                ds = ingest_library(library, dataset_id)
            except LOAD_ERRORS as e:
                reporter.report_error("Error loading diagram", str(e), error=e, context={"diagram": diagram_id})
                continue
            ds.dataset_id = diagram_id
            datasets[diagram_id] = ds
        return datasets

    try:
        library = load_library(cfg_input)
    except LOAD_ERRORS as e:
        reporter.report_error("Error loading diagram", str(e), error=e, context={"input": cfg_input})
        return datasets
    for dataset_id in library.get("links", {}):
        try:
            datasets[dataset_id] = ingest_library(library, dataset_id)
        except MalformedPayload as e:
            reporter.report_error("Error loading diagram", str(e), error=e, context={"dataset": dataset_id})
    return datasets


def build_backend(display_cfg: dict, base_out_dir: str):
    kind = display_cfg.get("backend", "plotly")
    if kind == "recording":
        return RecordingBackend()
    if kind == "plotly":
        return PlotlySankeyBackend(
            out_dir=display_cfg.get("out_dir", base_out_dir),
            link_alpha=float(display_cfg.get("link_alpha", 0.6)),
            save_png=bool(display_cfg.get("save_png", False)),
            png_scale=int(display_cfg.get("png_scale", 2)),
        )
    raise ValueError(f"Unknown render backend: {kind}")


def build_engine(config: dict, reporter: Optional[ErrorReporter] = None, backend=None) -> FlowDiagramEngine:
    """Datasets + viewer config + instances -> engine (instances mounted, not yet synced)."""
    reporter = reporter if reporter is not None else ErrorReporter()
    viewer = load_viewer_config(config)
    display_cfg = config.get("display", {}) or {}
    base_out_dir = (config.get("output", {}) or {}).get("base_out_dir", "./out")
    if backend is None:
        backend = build_backend(display_cfg, base_out_dir)

    datasets = load_datasets(config.get("input", {}), reporter)
    engine = FlowDiagramEngine(
        datasets,
        lookup=viewer.get("scenarioIdLookup"),
        defaults=viewer.get("defaults"),
        backend=backend,
        reporter=reporter,
        scenarios=viewer.get("scenarios"),
        unit=display_cfg.get("unit", "PJ"),
        options={"title": display_cfg.get("title")},
    )
    instances = config.get("instances") or [{"id": "energyflows", "target": "energyflows"}]
    for item in instances:
        engine.mount(str(item["id"]), item.get("target", item["id"]), item.get("dataset"), sync=False)
    logger.info(f"[build_engine] datasets={sorted(datasets)}, instances={[i['id'] for i in instances]}")
    return engine


def run_pipeline(config: dict):
    """
    Execute the pipeline described by the YAML config.
    Each step function must have signature: (df, ctx, **params) -> (df, ctx)
    """
    out_cfg = config.get("output", {}) or {}
    reporter = ErrorReporter()
    engine = build_engine(config, reporter=reporter)
    ctx = {
        "artifacts": [],
        "base_out_dir": out_cfg.get("base_out_dir", "./out"),
        "engine": engine,
        "errors": reporter.reports,
    }
    if not engine.datasets:
        reporter.report_error("No diagram loaded", "None of the configured diagrams could be loaded; pipeline skipped.",
                              context={"input": config.get("input", {})})
        return engine.flow_frame(), ctx
    engine.sync()
    df = engine.flow_frame()

    for item in config.get("pipeline", []) or []:
        name = item.get("step")
        params = item.get("params", {}) or {}
        if name not in STEP_REGISTRY:
            raise ValueError(f"Unknown step: {name}")
        fn = STEP_REGISTRY[name]
        df, ctx = fn(df, ctx, **params)

    for path in getattr(engine.synchronizer.backend, "artifacts", []):
        if path not in ctx["artifacts"]:
            ctx["artifacts"].append(path)

    if out_cfg.get("save_csv", False):
        csv_path = out_cfg.get("csv_path", os.path.join(ctx["base_out_dir"], "flows_final.csv"))
        ensure_parent_dir(csv_path)
        df.to_csv(csv_path, index=False)
        ctx["final_output"] = csv_path

    return df, ctx


def run_with_config(config_path: str):
    """Helper to load and run from a config path."""
    config = load_yaml_config(config_path)
    return run_pipeline(config)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    cfg_path = sys.argv[1] if len(sys.argv) > 1 else r"configs/config.yaml"
    df_final, context = run_with_config(cfg_path)
    print("Pipeline done.")
    print("Artifacts:", context.get("artifacts", []))
    print("Errors:", len(context.get("errors", [])))
    print("Final output:", context.get("final_output"))
