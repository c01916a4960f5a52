# -*- coding: utf-8 -*-
"""
Created on Wed Oct 15 11:52:30 2025

@author: aless
"""

# - FlowDiagramEngine: the one context object that owns datasets, lookup, selection, scope machine and instances.
# - Selection API (set_scenario / set_year / set_scope / set_unit / switch_diagram) -> sync_all.
# - engine.batch() defers syncing until the outermost block exits; the last selection wins.

import logging
from contextlib import contextmanager
from typing import Dict, List, Optional

import pandas as pd

from errors import ErrorReporter
from model import (
    DiagramInstance,
    NormalizedDataset,
    ScenarioYearLookup,
    Scope,
    SelectionState,
    clone,
)
from render import UNAVAILABLE_MESSAGE, RenderBackend
from resolver import flow_totals, get_availability, is_selection_available, scenario_index_for
from scope import OverlayDescriptor, ScopeStateMachine
from sync import InstanceSynchronizer, SyncReport
from units import ENERGY_UNITS, display_unit_label, to_display_unit

logger = logging.getLogger("pipeline")


def normalize_lookup(raw: Optional[dict]) -> ScenarioYearLookup:
    """scenarioId -> yearId -> index, with string keys and int indices."""
    lookup: ScenarioYearLookup = {}
    for scenario_id, years in (raw or {}).items():
        if not isinstance(years, dict):
            raise ValueError(f"scenarioIdLookup['{scenario_id}'] must map years to indices.")
        lookup[str(scenario_id)] = {str(y): int(i) for y, i in years.items() if i is not None}
    return lookup


class FlowDiagramEngine:

    def __init__(
        self,
        datasets: Dict[str, NormalizedDataset],
        lookup: Optional[dict] = None,
        defaults: Optional[dict] = None,
        backend: Optional[RenderBackend] = None,
        reporter: Optional[ErrorReporter] = None,
        scenarios: Optional[List[dict]] = None,
        unit: str = "PJ",
        options: Optional[dict] = None,
    ):
        self.datasets: Dict[str, NormalizedDataset] = dict(datasets)
        self.lookup = normalize_lookup(lookup)
        self.defaults = dict(defaults or {})
        self.scenarios = list(scenarios or [])
        self.options = dict(options or {})
        self.reporter = reporter if reporter is not None else ErrorReporter()
        self.scene = ScopeStateMachine.from_defaults(self.defaults)
        self.synchronizer = InstanceSynchronizer(self.reporter, backend)

        self.active_dataset_id = self.defaults.get("energyflowsSankey") or next(iter(self.datasets), None)
        if not self.datasets:
            logger.warning("[FlowDiagramEngine] no diagram loaded; nothing to resolve.")
            self.active_dataset_id = None
        elif self.active_dataset_id not in self.datasets:
            raise KeyError(
                f"Default diagram '{self.active_dataset_id}' is not loaded. Available: {sorted(self.datasets)}"
            )
        if unit not in ENERGY_UNITS:
            raise ValueError(f"Unknown energy unit '{unit}'. Expected one of {ENERGY_UNITS}.")

        year = self.defaults.get("year")
        self.selection = SelectionState(
            scenario_id=self.defaults.get("scenario"),
            year_id=None if year is None else str(year),
            scope=self.scene.scope,
            unit=unit,
        )
        self.last_report: Optional[SyncReport] = None
        self.sync_count = 0
        self._batch_depth = 0
        self._pending = False

    # ---------- Instances ----------

    def mount(self, instance_id: str, render_target, dataset_id: Optional[str] = None,
              sync: bool = True) -> DiagramInstance:
        instance = self.synchronizer.register(instance_id, render_target, dataset_id or self.active_dataset_id)
        if sync:
            self._request_sync()
        return instance

    def unmount(self, instance_id: str) -> bool:
        return self.synchronizer.deregister(instance_id)

    @property
    def instances(self) -> Dict[str, DiagramInstance]:
        return self.synchronizer.instances

    # ---------- Selection API ----------

    def set_scenario(self, scenario_id: str):
        self._apply(scenario_id=str(scenario_id))

    def set_year(self, year_id):
        self._apply(year_id=str(year_id))

    def set_scope(self, scope_id):
        scope = Scope.parse(scope_id)
        self.scene.transition(scope)
        # re-entering the current scope still re-resolves
        self._apply(scope=scope)

    def set_unit(self, unit: str):
        if unit not in ENERGY_UNITS:
            raise ValueError(f"Unknown energy unit '{unit}'. Expected one of {ENERGY_UNITS}.")
        self._apply(unit=unit)

    def switch_diagram(self, dataset_id: str):
        if dataset_id not in self.datasets:
            raise KeyError(f"Unknown diagram '{dataset_id}'. Available: {sorted(self.datasets)}")
        logger.info(f"[switch_diagram] {self.active_dataset_id} -> {dataset_id}")
        self.active_dataset_id = dataset_id
        self.synchronizer.rebind(dataset_id)
        self._request_sync()

    def _apply(self, **changes):
        self.selection = self.selection.update(**changes)
        self._request_sync()

    # ---------- Syncing ----------

    @contextmanager
    def batch(self):
        """Coalesce several selection changes into one sync_all."""
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._pending:
                self._pending = False
                self.sync()

    def _request_sync(self):
        if self._batch_depth:
            self._pending = True
            return
        self.sync()

    def sync(self) -> SyncReport:
        self.last_report = self.synchronizer.sync_all(
            self.datasets, self.selection, self.lookup, options=self.options, scene=self.scene
        )
        self.sync_count += 1
        return self.last_report

    # ---------- Queries ----------

    @property
    def active_dataset(self) -> NormalizedDataset:
        if self.active_dataset_id is None:
            raise KeyError("No diagram loaded.")
        return self.datasets[self.active_dataset_id]

    def get_availability(self, scenario_id: str) -> bool:
        return get_availability(self.active_dataset, scenario_id, self.lookup)

    def availability(self) -> Dict[str, bool]:
        """Availability of every configured scenario (or of every lookup key when none are configured)."""
        ids = [str(s["id"]) for s in self.scenarios if "id" in s] or list(self.lookup)
        return {sid: self.get_availability(sid) for sid in ids}

    def is_selection_available(self) -> bool:
        return is_selection_available(self.active_dataset, self.selection, self.lookup)

    def status_message(self) -> Optional[str]:
        return None if self.is_selection_available() else UNAVAILABLE_MESSAGE

    def scenario_index(self) -> Optional[int]:
        return scenario_index_for(self.lookup, self.selection.scenario_id, self.selection.year_id)

    def flow_totals(self) -> Dict[str, float]:
        return flow_totals(self.active_dataset.links)

    def overlays(self) -> tuple:
        ds = self.active_dataset
        return self.scene.overlays(ds.settings, ds.rectangles)

    def snapshot(self, dataset_id: Optional[str] = None) -> NormalizedDataset:
        """Detached copy of a dataset in its current resolved state."""
        return clone(self.datasets[dataset_id or self.active_dataset_id])

    def flow_frame(self) -> pd.DataFrame:
        """Resolved links of the active dataset, one row per link, with the display value."""
        if self.active_dataset_id is None:
            return pd.DataFrame(columns=FLOW_COLUMNS)
        ds = self.active_dataset
        unit = self.selection.unit
        co2_scale = ds.settings.scaleDataValueCO2flow
        rows = []
        for link in ds.links:
            rows.append({
                "index": link.index,
                "source": link.source,
                "target": link.target,
                "legend": link.legend,
                "type": link.type,
                "color": link.color,
                "visibility": link.visibility,
                "value": link.value,
                "display_value": to_display_unit(link.value, link.legend, unit, co2_scale),
                "display_unit": display_unit_label(link.legend, unit),
            })
        df = pd.DataFrame(rows, columns=FLOW_COLUMNS)
        df.attrs["selection"] = self.selection
        df.attrs["dataset_id"] = ds.dataset_id
        return df


FLOW_COLUMNS = [
    "index", "source", "target", "legend", "type", "color",
    "visibility", "value", "display_value", "display_unit",
]


def overlay_frame(overlays) -> pd.DataFrame:
    cols = [f for f in OverlayDescriptor.__dataclass_fields__]
    return pd.DataFrame([{c: getattr(o, c) for c in cols} for o in overlays], columns=cols)
