# -*- coding: utf-8 -*-
"""
Created on Wed Oct 15 10:17:44 2025

@author: aless
"""

# - Instance registry + sync_all: resolve and render every mounted instance, in registration order.
# - One failing instance is reported and skipped; the others still resolve and render.

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from errors import ErrorReporter, InstanceResolutionFailure
from model import DiagramInstance, NormalizedDataset, ScenarioYearLookup, Scope, SelectionState
from render import RenderBackend, render_graph
from resolver import ResolutionResult, resolve
from scope import ScopeStateMachine

logger = logging.getLogger("pipeline")


@dataclass
class SyncReport:
    selection: SelectionState
    results: Dict[str, ResolutionResult] = field(default_factory=dict)
    failures: Dict[str, InstanceResolutionFailure] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class InstanceSynchronizer:

    def __init__(self, reporter: Optional[ErrorReporter] = None, backend: Optional[RenderBackend] = None):
        self.reporter = reporter if reporter is not None else ErrorReporter()
        self.backend = backend
        self.instances: Dict[str, DiagramInstance] = {}

    # ---------- Registry ----------

    def register(self, instance_id: str, render_target, dataset_id: str) -> DiagramInstance:
        if instance_id in self.instances:
            logger.info(f"[register] instance '{instance_id}' re-registered; previous target dropped.")
        instance = DiagramInstance(instance_id=instance_id, render_target=render_target,
                                   active_dataset_id=dataset_id)
        self.instances[instance_id] = instance
        return instance

    def deregister(self, instance_id: str) -> bool:
        if self.instances.pop(instance_id, None) is None:
            logger.warning(f"[deregister] unknown instance '{instance_id}'.")
            return False
        return True

    def rebind(self, dataset_id: str):
        for instance in self.instances.values():
            instance.active_dataset_id = dataset_id

    # ---------- Sync ----------

    def sync_all(self, datasets: Mapping[str, NormalizedDataset], selection: SelectionState,
                 lookup: ScenarioYearLookup, options: Optional[dict] = None,
                 scene: Optional[ScopeStateMachine] = None) -> SyncReport:
        """
        Resolve each instance's dataset for `selection` and hand it to the backend.
        A dataset shared by several instances is resolved once per call.
        """
        report = SyncReport(selection=selection)
        resolved: Dict[str, ResolutionResult] = {}

        for instance in list(self.instances.values()):
            dataset = datasets.get(instance.active_dataset_id)
            try:
                if dataset is None:
                    raise KeyError(f"Dataset '{instance.active_dataset_id}' is not loaded.")
                result = resolved.get(dataset.dataset_id)
                if result is None:
                    result = resolve(dataset, selection, lookup)
                    resolved[dataset.dataset_id] = result
                if self.backend is not None:
                    opts = dict(options or {})
                    opts.update(
                        settings=dataset.settings,
                        selection=selection,
                        unit=selection.unit,
                        dataset_id=dataset.dataset_id,
                        unavailable=result.missing_selection,
                        scenario_index=result.scenario_index,
                    )
                    if scene is not None:
                        opts["overlays"] = scene.overlays(dataset.settings, dataset.rectangles)
                    self.backend.render(instance.render_target, render_graph(dataset), opts)
                report.results[instance.instance_id] = result
            except Exception as e:
                failure = InstanceResolutionFailure(instance.instance_id, e)
                report.failures[instance.instance_id] = failure
                self.reporter.report_error(
                    title="Error rendering flow diagram",
                    message=str(failure),
                    error=failure,
                    context=self._context(instance, dataset, selection),
                )

        logger.info(
            f"[sync_all] instances={len(self.instances)}, ok={len(report.results)}, failed={len(report.failures)}"
        )
        return report

    @staticmethod
    def _context(instance: DiagramInstance, dataset: Optional[NormalizedDataset],
                 selection: SelectionState) -> dict:
        ctx = {
            "instance": instance.instance_id,
            "dataset": instance.active_dataset_id,
            "scenario": selection.scenario_id,
            "year": selection.year_id,
            "scope": Scope.parse(selection.scope).value,
        }
        if dataset is not None:
            ctx.update(
                nodes=len(dataset.nodes),
                links=len(dataset.links),
                visible_links=len(dataset.visible_links()),
            )
        return ctx
