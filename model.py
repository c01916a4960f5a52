# -*- coding: utf-8 -*-
"""
Created on Mon Oct 13 10:12:41 2025

@author: aless
"""

# - Typed in-memory model of one flow diagram dataset (nodes, links, order, scenarios).
# - Only value/visibility on links and x/y/title on nodes change after ingestion.

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Scope(str, Enum):
    """Flow filter / sub-chain view over the same graph."""
    SYSTEM = "system"
    ELECTRICITY = "electricity"
    HYDROGEN = "hydrogen"
    HEAT = "heat"
    CARBON = "carbon"

    @classmethod
    def parse(cls, value) -> "Scope":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown scope '{value}'. Expected one of {[s.value for s in cls]}.") from None


SCOPES: Tuple[Scope, ...] = tuple(Scope)

CO2_CATEGORY = "co2flow"
SCENARIO_MARKER = "scenario"
FILTER_MARK = "x"
DEFAULT_LINK_COLOR = "black"


# ---------- Settings ----------

@dataclass(frozen=True)
class Settings:
    scaleDataValue: float = 1.0
    scaleDataValueCO2flow: float = 1.0
    scaleInit: float = 1.0
    horizontalMargin: float = 0.0
    verticalMargin: float = 0.0
    scrollExtentWidth: float = 1600.0
    scrollExtentHeight: float = 1200.0
    diagramBackdrop: str = "defaultSystemDiagram"
    offsetX: float = 0.0
    offsetY: float = 0.0
    fontSize: float = 11.0
    font: str = "Arial"
    extra: Dict[str, object] = field(default_factory=dict)   # any other setting row (projectID, ...)


# ---------- Graph ----------

@dataclass
class NormalizedNode:
    id: str
    index: int
    column: int
    cluster: int
    row: int
    direction: Optional[str] = None
    dummy: bool = False
    x_by_scope: Dict[str, Optional[float]] = field(default_factory=dict)
    y_by_scope: Dict[str, Optional[float]] = field(default_factory=dict)
    title_by_scope: Dict[str, Optional[str]] = field(default_factory=dict)
    remark: Dict[str, object] = field(default_factory=dict)
    # scope-resolved fields, re-derived on every resolution pass
    x: Optional[float] = None
    y: Optional[float] = None
    title: Optional[str] = None

    def apply_scope(self, scope: Scope):
        key = Scope.parse(scope).value
        self.x = self.x_by_scope.get(key)
        self.y = self.y_by_scope.get(key)
        self.title = self.title_by_scope.get(key)

    @property
    def draws_title(self) -> bool:
        """Dummy nodes and titles starting with '.' are not labelled."""
        if self.dummy or not self.title:
            return False
        return not str(self.title).startswith(".")


@dataclass
class NormalizedLink:
    index: int
    source: str
    target: str
    legend: str
    type: Optional[str]
    color: str
    filters: Dict[str, str]                 # scope -> raw filter cell ('x' or '')
    scenario_values: Dict[str, float]       # scenario column key -> scaled value
    value: float = 0.0
    visibility: int = 1

    def filter_flag(self, scope: Scope) -> str:
        return self.filters.get(Scope.parse(scope).value, "")

    @property
    def is_co2(self) -> bool:
        return self.legend == CO2_CATEGORY


@dataclass(frozen=True)
class ScenarioDescriptor:
    id: str       # full column key, e.g. "scenario0_x2030x_ADAPT"
    title: str    # part after the first underscore


@dataclass(frozen=True)
class BackgroundRectangle:
    id: str
    x: float = 0.0
    y: float = 0.0
    width: float = 300.0
    height: float = 200.0
    title: str = ""
    titlePosition: str = "top-left"
    titleFontSize: float = 14.0
    titleFontWeight: str = "normal"
    titleColor: str = "#666666"
    fill: str = "#dee6ee"
    fillOpacity: float = 100.0
    stroke: str = "#ffffff"
    strokeOpacity: float = 100.0
    strokeWidth: float = 0.0
    cornerRadius: float = 10.0
    shadowEnabled: bool = False


PlacementOrder = List[List[List[List[str]]]]


@dataclass
class NormalizedDataset:
    dataset_id: str
    nodes: List[NormalizedNode]
    links: List[NormalizedLink]
    order: PlacementOrder
    scenarios: List[ScenarioDescriptor]
    legend: Dict[str, str]
    settings: Settings
    rectangles: List[BackgroundRectangle] = field(default_factory=list)

    @property
    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def visible_links(self) -> List[NormalizedLink]:
        return [l for l in self.links if l.visibility == 1]


# ---------- Selection & instances ----------

@dataclass(frozen=True)
class SelectionState:
    """Global selection, replaced (never mutated) through the engine's Selection API."""
    scenario_id: Optional[str] = None
    year_id: Optional[str] = None
    scope: Scope = Scope.SYSTEM
    unit: str = "PJ"

    def update(self, **changes) -> "SelectionState":
        if "scope" in changes:
            changes["scope"] = Scope.parse(changes["scope"])
        if "year_id" in changes and changes["year_id"] is not None:
            changes["year_id"] = str(changes["year_id"])
        return replace(self, **changes)


ScenarioYearLookup = Dict[str, Dict[str, int]]


@dataclass
class DiagramInstance:
    instance_id: str
    render_target: object
    active_dataset_id: str


# ---------- Clone ----------

def clone(dataset: NormalizedDataset) -> NormalizedDataset:
    """
    Copy a dataset so the copy can be resolved independently.
    Only the mutable fields (link value/visibility, node x/y/title) are detached;
    static per-scope tables, remarks, order and settings stay shared.
    """
    nodes = [replace(n) for n in dataset.nodes]
    links = [replace(l) for l in dataset.links]
    return replace(dataset, nodes=nodes, links=links)
