# -*- coding: utf-8 -*-
"""
Created on Tue Oct 14 09:40:12 2025

@author: aless
"""

# - Scenario/year/scope value resolver: sets value + visibility on every link, x/y/title on every node.
# - A missing (scenario, year) combination is not an error: visible links resolve to 0 and a warning is recorded.

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from errors import MissingSelectionData
from model import (
    FILTER_MARK,
    NormalizedDataset,
    NormalizedLink,
    NormalizedNode,
    ScenarioYearLookup,
    Scope,
    SelectionState,
)

logger = logging.getLogger("pipeline")

AVAILABILITY_THRESHOLD = 0.001


@dataclass
class ResolutionResult:
    dataset_id: str
    selection: SelectionState
    scenario_index: Optional[int] = None
    visible_links: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def missing_selection(self) -> bool:
        return self.scenario_index is None


def _round_half_up(v: float) -> int:
    return int(math.floor(v + 0.5))


def scenario_index_for(lookup: ScenarioYearLookup, scenario_id, year_id) -> Optional[int]:
    """ScenarioYearLookup[scenario][year], None when the combination has no data."""
    if scenario_id is None or year_id is None:
        return None
    years = lookup.get(str(scenario_id)) or {}
    idx = years.get(str(year_id))
    return None if idx is None else int(idx)


def scenario_column(dataset: NormalizedDataset, selection: SelectionState,
                    lookup: ScenarioYearLookup) -> Tuple[int, str]:
    """(scenario index, column key) of the selection; MissingSelectionData when there is none."""
    idx = scenario_index_for(lookup, selection.scenario_id, selection.year_id)
    if idx is None:
        raise MissingSelectionData(
            f"Scenario '{selection.scenario_id}' is not available for year '{selection.year_id}'."
        )
    if not 0 <= idx < len(dataset.scenarios):
        raise MissingSelectionData(
            f"Scenario index {idx} is out of bounds for dataset '{dataset.dataset_id}' "
            f"({len(dataset.scenarios)} scenario columns)."
        )
    return idx, dataset.scenarios[idx].id


def resolve(dataset: NormalizedDataset, selection: SelectionState,
            lookup: ScenarioYearLookup) -> ResolutionResult:
    """Mutate dataset.links / dataset.nodes in place for one selection. Never raises for missing data."""
    scope = Scope.parse(selection.scope)
    result = ResolutionResult(dataset_id=dataset.dataset_id, selection=selection)

    try:
        result.scenario_index, column_key = scenario_column(dataset, selection, lookup)
    except MissingSelectionData as e:
        column_key = None
        result.warnings.append(str(e))

    missing_columns = 0
    for link in dataset.links:
        link.visibility = 1 if link.filter_flag(scope) == FILTER_MARK else 0
        if not link.visibility:
            link.value = 0
            continue
        result.visible_links += 1
        if column_key is None:
            link.value = 0
            continue
        raw = link.scenario_values.get(column_key)
        if raw is None:
            missing_columns += 1
            result.warnings.append(f"Missing scenario data for link {link.index}, scenario: {column_key}")
            link.value = 0
        else:
            link.value = _round_half_up(raw)

    for node in dataset.nodes:
        node.apply_scope(scope)

    if result.missing_selection and result.warnings:
        logger.warning(f"[resolve] {result.warnings[0]} Visible links set to 0.")
    if missing_columns:
        logger.warning(f"[resolve] {missing_columns} visible link(s) lack data for '{column_key}'; set to 0.")
    return result


# ---------- Queries ----------

def get_availability(dataset: NormalizedDataset, scenario_id: str, lookup: ScenarioYearLookup) -> bool:
    """
    True iff the scenario has some year in the lookup and, for one of those years,
    a link that is part of any scope carries a value above the threshold.
    """
    years = lookup.get(str(scenario_id)) or {}
    keys = [
        dataset.scenarios[int(i)].id
        for i in years.values()
        if i is not None and 0 <= int(i) < len(dataset.scenarios)
    ]
    if not keys:
        return False
    for link in dataset.links:
        if not any(flag == FILTER_MARK for flag in link.filters.values()):
            continue
        for key in keys:
            v = link.scenario_values.get(key)
            if v is not None and abs(v) > AVAILABILITY_THRESHOLD:
                return True
    return False


def is_selection_available(dataset: NormalizedDataset, selection: SelectionState,
                           lookup: ScenarioYearLookup) -> bool:
    idx = scenario_index_for(lookup, selection.scenario_id, selection.year_id)
    if idx is None or not 0 <= idx < len(dataset.scenarios):
        return False
    return get_availability(dataset, selection.scenario_id, lookup)


def flow_totals(links: Iterable[NormalizedLink]) -> Dict[str, float]:
    """Totals over visible links; co2flow links are kept out of the energy total."""
    totals = {"energy": 0.0, "co2": 0.0}
    for link in links:
        if link.visibility != 1:
            continue
        totals["co2" if link.is_co2 else "energy"] += link.value
    return totals


# ---------- Remarks ----------

REMARK_TAGS = ("info", "aanname", "bron")
MARKER_COLOR_WARNING = "#c1121f"
MARKER_COLOR_INFO = "#495057"

_TAG_RE = re.compile(r"<\s*(" + "|".join(REMARK_TAGS) + r")\b", re.IGNORECASE)


def remark_text(node: NormalizedNode, scenario_index: int) -> Optional[str]:
    """Remark for a scenario: column k+1 of the node's remark row (column 0 is the node key)."""
    values = list(node.remark.values())
    pos = scenario_index + 1
    if scenario_index < 0 or pos >= len(values) or values[pos] is None:
        return None
    return str(values[pos])


def remark_tags(text: Optional[str]) -> Set[str]:
    if not text:
        return set()
    return {m.lower() for m in _TAG_RE.findall(text)}


def remark_marker(node: NormalizedNode, scenario_index: Optional[int]) -> Optional[str]:
    """Marker colour for a node, None when its remark has no tagged content."""
    if scenario_index is None:
        return None
    tags = remark_tags(remark_text(node, scenario_index))
    if not tags:
        return None
    return MARKER_COLOR_WARNING if "aanname" in tags else MARKER_COLOR_INFO
