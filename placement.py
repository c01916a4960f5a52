# -*- coding: utf-8 -*-
"""
Created on Mon Oct 13 11:31:50 2025

@author: aless
"""

# - Deterministic placement grid: order[column][cluster][row] = [node ids].
# - Slots are back-filled up to the highest observed index, never skipped or truncated.

import logging
from typing import Iterable, List

from model import NormalizedNode, PlacementOrder

logger = logging.getLogger("pipeline")


def _extend(slots: list, upto: int, make):
    while len(slots) <= upto:
        slots.append(make())


def build_order(nodes: Iterable[NormalizedNode]) -> PlacementOrder:
    """
    Build the nested order used by the layout backend.
    A column that holds no node is back-filled as [[]] (one empty cluster),
    a missing cluster or row as [].
    """
    nodes = list(nodes)
    order: PlacementOrder = []
    if not nodes:
        return order

    max_column = max(n.column for n in nodes)
    _extend(order, max_column, lambda: [[]])

    for node in nodes:
        clusters: List[List[List[str]]] = order[node.column]
        _extend(clusters, node.cluster, list)
        rows = clusters[node.cluster]
        _extend(rows, node.row, list)
        rows[node.row].append(node.id)

    logger.info(f"[build_order] columns={len(order)}, nodes={len(nodes)}")
    return order


def iter_slots(order: PlacementOrder):
    """Yield (column, cluster, row, node_id) for every placed id, in grid order."""
    for c, clusters in enumerate(order):
        for k, rows in enumerate(clusters):
            for r, ids in enumerate(rows):
                for node_id in ids:
                    yield c, k, r, node_id
