# -*- coding: utf-8 -*-
"""
Created on Wed Oct 15 14:03:26 2025

@author: aless
"""

# - Narrow render seam: render(target, graph, options). The engine never touches plotly directly.
# - PlotlySankeyBackend writes one HTML per target (go.Sankey, arrangement="snap", positions from the data).
# - RecordingBackend keeps a snapshot of the last graph per target (headless runs and tests).

import logging
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Protocol

import matplotlib.colors as mcolors
import networkx as nx
import numpy as np
import plotly.graph_objects as go

from errors import DanglingNodeReference
from model import NormalizedDataset, NormalizedLink, NormalizedNode, PlacementOrder, Settings
from placement import iter_slots
from resolver import remark_marker, remark_text
from units import display_unit_label, format_flow, to_display_unit

logger = logging.getLogger("pipeline")

UNAVAILABLE_MESSAGE = "scenario not available for this selection"


@dataclass
class RenderGraph:
    nodes: List[NormalizedNode]
    links: List[NormalizedLink]
    order: PlacementOrder = field(default_factory=list)


def render_graph(dataset: NormalizedDataset) -> RenderGraph:
    return RenderGraph(nodes=dataset.nodes, links=dataset.links, order=dataset.order)


def check_references(graph: RenderGraph):
    """Raise DanglingNodeReference if a link or an order slot names an unknown node."""
    known = {n.id for n in graph.nodes}
    missing = set()
    for link in graph.links:
        for node_id in (link.source, link.target):
            if node_id not in known:
                missing.add(node_id)
    for _, _, _, node_id in iter_slots(graph.order):
        if node_id not in known:
            missing.add(node_id)
    if missing:
        raise DanglingNodeReference(
            f"{len(missing)} node id(s) referenced but not defined: {sorted(missing)}", missing
        )


class RenderBackend(Protocol):
    def render(self, target, graph: RenderGraph, options: dict) -> None:
        ...


# ---------- Recording ----------

@dataclass
class RenderedFrame:
    graph: RenderGraph
    options: dict


class RecordingBackend:
    """Stores a detached copy of what would have been drawn."""

    def __init__(self):
        self.frames: Dict[object, RenderedFrame] = {}
        self.calls: List[object] = []

    def render(self, target, graph: RenderGraph, options: dict) -> None:
        check_references(graph)
        snapshot = RenderGraph(
            nodes=[replace(n) for n in graph.nodes],
            links=[replace(l) for l in graph.links],
            order=graph.order,
        )
        self.frames[target] = RenderedFrame(graph=snapshot, options=dict(options or {}))
        self.calls.append(target)


# ---------- Plotly ----------

def _rgba(color: str, alpha: float) -> str:
    r, g, b, a = mcolors.to_rgba(color, alpha=alpha)
    return f"rgba({round(r*255)},{round(g*255)},{round(b*255)},{a:.2f})"


def node_throughput(graph: RenderGraph) -> Dict[str, float]:
    """max(inflow, outflow) per node over the visible links."""
    G = nx.DiGraph()
    G.add_nodes_from(n.id for n in graph.nodes)
    for link in graph.links:
        if link.visibility != 1:
            continue
        if G.has_edge(link.source, link.target):
            G[link.source][link.target]["weight"] += link.value
        else:
            G.add_edge(link.source, link.target, weight=link.value)
    w_in = dict(G.in_degree(weight="weight"))
    w_out = dict(G.out_degree(weight="weight"))
    return {n: float(max(w_in.get(n, 0.0), w_out.get(n, 0.0))) for n in G.nodes}


_MARKUP_RE = re.compile(r"<[^>]+>")


def remark_markers(graph: RenderGraph, scenario_index) -> Dict[str, tuple]:
    """node id -> (marker colour, plain remark text) for nodes whose remark is tagged for this scenario."""
    markers = {}
    if scenario_index is None:
        return markers
    for nd in graph.nodes:
        color = remark_marker(nd, scenario_index)
        if color is not None:
            text = _MARKUP_RE.sub(" ", remark_text(nd, scenario_index) or "")
            markers[nd.id] = (color, " ".join(text.split()))
    return markers


def _positions(graph: RenderGraph, settings: Settings):
    """
    Node x/y in [0, 1]. Positions come from the scope columns of the data, scaled by the
    scroll extent; if any node lacks one, fall back to the placement grid (column / row).
    """
    n = len(graph.nodes)
    xs = np.array([np.nan if nd.x is None else nd.x for nd in graph.nodes], dtype=float)
    ys = np.array([np.nan if nd.y is None else nd.y for nd in graph.nodes], dtype=float)
    if n and not (np.isnan(xs).any() or np.isnan(ys).any()):
        xs = (xs + settings.offsetX) / max(settings.scrollExtentWidth, 1.0)
        ys = (ys + settings.offsetY) / max(settings.scrollExtentHeight, 1.0)
    else:
        slot = {node_id: (c, k, r) for c, k, r, node_id in iter_slots(graph.order)}
        ncol = max(len(graph.order) - 1, 1)
        xs = np.array([slot.get(nd.id, (0, 0, 0))[0] / ncol for nd in graph.nodes], dtype=float)
        depth = np.array([slot.get(nd.id, (0, 0, 0))[1] * 10 + slot.get(nd.id, (0, 0, 0))[2]
                          for nd in graph.nodes], dtype=float)
        ys = depth / depth.max() if n and depth.max() > 0 else np.full(n, 0.5)
    # plotly ignores nodes placed exactly on the border
    return np.clip(xs, 0.001, 0.999), np.clip(ys, 0.001, 0.999)


class PlotlySankeyBackend:
    """Renders a resolved graph to '<out_dir>/<target>.html'."""

    def __init__(self, out_dir: str = "./out", link_alpha: float = 0.6, node_thickness: int = 3,
                 save_png: bool = False, png_scale: int = 2):
        self.out_dir = out_dir
        self.link_alpha = link_alpha
        self.node_thickness = node_thickness
        self.save_png = save_png
        self.png_scale = png_scale
        self.artifacts: List[str] = []

    def build_figure(self, graph: RenderGraph, options: dict) -> go.Figure:
        check_references(graph)
        settings: Settings = options.get("settings") or Settings()
        unit = options.get("unit", "PJ")
        co2_scale = settings.scaleDataValueCO2flow

        node_index = {nd.id: i for i, nd in enumerate(graph.nodes)}
        labels = [nd.title if nd.draws_title else "" for nd in graph.nodes]
        x_arr, y_arr = _positions(graph, settings)

        throughput = node_throughput(graph)
        node_hover = [f"{nd.title or nd.id} | {int(to_display_unit(throughput[nd.id], '', unit))} "
                      f"{display_unit_label('', unit)}" for nd in graph.nodes]
        markers = remark_markers(graph, options.get("scenario_index"))
        for i, nd in enumerate(graph.nodes):
            if nd.id in markers and markers[nd.id][1]:
                node_hover[i] += f"<br>{markers[nd.id][1]}"

        visible = [l for l in graph.links if l.visibility == 1]
        sources = [node_index[l.source] for l in visible]
        targets = [node_index[l.target] for l in visible]
        values = [float(l.value) for l in visible]
        colors = [_rgba(l.color, self.link_alpha) for l in visible]
        hover = [format_flow(l.value, l.legend, unit, co2_scale) for l in visible]

        fig = go.Figure(data=[go.Sankey(
            node=dict(
                pad=10, thickness=self.node_thickness,
                line=dict(color="black", width=0.4),
                label=labels, color="#333333",
                x=x_arr, y=y_arr,
                customdata=node_hover, hovertemplate="%{customdata}<extra></extra>",
            ),
            link=dict(
                source=sources, target=targets, value=values,
                color=colors, customdata=hover, hovertemplate="%{customdata}<extra></extra>",
            ),
            arrangement="snap",
        )])

        self._draw_overlays(fig, options.get("overlays") or (), settings)
        # remark marker just above each tagged node (sankey y runs top-down)
        for i, nd in enumerate(graph.nodes):
            if nd.id in markers:
                fig.add_annotation(text="●", x=float(x_arr[i]), y=float(1 - y_arr[i]), xref="paper", yref="paper",
                                   yshift=8, showarrow=False, hovertext=markers[nd.id][1] or None,
                                   font=dict(size=10, color=markers[nd.id][0]))
        fig.update_layout(
            title_text=options.get("title"),
            font=dict(size=settings.fontSize, family=settings.font),
            width=int(settings.scrollExtentWidth), height=int(settings.scrollExtentHeight),
            plot_bgcolor="white",
        )
        if options.get("unavailable"):
            fig.add_annotation(text=UNAVAILABLE_MESSAGE, x=0.5, y=0.5,
                               xref="paper", yref="paper", showarrow=False, font=dict(size=18, color="#c1121f"))
        return fig

    def _draw_overlays(self, fig: go.Figure, overlays, settings: Settings):
        """Overlay pixel geometry -> paper coordinates (y grows downward in the data)."""
        w = max(settings.scrollExtentWidth, 1.0)
        h = max(settings.scrollExtentHeight, 1.0)
        for ov in overlays:
            if ov.opacity <= 0:
                continue
            if ov.kind == "rect":
                fig.add_shape(
                    type="rect", xref="paper", yref="paper", layer="below",
                    x0=ov.x / w, x1=(ov.x + ov.width) / w,
                    y0=1 - (ov.y + ov.height) / h, y1=1 - ov.y / h,
                    fillcolor=ov.fill, opacity=ov.opacity,
                    line=dict(color=ov.stroke or ov.fill, width=ov.stroke_width),
                )
            else:
                xanchor = {"start": "left", "middle": "center", "end": "right"}.get(ov.anchor, "left")
                fig.add_annotation(
                    text=ov.text, xref="paper", yref="paper", x=ov.x / w, y=1 - ov.y / h,
                    xanchor=xanchor, yanchor="bottom", showarrow=False, opacity=ov.opacity,
                    font=dict(size=ov.font_size or settings.fontSize, color=ov.fill),
                )

    def render(self, target, graph: RenderGraph, options: dict) -> None:
        fig = self.build_figure(graph, options or {})
        out_html = target if str(target).endswith(".html") else os.path.join(self.out_dir, f"{target}.html")
        Path(out_html).parent.mkdir(parents=True, exist_ok=True)
        fig.write_html(out_html)
        logger.info(f"[PlotlySankeyBackend] Saved HTML to {out_html}")
        self.artifacts.append(out_html)

        if self.save_png:
            try:
                out_png = os.path.splitext(out_html)[0] + ".png"
                fig.write_image(out_png, scale=int(self.png_scale))
                logger.info(f"[PlotlySankeyBackend] Saved PNG to {out_png}")
                self.artifacts.append(out_png)
            except Exception as e:
                logger.warning(f"[PlotlySankeyBackend] PNG export failed (install kaleido): {e}")
