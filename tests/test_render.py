import pandas as pd
import pytest

from conftest import LINKS, NODES, make_dataset, tables
from errors import DanglingNodeReference
from ingest import ingest
from model import SelectionState, Settings
from render import (
    PlotlySankeyBackend,
    RecordingBackend,
    check_references,
    node_throughput,
    remark_markers,
    render_graph,
)
from resolver import MARKER_COLOR_INFO, MARKER_COLOR_WARNING, resolve
from scope import SCENE_GEOMETRY, ScopeStateMachine


def _resolved(scope="system"):
    ds = make_dataset()
    resolve(ds, SelectionState("TNOADAPT", "2030", scope), {"TNOADAPT": {"2030": 0}})
    return ds


def test_check_references_lists_missing_ids():
    rows = [dict(LINKS[0], **{"source.id": "X", "target.id": "Y"})]
    graph = render_graph(ingest(rows, NODES))
    with pytest.raises(DanglingNodeReference) as err:
        check_references(graph)
    assert err.value.missing_ids == ["X", "Y"]
    assert isinstance(err.value, KeyError)


def test_check_references_accepts_consistent_graph():
    check_references(render_graph(make_dataset()))


def test_node_throughput_uses_visible_links_only():
    th = node_throughput(render_graph(_resolved()))
    assert th == {"A": 120.0, "B": 100.0, "C": 20.0}


def test_recording_backend_keeps_a_detached_copy():
    ds = _resolved()
    backend = RecordingBackend()
    backend.render("t", render_graph(ds), {"unit": "PJ"})
    ds.links[0].value = -1
    assert backend.frames["t"].graph.links[0].value == 100
    assert backend.frames["t"].options == {"unit": "PJ"}


def test_figure_drops_invisible_links_and_normalizes_positions():
    ds = _resolved()
    fig = PlotlySankeyBackend().build_figure(render_graph(ds), {"settings": ds.settings, "unit": "TWh"})
    sankey = fig.data[0]
    assert list(sankey.link.value) == [100.0, 20.0]
    assert list(sankey.link.source) == [0, 0]
    assert sankey.node.x[1] == pytest.approx(800 / 1600)
    assert sankey.node.y[2] == pytest.approx(600 / 1200)
    assert list(sankey.node.label) == ["Bron A", "Doel B", ""]
    assert sankey.link.customdata[0] == "elektriciteit | 27 TWh"
    assert sankey.link.color[0].startswith("rgba(42,157,143,")


def test_figure_falls_back_to_grid_without_positions():
    ds = _resolved("heat")
    fig = PlotlySankeyBackend().build_figure(render_graph(ds), {})
    xs = list(fig.data[0].node.x)
    assert xs[0] < xs[1] == xs[2]


def test_overlays_become_shapes_and_annotations():
    ds = _resolved("electricity")
    overlays = ScopeStateMachine("electricity").overlays()
    fig = PlotlySankeyBackend().build_figure(render_graph(ds), {"overlays": overlays, "settings": Settings()})
    shown = [o for o in SCENE_GEOMETRY[ScopeStateMachine("electricity").scope] if o.opacity > 0]
    assert len(fig.layout.shapes) == sum(1 for o in shown if o.kind == "rect")
    assert len(fig.layout.annotations) == sum(1 for o in shown if o.kind == "text")


def test_unavailable_selection_is_annotated():
    fig = PlotlySankeyBackend().build_figure(render_graph(make_dataset()), {"unavailable": True})
    assert fig.layout.annotations[-1].text == "scenario not available for this selection"


def test_plotly_backend_writes_html(tmp_path):
    backend = PlotlySankeyBackend(out_dir=str(tmp_path))
    backend.render("energyflows", render_graph(_resolved()), {})
    out = tmp_path / "energyflows.html"
    assert out.exists()
    assert backend.artifacts == [str(out)]


def test_plotly_backend_refuses_dangling_graph(tmp_path):
    rows = [dict(LINKS[0], **{"target.id": "Z"})]
    backend = PlotlySankeyBackend(out_dir=str(tmp_path))
    with pytest.raises(DanglingNodeReference):
        backend.render("x", render_graph(ingest(rows, NODES)), {})
    assert not (tmp_path / "x.html").exists()


def test_tagged_remarks_become_node_markers():
    links, nodes, legend = tables()
    remarks = pd.DataFrame([
        {"id": "A", "s0": "<info>Bron: CBS</info>", "s1": None},
        {"id": "B", "s0": None, "s1": "<aanname>schatting</aanname>"},
        {"id": "C", "s0": "geen tag", "s1": None},
    ])
    ds = ingest(links, nodes, legend=legend, remarks=remarks)
    graph = render_graph(ds)

    assert remark_markers(graph, 0) == {"A": (MARKER_COLOR_INFO, "Bron: CBS")}
    assert remark_markers(graph, 1) == {"B": (MARKER_COLOR_WARNING, "schatting")}
    assert remark_markers(graph, None) == {}

    fig = PlotlySankeyBackend().build_figure(graph, {"settings": ds.settings, "scenario_index": 1})
    marks = [a for a in fig.layout.annotations if a.text == "●"]
    assert [m.font.color for m in marks] == [MARKER_COLOR_WARNING]
    assert fig.data[0].node.customdata[1].endswith("<br>schatting")
