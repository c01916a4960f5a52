import pandas as pd
import pytest

from conftest import DEFAULTS, LOOKUP, make_dataset
from engine import FlowDiagramEngine
from render import RecordingBackend
from steps import STEP_REGISTRY


def _ctx(tmp_path):
    engine = FlowDiagramEngine({"system": make_dataset()}, lookup=LOOKUP, defaults=DEFAULTS,
                               backend=RecordingBackend())
    engine.mount("energyflows", "main")
    return engine.flow_frame(), {"engine": engine, "artifacts": [], "base_out_dir": str(tmp_path)}


def test_registry_has_every_step():
    for name in ("select", "flow_table", "convert_units", "flow_totals", "totals_by_legend",
                 "export_flows", "availability_report", "scope_overlays"):
        assert name in STEP_REGISTRY


def test_steps_need_an_engine():
    with pytest.raises(RuntimeError, match="engine not found"):
        STEP_REGISTRY["flow_table"](pd.DataFrame(), {})


def test_convert_units_leaves_values_untouched(tmp_path):
    df, ctx = _ctx(tmp_path)
    out, _ = STEP_REGISTRY["convert_units"](df, ctx, unit="TWh")

    assert list(out["value"]) == list(df["value"])
    row = out.set_index("legend").loc["elektriciteit"]
    assert row["display_value"] == pytest.approx(100 / 3.6)
    assert row["display_unit"] == "TWh"
    assert out.set_index("legend").loc["co2flow", "display_unit"] == "kton CO2"

    with pytest.raises(ValueError):
        STEP_REGISTRY["convert_units"](df, ctx, unit="GWh")


def test_select_reports_unavailable_selection(tmp_path):
    df, ctx = _ctx(tmp_path)
    df, ctx = STEP_REGISTRY["select"](df, ctx, scenario="OTHER")

    assert ctx["messages"] == ["scenario not available for this selection"]
    assert df["value"].sum() == 0


def test_flow_table_visible_only(tmp_path):
    df, ctx = _ctx(tmp_path)
    out, _ = STEP_REGISTRY["flow_table"](df, ctx, visible_only=True)
    assert list(out["legend"]) == ["elektriciteit", "co2flow"]


def test_export_flows_rejects_unknown_columns(tmp_path):
    df, ctx = _ctx(tmp_path)
    with pytest.raises(KeyError):
        STEP_REGISTRY["export_flows"](df, ctx, columns=["source", "nope"])

    _, ctx = STEP_REGISTRY["export_flows"](df, ctx, filename="flows.csv", columns=["source", "target", "value"])
    written = pd.read_csv(ctx["artifacts"][-1])
    assert list(written.columns) == ["source", "target", "value"]
    assert len(written) == 2


def test_totals_by_legend(tmp_path):
    df, ctx = _ctx(tmp_path)
    _, ctx = STEP_REGISTRY["totals_by_legend"](df, ctx, save_csv=False)
    totals = ctx["totals_by_legend"].set_index("legend")["total"].to_dict()
    assert totals == {"elektriciteit": 100.0, "co2flow": 20.0}
    assert ctx["artifacts"] == []


def test_scope_overlays_for_an_explicit_scope(tmp_path):
    df, ctx = _ctx(tmp_path)
    _, ctx = STEP_REGISTRY["scope_overlays"](df, ctx, scope="carbon", visible_only=True)
    written = pd.read_csv(ctx["artifacts"][-1])
    assert ctx["artifacts"][-1].endswith("overlays_carbon.csv")
    assert (written["opacity"] > 0).all()


def test_flow_totals_keeps_co2_apart(tmp_path):
    df, ctx = _ctx(tmp_path)
    out, ctx = STEP_REGISTRY["flow_totals"](df, ctx)
    assert ctx["flow_totals"] == {"energy": 100.0, "co2": 20.0}
    assert out is df
