import pandas as pd
import pytest

from ingest import ingest

NODES = [
    {"id": "A", "column": 0, "cluster": 0, "row": 0,
     "x.system": 100, "y.system": 100, "title.system": "Bron A",
     "x.electricity": 50, "y.electricity": 60, "title.electricity": "Bron A (e)"},
    {"id": "B", "column": 1, "cluster": 0, "row": 0,
     "x.system": 800, "y.system": 100, "title.system": "Doel B",
     "x.electricity": 900, "y.electricity": 80, "title.electricity": "Doel B (e)"},
    {"id": "C", "column": 1, "cluster": 0, "row": 1,
     "x.system": 800, "y.system": 600, "title.system": ".lucht",
     "x.electricity": 900, "y.electricity": 700, "title.electricity": ".lucht"},
]

LINKS = [
    {"source.id": "A", "target.id": "B", "legend": "elektriciteit", "type": "power",
     "filter_system": "x", "filter_electricity": "", "filter_hydrogen": "", "filter_heat": "", "filter_carbon": "",
     "scenario0_TNOADAPT_2030": 100, "scenario1_TNOADAPT_2050": 42.4, "scenario2_OTHER_2030": 0},
    {"source.id": "A", "target.id": "C", "legend": "co2flow", "type": "emission",
     "filter_system": "x", "filter_electricity": "", "filter_hydrogen": "", "filter_heat": "", "filter_carbon": "x",
     "scenario0_TNOADAPT_2030": 20, "scenario1_TNOADAPT_2050": 10.5, "scenario2_OTHER_2030": 0},
    {"source.id": "B", "target.id": "C", "legend": "waterstof", "type": "fuel",
     "filter_system": "", "filter_electricity": "x", "filter_hydrogen": "x", "filter_heat": "", "filter_carbon": "",
     "scenario0_TNOADAPT_2030": 7, "scenario1_TNOADAPT_2050": 8, "scenario2_OTHER_2030": 0},
]

LEGEND = [
    {"id": "elektriciteit", "color": "#2a9d8f"},
    {"id": "co2flow", "color": "#6c757d"},
    {"id": "waterstof", "color": "#e76f51"},
]

LOOKUP = {"TNOADAPT": {"2030": 0, "2050": 1}, "OTHER": {"2030": 2}}

DEFAULTS = {"scenario": "TNOADAPT", "year": "2030", "energyflowsFilter": "system", "energyflowsSankey": "system"}


def tables():
    """Fresh raw tables (ingestion scales the links frame in place)."""
    return pd.DataFrame(LINKS), pd.DataFrame(NODES), pd.DataFrame(LEGEND)


def make_dataset(dataset_id="system", **kwargs):
    links, nodes, legend = tables()
    return ingest(links, nodes, legend=legend, dataset_id=dataset_id, **kwargs)


@pytest.fixture
def dataset():
    return make_dataset()


@pytest.fixture
def lookup():
    return {k: dict(v) for k, v in LOOKUP.items()}
