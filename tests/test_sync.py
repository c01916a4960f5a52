import pytest

import sync as sync_module
from conftest import DEFAULTS, LINKS, NODES, make_dataset
from errors import DanglingNodeReference, ErrorReporter, InstanceResolutionFailure
from ingest import ingest
from model import SelectionState
from render import RecordingBackend
from scope import ScopeStateMachine
from sync import InstanceSynchronizer

SELECTION = SelectionState("TNOADAPT", "2030", "system")


def _synchronizer():
    reporter = ErrorReporter()
    backend = RecordingBackend()
    return InstanceSynchronizer(reporter, backend), reporter, backend


def test_one_corrupted_instance_does_not_block_the_other(lookup):
    sync, reporter, backend = _synchronizer()
    sync.register("broken", "target-broken", "ghost")
    sync.register("good", "target-good", "system")

    report = sync.sync_all({"system": make_dataset()}, SELECTION, lookup)

    assert list(report.results) == ["good"]
    assert list(report.failures) == ["broken"]
    assert len(reporter) == 1
    assert isinstance(reporter.reports[0].error, InstanceResolutionFailure)
    assert reporter.reports[0].context["dataset"] == "ghost"
    assert backend.calls == ["target-good"]
    assert backend.frames["target-good"].graph.links[0].value == 100


def test_dangling_reference_is_reported_with_context(lookup):
    sync, reporter, backend = _synchronizer()
    rows = [dict(LINKS[0], **{"target.id": "Z"})]
    broken = ingest(rows, NODES, dataset_id="broken")
    sync.register("a", "t-a", "broken")
    sync.register("b", "t-b", "system")

    sync.sync_all({"broken": broken, "system": make_dataset()}, SELECTION, lookup)

    assert len(reporter) == 1
    report = reporter.reports[0]
    assert isinstance(report.error.cause, DanglingNodeReference)
    assert report.error.cause.missing_ids == ["Z"]
    assert report.context == {
        "instance": "a", "dataset": "broken", "scenario": "TNOADAPT", "year": "2030",
        "scope": "system", "nodes": 3, "links": 1, "visible_links": 1,
    }
    assert backend.calls == ["t-b"]


def test_instances_are_processed_in_registration_order(lookup):
    sync, _, backend = _synchronizer()
    for name in ("c", "a", "b"):
        sync.register(name, f"t-{name}", "system")
    sync.sync_all({"system": make_dataset()}, SELECTION, lookup)
    assert backend.calls == ["t-c", "t-a", "t-b"]


def test_shared_dataset_is_resolved_once(lookup, monkeypatch):
    calls = []
    original = sync_module.resolve

    def counting(dataset, selection, lk):
        calls.append(dataset.dataset_id)
        return original(dataset, selection, lk)

    monkeypatch.setattr(sync_module, "resolve", counting)
    sync, _, backend = _synchronizer()
    sync.register("one", "t1", "system")
    sync.register("two", "t2", "system")
    sync.sync_all({"system": make_dataset()}, SELECTION, lookup)
    assert calls == ["system"]
    assert backend.calls == ["t1", "t2"]


def test_deregistered_instances_are_not_rendered(lookup):
    sync, _, backend = _synchronizer()
    sync.register("one", "t1", "system")
    sync.register("two", "t2", "system")
    assert sync.deregister("one") is True
    assert sync.deregister("one") is False
    sync.sync_all({"system": make_dataset()}, SELECTION, lookup)
    assert backend.calls == ["t2"]


def test_options_carry_overlays_and_unavailability(lookup):
    sync, _, backend = _synchronizer()
    sync.register("one", "t1", "system")
    scene = ScopeStateMachine.from_defaults(DEFAULTS)
    sync.sync_all({"system": make_dataset()}, SelectionState("TNOADAPT", "2099"), lookup,
                  options={"title": "x"}, scene=scene)
    opts = backend.frames["t1"].options
    assert opts["title"] == "x"
    assert opts["unavailable"] is True
    assert opts["overlays"] == scene.overlays()


def test_sync_without_backend_only_resolves(lookup):
    sync = InstanceSynchronizer()
    sync.register("one", None, "system")
    ds = make_dataset()
    report = sync.sync_all({"system": ds}, SELECTION, lookup)
    assert report.ok
    assert ds.links[0].value == 100


def test_failure_message_names_instance():
    failure = InstanceResolutionFailure("energyflows", KeyError("x"))
    assert "energyflows" in str(failure)
    with pytest.raises(RuntimeError):
        raise failure


def test_an_empty_reporter_is_kept():
    reporter = ErrorReporter()
    assert len(reporter) == 0
    assert InstanceSynchronizer(reporter).reporter is reporter
