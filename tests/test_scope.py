import pytest

from model import BackgroundRectangle, Scope, Settings
from scope import SCENE_GEOMETRY, ScopeStateMachine, rectangle_overlays


def _by_id(scope):
    return {o.id: o for o in SCENE_GEOMETRY[scope]}


def test_geometry_is_total_over_scopes():
    assert set(SCENE_GEOMETRY) == set(Scope)
    ids = [o.id for o in SCENE_GEOMETRY[Scope.SYSTEM]]
    assert len(ids) == len(set(ids))
    for scope in Scope:
        assert [o.id for o in SCENE_GEOMETRY[scope]] == ids


def test_system_view_hides_chain_panels():
    g = _by_id(Scope.SYSTEM)
    assert g["delineator_rect_bronnen"].width == 300
    assert g["delineator_rect_keteninvoer"].opacity == 0
    assert g["delineator_rect_conversie"].x == 350
    assert all(o.opacity == 0 for o in g.values() if o.kind == "rect" and o.height > 2)


def test_chain_view_is_shared_by_sub_scopes():
    for scope in (Scope.ELECTRICITY, Scope.HYDROGEN, Scope.HEAT, Scope.CARBON):
        g = _by_id(scope)
        assert (g["delineator_rect_bronnen"].x, g["delineator_rect_bronnen"].width) == (15, 240)
        assert (g["delineator_rect_conversie"].x, g["delineator_rect_conversie"].width) == (595, 285)
        assert g["delineator_text_finaal"].x == 1350
        assert g["delineator_rect_keteninvoer"].opacity == 1
        assert g["delineator_rect_finaal_go"].opacity == 1
        assert g["delineator_rect_productie"].opacity == 1


def test_electricity_panels():
    g = _by_id(Scope.ELECTRICITY)
    assert g["delineator_rect_elektriciteitsketen_uit"].opacity == 0
    conv = g["delineator_rect_vlak_conversie"]
    assert (conv.y, conv.height, conv.opacity) == (200, 445, 1)
    assert g["delineator_text_vlak_conversie"].y == 238


def test_unset_fields_take_system_values():
    hydrogen = _by_id(Scope.HYDROGEN)["delineator_rect_koolstofketen_uit"]
    system = _by_id(Scope.SYSTEM)["delineator_rect_koolstofketen_uit"]
    assert hydrogen.height == 170
    assert hydrogen.y == system.y


def test_initial_scope_from_defaults():
    assert ScopeStateMachine.from_defaults({"energyflowsFilter": "carbon"}).scope is Scope.CARBON
    assert ScopeStateMachine.from_defaults({}).scope is Scope.SYSTEM
    assert ScopeStateMachine.from_defaults(None).scope is Scope.SYSTEM


def test_transition_reports_change_and_is_idempotent():
    sm = ScopeStateMachine()
    assert sm.transition("heat") is True
    before = sm.overlays()
    assert sm.transition("heat") is False
    assert sm.overlays() == before


def test_overlays_do_not_depend_on_history():
    direct = ScopeStateMachine("electricity").overlays()
    sm = ScopeStateMachine()
    for scope in ("heat", "carbon", "hydrogen", "electricity"):
        sm.transition(scope)
    assert sm.overlays() == direct


def test_unknown_scope_is_rejected():
    sm = ScopeStateMachine()
    with pytest.raises(ValueError):
        sm.transition("gas")
    assert sm.scope is Scope.SYSTEM


def test_custom_backdrop_uses_rectangles():
    rects = [
        BackgroundRectangle(id="r1", x=100, y=50, width=200, height=100, title="Zone", titlePosition="center"),
        BackgroundRectangle(id="r2", fillOpacity=50),
    ]
    sm = ScopeStateMachine("electricity")
    overlays = sm.overlays(Settings(diagramBackdrop="custom"), rects)
    by_id = {o.id: o for o in overlays}
    assert set(by_id) == {"rect_r1", "title_r1", "rect_r2"}
    assert by_id["rect_r2"].opacity == 0.5
    title = by_id["title_r1"]
    assert (title.x, title.y, title.anchor) == (200, 107, "middle")


def test_bottom_right_title():
    (rect, title) = rectangle_overlays([
        BackgroundRectangle(id="r", x=0, y=0, width=300, height=200, title="T", titlePosition="bottom-right"),
    ])
    assert (title.x, title.y, title.anchor) == (290, 190, "end")
