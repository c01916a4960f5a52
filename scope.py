# -*- coding: utf-8 -*-
"""
Created on Tue Oct 14 10:22:05 2025

@author: aless
"""

# - Scope filter state machine + declarative overlay geometry per scope.
# - SCENE_GEOMETRY[scope] is absolute: every overlay id appears in every scope, unset fields take the system value.
# - Custom backdrops (settings.diagramBackdrop == 'custom') replace the table with the dataset's rectangles.

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Optional, Tuple

from model import SCOPES, BackgroundRectangle, Scope, Settings

logger = logging.getLogger("pipeline")

CUSTOM_BACKDROP = "custom"


@dataclass(frozen=True)
class OverlayDescriptor:
    id: str
    kind: str                    # "rect" | "text"
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    opacity: float = 1.0
    text: str = ""
    fill: str = "#666"
    font_size: float = 0.0
    anchor: str = "start"        # text anchor: start | middle | end
    corner_radius: float = 0.0
    stroke: Optional[str] = None
    stroke_width: float = 0.0


# ---------- System geometry ----------

HEADER_FILL = "#888"
PANEL_FILL = "#DCE6EF"
LABEL_FILL = "#666"

# (name, rect x, rect width, label, text x, opacity)
_HEADERS = [
    ("bronnen", 15, 300, "BRONNEN", 20, 1),
    ("conversie", 350, 606, "CONVERSIE", 355, 1),
    ("finaal", 990, 590, "FINAAL VERBRUIK", 995, 1),
    ("keteninvoer", 340, 230, "INVOER UIT KETEN", 345, 0),
    ("ketenuitvoer", 970, 250, "UITVOER NAAR KETEN", 975, 0),
]

# (name, x, y, width, height, text x, text y, label); hidden in the system view
_PANELS = [
    ("koolstofketen_uit", 290, 100, 230, 250, 315, 138, "KOOLSTOFKETEN"),
    ("waterstofketen_uit", 290, 100, 230, 190, 315, 138, "WATERSTOFKETEN"),
    ("elektriciteitsketen_uit", 290, 330, 230, 190, 315, 368, "ELEKTRICITEITSKETEN"),
    ("warmteketen_in", 970, 100, 230, 140, 995, 138, "WARMTEKETEN"),
    ("waterstofketen_in", 970, 275, 230, 120, 995, 313, "WATERSTOFKETEN"),
    ("elektriciteitsketen_in", 970, 95, 230, 140, 995, 133, "ELEKTRICITEITSKETEN"),
    ("koolstofketen_in", 970, 600, 230, 140, 995, 638, "KOOLSTOFKETEN"),
    ("finaal_go", 1350, 100, 230, 140, 1375, 138, "GEBOUWDE OMGEVING"),
    ("finaal_mobiliteit", 1350, 680, 230, 140, 1375, 710, "MOBILITEIT"),
    ("finaal_industrie", 1350, 370, 230, 300, 1375, 400, "INDUSTRIE"),
    ("finaal_landbouw", 1352, 250, 230, 110, 1377, 285, "LANDBOUW"),
    ("finaal_overige", 1352, 830, 230, 200, 1377, 860, "OVERIGE"),
    ("vlak_conversie", 600, 100, 278, 945, 625, 138, "CONVERSIE"),
    ("productie", 25, 100, 228, 945, 50, 138, "IMPORT & PRODUCTIE"),
    ("warmteketen_uit", 290, 390, 230, 110, 315, 528, "WARMTEKETEN"),
    ("warmteproductie_bij_finaal_verbruik_uit", 290, 740, 230, 305, 315, 768, "LOKAAL"),
]


def _rect_id(name: str) -> str:
    return f"delineator_rect_{name}"


def _text_id(name: str) -> str:
    return f"delineator_text_{name}"


def _system_geometry() -> Dict[str, OverlayDescriptor]:
    base: Dict[str, OverlayDescriptor] = {}
    for name, x, w, label, tx, op in _HEADERS:
        base[_rect_id(name)] = OverlayDescriptor(
            id=_rect_id(name), kind="rect", x=x, y=70, width=w, height=2,
            opacity=op, fill=HEADER_FILL, corner_radius=2.5,
        )
        base[_text_id(name)] = OverlayDescriptor(
            id=_text_id(name), kind="text", x=tx, y=53, opacity=op,
            text=label, fill=LABEL_FILL, font_size=20,
        )
    for name, x, y, w, h, tx, ty, label in _PANELS:
        base[_rect_id(name)] = OverlayDescriptor(
            id=_rect_id(name), kind="rect", x=x, y=y, width=w, height=h,
            opacity=0, fill=PANEL_FILL, corner_radius=10, stroke="#BBB",
        )
        base[_text_id(name)] = OverlayDescriptor(
            id=_text_id(name), kind="text", x=tx, y=ty, opacity=0,
            text=label, fill=LABEL_FILL, font_size=16,
        )
    return base


# ---------- Chain views ----------

Overrides = Dict[str, Dict[str, float]]


def _panel(opacity: float, name: str, y=None, height=None, text_y=None) -> Overrides:
    rect, text = {"opacity": opacity}, {"opacity": opacity}
    if y is not None:
        rect["y"] = y
    if height is not None:
        rect["height"] = height
    if text_y is not None:
        text["y"] = text_y
    return {_rect_id(name): rect, _text_id(name): text}


def _show(name, y=None, height=None, text_y=None) -> Overrides:
    return _panel(1, name, y, height, text_y)


def _hide(name, y=None, height=None, text_y=None) -> Overrides:
    return _panel(0, name, y, height, text_y)


def _merge(*parts: Overrides) -> Overrides:
    out: Overrides = {}
    for part in parts:
        for overlay_id, fields in part.items():
            out.setdefault(overlay_id, {}).update(fields)
    return out


# shared by every scope except system
_CHAIN_VIEW = _merge(
    _show("finaal_go"),
    _show("finaal_mobiliteit"),
    _show("finaal_industrie"),
    _show("finaal_landbouw"),
    _show("finaal_overige"),
    _show("productie"),
    {
        _rect_id("keteninvoer"): {"x": 290, "opacity": 1},
        _rect_id("ketenuitvoer"): {"width": 230, "opacity": 1},
        _text_id("keteninvoer"): {"x": 290, "opacity": 1},
        _text_id("ketenuitvoer"): {"opacity": 1},
        _text_id("conversie"): {"x": 600},
        _text_id("finaal"): {"x": 1350},
        _rect_id("bronnen"): {"x": 15, "width": 240},
        _rect_id("conversie"): {"x": 595, "width": 285},
        _rect_id("finaal"): {"x": 1350, "width": 230},
    },
)

_SCOPE_OVERRIDES: Dict[Scope, Overrides] = {
    Scope.SYSTEM: {},
    Scope.ELECTRICITY: _merge(
        _show("waterstofketen_in", y=275, height=120, text_y=313),
        _show("koolstofketen_uit", y=100, height=250, text_y=138),
        _show("warmteketen_in", y=100, height=140, text_y=138),
        _show("waterstofketen_uit", y=742, height=110, text_y=780),
        _show("warmteketen_uit", y=875, height=120, text_y=913),
        _show("vlak_conversie", y=200, height=445, text_y=238),
        _show("koolstofketen_in", y=600, height=180, text_y=638),
        _hide("elektriciteitsketen_uit"),
        _hide("elektriciteitsketen_in"),
        _hide("warmteproductie_bij_finaal_verbruik_uit"),
    ),
    Scope.HYDROGEN: _merge(
        _show("elektriciteitsketen_uit", y=330, height=190, text_y=365),
        _show("koolstofketen_uit", height=170),
        _show("elektriciteitsketen_in"),
        _show("vlak_conversie", y=300, height=450, text_y=338),
        _show("koolstofketen_in", y=245, height=140, text_y=283),
        _show("warmteketen_in", y=750, height=140, text_y=788),
        _hide("waterstofketen_in"),
        _hide("waterstofketen_uit"),
        _hide("warmteketen_uit"),
        _hide("warmteproductie_bij_finaal_verbruik_uit"),
    ),
    Scope.HEAT: _merge(
        _show("elektriciteitsketen_uit", y=435, height=150, text_y=465),
        _show("waterstofketen_uit", y=302, height=110, text_y=340),
        _show("koolstofketen_uit", y=100, height=180, text_y=138),
        _show("warmteproductie_bij_finaal_verbruik_uit"),
        _show("koolstofketen_in", y=95, height=130, text_y=133),
        _show("vlak_conversie", y=350, height=275, text_y=388),
        _hide("warmteketen_in"),
        _hide("elektriciteitsketen_in"),
        _hide("warmteketen_uit"),
        _hide("waterstofketen_in", y=95, height=120, text_y=133),
    ),
    Scope.CARBON: _merge(
        _show("elektriciteitsketen_uit", y=97, height=110, text_y=135),
        _show("elektriciteitsketen_in"),
        _show("waterstofketen_in", y=250, height=110, text_y=288),
        _show("warmteketen_in", y=375, height=120, text_y=413),
        _show("waterstofketen_uit", y=357, height=110, text_y=395),
        _show("warmteketen_uit", y=227, text_y=259),
        _show("vlak_conversie", y=550, height=505, text_y=588),
        _hide("koolstofketen_in"),
        _hide("koolstofketen_uit"),
        _hide("warmteproductie_bij_finaal_verbruik_uit"),
    ),
}


def _build_scene_geometry() -> Dict[Scope, Tuple[OverlayDescriptor, ...]]:
    base = _system_geometry()
    scene = {}
    for scope in SCOPES:
        if scope not in _SCOPE_OVERRIDES:
            raise KeyError(f"No overlay geometry for scope '{scope.value}'.")
        overrides = _SCOPE_OVERRIDES[scope] if scope is Scope.SYSTEM else _merge(_CHAIN_VIEW, _SCOPE_OVERRIDES[scope])
        unknown = set(overrides) - set(base)
        if unknown:
            raise KeyError(f"Overlay ids {sorted(unknown)} of scope '{scope.value}' are not in the system geometry.")
        scene[scope] = tuple(replace(d, **overrides.get(oid, {})) for oid, d in base.items())
    return scene


SCENE_GEOMETRY: Dict[Scope, Tuple[OverlayDescriptor, ...]] = _build_scene_geometry()


# ---------- Custom backdrop ----------

TITLE_PADDING = 10


def _title_anchor(rect: BackgroundRectangle):
    """(x, y, text-anchor) of a rectangle title for its titlePosition."""
    p, fs = TITLE_PADDING, rect.titleFontSize
    left, mid, right = rect.x + p, rect.x + rect.width / 2, rect.x + rect.width - p
    top, bottom = rect.y + p + fs, rect.y + rect.height - p
    positions = {
        "top-left": (left, top, "start"),
        "top-center": (mid, top, "middle"),
        "top-right": (right, top, "end"),
        "center": (mid, rect.y + rect.height / 2 + fs / 2, "middle"),
        "bottom-left": (left, bottom, "start"),
        "bottom-center": (mid, bottom, "middle"),
        "bottom-right": (right, bottom, "end"),
    }
    return positions.get(rect.titlePosition, positions["top-left"])


def rectangle_overlays(rectangles: Iterable[BackgroundRectangle]) -> Tuple[OverlayDescriptor, ...]:
    out = []
    for rect in rectangles:
        out.append(OverlayDescriptor(
            id=f"rect_{rect.id}", kind="rect", x=rect.x, y=rect.y,
            width=rect.width, height=rect.height, opacity=rect.fillOpacity / 100.0,
            fill=rect.fill, corner_radius=rect.cornerRadius,
            stroke=rect.stroke if rect.strokeWidth > 0 else None, stroke_width=rect.strokeWidth,
        ))
        if rect.title:
            tx, ty, anchor = _title_anchor(rect)
            out.append(OverlayDescriptor(
                id=f"title_{rect.id}", kind="text", x=tx, y=ty, text=rect.title,
                fill=rect.titleColor, font_size=rect.titleFontSize, anchor=anchor,
            ))
    return tuple(out)


# ---------- State machine ----------

class ScopeStateMachine:
    """Current scope; transitions only on explicit selection, no terminal state."""

    def __init__(self, initial=None):
        self.scope = Scope.parse(initial or Scope.SYSTEM)

    @classmethod
    def from_defaults(cls, defaults: Optional[dict]) -> "ScopeStateMachine":
        return cls((defaults or {}).get("energyflowsFilter") or Scope.SYSTEM)

    def transition(self, scope) -> bool:
        """Move to `scope`; returns False when re-entering the current scope (overlays unchanged)."""
        target = Scope.parse(scope)
        if target is self.scope:
            return False
        logger.info(f"[ScopeStateMachine] {self.scope.value} -> {target.value}")
        self.scope = target
        return True

    def overlays(self, settings: Optional[Settings] = None,
                 rectangles: Iterable[BackgroundRectangle] = ()) -> Tuple[OverlayDescriptor, ...]:
        if settings is not None and settings.diagramBackdrop == CUSTOM_BACKDROP:
            return rectangle_overlays(rectangles)
        return SCENE_GEOMETRY[self.scope]
