# -*- coding: utf-8 -*-
"""
Created on Tue Oct 14 09:05:33 2025

@author: aless
"""

# - Presentation-time unit conversion. Stored link values stay in base units (PJ / CO2-native).
# - co2flow -> kton (times the CO2 display scale), energy -> PJ or TWh.

from model import CO2_CATEGORY

PJ_PER_TWH = 3.6
ENERGY_UNITS = ("PJ", "TWh")
CO2_UNIT = "kton CO2"


def _check_unit(unit: str):
    if unit not in ENERGY_UNITS:
        raise ValueError(f"Unknown energy unit '{unit}'. Expected one of {ENERGY_UNITS}.")


def to_display_unit(raw_value: float, carrier_category: str, unit: str = "PJ", co2_scale: float = 1.0) -> float:
    """Base value -> display value."""
    if carrier_category == CO2_CATEGORY:
        return raw_value * co2_scale
    _check_unit(unit)
    if unit == "TWh":
        return raw_value / PJ_PER_TWH
    return raw_value


def to_base_unit(display_value: float, carrier_category: str, unit: str = "PJ", co2_scale: float = 1.0) -> float:
    """Inverse of to_display_unit."""
    if carrier_category == CO2_CATEGORY:
        return display_value / co2_scale
    _check_unit(unit)
    if unit == "TWh":
        return display_value * PJ_PER_TWH
    return display_value


def display_unit_label(carrier_category: str, unit: str = "PJ") -> str:
    return CO2_UNIT if carrier_category == CO2_CATEGORY else unit


def format_flow(value: float, carrier_category: str, unit: str = "PJ", co2_scale: float = 1.0) -> str:
    """Hover label, e.g. 'electricity | 100 TWh' (truncated to an integer, as shown in the viewer)."""
    shown = int(to_display_unit(value, carrier_category, unit, co2_scale))
    return f"{carrier_category} | {shown} {display_unit_label(carrier_category, unit)}"
