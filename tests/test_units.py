import pytest

from units import (
    CO2_UNIT,
    PJ_PER_TWH,
    display_unit_label,
    format_flow,
    to_base_unit,
    to_display_unit,
)


def test_known_conversions():
    assert to_display_unit(360, "energy", "TWh") == 100
    assert to_display_unit(360, "energy", "PJ") == 360


@pytest.mark.parametrize("unit", ["PJ", "TWh"])
@pytest.mark.parametrize("value", [0.0, 1.0, -7.25, 3.6, 123.456, 98765.4321, 1e6])
def test_round_trip_within_tolerance(value, unit):
    back = to_base_unit(to_display_unit(value, "energy", unit), "energy", unit)
    assert back == pytest.approx(value, abs=1e-9)


def test_co2_uses_display_scale_regardless_of_unit():
    assert to_display_unit(10, "co2flow", "TWh", co2_scale=1000) == 10000
    assert to_base_unit(10000, "co2flow", "PJ", co2_scale=1000) == 10
    assert display_unit_label("co2flow", "TWh") == CO2_UNIT


def test_unknown_unit_is_rejected():
    with pytest.raises(ValueError):
        to_display_unit(1, "energy", "GWh")


def test_format_flow_truncates_like_viewer():
    assert format_flow(3.6 * 10.9, "elektriciteit", "TWh") == "elektriciteit | 10 TWh"
    assert format_flow(20, "co2flow", "PJ", co2_scale=2) == "co2flow | 40 kton CO2"
    assert PJ_PER_TWH == 3.6
