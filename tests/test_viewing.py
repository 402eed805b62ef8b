"""Test the viewing-condition resolver.

Tests for iris_viewing:
    - Surround table (CIE 159 Table 1), case-insensitive lookup
    - Derived D and F_L for the office reference conditions
    - Explicit D, validation errors
    - Presets and surround-ratio classification

Run:
    pytest tests/test_viewing.py -v
"""

import math

import pytest

from iris_errors import InvalidViewingConditionsError
from iris_viewing import (
    VC_AVERAGE,
    VC_DARK,
    VC_DIM,
    VC_TM30,
    degree_of_adaptation,
    luminance_adaptation_factor,
    resolve_viewing_conditions,
    surround_from_ratio,
    surround_parameters,
)


@pytest.mark.parametrize(
    "name, f, c, nc",
    [
        ("average", 1.0, 0.69, 1.0),
        ("dim", 0.9, 0.59, 0.9),
        ("dark", 0.8, 0.525, 0.8),
    ],
)
def test_surround_table(name, f, c, nc):
    params = surround_parameters(name)
    assert (params.f, params.c, params.nc) == (f, c, nc)
    assert surround_parameters(name.upper()) == params


def test_unknown_surround():
    with pytest.raises(InvalidViewingConditionsError, match="surround"):
        resolve_viewing_conditions(318.31, 20.0, "twilight")


def test_reference_conditions(reference_conditions):
    vc = reference_conditions
    assert vc.surround == "average"
    assert vc.d == pytest.approx(0.99447, abs=1e-5)
    assert vc.fl == pytest.approx(1.16754446, rel=1e-6)
    assert vc.fl_quarter == pytest.approx(vc.fl ** 0.25)
    assert not vc.d_explicit


def test_formulas_match_closed_form():
    la = 60.0
    d = 0.9 * (1.0 - (1.0 / 3.6) * math.exp((-la - 42.0) / 92.0))
    assert degree_of_adaptation(0.9, la) == pytest.approx(d)
    k = 1.0 / (5.0 * la + 1.0)
    fl = 0.2 * k**4 * 5.0 * la + 0.1 * (1.0 - k**4) ** 2 * (5.0 * la) ** (1.0 / 3.0)
    assert luminance_adaptation_factor(la) == pytest.approx(fl)


@pytest.mark.parametrize("f", [1.0, 0.9, 0.8])
def test_derived_degree_of_adaptation_stays_in_range(f, recwarn):
    for la in (1e-6, 0.1, 4.0, 64.0, 318.31, 1e4, 1e9):
        d = degree_of_adaptation(f, la)
        assert f * (1.0 - math.exp(-42.0 / 92.0) / 3.6) <= d <= f
    assert len(recwarn) == 0


def test_surround_independent_of_la_and_yb():
    vc = resolve_viewing_conditions(64.0, 20.0, "average")
    assert (vc.f, vc.c, vc.nc) == (1.0, 0.69, 1.0)
    other = resolve_viewing_conditions(2000.0, 5.0, "average")
    assert (other.f, other.c, other.nc) == (vc.f, vc.c, vc.nc)
    assert other.d != vc.d and other.fl != vc.fl


def test_resolution_is_deterministic():
    assert resolve_viewing_conditions(64.0, 20.0, "dim") == resolve_viewing_conditions(64.0, 20.0, "dim")


def test_explicit_degree_of_adaptation():
    vc = resolve_viewing_conditions(318.31, 20.0, "dark", d=0.0)
    assert vc.d == 0.0
    assert vc.d_explicit
    assert vc.f == 0.8


@pytest.mark.parametrize(
    "la, yb, d",
    [
        (0.0, 20.0, None),
        (-1.0, 20.0, None),
        (float("nan"), 20.0, None),
        (318.31, -1.0, None),
        (318.31, float("inf"), None),
        (318.31, 20.0, 1.5),
        (318.31, 20.0, -0.1),
    ],
)
def test_invalid_conditions(la, yb, d):
    with pytest.raises(InvalidViewingConditionsError):
        resolve_viewing_conditions(la, yb, "average", d=d)


def test_zero_background_is_accepted_at_resolution():
    assert resolve_viewing_conditions(318.31, 0.0).yb == 0.0


def test_presets():
    assert [vc.surround for vc in (VC_AVERAGE, VC_DIM, VC_DARK)] == ["average", "dim", "dark"]
    assert VC_AVERAGE.la == pytest.approx(318.31)
    assert VC_TM30.d == 1.0
    assert VC_TM30.la == 100.0
    assert VC_TM30.yb == 20.0


@pytest.mark.parametrize(
    "ratio, expected",
    [(0.5, "average"), (0.15, "average"), (0.1, "dim"), (1e-6, "dim"), (0.0, "dark")],
)
def test_surround_from_ratio(ratio, expected):
    assert surround_from_ratio(ratio) == expected


def test_surround_from_negative_ratio():
    with pytest.raises(InvalidViewingConditionsError):
        surround_from_ratio(-0.1)
