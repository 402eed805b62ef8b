"""Test the colour difference formulas.

Tests for iris_metrics:
    - CIE76 metric axioms
    - CIE94 reference-chroma weighting (asymmetric) and textile factors
    - CIEDE2000 against Sharma et al. (2005) test pairs, textile k_L
    - CAM02-LCD/SCD/UCS distances, undefined hue borrowing
    - Variant / formula validation and input-kind checks
    - Difference matrices and match ranking
    - Parallel kernels only on the main thread for large inputs

Run:
    pytest tests/test_metrics.py -v
"""

import math
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from conftest import REFERENCE_WHITE, REFERENCE_XYZ
from iris_ciecam02 import PARALLEL_MIN_ROWS, appearance, parallel_allowed
from iris_colorspace import Lab
from iris_errors import InvalidDomainError, UnsupportedFormulaVariantError
from iris_metrics import Formula, difference, difference_matrix, rank_matches


# =============================================================================
# CIE76 / CIE94
# =============================================================================

def test_cie76_axioms():
    a, b, c = [50.0, 10.0, -5.0], [60.0, 0.0, 5.0], [40.0, 20.0, 20.0]
    assert difference(a, a, Formula.CIE76) == 0.0
    assert difference(a, b, "CIE76") == difference(b, a, "CIE76")
    assert difference(a, c, "cie76") <= difference(a, b, "CIE76") + difference(b, c, "CIE76")
    assert difference([50.0, 0.0, 0.0], [53.0, 4.0, 0.0], "CIE76") == pytest.approx(5.0)


def test_cie94_uses_reference_chroma():
    ref, test = [50.0, 60.0, 0.0], [55.0, 10.0, 0.0]
    forward = difference(ref, test, Formula.CIE94)
    backward = difference(test, ref, Formula.CIE94)
    assert forward == pytest.approx(math.sqrt(25.0 + (50.0 / 3.7) ** 2), rel=1e-9)
    assert backward == pytest.approx(math.sqrt(25.0 + (50.0 / 1.45) ** 2), rel=1e-9)


def test_cie94_textiles():
    ref, test = [50.0, 60.0, 0.0], [55.0, 10.0, 0.0]
    expected = math.sqrt((5.0 / 2.0) ** 2 + (50.0 / (1.0 + 0.048 * 60.0)) ** 2)
    assert difference(ref, test, Formula.CIE94, "textiles") == pytest.approx(expected, rel=1e-9)


def test_cie94_pure_hue_difference():
    # Equal chroma: the difference is carried by dH alone, weighted by S_H.
    ref, test = [50.0, 10.0, 0.0], [50.0, 0.0, 10.0]
    expected = math.hypot(10.0, 10.0) / (1.0 + 0.015 * 10.0)
    assert difference(ref, test, Formula.CIE94) == pytest.approx(expected, rel=1e-9)


# =============================================================================
# CIEDE2000
# =============================================================================

@pytest.mark.parametrize(
    "lab1, lab2, expected",
    [
        ((50.0, 2.6772, -79.7751), (50.0, 0.0, -82.7485), 2.0425),
        ((50.0, 3.1571, -77.2803), (50.0, 0.0, -82.7485), 2.8615),
        ((50.0, 0.0, 0.0), (50.0, -1.0, 2.0), 2.3669),
        ((50.0, 2.5, 0.0), (73.0, 25.0, -18.0), 27.1492),
        ((50.0, 2.5, 0.0), (50.0, 3.2592, 0.3350), 1.0),
        ((60.2574, -34.0099, 36.2677), (60.4626, -34.1751, 39.4387), 1.2644),
        ((2.0776, 0.0795, -1.1350), (0.9033, -0.0636, -0.5514), 0.9082),
    ],
)
def test_ciede2000_sharma(lab1, lab2, expected):
    assert difference(lab1, lab2) == pytest.approx(expected, abs=1e-4)
    assert difference(lab2, lab1) == pytest.approx(expected, abs=1e-4)


def test_ciede2000_swapped_pair_matches_where_cie94_does_not():
    ref, test = [50.0, 60.0, 0.0], [55.0, 10.0, 0.0]
    assert difference(ref, test, "CIE94") != pytest.approx(difference(test, ref, "CIE94"), rel=1e-3)
    forward = difference(ref, test, Formula.CIEDE2000)
    swapped = difference(test, ref, Formula.CIEDE2000)
    assert forward == pytest.approx(swapped, rel=1e-12)
    blue = ([40.0, 10.0, -60.0], [45.0, -5.0, -40.0])
    assert difference(*blue) == pytest.approx(difference(*blue[::-1]), rel=1e-12)


def test_ciede2000_textiles_halves_lightness():
    default = difference([50.0, 0.0, 0.0], [60.0, 0.0, 0.0], Formula.CIEDE2000)
    textiles = difference([50.0, 0.0, 0.0], [60.0, 0.0, 0.0], Formula.CIEDE2000, "textiles")
    assert textiles == pytest.approx(0.5 * default, rel=1e-12)


def test_lab_objects_are_accepted():
    single = difference(Lab(50.0, 2.6772, -79.7751), Lab(50.0, 0.0, -82.7485))
    assert isinstance(single, float)
    batch = difference([Lab(50.0, 0.0, 0.0), Lab(50.0, 2.5, 0.0)], Lab(50.0, -1.0, 2.0))
    assert batch.shape == (2,)
    assert batch[0] == pytest.approx(2.3669, abs=1e-4)


# =============================================================================
# CAM02 uniform spaces
# =============================================================================

def _cam02_distance(jmh1, jmh2, k_l, c1, c2):
    def ucs(j, m, h):
        mp = math.log1p(c2 * m) / c2
        return (
            (1.0 + 100.0 * c1) * j / (1.0 + c1 * j),
            mp * math.cos(math.radians(h)),
            mp * math.sin(math.radians(h)),
        )
    p, q = ucs(*jmh1), ucs(*jmh2)
    return math.sqrt(((p[0] - q[0]) / k_l) ** 2 + (p[1] - q[1]) ** 2 + (p[2] - q[2]) ** 2)


@pytest.mark.parametrize(
    "variant, k_l, c1, c2",
    [("LCD", 0.77, 0.007, 0.0053), ("SCD", 1.24, 0.007, 0.0363), ("UCS", 1.0, 0.007, 0.0228)],
)
def test_cam02_variants(variant, k_l, c1, c2):
    jmh1, jmh2 = (50.0, 20.0, 30.0), (55.0, 25.0, 40.0)
    expected = _cam02_distance(jmh1, jmh2, k_l, c1, c2)
    assert difference(jmh1, jmh2, Formula.CAM02_UCS, variant) == pytest.approx(expected, rel=1e-12)


def test_cam02_variants_differ():
    jmh1, jmh2 = (50.0, 20.0, 30.0), (55.0, 25.0, 40.0)
    values = {v: difference(jmh1, jmh2, "CAM02_UCS", v) for v in ("LCD", "SCD", "ucs")}
    assert len(set(values.values())) == 3


def test_cam02_undefined_hue_borrows_other_hue():
    d = difference([50.0, 0.0, np.nan], [50.0, 10.0, 120.0], Formula.CAM02_UCS)
    assert d == pytest.approx(math.log1p(0.228) / 0.0228, rel=1e-12)


def test_cam02_both_hues_undefined():
    d = difference([50.0, 0.0, np.nan], [60.0, 0.0, np.nan], Formula.CAM02_UCS)
    jp = lambda j: 1.7 * j / (1.0 + 0.007 * j)  # noqa: E731
    assert d == pytest.approx(jp(60.0) - jp(50.0), rel=1e-12)


def test_cam02_with_correlates(reference_conditions):
    cam = appearance(REFERENCE_XYZ, REFERENCE_WHITE, reference_conditions)
    white = appearance(REFERENCE_WHITE, REFERENCE_WHITE, reference_conditions)
    d = difference(cam, white, Formula.CAM02_UCS)
    expected = difference([cam.J, cam.M, cam.h], [white.J, 0.0, np.nan], Formula.CAM02_UCS)
    assert d == pytest.approx(expected, rel=1e-12)
    assert difference(cam, cam, Formula.CAM02_UCS) == 0.0


# =============================================================================
# Validation
# =============================================================================

@pytest.mark.parametrize(
    "formula, variant",
    [("CMC", None), ("DIN99", None), (Formula.CIE94, "default"), (Formula.CIEDE2000, "graphic_arts"),
     (Formula.CAM02_UCS, "XYZ")],
)
def test_unknown_formula_or_variant(formula, variant):
    with pytest.raises(UnsupportedFormulaVariantError):
        difference([50.0, 0.0, 0.0], [50.0, 1.0, 0.0], formula, variant)


def test_wrong_input_kind(reference_conditions):
    cam = appearance(REFERENCE_XYZ, REFERENCE_WHITE, reference_conditions)
    with pytest.raises(TypeError):
        difference(cam, cam, Formula.CIEDE2000)
    with pytest.raises(TypeError):
        difference(Lab(50.0, 0.0, 0.0), Lab(50.0, 1.0, 0.0), Formula.CAM02_UCS)


def test_shape_errors():
    with pytest.raises(ValueError):
        difference(np.zeros((2, 3)), np.zeros((3, 3)))
    with pytest.raises(ValueError):
        difference([1.0, 2.0], [1.0, 2.0])


@pytest.mark.parametrize("hue", [math.inf, -math.inf])
def test_cam02_infinite_hue_rejected(hue):
    with pytest.raises(InvalidDomainError, match="hue"):
        difference([50.0, 10.0, hue], [50.0, 10.0, 20.0], Formula.CAM02_UCS)


# =============================================================================
# Kernel selection
# =============================================================================

def test_large_inputs_match_serial_kernels():
    rng = np.random.default_rng(7)
    n = PARALLEL_MIN_ROWS + 10
    lab1 = np.column_stack([rng.uniform(0, 100, n), rng.uniform(-80, 80, n), rng.uniform(-80, 80, n)])
    lab2 = lab1 + rng.normal(0.0, 3.0, (n, 3))
    assert parallel_allowed(n)
    whole = difference(lab1, lab2)
    head = difference(lab1[:50], lab2[:50])
    np.testing.assert_allclose(whole[:50], head, rtol=1e-12)


def test_worker_threads_use_serial_kernels():
    n = PARALLEL_MIN_ROWS
    with ThreadPoolExecutor(max_workers=1) as pool:
        on_worker = pool.submit(parallel_allowed, n).result()
    assert not on_worker
    assert parallel_allowed(n)
    assert not parallel_allowed(n - 1)


# =============================================================================
# Batches, matrices, ranking
# =============================================================================

def test_broadcast_one_against_many():
    d = difference([50.0, 0.0, 0.0], [[50.0, 1.0, 0.0], [50.0, 2.0, 0.0]], Formula.CIE76)
    np.testing.assert_allclose(d, [1.0, 2.0])


def test_difference_matrix():
    refs = np.array([[50.0, 0.0, 0.0], [60.0, 10.0, -10.0]])
    tests = np.array([[50.0, 1.0, 0.0], [40.0, 0.0, 0.0], [60.0, 10.0, -10.0]])
    matrix = difference_matrix(refs, tests, Formula.CIE94)
    assert matrix.shape == (2, 3)
    for i, r in enumerate(refs):
        for j, t in enumerate(tests):
            assert matrix[i, j] == pytest.approx(difference(r, t, Formula.CIE94), rel=1e-12)
    assert matrix[1, 2] == 0.0


def test_rank_matches():
    refs = [[50.0, 0.0, 0.0]]
    candidates = [[60.0, 0.0, 0.0], [50.0, 1.0, 0.0], [50.0, 0.0, 0.0], [50.0, -1.0, 0.0]]
    ranking = rank_matches(refs, candidates, Formula.CIE76)
    assert ranking == [[(2, 0.0), (1, 1.0), (3, 1.0), (0, 10.0)]]
    assert rank_matches(refs, candidates, Formula.CIE76, top=2) == [[(2, 0.0), (1, 1.0)]]
    with pytest.raises(ValueError):
        rank_matches(refs, candidates, top=0)
