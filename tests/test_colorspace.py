"""Test CIELAB / CIELCh and the CAM02 uniform colour spaces.

Tests for iris_colorspace:
    - Lab of the white point, inversion across the linear segment
    - LCh conversions and the Lab value type
    - CAM02-LCD/SCD/UCS coordinates, undefined hue on the neutral axis
    - XYZ <-> CAM02-UCS through the appearance model

Run:
    pytest tests/test_colorspace.py -v
"""

import math

import numpy as np
import pytest

from conftest import REFERENCE_WHITE, REFERENCE_XYZ
from iris_ciecam02 import appearance
from iris_colorspace import (
    UCS_VARIANTS,
    Lab,
    correlates_to_ucs,
    jmh_to_ucs,
    lab_to_lch,
    lab_to_xyz,
    lch_to_lab,
    ucs_coefficients,
    ucs_to_jmh,
    ucs_to_xyz,
    xyz_to_lab,
    xyz_to_ucs,
)
from iris_errors import InvalidDomainError, UnsupportedFormulaVariantError

XYZ_SAMPLES = np.array([
    REFERENCE_XYZ,
    [41.24, 21.26, 1.93],
    [35.76, 71.52, 11.92],
    [18.05, 7.22, 95.05],
    [0.10, 0.20, 0.30],     # below the cube-root threshold
])


def test_white_maps_to_l100():
    lab = xyz_to_lab(REFERENCE_WHITE, REFERENCE_WHITE)
    np.testing.assert_allclose(lab, [100.0, 0.0, 0.0], atol=1e-9)


def test_lab_round_trip():
    lab = xyz_to_lab(XYZ_SAMPLES, REFERENCE_WHITE)
    assert lab.shape == XYZ_SAMPLES.shape
    np.testing.assert_allclose(lab_to_xyz(lab, REFERENCE_WHITE), XYZ_SAMPLES, rtol=1e-9, atol=1e-12)


def test_lab_linear_segment():
    # Y/Yw below epsilon: L = kappa * Y/Yw
    lab = xyz_to_lab([0.0, 0.5, 0.0], REFERENCE_WHITE)
    assert lab[0] == pytest.approx(903.2963 * 0.005, rel=1e-6)


def test_lab_rejects_bad_white_and_shape():
    with pytest.raises(InvalidDomainError):
        xyz_to_lab(REFERENCE_XYZ, [95.05, 0.0, 108.88])
    with pytest.raises(ValueError):
        xyz_to_lab(np.ones((2, 4)), REFERENCE_WHITE)


def test_lch():
    lch = lab_to_lch([50.0, 0.0, 10.0])
    np.testing.assert_allclose(lch, [50.0, 10.0, 90.0], atol=1e-9)
    lab = np.array([[50.0, 20.0, -30.0], [70.0, -5.0, 5.0]])
    np.testing.assert_allclose(lch_to_lab(lab_to_lch(lab)), lab, atol=1e-9)
    assert np.all((lab_to_lch(lab)[:, 2] >= 0.0) & (lab_to_lch(lab)[:, 2] < 360.0))


def test_lab_value_type():
    lab = Lab(50.0, 3.0, -4.0)
    assert lab.chroma == 5.0
    assert lab.hue == pytest.approx(math.degrees(math.atan2(-4.0, 3.0)) + 360.0)
    assert Lab.from_array(lab.as_array()) == lab
    with pytest.raises(InvalidDomainError):
        Lab(float("nan"), 0.0, 0.0)


# =============================================================================
# CAM02 uniform colour spaces
# =============================================================================

def test_variant_lookup():
    assert ucs_coefficients("ucs") == UCS_VARIANTS["UCS"]
    assert ucs_coefficients("LCD").c2 == 0.0053
    with pytest.raises(UnsupportedFormulaVariantError):
        ucs_coefficients("XYZ")


@pytest.mark.parametrize("variant", sorted(UCS_VARIANTS))
def test_jmh_closed_form(variant):
    k = UCS_VARIANTS[variant]
    J, M, h = 50.0, 20.0, 30.0
    jp, ap, bp = jmh_to_ucs([J, M, h], variant)
    m_p = math.log(1.0 + k.c2 * M) / k.c2
    assert jp == pytest.approx((1.0 + 100.0 * k.c1) * J / (1.0 + k.c1 * J))
    assert ap == pytest.approx(m_p * math.cos(math.radians(h)))
    assert bp == pytest.approx(m_p * math.sin(math.radians(h)))


@pytest.mark.parametrize("variant", sorted(UCS_VARIANTS))
def test_jmh_inverse(variant):
    jmh = np.array([[50.0, 20.0, 30.0], [10.0, 1.0, 300.0], [95.0, 60.0, 180.0]])
    np.testing.assert_allclose(ucs_to_jmh(jmh_to_ucs(jmh, variant), variant), jmh, rtol=1e-10)


def test_neutral_axis_has_undefined_hue():
    jab = jmh_to_ucs([50.0, 0.0, np.nan])
    assert jab[1] == 0.0 and jab[2] == 0.0
    assert np.isnan(ucs_to_jmh(jab)[2])


def test_correlates_to_ucs_matches_array_path(reference_conditions):
    cam = appearance(REFERENCE_XYZ, REFERENCE_WHITE, reference_conditions)
    np.testing.assert_allclose(
        correlates_to_ucs(cam),
        xyz_to_ucs(REFERENCE_XYZ, REFERENCE_WHITE, reference_conditions),
        rtol=1e-10,
        atol=1e-12,
    )


@pytest.mark.parametrize("variant", sorted(UCS_VARIANTS))
def test_xyz_ucs_round_trip(reference_conditions, variant):
    xyz = np.vstack([XYZ_SAMPLES[:4], REFERENCE_WHITE])
    jab = xyz_to_ucs(xyz, REFERENCE_WHITE, reference_conditions, variant)
    assert jab.shape == xyz.shape
    np.testing.assert_allclose(
        ucs_to_xyz(jab, REFERENCE_WHITE, reference_conditions, variant), xyz, rtol=1e-7, atol=1e-8
    )
