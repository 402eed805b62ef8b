"""Test CAT02 chromatic adaptation.

Tests for iris_cat02:
    - D = 0 leaves the sharpened response untouched
    - D = 1 maps the white onto (Y_w, Y_w, Y_w)
    - Luminance is carried with the adapted response
    - Singular and non-positive whites are rejected
    - Vectorised adaptation agrees with the scalar path

Run:
    pytest tests/test_cat02.py -v
"""

import numpy as np
import pytest

from conftest import REFERENCE_WHITE, REFERENCE_XYZ
from iris_cat02 import M_CAT02, M_CAT02_INV, adapt, adapt_array, adaptation_gains
from iris_errors import InvalidDomainError, SingularWhitePointError
from iris_spectral import Tristimulus
from iris_viewing import resolve_viewing_conditions


@pytest.fixture(scope="module")
def no_adaptation():
    return resolve_viewing_conditions(318.31, 20.0, "average", d=0.0)


@pytest.fixture(scope="module")
def full_adaptation():
    return resolve_viewing_conditions(318.31, 20.0, "average", d=1.0)


def test_zero_adaptation_is_identity(no_adaptation):
    gains = adaptation_gains(REFERENCE_WHITE, no_adaptation)
    assert np.array_equal(gains, np.ones(3))
    rgb = adapt(REFERENCE_XYZ, REFERENCE_WHITE, no_adaptation).as_array()
    np.testing.assert_allclose(rgb, M_CAT02 @ REFERENCE_XYZ, rtol=1e-14)


def test_full_adaptation_equalises_white(full_adaptation):
    rgb = adapt(REFERENCE_WHITE, REFERENCE_WHITE, full_adaptation).as_array()
    np.testing.assert_allclose(rgb, [100.0, 100.0, 100.0], rtol=1e-12)


def test_luminance_is_carried(reference_conditions):
    response = adapt(Tristimulus(19.01, 20.0, 21.78), REFERENCE_WHITE, reference_conditions)
    assert response.y == 20.0


def test_gains_are_cached_and_read_only(reference_conditions):
    g1 = adaptation_gains(REFERENCE_WHITE, reference_conditions)
    g2 = adaptation_gains(Tristimulus(95.05, 100.0, 108.88), reference_conditions)
    assert g1 is g2
    with pytest.raises(ValueError):
        g1[0] = 1.0


def test_singular_white(reference_conditions):
    white = M_CAT02_INV @ np.array([0.0, 50.0, 50.0])
    with pytest.raises(SingularWhitePointError):
        adapt(REFERENCE_XYZ, white, reference_conditions)


def test_non_positive_white_luminance(reference_conditions):
    with pytest.raises(SingularWhitePointError):
        adapt(REFERENCE_XYZ, [95.05, 0.0, 108.88], reference_conditions)


def test_malformed_stimulus(reference_conditions):
    with pytest.raises(InvalidDomainError):
        adapt([1.0, 2.0], REFERENCE_WHITE, reference_conditions)
    with pytest.raises(InvalidDomainError):
        adapt([1.0, np.nan, 2.0], REFERENCE_WHITE, reference_conditions)


def test_array_matches_scalar(reference_conditions):
    xyz = np.array([REFERENCE_XYZ, REFERENCE_WHITE, [40.0, 30.0, 10.0]])
    batch = adapt_array(xyz, REFERENCE_WHITE, reference_conditions)
    assert batch.shape == (3, 3)
    for row, stimulus in zip(batch, xyz):
        expected = adapt(stimulus, REFERENCE_WHITE, reference_conditions).as_array()
        np.testing.assert_allclose(row, expected, rtol=1e-12)
