"""Shared fixtures: synthetic observer, illuminants and reference conditions.

The observer is a smooth Gaussian stand-in for the CIE 1931 2° functions.
It is accurate enough for the normalisation and resampling tests, which
only depend on the integration rule and not on the tabulated CIE data.
"""

import numpy as np
import pytest

import iris_ciecam02
from iris_spectral import Illuminant, Observer, SpectralDistribution
from iris_viewing import resolve_viewing_conditions

# CIE 159 / colour-science worked example
REFERENCE_XYZ = np.array([19.01, 20.00, 21.78])
REFERENCE_WHITE = np.array([95.05, 100.00, 108.88])
REFERENCE_LA = 318.31
REFERENCE_YB = 20.0


def _gauss(wl: np.ndarray, mu: float, sigma: float) -> np.ndarray:
    return np.exp(-0.5 * ((wl - mu) / sigma) ** 2)


@pytest.fixture(scope="session")
def wavelengths() -> np.ndarray:
    return np.arange(380.0, 781.0, 5.0)


@pytest.fixture(scope="session")
def observer(wavelengths) -> Observer:
    xbar = 1.06 * _gauss(wavelengths, 600.0, 38.0) + 0.36 * _gauss(wavelengths, 445.0, 20.0)
    ybar = _gauss(wavelengths, 555.0, 45.0)
    zbar = 1.8 * _gauss(wavelengths, 450.0, 22.0)
    return Observer(
        name="gauss_2deg",
        start=380.0,
        end=780.0,
        step=5.0,
        cmfs=np.column_stack([xbar, ybar, zbar]),
    )


@pytest.fixture(scope="session")
def equal_energy(wavelengths) -> Illuminant:
    spd = SpectralDistribution(380.0, 780.0, 5.0, np.full(wavelengths.size, 100.0), name="E")
    return Illuminant("E", spd)


@pytest.fixture(scope="session")
def warm_illuminant(wavelengths) -> Illuminant:
    """Monotonically rising SPD, roughly incandescent in shape."""
    values = 20.0 + 180.0 * (wavelengths - 380.0) / 400.0
    return Illuminant("warm", SpectralDistribution(380.0, 780.0, 5.0, values, name="warm"))


@pytest.fixture(scope="session")
def reference_conditions():
    return resolve_viewing_conditions(REFERENCE_LA, REFERENCE_YB, "average")


@pytest.fixture
def restore_tolerance():
    tol = iris_ciecam02.get_achromatic_tolerance()
    yield
    iris_ciecam02.set_achromatic_tolerance(tol)
