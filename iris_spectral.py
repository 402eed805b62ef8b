# -*- coding: utf-8 -*-
"""
Iris: Weaving the mathematics of colour appearance
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Spectral Integrator
===================
Value types for equidistantly sampled spectra, standard observers and
illuminants, and the integration that turns them into tristimulus values.

Normalisation Convention:
    Relative tristimulus values use the CIE Y-normalisation

        k = 100 / Σ(E(λ) · ȳ(λ) · Δλ)

    so that the perfect reflecting diffuser under illuminant E maps to
    Y = 100.  Without an illuminant the spectrum is taken as a stimulus in
    its own right and E(λ) = 1, i.e. the normalisation constant is the
    observer's own Σ ȳ(λ) Δλ over the integration domain, and an
    equal-energy spectrum of unit power maps to Y = 100.

    ``absolute=True`` skips the normalisation and scales by the maximum
    luminous efficacy K_m of the observer instead (Y in cd/m² for a
    radiance in W/(sr·m²·nm)).

Blackbody sources are computed from Planck's law (:func:`planckian`).  All
other sampled data (CIE tables, measured reflectances) is supplied
by the caller; nothing here reads files.
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from typing import Callable, Dict, Final, Optional, Sequence, TypeAlias, Union

import numpy as np
from scipy.interpolate import Akima1DInterpolator, CubicSpline, PchipInterpolator

from iris_errors import InvalidDomainError

__all__ = [
    "ArrayFloat",
    "K_M_PHOTOPIC",
    "SpectralDistribution",
    "Observer",
    "Illuminant",
    "Tristimulus",
    "common_domain",
    "integrate",
    "white_point",
    "C1",
    "C2",
    "C2_NBS_1931",
    "C2_IPTS_1948",
    "C2_ITS_1990",
    "SIGMA",
    "stefan_boltzmann",
    "planck",
    "planckian",
]

ArrayFloat: TypeAlias = np.typing.NDArray[np.floating]

# Maximum photopic luminous efficacy (lm/W), CIE 018:2019.
K_M_PHOTOPIC: Final[float] = 683.002

# Relative tolerance used when comparing wavelength grids.
_GRID_RTOL: Final[float] = 1e-9

# Warn when the integration domain captures less than this share of ȳ.
_MIN_LUMINANCE_COVERAGE: Final[float] = 0.99


def _readonly(values: Union[ArrayFloat, Sequence[float]], label: str) -> ArrayFloat:
    """Copy *values* into a read-only contiguous float64 array."""
    arr = np.array(values, dtype=np.float64, copy=True)
    if not np.all(np.isfinite(arr)):
        raise InvalidDomainError(f"{label}: all values must be finite.")
    arr.setflags(write=False)
    return arr


def _sample_count(start: float, end: float, step: float, label: str) -> int:
    """Number of samples on [start, end] at *step*; validates the domain."""
    for name, v in (("start", start), ("end", end), ("step", step)):
        if not math.isfinite(v):
            raise InvalidDomainError(f"{label}: {name} must be finite, got {v}")
    if step <= 0.0:
        raise InvalidDomainError(f"{label}: step must be > 0, got {step}")
    if end < start:
        raise InvalidDomainError(
            f"{label}: empty domain, end ({end}) < start ({start})"
        )
    span = (end - start) / step
    n = int(round(span))
    if abs(span - n) > 1e-6 * max(1.0, span):
        raise InvalidDomainError(
            f"{label}: domain [{start}, {end}] is not a whole number of "
            f"steps of {step}"
        )
    return n + 1


# =============================================================================
# 1. RESAMPLING
# =============================================================================

_INTERPOLATORS: Final[Dict[str, Callable[[ArrayFloat, ArrayFloat, ArrayFloat], ArrayFloat]]] = {
    "linear": lambda w, v, t: np.interp(t, w, v),
    "cubicspline": lambda w, v, t: CubicSpline(w, v, extrapolate=False)(t),
    "pchip": lambda w, v, t: PchipInterpolator(w, v, extrapolate=False)(t),
    "akima": lambda w, v, t: Akima1DInterpolator(w, v)(t),
}


def _resample(
    wavelengths: ArrayFloat,
    values: ArrayFloat,
    target: ArrayFloat,
    interpolation: str,
) -> ArrayFloat:
    """
    Interpolate tabulated *values* onto *target* (inside the source domain).

    Spline methods need at least 3 knots; shorter tables fall back to
    linear interpolation.
    """
    method = _INTERPOLATORS.get(interpolation)
    if method is None:
        raise ValueError(
            f"Unknown interpolation type '{interpolation}'. "
            f"Choose from: {list(_INTERPOLATORS.keys())}"
        )
    if wavelengths.size == 1:
        return np.broadcast_to(values[0], target.shape + values.shape[1:]).astype(np.float64)
    if wavelengths.size < 3:
        method = _INTERPOLATORS["linear"]

    # Clip guards against round-off placing the grid a hair outside the knots.
    t = np.clip(target, wavelengths[0], wavelengths[-1])
    if values.ndim == 1:
        return np.asarray(method(wavelengths, values, t), dtype=np.float64)
    return np.column_stack(
        [method(wavelengths, values[:, i], t) for i in range(values.shape[1])]
    )


# =============================================================================
# 2. VALUE TYPES
# =============================================================================

@dataclass(slots=True, frozen=True, eq=False)
class SpectralDistribution:
    """
    Equidistant spectral samples over ``[start, end]`` (nm).

    ``values`` holds one reflectance, transmittance or power value per
    sample and is stored as a read-only float64 array.
    """
    start: float
    end: float
    step: float
    values: ArrayFloat
    name: str = ""

    def __post_init__(self) -> None:
        label = f"SpectralDistribution({self.name!r})"
        n = _sample_count(self.start, self.end, self.step, label)
        values = _readonly(self.values, label)
        if values.ndim != 1 or values.shape[0] != n:
            raise InvalidDomainError(
                f"{label}: expected {n} samples for [{self.start}, {self.end}] "
                f"step {self.step}, got shape {values.shape}"
            )
        object.__setattr__(self, "values", values)

    @classmethod
    def from_samples(
        cls,
        wavelengths: Union[ArrayFloat, Sequence[float]],
        values: Union[ArrayFloat, Sequence[float]],
        name: str = "",
    ) -> SpectralDistribution:
        """Build from an explicit, equidistant wavelength column."""
        wl = np.asarray(wavelengths, dtype=np.float64)
        if wl.ndim != 1 or wl.size == 0:
            raise InvalidDomainError("from_samples: wavelength column must be 1D and non-empty.")
        if wl.size == 1:
            return cls(float(wl[0]), float(wl[0]), 1.0, values, name)
        steps = np.diff(wl)
        if not np.all(steps > 0):
            raise InvalidDomainError(
                "from_samples: wavelength array must be strictly monotonically increasing."
            )
        if not np.allclose(steps, steps[0], rtol=1e-6):
            raise InvalidDomainError("from_samples: wavelength spacing must be uniform.")
        return cls(float(wl[0]), float(wl[-1]), float(steps[0]), values, name)

    @property
    def wavelengths(self) -> ArrayFloat:
        return self.start + self.step * np.arange(self.values.shape[0], dtype=np.float64)

    def sample(self, wavelengths: ArrayFloat, interpolation: str = "linear") -> ArrayFloat:
        """Values at *wavelengths*, which must lie inside the domain."""
        return _resample(self.wavelengths, self.values, wavelengths, interpolation)

    def __len__(self) -> int:
        return self.values.shape[0]

    def __repr__(self) -> str:
        return (
            f"SpectralDistribution(name={self.name!r}, "
            f"range=[{self.start:.2f}, {self.end:.2f}], step={self.step:g}, "
            f"points={self.values.shape[0]})"
        )


@dataclass(slots=True, frozen=True, eq=False)
class Observer:
    """
    Standard observer: x̄, ȳ, z̄ colour-matching functions on one domain.

    ``cmfs`` has shape (N_waves, 3).  ``name`` identifies the observer
    (e.g. ``"CIE1931_2"``); tristimulus values from different observers
    must not be mixed.
    """
    name: str
    start: float
    end: float
    step: float
    cmfs: ArrayFloat
    k_m: float = K_M_PHOTOPIC

    def __post_init__(self) -> None:
        label = f"Observer({self.name!r})"
        if not self.name:
            raise InvalidDomainError("Observer: a non-empty name is required.")
        n = _sample_count(self.start, self.end, self.step, label)
        cmfs = _readonly(self.cmfs, label)
        if cmfs.ndim != 2 or cmfs.shape != (n, 3):
            raise InvalidDomainError(
                f"{label}: CMFs must be shape ({n}, 3), got {cmfs.shape}."
            )
        if not np.sum(cmfs[:, 1]) > 0.0:
            raise InvalidDomainError(f"{label}: ȳ must have positive area.")
        object.__setattr__(self, "cmfs", cmfs)

    @property
    def wavelengths(self) -> ArrayFloat:
        return self.start + self.step * np.arange(self.cmfs.shape[0], dtype=np.float64)

    @property
    def normalization(self) -> float:
        """Σ ȳ(λ) Δλ over the observer's own domain."""
        return float(np.sum(self.cmfs[:, 1]) * self.step)

    def sample(self, wavelengths: ArrayFloat, interpolation: str = "linear") -> ArrayFloat:
        """CMFs at *wavelengths*, shape (N, 3)."""
        return _resample(self.wavelengths, self.cmfs, wavelengths, interpolation)


@dataclass(slots=True, frozen=True, eq=False)
class Illuminant:
    """A named spectral power distribution used as the reference light."""
    name: str
    spd: SpectralDistribution

    def __post_init__(self) -> None:
        if not self.name:
            raise InvalidDomainError("Illuminant: a non-empty name is required.")
        if np.any(self.spd.values < 0.0):
            raise InvalidDomainError(f"Illuminant({self.name!r}): negative spectral power.")


@dataclass(slots=True, frozen=True)
class Tristimulus:
    """CIE XYZ tristimulus values; ``Y`` is the luminance channel."""
    x: float
    y: float
    z: float

    def __post_init__(self) -> None:
        for label in ("x", "y", "z"):
            v = float(getattr(self, label))
            if not math.isfinite(v):
                raise InvalidDomainError(f"Tristimulus: {label.upper()} must be finite, got {v}")
            object.__setattr__(self, label, v)

    @classmethod
    def from_array(cls, xyz: Union[ArrayFloat, Sequence[float]]) -> Tristimulus:
        arr = np.asarray(xyz, dtype=np.float64).ravel()
        if arr.shape != (3,):
            raise ValueError(f"Expected 3 tristimulus values, got shape {arr.shape}")
        return cls(float(arr[0]), float(arr[1]), float(arr[2]))

    def as_array(self) -> ArrayFloat:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    def scaled(self, factor: float) -> Tristimulus:
        return Tristimulus(self.x * factor, self.y * factor, self.z * factor)

    def normalized(self, luminance: float = 100.0) -> Tristimulus:
        """Rescale so that ``Y == luminance`` (white-point convention)."""
        if not self.y > 0.0:
            raise InvalidDomainError(f"Cannot normalise tristimulus with Y={self.y}")
        return self.scaled(luminance / self.y)

    def __iter__(self):
        return iter((self.x, self.y, self.z))


# =============================================================================
# 3. INTEGRATION
# =============================================================================

def common_domain(*grids: tuple[float, float, float]) -> ArrayFloat:
    """
    Overlap of several ``(start, end, step)`` domains, sampled at the finest
    step.

    Raises:
        InvalidDomainError: If the domains share no wavelength.
    """
    lo = max(g[0] for g in grids)
    hi = min(g[1] for g in grids)
    step = min(g[2] for g in grids)
    if lo > hi + _GRID_RTOL * max(abs(hi), 1.0):
        raise InvalidDomainError(
            f"Spectral domains do not overlap: [{lo:.3f}, {hi:.3f}] is empty."
        )
    n = int(math.floor((hi - lo) / step + 1e-9)) + 1
    return lo + step * np.arange(n, dtype=np.float64)


def integrate(
    spectrum: SpectralDistribution,
    observer: Observer,
    illuminant: Optional[Illuminant] = None,
    *,
    absolute: bool = False,
    interpolation: str = "linear",
) -> Tristimulus:
    """
    Tristimulus values of *spectrum* for *observer*.

    Args:
        spectrum: Reflectance/transmittance (with *illuminant*) or spectral
            power (without).
        observer: Colour-matching functions.
        illuminant: Optional reference light; result is then relative to
            the perfect diffuser under it (Y = 100).
        absolute: Without an illuminant, return K_m-scaled absolute values
            instead of the relative Y = 100 scale.
        interpolation: Resampling method onto the common grid
            (``linear``, ``cubicspline``, ``pchip``, ``akima``).

    Returns:
        Tristimulus triple.

    Raises:
        InvalidDomainError: Non-overlapping domains, non-finite data, or a
            vanishing normalisation constant.
    """
    if absolute and illuminant is not None:
        raise ValueError("absolute=True is only meaningful without an illuminant.")

    grids = [
        (spectrum.start, spectrum.end, spectrum.step),
        (observer.start, observer.end, observer.step),
    ]
    if illuminant is not None:
        spd = illuminant.spd
        grids.append((spd.start, spd.end, spd.step))
    wl = common_domain(*grids)
    interval = float(min(g[2] for g in grids))

    cmfs = observer.sample(wl, interpolation)
    values = spectrum.sample(wl, interpolation)
    power = (
        illuminant.spd.sample(wl, interpolation)
        if illuminant is not None
        else np.ones_like(wl)
    )

    weights = cmfs * power[:, np.newaxis] * interval
    xyz = np.dot(values, weights)

    if absolute:
        xyz = xyz * observer.k_m
    else:
        denom = float(np.sum(weights[:, 1]))
        if not denom > 1e-12:
            raise InvalidDomainError(
                "Normalisation constant Σ E(λ)ȳ(λ)Δλ vanishes on the common domain."
            )
        xyz = xyz * (100.0 / denom)

    coverage = float(np.sum(cmfs[:, 1]) * interval) / observer.normalization
    if coverage < _MIN_LUMINANCE_COVERAGE:
        warnings.warn(
            f"integrate: domain [{wl[0]:.1f}, {wl[-1]:.1f}] covers only "
            f"{coverage:.1%} of the {observer.name} ȳ area.",
            stacklevel=2,
        )

    if not np.all(np.isfinite(xyz)):
        raise InvalidDomainError("integrate: non-finite tristimulus result.")
    return Tristimulus.from_array(xyz)


def white_point(observer: Observer, illuminant: Illuminant, interpolation: str = "linear") -> Tristimulus:
    """Tristimulus values of the perfect diffuser under *illuminant* (Y = 100)."""
    spd = illuminant.spd
    diffuser = SpectralDistribution(
        spd.start, spd.end, spd.step, np.ones(len(spd)), name="perfect diffuser"
    )
    return integrate(diffuser, observer, illuminant, interpolation=interpolation)


# =============================================================================
# 4. PLANCKIAN SOURCES
# =============================================================================

# SI defining constants (exact since 2019).
_H: Final[float] = 6.62607015e-34       # Planck constant (J s)
_C: Final[float] = 299792458.0          # speed of light (m/s)
_K_B: Final[float] = 1.380649e-23       # Boltzmann constant (J/K)

# First radiation constant for radiant exitance (W m²).
C1: Final[float] = 2.0 * math.pi * _H * _C * _C
# Second radiation constant (m K); exact value and the historical CIE scales.
C2: Final[float] = _H * _C / _K_B
C2_NBS_1931: Final[float] = 1.435e-2    # illuminant A
C2_IPTS_1948: Final[float] = 1.4380e-2  # D series
C2_ITS_1990: Final[float] = 1.4388e-2   # CIE 15:2004

SIGMA: Final[float] = 2.0 * math.pi ** 5 * _K_B ** 4 / (15.0 * _H ** 3 * _C ** 2)


def stefan_boltzmann(temperature: float) -> float:
    """Total radiant exitance σT⁴ (W/m²) of a blackbody."""
    return SIGMA * temperature ** 4


def planck(
    wavelengths: Union[ArrayFloat, Sequence[float]],
    temperature: float,
    c2: float = C2,
) -> ArrayFloat:
    """
    Planck's law: spectral radiant exitance of a blackbody.

    Args:
        wavelengths: Wavelengths in nm (> 0).
        temperature: Absolute temperature in K (> 0).
        c2: Second radiation constant; pass ``C2_NBS_1931`` or
            ``C2_ITS_1990`` to reproduce tabulated CIE sources.

    Returns:
        Spectral radiant exitance in W m⁻² nm⁻¹.
    """
    if not (math.isfinite(temperature) and temperature > 0.0):
        raise InvalidDomainError(f"Planckian temperature must be finite and > 0, got {temperature}")
    wl = np.asarray(wavelengths, dtype=np.float64) * 1e-9
    if not np.all(np.isfinite(wl)) or np.any(wl <= 0.0):
        raise InvalidDomainError("Planckian wavelengths must be finite and > 0.")
    # Very cold sources overflow expm1 towards inf, i.e. zero exitance.
    with np.errstate(over="ignore"):
        return 1e-9 * C1 / wl ** 5 / np.expm1(c2 / (wl * temperature))


def planckian(
    temperature: float,
    start: float = 380.0,
    end: float = 780.0,
    step: float = 5.0,
    c2: float = C2,
    exitance: Optional[float] = None,
) -> Illuminant:
    """
    Blackbody illuminant sampled on ``[start, end]`` at *step* nm.

    Args:
        temperature: Absolute temperature in K.
        start, end, step: Wavelength domain (nm).
        c2: Second radiation constant (see :func:`planck`).
        exitance: Optional total radiant exitance (W/m²); the spectrum is
            scaled by ``exitance / (σT⁴)``.  ``None`` keeps Planck's law
            unscaled.

    Returns:
        An :class:`Illuminant` named ``"Planckian <T>K"``.
    """
    n = _sample_count(start, end, step, "planckian")
    values = planck(start + step * np.arange(n), temperature, c2)
    if exitance is not None:
        if not (math.isfinite(exitance) and exitance >= 0.0):
            raise InvalidDomainError(f"Radiant exitance must be finite and >= 0, got {exitance}")
        values = values * (exitance / stefan_boltzmann(temperature))
    name = f"Planckian {temperature:g}K"
    return Illuminant(name, SpectralDistribution(start, end, step, values, name=name))
