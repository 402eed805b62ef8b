# -*- coding: utf-8 -*-
"""
Iris: Weaving the mathematics of colour appearance
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Uniform Colour Spaces
=====================
CIELAB / CIELCh relative to an arbitrary white, and the CAM02 uniform
colour spaces (CAM02-LCD, CAM02-SCD, CAM02-UCS) built on the CIECAM02
correlates.

CIELAB uses the exact rational CIE constants (delta = 6/29) so that
``lab_to_xyz(xyz_to_lab(x))`` is stable to machine precision.

CAM02 uniform spaces (Luo, Cui & Li 2006):

    J' = (1 + 100 c1) J / (1 + c1 J)
    M' = ln(1 + c2 M) / c2
    a' = M' cos h,   b' = M' sin h

with (K_L, c1, c2) = LCD (0.77, 0.007, 0.0053), SCD (1.24, 0.007, 0.0363)
and UCS (1.0, 0.007, 0.0228).  K_L only enters the difference formula.
"""

from __future__ import annotations

import functools
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Final, Sequence, TypeAlias, Union

import numpy as np
from numba import njit

from iris_cat02 import XYZLike, as_xyz
from iris_ciecam02 import HUE_UNDEFINED, AppearanceCorrelates, forward_xyz, inverse_jch
from iris_errors import InvalidDomainError, UnsupportedFormulaVariantError
from iris_viewing import ViewingConditions

__all__ = [
    "ArrayFloat",
    "LAB_EPSILON",
    "LAB_KAPPA",
    "DEG2RAD",
    "RAD2DEG",
    "handle_shapes",
    "Lab",
    "UcsCoefficients",
    "UCS_VARIANTS",
    "ucs_coefficients",
    "xyz_to_lab",
    "lab_to_xyz",
    "lab_to_lch",
    "lch_to_lab",
    "jmh_to_ucs",
    "ucs_to_jmh",
    "correlates_to_ucs",
    "xyz_to_ucs",
    "ucs_to_xyz",
]

ArrayFloat: TypeAlias = np.typing.NDArray[np.floating]

# --- Exact Rational Math Constants ---
# delta = 6/29 is the threshold where f(t) switches from cubic to linear.
_LAB_DELTA: Final[float] = 6.0 / 29.0
LAB_EPSILON: Final[float] = _LAB_DELTA * _LAB_DELTA * _LAB_DELTA  # ~0.008856
LAB_KAPPA: Final[float] = (116.0 * 29.0 * 29.0) / (3.0 * 6.0 * 6.0)  # ~903.296

DEG2RAD: Final[float] = np.pi / 180.0
RAD2DEG: Final[float] = 180.0 / np.pi


# =============================================================================
# 1. SHAPE HANDLING
# =============================================================================

def handle_shapes(func: Callable[..., ArrayFloat]) -> Callable[..., ArrayFloat]:
    """
    Decorator to normalise inputs to (N, 3) float64 and restore the shape.

    - If input is (3,), returns (3,)
    - If input is (N, 3), returns (N, 3)
    """
    @functools.wraps(func)
    def wrapper(arr: Any, *args: Any, **kwargs: Any) -> ArrayFloat:
        arr = np.asarray(arr, dtype=np.float64)
        arr_in = np.ascontiguousarray(np.atleast_2d(arr))

        if arr_in.shape[-1] != 3:
            raise ValueError(f"Expected last dimension size 3, got {arr_in.shape[-1]}")

        res = func(arr_in, *args, **kwargs)

        if arr.ndim == 1:
            return res[0]
        return res
    return wrapper


# =============================================================================
# 2. CIELAB KERNELS
# =============================================================================

@njit(cache=True, fastmath=True)
def _lab_f(t: ArrayFloat) -> ArrayFloat:
    """CIELAB f(t): cube root with a linear segment near zero."""
    out = np.empty_like(t)
    t_flat = t.ravel()
    out_flat = out.ravel()
    for i in range(t.size):
        v = t_flat[i]
        if v > LAB_EPSILON:
            out_flat[i] = v ** (1.0 / 3.0)
        else:
            out_flat[i] = (LAB_KAPPA * v + 16.0) / 116.0
    return out


@njit(cache=True, fastmath=True)
def _lab_f_inv(t: ArrayFloat) -> ArrayFloat:
    """Inverse of f(t); (116 t - 16) / kappa form keeps the threshold exact."""
    out = np.empty_like(t)
    t_flat = t.ravel()
    out_flat = out.ravel()
    for i in range(t.size):
        v = t_flat[i]
        if v > _LAB_DELTA:
            out_flat[i] = v ** 3.0
        else:
            out_flat[i] = (116.0 * v - 16.0) / LAB_KAPPA
    return out


@njit(cache=True, fastmath=True)
def _lab_to_lch_kernel(lab: ArrayFloat) -> ArrayFloat:
    n = lab.shape[0]
    lch = np.empty_like(lab)
    for i in range(n):
        L, a, b = lab[i, 0], lab[i, 1], lab[i, 2]
        h_deg = np.arctan2(b, a) * RAD2DEG
        if h_deg < 0:
            h_deg += 360.0
        lch[i, 0], lch[i, 1], lch[i, 2] = L, np.hypot(a, b), h_deg
    return lch


@njit(cache=True, fastmath=True)
def _lch_to_lab_kernel(lch: ArrayFloat) -> ArrayFloat:
    n = lch.shape[0]
    lab = np.empty_like(lch)
    for i in range(n):
        L, C, h_rad = lch[i, 0], lch[i, 1], lch[i, 2] * DEG2RAD
        lab[i, 0] = L
        lab[i, 1] = C * np.cos(h_rad)
        lab[i, 2] = C * np.sin(h_rad)
    return lab


# =============================================================================
# 3. CIELAB
# =============================================================================

@dataclass(slots=True, frozen=True)
class Lab:
    """CIELAB-like coordinates (lightness, red-green, yellow-blue)."""
    L: float
    a: float
    b: float

    def __post_init__(self) -> None:
        for name in ("L", "a", "b"):
            v = float(getattr(self, name))
            if not math.isfinite(v):
                raise InvalidDomainError(f"Lab.{name} must be finite, got {v}")
            object.__setattr__(self, name, v)

    @classmethod
    def from_array(cls, lab: Union[ArrayFloat, Sequence[float]]) -> Lab:
        arr = np.asarray(lab, dtype=np.float64).ravel()
        if arr.shape != (3,):
            raise ValueError(f"Expected 3 Lab values, got shape {arr.shape}")
        return cls(float(arr[0]), float(arr[1]), float(arr[2]))

    def as_array(self) -> ArrayFloat:
        return np.array([self.L, self.a, self.b], dtype=np.float64)

    @property
    def chroma(self) -> float:
        return math.hypot(self.a, self.b)

    @property
    def hue(self) -> float:
        """Hue angle in degrees, [0, 360)."""
        return math.degrees(math.atan2(self.b, self.a)) % 360.0


def _white_array(white: XYZLike) -> ArrayFloat:
    xyz_w = as_xyz(white, "white")
    if np.any(xyz_w <= 0.0):
        raise InvalidDomainError(f"White point components must be > 0, got {xyz_w}")
    return xyz_w


@handle_shapes
def xyz_to_lab(xyz_array: ArrayFloat, white: XYZLike) -> ArrayFloat:
    """
    Converts XYZ to CIELAB relative to *white*.

    Args:
        xyz_array: Input XYZ data, shape (N, 3) or (3,), same scale as *white*.
        white: Reference white tristimulus.

    Returns:
        Lab coordinates.
    """
    f_xyz = _lab_f(xyz_array / _white_array(white))
    out = np.empty_like(xyz_array)
    out[..., 0] = 116.0 * f_xyz[..., 1] - 16.0
    out[..., 1] = 500.0 * (f_xyz[..., 0] - f_xyz[..., 1])
    out[..., 2] = 200.0 * (f_xyz[..., 1] - f_xyz[..., 2])
    return out


@handle_shapes
def lab_to_xyz(lab_array: ArrayFloat, white: XYZLike) -> ArrayFloat:
    """Converts CIELAB to XYZ on the scale of *white*."""
    L, a, b = lab_array[..., 0], lab_array[..., 1], lab_array[..., 2]
    fy = (L + 16.0) / 116.0
    f = np.empty_like(lab_array)
    f[..., 0] = a / 500.0 + fy
    f[..., 1] = fy
    f[..., 2] = fy - b / 200.0
    return _lab_f_inv(f) * _white_array(white)


@handle_shapes
def lab_to_lch(lab_array: ArrayFloat) -> ArrayFloat:
    """CIELAB to CIELCh (lightness, chroma, hue in degrees)."""
    return _lab_to_lch_kernel(lab_array)


@handle_shapes
def lch_to_lab(lch_array: ArrayFloat) -> ArrayFloat:
    """CIELCh to CIELAB."""
    return _lch_to_lab_kernel(lch_array)


# =============================================================================
# 4. CAM02 UNIFORM COLOUR SPACES
# =============================================================================

@dataclass(slots=True, frozen=True)
class UcsCoefficients:
    """(K_L, c1, c2) of one CAM02 uniform colour space."""
    k_l: float
    c1: float
    c2: float


UCS_VARIANTS: Final[Dict[str, UcsCoefficients]] = {
    "LCD": UcsCoefficients(k_l=0.77, c1=0.007, c2=0.0053),
    "SCD": UcsCoefficients(k_l=1.24, c1=0.007, c2=0.0363),
    "UCS": UcsCoefficients(k_l=1.00, c1=0.007, c2=0.0228),
}


def ucs_coefficients(variant: str = "UCS") -> UcsCoefficients:
    """
    Coefficients for a CAM02 variant name (case-insensitive).

    Raises:
        UnsupportedFormulaVariantError: For an unknown variant.
    """
    key = variant.upper() if isinstance(variant, str) else variant
    coeffs = UCS_VARIANTS.get(key)
    if coeffs is None:
        raise UnsupportedFormulaVariantError(
            f"Unknown CAM02 uniform space '{variant}'. Choose from: {list(UCS_VARIANTS)}"
        )
    return coeffs


@handle_shapes
def jmh_to_ucs(jmh_array: ArrayFloat, variant: str = "UCS") -> ArrayFloat:
    """
    (J, M, h) rows to (J', a', b').

    A NaN hue (undefined) with ``M == 0`` maps to ``a' = b' = 0``.
    """
    k = ucs_coefficients(variant)
    J, M, h = jmh_array[:, 0], jmh_array[:, 1], jmh_array[:, 2]
    out = np.empty_like(jmh_array)
    out[:, 0] = (1.0 + 100.0 * k.c1) * J / (1.0 + k.c1 * J)
    m_p = np.log1p(k.c2 * M) / k.c2
    h_rad = np.where(np.isnan(h) & (M == 0.0), 0.0, h) * DEG2RAD
    out[:, 1] = m_p * np.cos(h_rad)
    out[:, 2] = m_p * np.sin(h_rad)
    return out


@handle_shapes
def ucs_to_jmh(jab_array: ArrayFloat, variant: str = "UCS") -> ArrayFloat:
    """
    (J', a', b') rows to (J, M, h); ``M' == 0`` yields an undefined (NaN) hue.
    """
    k = ucs_coefficients(variant)
    jp, ap, bp = jab_array[:, 0], jab_array[:, 1], jab_array[:, 2]
    out = np.empty_like(jab_array)
    out[:, 0] = jp / ((1.0 + 100.0 * k.c1) - k.c1 * jp)
    m_p = np.hypot(ap, bp)
    out[:, 1] = np.expm1(k.c2 * m_p) / k.c2
    h = np.degrees(np.arctan2(bp, ap)) % 360.0
    out[:, 2] = np.where(m_p == 0.0, np.nan, h)
    return out


def correlates_to_ucs(correlates: AppearanceCorrelates, variant: str = "UCS") -> ArrayFloat:
    """(J', a', b') of one set of appearance correlates."""
    h = np.nan if correlates.h is HUE_UNDEFINED else float(correlates.h)
    return jmh_to_ucs(np.array([correlates.J, correlates.M, h]), variant)


def xyz_to_ucs(
    xyz: ArrayFloat,
    white: XYZLike,
    conditions: ViewingConditions,
    variant: str = "UCS",
) -> ArrayFloat:
    """Tristimulus (N, 3) or (3,) to CAM02 uniform coordinates."""
    cam = forward_xyz(xyz, white, conditions)
    cam2 = np.atleast_2d(cam)
    jab = jmh_to_ucs(np.column_stack([cam2[:, 0], cam2[:, 5], cam2[:, 7]]), variant)
    return jab[0] if cam.ndim == 1 else jab


def ucs_to_xyz(
    jab: ArrayFloat,
    white: XYZLike,
    conditions: ViewingConditions,
    variant: str = "UCS",
) -> ArrayFloat:
    """CAM02 uniform coordinates (N, 3) or (3,) back to tristimulus values."""
    arr = np.asarray(jab, dtype=np.float64)
    jmh = np.atleast_2d(ucs_to_jmh(arr, variant))
    jch = jmh.copy()
    jch[:, 1] = jmh[:, 1] / conditions.fl_quarter
    xyz = inverse_jch(jch, white, conditions)
    return xyz[0] if arr.ndim == 1 else xyz
