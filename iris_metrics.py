# -*- coding: utf-8 -*-
"""
Iris: Weaving the mathematics of colour appearance
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Colour Difference Engine
========================
Perceptual colour differences between a *reference* and a *test* colour.

Formulas:
    - CIE76:      Euclidean distance in CIELAB (symmetric metric).
    - CIE94:      CIE 116-1995, weights from the reference chroma (asymmetric).
    - CIEDE2000:  Sharma, Wu & Dalal (2005), with the R_T rotation term.
    - CAM02_UCS:  Euclidean distance in the CAM02 uniform spaces
                  (Luo, Cui & Li 2006), lightness scaled by K_L.

Lab formulas take :class:`~iris_colorspace.Lab` values or arrays of shape
(3,) / (N, 3).  CAM02_UCS takes :class:`~iris_ciecam02.AppearanceCorrelates`
or arrays of ``[J, M, h]`` rows (NaN hue = undefined).  Arrays broadcast
1-vs-N like the metric kernels they feed.

Undefined Hue (CAM02_UCS):
    An achromatic sample borrows the hue of the other sample so the pair
    contributes no hue difference; when both are achromatic hue 0 is used.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, Final, List, Optional, Sequence, Tuple, TypeAlias, Union

import numpy as np
from numba import float64, njit, prange

from iris_ciecam02 import HUE_UNDEFINED, AppearanceCorrelates, parallel_allowed
from iris_colorspace import DEG2RAD, Lab, ucs_coefficients
from iris_errors import InvalidDomainError, UnsupportedFormulaVariantError

__all__ = [
    "Formula",
    "FORMULA_VARIANTS",
    "DEFAULT_VARIANTS",
    "difference",
    "difference_matrix",
    "rank_matches",
]

ArrayFloat: TypeAlias = np.typing.NDArray[np.floating]
ColorInput = Union[Lab, AppearanceCorrelates, ArrayFloat, Sequence[Any]]

C25_7: Final[float] = 25.0 ** 7


class Formula(str, Enum):
    CIE76 = "CIE76"
    CIE94 = "CIE94"
    CIEDE2000 = "CIEDE2000"
    CAM02_UCS = "CAM02_UCS"


# Parametric factors per formula and variant.
FORMULA_VARIANTS: Final[Dict[Formula, Dict[str, Tuple[float, ...]]]] = {
    Formula.CIE76: {"default": ()},
    # (k_L, K1, K2)
    Formula.CIE94: {
        "graphic_arts": (1.0, 0.045, 0.015),
        "textiles": (2.0, 0.048, 0.014),
    },
    # (k_L, k_C, k_H)
    Formula.CIEDE2000: {
        "default": (1.0, 1.0, 1.0),
        "textiles": (2.0, 1.0, 1.0),
    },
    # (K_L, c1, c2)
    Formula.CAM02_UCS: {
        "LCD": (0.77, 0.007, 0.0053),
        "SCD": (1.24, 0.007, 0.0363),
        "UCS": (1.00, 0.007, 0.0228),
    },
}

DEFAULT_VARIANTS: Final[Dict[Formula, str]] = {
    Formula.CIE76: "default",
    Formula.CIE94: "graphic_arts",
    Formula.CIEDE2000: "default",
    Formula.CAM02_UCS: "UCS",
}


# =============================================================================
# 1. KERNELS
# =============================================================================

@njit(float64(float64, float64, float64, float64, float64, float64, float64, float64, float64),
      cache=True, fastmath=True, nogil=True)
def _delta_e_2000_single(L1: float, a1: float, b1: float, L2: float, a2: float, b2: float,
                         k_L: float, k_C: float, k_H: float) -> float:
    """Single-pair CIEDE2000 with parametric factors."""
    C1 = np.hypot(a1, b1)
    C2 = np.hypot(a2, b2)
    C_bar = (C1 + C2) * 0.5
    C_bar_7 = C_bar ** 7
    G = 0.5 * (1.0 - np.sqrt(C_bar_7 / (C_bar_7 + C25_7)))
    a1_p = (1.0 + G) * a1
    a2_p = (1.0 + G) * a2
    C1_p = np.hypot(a1_p, b1)
    C2_p = np.hypot(a2_p, b2)
    h1_p = np.degrees(np.arctan2(b1, a1_p)) % 360.0
    h2_p = np.degrees(np.arctan2(b2, a2_p)) % 360.0

    dL_p = L2 - L1
    dC_p = C2_p - C1_p
    dh_p = 0.0
    if C1_p * C2_p > 1e-12:
        diff = h2_p - h1_p
        if abs(diff) <= 180.0:
            dh_p = diff
        elif diff > 180.0:
            dh_p = diff - 360.0
        else:
            dh_p = diff + 360.0
    dH_p = 2.0 * np.sqrt(C1_p * C2_p) * np.sin((dh_p * DEG2RAD) * 0.5)

    L_bar_p = (L1 + L2) * 0.5
    C_bar_p = (C1_p + C2_p) * 0.5
    h_bar_p = h1_p + h2_p
    if C1_p * C2_p > 1e-12:
        if abs(h1_p - h2_p) <= 180.0:
            h_bar_p *= 0.5
        elif h_bar_p < 360.0:
            h_bar_p = (h_bar_p + 360.0) * 0.5
        else:
            h_bar_p = (h_bar_p - 360.0) * 0.5

    T = (1.0
         - 0.17 * np.cos((h_bar_p - 30.0) * DEG2RAD)
         + 0.24 * np.cos((2.0 * h_bar_p) * DEG2RAD)
         + 0.32 * np.cos((3.0 * h_bar_p + 6.0) * DEG2RAD)
         - 0.20 * np.cos((4.0 * h_bar_p - 63.0) * DEG2RAD))
    d_theta = 30.0 * np.exp(-((h_bar_p - 275.0) / 25.0) ** 2)
    C_bar_p_7 = C_bar_p ** 7
    RC = 2.0 * np.sqrt(C_bar_p_7 / (C_bar_p_7 + C25_7))
    RT = -np.sin((2.0 * d_theta) * DEG2RAD) * RC

    L_term = (L_bar_p - 50.0) ** 2
    SL = 1.0 + (0.015 * L_term) / np.sqrt(20.0 + L_term)
    SC = 1.0 + 0.045 * C_bar_p
    SH = 1.0 + 0.015 * C_bar_p * T

    tL = dL_p / (k_L * SL)
    tC = dC_p / (k_C * SC)
    tH = dH_p / (k_H * SH)
    return np.sqrt(max(tL * tL + tC * tC + tH * tH + RT * tC * tH, 0.0))


@njit(cache=True, fastmath=True, nogil=True)
def _delta_e_76_single(L1: float, a1: float, b1: float, L2: float, a2: float, b2: float) -> float:
    dL = L1 - L2
    da = a1 - a2
    db = b1 - b2
    return np.sqrt(dL * dL + da * da + db * db)


@njit(cache=True, fastmath=True, nogil=True)
def _delta_e_94_single(L1: float, a1: float, b1: float, L2: float, a2: float, b2: float,
                       k_L: float, K1: float, K2: float) -> float:
    """
    CIE 1994 with weighting functions from the *reference* (first) chroma,
    so delta_E_94(a, b) != delta_E_94(b, a) in general.
    """
    dL = L1 - L2
    C1 = np.sqrt(a1 * a1 + b1 * b1)
    C2 = np.sqrt(a2 * a2 + b2 * b2)
    dC = C1 - C2
    da = a1 - a2
    db = b1 - b2
    # dH² = da² + db² - dC² can dip below zero from round-off.
    dH_sq = da * da + db * db - dC * dC
    if dH_sq < 0.0:
        dH_sq = 0.0

    SC = 1.0 + K1 * C1
    SH = 1.0 + K2 * C1
    term_L = dL / k_L
    term_C = dC / SC
    return np.sqrt(term_L * term_L + term_C * term_C + dH_sq / (SH * SH))


@njit(cache=True, nogil=True)
def _delta_e_cam02_single(J1: float, M1: float, h1: float, J2: float, M2: float, h2: float,
                          k_L: float, c1: float, c2: float) -> float:
    """
    CAM02 uniform-space distance from (J, M, h) values.

    A NaN hue borrows the other sample's hue; both NaN falls back to 0.
    """
    if np.isnan(h1) and np.isnan(h2):
        h1 = 0.0
        h2 = 0.0
    elif np.isnan(h1):
        h1 = h2
    elif np.isnan(h2):
        h2 = h1

    J1p = (1.0 + 100.0 * c1) * J1 / (1.0 + c1 * J1)
    J2p = (1.0 + 100.0 * c1) * J2 / (1.0 + c1 * J2)
    M1p = np.log1p(c2 * M1) / c2
    M2p = np.log1p(c2 * M2) / c2

    dJ = (J1p - J2p) / k_L
    da = M1p * np.cos(h1 * DEG2RAD) - M2p * np.cos(h2 * DEG2RAD)
    db = M1p * np.sin(h1 * DEG2RAD) - M2p * np.sin(h2 * DEG2RAD)
    return np.sqrt(dJ * dJ + da * da + db * db)


# --- Parallel kernels ---
# Numba parallel regions may only be entered from one Python thread at a
# time; these run on the main thread only (see ``parallel_allowed``).

@njit(cache=True, fastmath=True, nogil=True, parallel=True)
def _batch_delta_e_2000(lab1: ArrayFloat, lab2: ArrayFloat, k_L: float, k_C: float, k_H: float) -> ArrayFloat:
    n = len(lab1)
    res = np.empty(n, dtype=np.float64)
    for i in prange(n):
        res[i] = _delta_e_2000_single(lab1[i, 0], lab1[i, 1], lab1[i, 2],
                                      lab2[i, 0], lab2[i, 1], lab2[i, 2], k_L, k_C, k_H)
    return res


@njit(cache=True, fastmath=True, nogil=True, parallel=True)
def _batch_delta_e_76(lab1: ArrayFloat, lab2: ArrayFloat) -> ArrayFloat:
    n = len(lab1)
    res = np.empty(n, dtype=np.float64)
    for i in prange(n):
        res[i] = _delta_e_76_single(lab1[i, 0], lab1[i, 1], lab1[i, 2],
                                    lab2[i, 0], lab2[i, 1], lab2[i, 2])
    return res


@njit(cache=True, fastmath=True, nogil=True, parallel=True)
def _batch_delta_e_94(lab1: ArrayFloat, lab2: ArrayFloat, k_L: float, K1: float, K2: float) -> ArrayFloat:
    n = len(lab1)
    res = np.empty(n, dtype=np.float64)
    for i in prange(n):
        res[i] = _delta_e_94_single(lab1[i, 0], lab1[i, 1], lab1[i, 2],
                                    lab2[i, 0], lab2[i, 1], lab2[i, 2], k_L, K1, K2)
    return res


@njit(cache=True, nogil=True, parallel=True)
def _batch_delta_e_cam02(jmh1: ArrayFloat, jmh2: ArrayFloat, k_L: float, c1: float, c2: float) -> ArrayFloat:
    n = len(jmh1)
    res = np.empty(n, dtype=np.float64)
    for i in prange(n):
        res[i] = _delta_e_cam02_single(jmh1[i, 0], jmh1[i, 1], jmh1[i, 2],
                                       jmh2[i, 0], jmh2[i, 1], jmh2[i, 2], k_L, c1, c2)
    return res


# --- Serial kernels ---
# Thread-safe twins for worker threads and small inputs.

@njit(cache=True, fastmath=True, nogil=True)
def _serial_delta_e_2000(lab1: ArrayFloat, lab2: ArrayFloat, k_L: float, k_C: float, k_H: float) -> ArrayFloat:
    n = len(lab1)
    res = np.empty(n, dtype=np.float64)
    for i in range(n):
        res[i] = _delta_e_2000_single(lab1[i, 0], lab1[i, 1], lab1[i, 2],
                                      lab2[i, 0], lab2[i, 1], lab2[i, 2], k_L, k_C, k_H)
    return res


@njit(cache=True, fastmath=True, nogil=True)
def _serial_delta_e_76(lab1: ArrayFloat, lab2: ArrayFloat) -> ArrayFloat:
    n = len(lab1)
    res = np.empty(n, dtype=np.float64)
    for i in range(n):
        res[i] = _delta_e_76_single(lab1[i, 0], lab1[i, 1], lab1[i, 2],
                                    lab2[i, 0], lab2[i, 1], lab2[i, 2])
    return res


@njit(cache=True, fastmath=True, nogil=True)
def _serial_delta_e_94(lab1: ArrayFloat, lab2: ArrayFloat, k_L: float, K1: float, K2: float) -> ArrayFloat:
    n = len(lab1)
    res = np.empty(n, dtype=np.float64)
    for i in range(n):
        res[i] = _delta_e_94_single(lab1[i, 0], lab1[i, 1], lab1[i, 2],
                                    lab2[i, 0], lab2[i, 1], lab2[i, 2], k_L, K1, K2)
    return res


@njit(cache=True, nogil=True)
def _serial_delta_e_cam02(jmh1: ArrayFloat, jmh2: ArrayFloat, k_L: float, c1: float, c2: float) -> ArrayFloat:
    n = len(jmh1)
    res = np.empty(n, dtype=np.float64)
    for i in range(n):
        res[i] = _delta_e_cam02_single(jmh1[i, 0], jmh1[i, 1], jmh1[i, 2],
                                       jmh2[i, 0], jmh2[i, 1], jmh2[i, 2], k_L, c1, c2)
    return res


# =============================================================================
# 2. INPUT PREPARATION
# =============================================================================

def _resolve(formula: Union[Formula, str], variant: Optional[str]) -> Tuple[Formula, Tuple[float, ...]]:
    """Validate formula and variant names; returns the parametric factors."""
    try:
        f = formula if isinstance(formula, Formula) else Formula(str(formula).upper())
    except ValueError as exc:
        raise UnsupportedFormulaVariantError(
            f"Unknown colour difference formula '{formula}'. "
            f"Choose from: {[m.value for m in Formula]}"
        ) from exc

    table = FORMULA_VARIANTS[f]
    name = DEFAULT_VARIANTS[f] if variant is None else variant
    if f is Formula.CAM02_UCS and isinstance(name, str):
        name = name.upper()
    if name not in table:
        raise UnsupportedFormulaVariantError(
            f"Unknown variant '{variant}' for {f.value}. Choose from: {list(table)}"
        )
    if f is Formula.CAM02_UCS:
        k = ucs_coefficients(name)
        return f, (k.k_l, k.c1, k.c2)
    return f, table[name]


def _as_rows(value: Any, formula: Formula, label: str) -> ArrayFloat:
    """Convert one side of a comparison into contiguous (N, 3) float64 rows."""
    if formula is Formula.CAM02_UCS:
        if isinstance(value, Lab):
            raise TypeError(f"{label}: CAM02_UCS expects appearance correlates, got Lab.")
        if isinstance(value, AppearanceCorrelates):
            h = np.nan if value.h is HUE_UNDEFINED else float(value.h)
            return np.array([[value.J, value.M, h]], dtype=np.float64)
        if isinstance(value, (list, tuple)) and value and isinstance(value[0], AppearanceCorrelates):
            return np.vstack([_as_rows(v, formula, label) for v in value])
        rows = np.ascontiguousarray(np.atleast_2d(np.asarray(value, dtype=np.float64)))
        if rows.shape[-1] != 3 or rows.ndim != 2:
            raise ValueError(f"{label}: inputs must have shape (N, 3), got {rows.shape}")
        if not np.all(np.isfinite(rows[:, :2])) or np.any(rows[:, :2] < 0.0):
            raise InvalidDomainError(f"{label}: J and M must be finite and >= 0.")
        if np.any(np.isinf(rows[:, 2])):
            raise InvalidDomainError(f"{label}: hue must be finite, or NaN for an undefined hue.")
        return rows

    if isinstance(value, AppearanceCorrelates):
        raise TypeError(f"{label}: {formula.value} expects Lab coordinates, got AppearanceCorrelates.")
    if isinstance(value, Lab):
        return value.as_array()[np.newaxis, :]
    if isinstance(value, (list, tuple)) and value and isinstance(value[0], Lab):
        return np.vstack([v.as_array() for v in value])
    rows = np.ascontiguousarray(np.atleast_2d(np.asarray(value, dtype=np.float64)))
    if rows.shape[-1] != 3 or rows.ndim != 2:
        raise ValueError(f"{label}: inputs must have shape (N, 3), got {rows.shape}")
    if not np.all(np.isfinite(rows)):
        raise InvalidDomainError(f"{label}: Lab coordinates must be finite.")
    return rows


def _is_single(value: Any) -> bool:
    if isinstance(value, (Lab, AppearanceCorrelates)):
        return True
    if isinstance(value, (list, tuple)) and value and isinstance(value[0], (Lab, AppearanceCorrelates)):
        return False
    return np.ndim(value) == 1


def _prepare_inputs(l1: ArrayFloat, l2: ArrayFloat) -> Tuple[ArrayFloat, ArrayFloat]:
    """
    Broadcast 1-vs-N and materialise dense C-contiguous arrays for the
    ``prange`` kernels.
    """
    if l1.shape[0] != l2.shape[0]:
        if l1.shape[0] == 1:
            l1 = np.ascontiguousarray(np.broadcast_to(l1, l2.shape))
        elif l2.shape[0] == 1:
            l2 = np.ascontiguousarray(np.broadcast_to(l2, l1.shape))
        else:
            raise ValueError(f"Shapes {l1.shape} and {l2.shape} are not broadcastable.")
    return l1, l2


_PARALLEL_KERNELS: Final[Dict[Formula, Callable[..., ArrayFloat]]] = {
    Formula.CIE76: _batch_delta_e_76,
    Formula.CIE94: _batch_delta_e_94,
    Formula.CIEDE2000: _batch_delta_e_2000,
    Formula.CAM02_UCS: _batch_delta_e_cam02,
}

_SERIAL_KERNELS: Final[Dict[Formula, Callable[..., ArrayFloat]]] = {
    Formula.CIE76: _serial_delta_e_76,
    Formula.CIE94: _serial_delta_e_94,
    Formula.CIEDE2000: _serial_delta_e_2000,
    Formula.CAM02_UCS: _serial_delta_e_cam02,
}


def _dispatch(formula: Formula, params: Tuple[float, ...], r: ArrayFloat, t: ArrayFloat) -> ArrayFloat:
    kernels = _PARALLEL_KERNELS if parallel_allowed(r.shape[0]) else _SERIAL_KERNELS
    return kernels[formula](r, t, *params)


# =============================================================================
# 3. PUBLIC API
# =============================================================================

def difference(
    reference: ColorInput,
    test: ColorInput,
    formula: Union[Formula, str] = Formula.CIEDE2000,
    variant: Optional[str] = None,
) -> Union[float, ArrayFloat]:
    """
    Colour difference between *reference* and *test*.

    Args:
        reference: Reference (standard) colour(s).
        test: Test (batch) colour(s).
        formula: One of :class:`Formula` (name strings accepted).
        variant: Parametric variant; ``None`` selects the formula default
            (``graphic_arts`` for CIE94, ``default`` for CIEDE2000, ``UCS``
            for CAM02_UCS).

    Returns:
        A non-negative float for a single pair, else an array of shape (N,).

    Raises:
        UnsupportedFormulaVariantError: Unknown formula or variant.
        TypeError: Inputs of the wrong kind for the formula.
    """
    f, params = _resolve(formula, variant)
    r, t = _prepare_inputs(_as_rows(reference, f, "reference"), _as_rows(test, f, "test"))
    res = _dispatch(f, params, r, t)
    if _is_single(reference) and _is_single(test):
        return float(res[0])
    return res


def difference_matrix(
    references: ColorInput,
    tests: ColorInput,
    formula: Union[Formula, str] = Formula.CIEDE2000,
    variant: Optional[str] = None,
) -> ArrayFloat:
    """
    All pairwise differences.

    Returns:
        Array of shape (n_references, n_tests); entry [i, j] is
        ``difference(references[i], tests[j])``.
    """
    f, params = _resolve(formula, variant)
    r = _as_rows(references, f, "references")
    t = _as_rows(tests, f, "tests")
    n_r, n_t = r.shape[0], t.shape[0]
    r_rep = np.ascontiguousarray(np.repeat(r, n_t, axis=0))
    t_rep = np.ascontiguousarray(np.tile(t, (n_r, 1)))
    return _dispatch(f, params, r_rep, t_rep).reshape(n_r, n_t)


def rank_matches(
    references: ColorInput,
    candidates: ColorInput,
    formula: Union[Formula, str] = Formula.CIEDE2000,
    variant: Optional[str] = None,
    top: Optional[int] = None,
) -> List[List[Tuple[int, float]]]:
    """
    Rank candidates by increasing difference for each reference.

    Args:
        references: Reference colours.
        candidates: Candidate colours.
        formula: Difference formula.
        variant: Formula variant.
        top: Keep only the *top* closest candidates per reference.

    Returns:
        One list per reference of ``(candidate_index, difference)`` pairs,
        closest first; ties keep candidate order.
    """
    if top is not None and top < 1:
        raise ValueError(f"top must be >= 1, got {top}")
    matrix = difference_matrix(references, candidates, formula, variant)
    order = np.argsort(matrix, axis=1, kind="stable")
    if top is not None:
        order = order[:, :top]
    return [
        [(int(j), float(matrix[i, j])) for j in order[i]]
        for i in range(matrix.shape[0])
    ]
