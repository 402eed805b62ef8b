# -*- coding: utf-8 -*-
"""
Iris: Weaving the mathematics of colour appearance
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

CIECAM02 Appearance Model
=========================
Forward and inverse (reverse-mode) CIECAM02 on top of the CAT02 adapted
responses.

Architecture:
    Per-white quantities (A_w, N_bb, z, the adapted white response) are
    gathered once into a cached ``_WhiteContext``.  The per-stimulus maths
    lives in two Numba kernels (``_forward_row`` / ``_inverse_row``) that are
    shared by the scalar API (``forward`` / ``inverse``) and the vectorised
    ``(N, 3)`` API (``forward_xyz`` / ``inverse_jch``).  Kernels never raise;
    they report a status code and the Python wrappers turn it into the
    matching :mod:`iris_errors` exception.

Achromatic Stimuli:
    When the adapted stimulus coincides with the adapted white (within the
    tolerance set by :func:`set_achromatic_tolerance`) or the opponent
    signals vanish, hue is undefined.  The correlates then carry
    ``C = M = s = 0`` and the ``HUE_UNDEFINED`` sentinel for ``h`` and ``H``.
    The array API encodes the sentinel as NaN.

    In the inverse direction a zero chroma correlate is reconstructed on
    the neutral axis of the white, i.e. as ``k * XYZ_w`` with ``k`` solved
    (scipy ``brentq``) from the achromatic response.  This makes the white
    and black points exact fixed points of ``inverse(forward(.))``.

References:
    - CIE 159:2004 "A colour appearance model for colour management systems:
      CIECAM02".
    - Luo, M. R. & Li, C. (2013). "CIECAM02 and its recent developments".
"""

from __future__ import annotations

import functools
import math
import threading
import warnings
from dataclasses import dataclass
from typing import Any, Final, Mapping, Tuple, TypeAlias, Union

import numpy as np
from numba import njit, prange
from scipy.optimize import brentq

from iris_cat02 import (
    M_CAT02,
    M_CAT02_INV,
    AdaptedResponse,
    XYZLike,
    adapt,
    adapt_array,
    adaptation_gains,
    as_xyz,
)
from iris_errors import (
    HueUndefinedError,
    InvalidDomainError,
    InvalidViewingConditionsError,
    NonInvertibleError,
)
from iris_spectral import Tristimulus
from iris_viewing import ViewingConditions

__all__ = [
    "HUE_UNDEFINED",
    "HueUndefined",
    "Hue",
    "M_HPE",
    "M_HPE_INV",
    "HUE_QUADRATURE",
    "CORRELATE_COLUMNS",
    "set_achromatic_tolerance",
    "get_achromatic_tolerance",
    "AppearanceCorrelates",
    "hue_quadrature",
    "hue_from_quadrature",
    "forward",
    "appearance",
    "forward_xyz",
    "inverse",
    "inverse_jch",
    "PARALLEL_MIN_ROWS",
    "parallel_allowed",
]

ArrayFloat: TypeAlias = np.typing.NDArray[np.floating]


# =============================================================================
# 1. HUE SENTINEL
# =============================================================================

class HueUndefined:
    """Singleton marking the hue of an achromatic stimulus."""

    __slots__ = ()
    _instance: "HueUndefined | None" = None

    def __new__(cls) -> "HueUndefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "HUE_UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "HUE_UNDEFINED"


HUE_UNDEFINED: Final[HueUndefined] = HueUndefined()
Hue = Union[float, HueUndefined]


# =============================================================================
# 2. CONSTANTS
# =============================================================================

# Hunt-Pointer-Estevez cone fundamentals, CIE 159:2004 Eq. 7.11
M_HPE: Final[ArrayFloat] = np.array([
    [ 0.38971, 0.68898, -0.07868],
    [-0.22981, 1.18340,  0.04641],
    [ 0.00000, 0.00000,  1.00000],
], dtype=np.float64)
M_HPE_INV: Final[ArrayFloat] = np.linalg.inv(M_HPE)

# Composite matrices between CAT02 sharpened space and HPE space.
_M_CAT02_TO_HPE: Final[ArrayFloat] = M_HPE @ M_CAT02_INV
_M_HPE_TO_CAT02: Final[ArrayFloat] = M_CAT02 @ M_HPE_INV

# Hue quadrature: (h_i, e_i, H_i) for red, yellow, green, blue, red.
HUE_QUADRATURE: Final[ArrayFloat] = np.array([
    [ 20.14, 0.8,   0.0],
    [ 90.00, 0.7, 100.0],
    [164.25, 1.0, 200.0],
    [237.53, 1.2, 300.0],
    [380.14, 0.8, 400.0],
], dtype=np.float64)
_HQ_H: Final[ArrayFloat] = HUE_QUADRATURE[:, 0].copy()
_HQ_E: Final[ArrayFloat] = HUE_QUADRATURE[:, 1].copy()
_HQ_Q: Final[ArrayFloat] = HUE_QUADRATURE[:, 2].copy()

# Reverse-mode constants (CIE 159:2004 Step 3 of the inverse model).
_P1_SCALE: Final[float] = 50000.0 / 13.0
_P3: Final[float] = 21.0 / 20.0
_DEN1: Final[float] = ((2.0 + _P3) * 220.0) / 1403.0
_DEN2: Final[float] = (_P3 * 6300.0 - 27.0) / 1403.0

# Post-adaptation compression saturates at |R'_a - 0.1| = 400.
_COMPRESSION_LIMIT: Final[float] = 400.0

# Column order of the array API.
CORRELATE_COLUMNS: Final[Tuple[str, ...]] = ("J", "Q", "a", "b", "C", "M", "s", "h", "H")

# Kernel status codes
_OK: Final[int] = 0
_ACHROMATIC: Final[int] = 1
_OUT_OF_DOMAIN: Final[int] = 2
_NON_INVERTIBLE: Final[int] = 3


# --- Runtime Configuration ---
# Coincidence tolerance for "stimulus equals white" and for vanishing
# opponent signals.  Toggle at runtime via set_achromatic_tolerance().
_ACHROMATIC_TOL: float = 1e-9


def set_achromatic_tolerance(tol: float = 1e-9) -> None:
    """
    Set the tolerance used to classify a stimulus as achromatic.

    The adapted stimulus counts as the white when every channel differs by
    at most ``tol * max|RGB_wc|``; the opponent signals count as zero when
    ``hypot(a, b) <= tol``.

    Args:
        tol: Non-negative tolerance (0 demands exact coincidence).
    """
    global _ACHROMATIC_TOL
    tol = float(tol)
    if not math.isfinite(tol) or tol < 0.0:
        raise ValueError(f"Achromatic tolerance must be finite and >= 0, got {tol}")
    _ACHROMATIC_TOL = tol


def get_achromatic_tolerance() -> float:
    return _ACHROMATIC_TOL


# =============================================================================
# 3. SCALAR KERNELS
# =============================================================================

@njit(cache=True, nogil=True)
def _compress(x: float, fl: float) -> float:
    """Post-adaptation non-linear compression (signed)."""
    t = (fl * abs(x) / 100.0) ** 0.42
    return math.copysign(400.0 * t / (t + 27.13), x) + 0.1


@njit(cache=True, nogil=True)
def _decompress(x: float, fl: float) -> float:
    """Closed-form inverse of :func:`_compress`; caller guarantees |x - 0.1| < 400."""
    v = x - 0.1
    av = abs(v)
    t = 27.13 * av / (400.0 - av)
    return math.copysign((100.0 / fl) * t ** (1.0 / 0.42), v)


@njit(cache=True, nogil=True)
def _hue_quadrature(h: float) -> float:
    """Hue angle (degrees, [0, 360)) to hue quadrature H in [0, 400)."""
    hp = h + 360.0 if h < _HQ_H[0] else h
    i = 0
    for k in range(1, 4):
        if hp >= _HQ_H[k]:
            i = k
    u = (hp - _HQ_H[i]) / _HQ_E[i]
    v = (_HQ_H[i + 1] - hp) / _HQ_E[i + 1]
    hq = _HQ_Q[i] + 100.0 * u / (u + v)
    if hq >= 400.0:
        hq -= 400.0
    return hq


@njit(cache=True, nogil=True)
def _hue_from_quadrature(hq: float) -> float:
    """Hue quadrature H (any real, wrapped to [0, 400)) to hue angle in [0, 360)."""
    hq = hq % 400.0
    i = int(hq // 100.0)
    if i > 3:
        i = 3
    d = hq - _HQ_Q[i]
    h1, h2 = _HQ_H[i], _HQ_H[i + 1]
    e1, e2 = _HQ_E[i], _HQ_E[i + 1]
    hp = (d * (e2 * h1 - e1 * h2) - 100.0 * h1 * e2) / (d * (e2 - e1) - 100.0 * e2)
    h = hp % 360.0
    if h >= 360.0:
        h -= 360.0
    return h


# Indices into the packed parameter vector handed to the kernels.
_P_AW, _P_NBB, _P_NCB, _P_Z, _P_C, _P_NC, _P_FL, _P_FL4, _P_CC = 0, 1, 2, 3, 4, 5, 6, 7, 8
_P_RW, _P_GW, _P_BW, _P_TOL = 9, 10, 11, 12


@njit(cache=True, nogil=True)
def _forward_row(r_c: float, g_c: float, b_c: float, p: ArrayFloat, out: ArrayFloat) -> int:
    """
    CIECAM02 forward model for one adapted response.

    Writes ``[J, Q, a, b, C, M, s, h, H]`` into *out* (NaN hue when
    achromatic) and returns a status code.
    """
    aw, nbb, ncb, z = p[_P_AW], p[_P_NBB], p[_P_NCB], p[_P_Z]
    c, nc, fl, fl4, cc = p[_P_C], p[_P_NC], p[_P_FL], p[_P_FL4], p[_P_CC]
    tol = p[_P_TOL]

    scale = max(abs(p[_P_RW]), abs(p[_P_GW]), abs(p[_P_BW]))
    is_white = (
        abs(r_c - p[_P_RW]) <= tol * scale
        and abs(g_c - p[_P_GW]) <= tol * scale
        and abs(b_c - p[_P_BW]) <= tol * scale
    )

    M = _M_CAT02_TO_HPE
    rp = M[0, 0] * r_c + M[0, 1] * g_c + M[0, 2] * b_c
    gp = M[1, 0] * r_c + M[1, 1] * g_c + M[1, 2] * b_c
    bp = M[2, 0] * r_c + M[2, 1] * g_c + M[2, 2] * b_c
    ra = _compress(rp, fl)
    ga = _compress(gp, fl)
    ba = _compress(bp, fl)

    a = ra - 12.0 * ga / 11.0 + ba / 11.0
    b = (ra + ga - 2.0 * ba) / 9.0
    A = (2.0 * ra + ga + ba / 20.0 - 0.305) * nbb

    # Round-off at black.
    if A < 0.0 and A > -1e-12:
        A = 0.0
    if A < 0.0:
        for k in range(9):
            out[k] = np.nan
        return _OUT_OF_DOMAIN

    J = 100.0 * (A / aw) ** (c * z)
    Q = (4.0 / c) * math.sqrt(J / 100.0) * (aw + 4.0) * fl4
    out[0] = J
    out[1] = Q

    if is_white or math.hypot(a, b) <= tol:
        out[2] = 0.0
        out[3] = 0.0
        out[4] = 0.0
        out[5] = 0.0
        out[6] = 0.0
        out[7] = np.nan
        out[8] = np.nan
        return _ACHROMATIC

    h = math.degrees(math.atan2(b, a)) % 360.0
    if h >= 360.0:
        h -= 360.0

    denom = ra + ga + 21.0 * ba / 20.0
    if denom <= 0.0:
        for k in range(9):
            out[k] = np.nan
        return _OUT_OF_DOMAIN

    et = 0.25 * (math.cos(math.radians(h) + 2.0) + 3.8)
    t = (_P1_SCALE * nc * ncb) * et * math.hypot(a, b) / denom
    C = t ** 0.9 * math.sqrt(J / 100.0) * cc
    Mc = C * fl4
    s = 100.0 * math.sqrt(Mc / Q) if Q > 0.0 else 0.0

    out[2] = a
    out[3] = b
    out[4] = C
    out[5] = Mc
    out[6] = s
    out[7] = h
    out[8] = _hue_quadrature(h)
    return _OK


@njit(cache=True, nogil=True)
def _inverse_row(J: float, C: float, h: float, p: ArrayFloat, out: ArrayFloat) -> int:
    """
    CIECAM02 reverse mode from (J, C, h) to the adapted response RGB_c.

    *J* > 0 is required whenever *C* > 0.  Writes RGB_c into *out* and
    returns a status code.
    """
    aw, nbb, ncb, z = p[_P_AW], p[_P_NBB], p[_P_NCB], p[_P_Z]
    c, nc, fl, cc = p[_P_C], p[_P_NC], p[_P_FL], p[_P_CC]

    if J <= 0.0:
        if C > 0.0:
            out[0] = np.nan
            out[1] = np.nan
            out[2] = np.nan
            return _NON_INVERTIBLE
        t = 0.0
    else:
        t = (C / (math.sqrt(J / 100.0) * cc)) ** (1.0 / 0.9)

    hr = math.radians(h)
    et = 0.25 * (math.cos(hr + 2.0) + 3.8)
    A = aw * (J / 100.0) ** (1.0 / (c * z)) if J > 0.0 else 0.0
    p2 = A / nbb + 0.305

    if t == 0.0:
        a = 0.0
        b = 0.0
    else:
        p1 = (_P1_SCALE * nc * ncb) * et / t
        hs = math.sin(hr)
        hc = math.cos(hr)
        if abs(hs) >= abs(hc):
            b = p2 / (p1 / hs + _DEN1 * hc / hs + _DEN2)
            a = b * hc / hs
        else:
            a = p2 / (p1 / hc + _DEN1 + _DEN2 * hs / hc)
            b = a * hs / hc

    ra = (460.0 * p2 + 451.0 * a + 288.0 * b) / 1403.0
    ga = (460.0 * p2 - 891.0 * a - 261.0 * b) / 1403.0
    ba = (460.0 * p2 - 220.0 * a - 6300.0 * b) / 1403.0

    if (
        not abs(ra - 0.1) < _COMPRESSION_LIMIT
        or not abs(ga - 0.1) < _COMPRESSION_LIMIT
        or not abs(ba - 0.1) < _COMPRESSION_LIMIT
    ):
        out[0] = np.nan
        out[1] = np.nan
        out[2] = np.nan
        return _NON_INVERTIBLE

    rp = _decompress(ra, fl)
    gp = _decompress(ga, fl)
    bp = _decompress(ba, fl)

    M = _M_HPE_TO_CAT02
    out[0] = M[0, 0] * rp + M[0, 1] * gp + M[0, 2] * bp
    out[1] = M[1, 0] * rp + M[1, 1] * gp + M[1, 2] * bp
    out[2] = M[2, 0] * rp + M[2, 1] * gp + M[2, 2] * bp
    return _OK


# =============================================================================
# 4. BATCH KERNELS
# =============================================================================

@njit(cache=True, nogil=True, parallel=True)
def _forward_batch(rgb_c: ArrayFloat, p: ArrayFloat) -> Tuple[ArrayFloat, np.ndarray]:
    """Vectorised and parallelised forward model over (N, 3) adapted responses."""
    n = rgb_c.shape[0]
    out = np.empty((n, 9), dtype=np.float64)
    status = np.empty(n, dtype=np.int64)
    for i in prange(n):
        status[i] = _forward_row(rgb_c[i, 0], rgb_c[i, 1], rgb_c[i, 2], p, out[i])
    return out, status


@njit(cache=True, nogil=True, parallel=True)
def _inverse_batch(jch: ArrayFloat, p: ArrayFloat) -> Tuple[ArrayFloat, np.ndarray]:
    """Vectorised and parallelised reverse model over (N, 3) J, C, h rows."""
    n = jch.shape[0]
    out = np.empty((n, 3), dtype=np.float64)
    status = np.empty(n, dtype=np.int64)
    for i in prange(n):
        status[i] = _inverse_row(jch[i, 0], jch[i, 1], jch[i, 2], p, out[i])
    return out, status


@njit(cache=True, nogil=True)
def _forward_serial(rgb_c: ArrayFloat, p: ArrayFloat) -> Tuple[ArrayFloat, np.ndarray]:
    n = rgb_c.shape[0]
    out = np.empty((n, 9), dtype=np.float64)
    status = np.empty(n, dtype=np.int64)
    for i in range(n):
        status[i] = _forward_row(rgb_c[i, 0], rgb_c[i, 1], rgb_c[i, 2], p, out[i])
    return out, status


@njit(cache=True, nogil=True)
def _inverse_serial(jch: ArrayFloat, p: ArrayFloat) -> Tuple[ArrayFloat, np.ndarray]:
    n = jch.shape[0]
    out = np.empty((n, 3), dtype=np.float64)
    status = np.empty(n, dtype=np.int64)
    for i in range(n):
        status[i] = _inverse_row(jch[i, 0], jch[i, 1], jch[i, 2], p, out[i])
    return out, status


# Below this many rows the thread start-up of a parallel region outweighs the work.
PARALLEL_MIN_ROWS: Final[int] = 4096


def parallel_allowed(n: int) -> bool:
    """
    Whether *n* rows go to the ``prange`` kernels.

    Only large inputs on the main thread qualify: launching a Numba parallel
    region from a worker thread aborts the workqueue layer and stalls TBB at
    interpreter exit.
    """
    return n >= PARALLEL_MIN_ROWS and threading.current_thread() is threading.main_thread()


# =============================================================================
# 5. WHITE CONTEXT
# =============================================================================

@dataclass(slots=True, frozen=True, eq=False)
class _WhiteContext:
    """Per-white, per-condition constants of the appearance model."""
    rgb_wc: ArrayFloat
    rgb_pw: ArrayFloat
    yw: float
    aw: float
    n: float
    nbb: float
    z: float
    cc: float
    conditions: ViewingConditions

    def params(self) -> ArrayFloat:
        vc = self.conditions
        return np.array([
            self.aw, self.nbb, self.nbb, self.z,
            vc.c, vc.nc, vc.fl, vc.fl_quarter, self.cc,
            self.rgb_wc[0], self.rgb_wc[1], self.rgb_wc[2],
            _ACHROMATIC_TOL,
        ], dtype=np.float64)

    def achromatic_response(self, k: float) -> float:
        """A for the neutral stimulus k * XYZ_w."""
        fl = self.conditions.fl
        ra, ga, ba = (_compress(k * v, fl) for v in self.rgb_pw)
        return (2.0 * ra + ga + ba / 20.0 - 0.305) * self.nbb


@functools.lru_cache(maxsize=64)
def _cached_context(rgb_wc: Tuple[float, ...], yw: float, conditions: ViewingConditions) -> _WhiteContext:
    if not yw > 0.0:
        raise InvalidViewingConditionsError(f"White luminance Y_w must be > 0, got {yw}")
    wc = np.array(rgb_wc, dtype=np.float64)
    n = conditions.yb / yw
    nbb = 0.725 * n ** -0.2 if n > 0.0 else math.inf
    z = 1.48 + math.sqrt(n)
    rgb_pw = _M_CAT02_TO_HPE @ wc
    fl = conditions.fl
    ra, ga, ba = (_compress(float(v), fl) for v in rgb_pw)
    aw = (2.0 * ra + ga + ba / 20.0 - 0.305) * nbb
    if not (math.isfinite(aw) and aw > 0.0):
        raise InvalidViewingConditionsError(
            f"Achromatic white response A_w must be finite and > 0, got {aw} "
            f"(Yb={conditions.yb}, Yw={yw})"
        )
    wc.setflags(write=False)
    rgb_pw.setflags(write=False)
    return _WhiteContext(
        rgb_wc=wc,
        rgb_pw=rgb_pw,
        yw=yw,
        aw=aw,
        n=n,
        nbb=nbb,
        z=z,
        cc=(1.64 - 0.29 ** n) ** 0.73,
        conditions=conditions,
    )


def _context_from_adapted(white: AdaptedResponse, conditions: ViewingConditions) -> _WhiteContext:
    return _cached_context((white.r, white.g, white.b), float(white.y), conditions)


def _context_from_white(white: XYZLike, conditions: ViewingConditions) -> Tuple[_WhiteContext, ArrayFloat, ArrayFloat]:
    """Context plus the CAT02 gains and white XYZ for the inverse direction."""
    xyz_w = as_xyz(white, "white")
    gains = adaptation_gains(xyz_w, conditions)
    rgb_wc = gains * np.dot(M_CAT02, xyz_w)
    ctx = _cached_context(tuple(float(v) for v in rgb_wc), float(xyz_w[1]), conditions)
    return ctx, gains, xyz_w


# =============================================================================
# 6. CORRELATES
# =============================================================================

def _check_non_negative(name: str, value: float) -> None:
    if not math.isfinite(value) or value < 0.0:
        raise InvalidDomainError(f"Correlate {name} must be finite and >= 0, got {value}")


@dataclass(slots=True, frozen=True)
class AppearanceCorrelates:
    """
    CIECAM02 appearance correlates.

    Attributes:
        J: Lightness.
        C: Chroma.
        h: Hue angle in degrees, [0, 360), or ``HUE_UNDEFINED``.
        H: Hue quadrature, [0, 400), or ``HUE_UNDEFINED``.
        Q: Brightness.
        M: Colourfulness.
        s: Saturation.
        a: Red-green opponent signal.
        b: Yellow-blue opponent signal.
    """
    J: float
    C: float
    h: Hue
    H: Hue
    Q: float
    M: float
    s: float
    a: float = 0.0
    b: float = 0.0

    def __post_init__(self) -> None:
        for name in ("J", "C", "Q", "M", "s"):
            _check_non_negative(name, getattr(self, name))
        for name in ("a", "b"):
            if not math.isfinite(getattr(self, name)):
                raise InvalidDomainError(f"Opponent signal {name} must be finite.")
        h_undef = self.h is HUE_UNDEFINED
        if h_undef != (self.H is HUE_UNDEFINED):
            raise InvalidDomainError("h and H must both be defined or both be HUE_UNDEFINED.")
        if not h_undef:
            if not (math.isfinite(self.h) and 0.0 <= self.h < 360.0):
                raise InvalidDomainError(f"Hue angle h must lie in [0, 360), got {self.h}")
            if not (math.isfinite(self.H) and 0.0 <= self.H < 400.0):
                raise InvalidDomainError(f"Hue quadrature H must lie in [0, 400), got {self.H}")

    @property
    def is_achromatic(self) -> bool:
        return self.h is HUE_UNDEFINED

    def require_hue(self) -> Tuple[float, float]:
        """
        Numeric ``(h, H)``.

        Raises:
            HueUndefinedError: For an achromatic stimulus.
        """
        if self.h is HUE_UNDEFINED:
            raise HueUndefinedError("Hue is undefined for an achromatic stimulus.")
        return float(self.h), float(self.H)  # type: ignore[arg-type]

    def as_array(self) -> ArrayFloat:
        """``[J, Q, a, b, C, M, s, h, H]`` with NaN for an undefined hue."""
        h = np.nan if self.h is HUE_UNDEFINED else self.h
        H = np.nan if self.H is HUE_UNDEFINED else self.H
        return np.array(
            [self.J, self.Q, self.a, self.b, self.C, self.M, self.s, h, H],
            dtype=np.float64,
        )

    def as_dict(self) -> dict[str, Any]:
        return {k: getattr(self, k) for k in ("J", "C", "h", "H", "Q", "M", "s", "a", "b")}

    @classmethod
    def from_row(cls, row: ArrayFloat) -> AppearanceCorrelates:
        """Inverse of :meth:`as_array`; NaN hue becomes ``HUE_UNDEFINED``."""
        J, Q, a, b, C, M, s, h, H = (float(v) for v in row)
        if math.isnan(h):
            return cls(J=J, C=C, h=HUE_UNDEFINED, H=HUE_UNDEFINED, Q=Q, M=M, s=s, a=a, b=b)
        return cls(J=J, C=C, h=h, H=H, Q=Q, M=M, s=s, a=a, b=b)


def hue_quadrature(h: float) -> float:
    """Hue quadrature H in [0, 400) for a hue angle in degrees (any real)."""
    h = float(h)
    if not math.isfinite(h):
        raise InvalidDomainError(f"Hue angle must be finite, got {h}")
    h = h % 360.0
    if h >= 360.0:
        h -= 360.0
    return _hue_quadrature(h)


def hue_from_quadrature(H: float) -> float:
    """Hue angle in [0, 360) for a hue quadrature value (wrapped modulo 400)."""
    H = float(H)
    if not math.isfinite(H):
        raise InvalidDomainError(f"Hue quadrature must be finite, got {H}")
    return _hue_from_quadrature(H)


# =============================================================================
# 7. FORWARD MODEL
# =============================================================================

def forward(
    adapted_stimulus: AdaptedResponse,
    adapted_white: AdaptedResponse,
    conditions: ViewingConditions,
) -> AppearanceCorrelates:
    """
    CIECAM02 forward model.

    Args:
        adapted_stimulus: CAT02 output for the sample.
        adapted_white: CAT02 output for the adopted white.
        conditions: The conditions both were adapted with.

    Returns:
        The full set of appearance correlates.

    Raises:
        InvalidViewingConditionsError: A_w <= 0 (or not finite).
        InvalidDomainError: The stimulus has a negative achromatic response.
    """
    ctx = _context_from_adapted(adapted_white, conditions)
    out = np.empty(9, dtype=np.float64)
    status = _forward_row(adapted_stimulus.r, adapted_stimulus.g, adapted_stimulus.b, ctx.params(), out)
    if status == _OUT_OF_DOMAIN:
        raise InvalidDomainError(
            f"Stimulus RGB_c={adapted_stimulus.as_array()} lies outside the "
            "CIECAM02 domain (negative achromatic response)."
        )
    return AppearanceCorrelates.from_row(out)


def appearance(stimulus: XYZLike, white: XYZLike, conditions: ViewingConditions) -> AppearanceCorrelates:
    """Tristimulus to correlates: ``forward(adapt(stimulus), adapt(white))``."""
    return forward(adapt(stimulus, white, conditions), adapt(white, white, conditions), conditions)


def forward_xyz(xyz: ArrayFloat, white: XYZLike, conditions: ViewingConditions) -> ArrayFloat:
    """
    Vectorised forward model for tristimulus arrays.

    Args:
        xyz: Stimuli, shape (N, 3) or (3,).
        white: Adopted white.
        conditions: Viewing conditions.

    Returns:
        Correlates ``[J, Q, a, b, C, M, s, h, H]`` per row (see
        ``CORRELATE_COLUMNS``), NaN hue for achromatic rows and all-NaN rows
        for stimuli outside the model domain.
    """
    arr = np.asarray(xyz, dtype=np.float64)
    rgb_c = adapt_array(arr, white, conditions)
    ctx, _, _ = _context_from_white(white, conditions)
    kernel = _forward_batch if parallel_allowed(rgb_c.shape[0]) else _forward_serial
    out, status = kernel(np.ascontiguousarray(rgb_c), ctx.params())
    bad = int(np.count_nonzero(status == _OUT_OF_DOMAIN))
    if bad:
        warnings.warn(
            f"forward_xyz: {bad} stimuli outside the CIECAM02 domain returned as NaN.",
            stacklevel=2,
        )
    if arr.ndim == 1:
        return out[0]
    return out


# =============================================================================
# 8. INVERSE MODEL
# =============================================================================

_LIGHTNESS_KEYS: Final[Tuple[str, ...]] = ("J", "Q")
_CHROMA_KEYS: Final[Tuple[str, ...]] = ("C", "M", "s")
_HUE_KEYS: Final[Tuple[str, ...]] = ("h", "H")

CorrelateInput = Union[AppearanceCorrelates, Mapping[str, Any]]


def _select_correlates(correlates: CorrelateInput) -> dict[str, Any]:
    """Reduce the input to exactly one lightness, one chroma and one hue correlate."""
    if isinstance(correlates, AppearanceCorrelates):
        return {"J": correlates.J, "C": correlates.C, "h": correlates.h}
    if not isinstance(correlates, Mapping):
        raise TypeError(
            f"Correlates must be AppearanceCorrelates or a mapping, got {type(correlates).__name__}"
        )

    keys = set(correlates)
    lightness = keys & set(_LIGHTNESS_KEYS)
    chroma = keys & set(_CHROMA_KEYS)
    hue = keys & set(_HUE_KEYS)
    unknown = keys - lightness - chroma - hue
    if unknown or len(lightness) != 1 or len(chroma) != 1 or len(hue) != 1:
        raise NonInvertibleError(
            f"Unsupported correlate set {sorted(keys)}: need exactly one of "
            f"{_LIGHTNESS_KEYS}, one of {_CHROMA_KEYS} and one of {_HUE_KEYS}."
        )
    return {k: correlates[k] for k in keys}


def _to_jch(selected: Mapping[str, Any], ctx: _WhiteContext) -> Tuple[float, float, Hue]:
    """Convert any accepted correlate set to (J, C, h)."""
    vc = ctx.conditions
    fl4 = vc.fl_quarter

    def numeric(name: str) -> float:
        try:
            value = float(selected[name])
        except (TypeError, ValueError) as exc:
            raise InvalidDomainError(f"Correlate {name} must be numeric: {exc}") from exc
        _check_non_negative(name, value)
        return value

    if "J" in selected:
        J = numeric("J")
        Q = (4.0 / vc.c) * math.sqrt(J / 100.0) * (ctx.aw + 4.0) * fl4
    else:
        Q = numeric("Q")
        J = 100.0 * (Q * vc.c / (4.0 * (ctx.aw + 4.0) * fl4)) ** 2

    if "C" in selected:
        C = numeric("C")
    elif "M" in selected:
        C = numeric("M") / fl4
    else:
        s = numeric("s")
        C = (s / 100.0) ** 2 * Q / fl4

    hue_key = "h" if "h" in selected else "H"
    raw_hue = selected[hue_key]
    if raw_hue is HUE_UNDEFINED:
        h: Hue = HUE_UNDEFINED
    else:
        try:
            value = float(raw_hue)
        except (TypeError, ValueError) as exc:
            raise InvalidDomainError(f"Correlate {hue_key} must be numeric: {exc}") from exc
        if not math.isfinite(value):
            raise InvalidDomainError(f"Correlate {hue_key} must be finite, got {value}")
        h = value % 360.0 if hue_key == "h" else _hue_from_quadrature(value)
    return J, C, h


def _neutral_scale(J: float, ctx: _WhiteContext) -> float:
    """Solve k with A(k * XYZ_w) equal to the achromatic response of J."""
    if J == 0.0:
        return 0.0
    vc = ctx.conditions
    target = ctx.aw * (J / 100.0) ** (1.0 / (vc.c * ctx.z))
    ceiling = (3.05 * (_COMPRESSION_LIMIT + 0.1) - 0.305) * ctx.nbb
    if not target < ceiling:
        raise NonInvertibleError(
            f"Lightness J={J} exceeds the compression range (A={target} >= {ceiling})."
        )

    def residual(k: float) -> float:
        return ctx.achromatic_response(k) - target

    hi = 1.0
    for _ in range(64):
        if residual(hi) >= 0.0:
            break
        hi *= 2.0
    else:
        raise NonInvertibleError(f"No neutral stimulus reaches lightness J={J}.")
    return float(brentq(residual, 0.0, hi, xtol=1e-15, rtol=4.0 * np.finfo(float).eps, maxiter=200))


def inverse(
    correlates: CorrelateInput,
    conditions: ViewingConditions,
    white: XYZLike,
) -> Tristimulus:
    """
    CIECAM02 reverse mode.

    Args:
        correlates: An :class:`AppearanceCorrelates` (J, C, h are used) or a
            mapping holding one lightness (``J``/``Q``), one chroma
            (``C``/``M``/``s``) and one hue (``h``/``H``) correlate.
        conditions: Viewing conditions of the forward transform.
        white: The adopted white the correlates refer to.

    Returns:
        Tristimulus values of the stimulus.

    Raises:
        NonInvertibleError: Unsupported correlate set (e.g. ``{J, Q, h}``),
            chroma with zero lightness, or a compressed response outside
            ``|R'_a - 0.1| < 400``.
        HueUndefinedError: Non-zero chroma with ``HUE_UNDEFINED`` hue.
    """
    selected = _select_correlates(correlates)
    ctx, gains, xyz_w = _context_from_white(white, conditions)
    J, C, h = _to_jch(selected, ctx)

    if C == 0.0:
        return Tristimulus.from_array(_neutral_scale(J, ctx) * xyz_w)
    if h is HUE_UNDEFINED:
        raise HueUndefinedError(f"Chroma C={C} > 0 requires a numeric hue.")

    rgb_c = np.empty(3, dtype=np.float64)
    status = _inverse_row(J, C, float(h), ctx.params(), rgb_c)
    if status == _NON_INVERTIBLE:
        raise NonInvertibleError(
            f"Correlates J={J}, C={C}, h={h} fall outside the invertible "
            "range of the post-adaptation compression."
        )
    return Tristimulus.from_array(np.dot(M_CAT02_INV, rgb_c / gains))


def inverse_jch(jch: ArrayFloat, white: XYZLike, conditions: ViewingConditions) -> ArrayFloat:
    """
    Vectorised reverse mode for (N, 3) rows of ``[J, C, h]``.

    Rows with ``C == 0`` (hue ignored, may be NaN) are placed on the white's
    neutral axis.  Rows that cannot be inverted are returned as NaN with a
    warning.

    Returns:
        Tristimulus values, shape (N, 3) or (3,).
    """
    arr = np.asarray(jch, dtype=np.float64)
    rows = np.ascontiguousarray(np.atleast_2d(arr))
    if rows.shape[-1] != 3:
        raise ValueError(f"Expected last dimension size 3, got {rows.shape[-1]}")
    if np.any(rows[:, :2] < 0.0) or not np.all(np.isfinite(rows[:, :2])):
        raise InvalidDomainError("inverse_jch: J and C must be finite and >= 0.")

    ctx, gains, xyz_w = _context_from_white(white, conditions)
    neutral = rows[:, 1] == 0.0
    if np.any(~neutral & ~np.isfinite(rows[:, 2])):
        raise HueUndefinedError("inverse_jch: chromatic rows require a finite hue.")

    kernel_in = rows.copy()
    kernel_in[neutral, 2] = 0.0
    kernel_in[:, 2] %= 360.0
    kernel = _inverse_batch if parallel_allowed(kernel_in.shape[0]) else _inverse_serial
    rgb_c, status = kernel(kernel_in, ctx.params())
    xyz = np.dot(rgb_c / gains, M_CAT02_INV.T)

    for i in np.flatnonzero(neutral):
        try:
            xyz[i] = _neutral_scale(float(rows[i, 0]), ctx) * xyz_w
        except NonInvertibleError:
            xyz[i] = np.nan
            status[i] = _NON_INVERTIBLE

    bad = int(np.count_nonzero(status == _NON_INVERTIBLE))
    if bad:
        warnings.warn(f"inverse_jch: {bad} rows not invertible, returned as NaN.", stacklevel=2)
    if arr.ndim == 1:
        return xyz[0]
    return xyz
