# -*- coding: utf-8 -*-
"""
Iris: Weaving the mathematics of colour appearance
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

CAT02 Chromatic Adaptation
==========================
Sharpened-cone von Kries adaptation used by CIECAM02.

    RGB   = M_CAT02 · XYZ
    D_i   = D · Y_w / RGB_w,i + (1 - D)
    RGB_c = D_i · RGB_i

Unlike the Bradford transform (which maps XYZ between two white points and
back to XYZ) the CAT02 output stays in the sharpened RGB space; the
appearance model continues from there.  The luminance Y of the source
tristimulus is carried along with the adapted response because the forward
transform needs Y_w for the background induction factor n = Yb / Yw.

With D = 0 every gain is exactly 1 and the adapted response equals the
unadapted sharpened response.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Final, Sequence, Tuple, TypeAlias, Union

import numpy as np

from iris_errors import InvalidDomainError, SingularWhitePointError
from iris_spectral import Tristimulus
from iris_viewing import ViewingConditions

__all__ = [
    "M_CAT02",
    "M_CAT02_INV",
    "M_CAT02_T",
    "M_CAT02_INV_T",
    "XYZLike",
    "AdaptedResponse",
    "as_xyz",
    "adaptation_gains",
    "adapt",
    "adapt_array",
]

ArrayFloat: TypeAlias = np.typing.NDArray[np.floating]
XYZLike = Union[Tristimulus, ArrayFloat, Sequence[float]]

# CIE 159:2004 Eq. 7.5
M_CAT02: Final[ArrayFloat] = np.array([
    [ 0.7328, 0.4296, -0.1624],
    [-0.7036, 1.6975,  0.0061],
    [ 0.0030, 0.0136,  0.9834],
], dtype=np.float64)
M_CAT02_INV: Final[ArrayFloat] = np.linalg.inv(M_CAT02)

# Row-vector forms for (N, 3) @ M.T style products.
M_CAT02_T: Final[ArrayFloat] = M_CAT02.T.copy()
M_CAT02_INV_T: Final[ArrayFloat] = M_CAT02_INV.T.copy()

# A white channel response below this magnitude is treated as zero.
_SINGULAR_EPS: Final[float] = 1e-12


@dataclass(slots=True, frozen=True)
class AdaptedResponse:
    """Adapted sharpened responses R_c, G_c, B_c plus the source luminance Y."""
    r: float
    g: float
    b: float
    y: float

    def as_array(self) -> ArrayFloat:
        return np.array([self.r, self.g, self.b], dtype=np.float64)


def as_xyz(value: XYZLike, label: str = "XYZ") -> ArrayFloat:
    """Coerce a Tristimulus or 3-sequence into a finite float64 (3,) array."""
    if isinstance(value, Tristimulus):
        return value.as_array()
    arr = np.asarray(value, dtype=np.float64).ravel()
    if arr.shape != (3,):
        raise InvalidDomainError(f"{label}: expected 3 values, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise InvalidDomainError(f"{label}: values must be finite, got {arr}")
    return arr


def _to_hashable(xyz: ArrayFloat) -> Tuple[float, ...]:
    return tuple(float(v) for v in xyz.ravel())


@functools.lru_cache(maxsize=64)
def _cached_gains(white_tuple: Tuple[float, ...], d: float) -> ArrayFloat:
    """
    Cached worker for the per-channel CAT02 gains of one white and D.

    Raises:
        SingularWhitePointError: Zero white channel or non-positive Y_w.
    """
    white = np.array(white_tuple, dtype=np.float64)
    yw = white[1]
    if not yw > 0.0:
        raise SingularWhitePointError(f"White luminance Y_w must be > 0, got {yw}")

    rgb_w = np.dot(M_CAT02, white)
    if np.any(np.abs(rgb_w) < _SINGULAR_EPS):
        raise SingularWhitePointError(
            f"CAT02 white response has a zero channel: RGB_w = {rgb_w}"
        )
    gains = d * yw / rgb_w + (1.0 - d)
    gains.setflags(write=False)
    return gains


def adaptation_gains(white: XYZLike, conditions: ViewingConditions) -> ArrayFloat:
    """
    Per-channel gains D_i for *white* under *conditions*.

    Returns:
        Read-only (3,) array; exactly ones when D == 0.
    """
    return _cached_gains(_to_hashable(as_xyz(white, "white")), float(conditions.d))


def adapt(stimulus: XYZLike, white: XYZLike, conditions: ViewingConditions) -> AdaptedResponse:
    """
    Adapt one stimulus to the viewing conditions' degree of adaptation.

    Args:
        stimulus: Tristimulus values of the sample.
        white: Tristimulus values of the adopted white (same observer and
            scale as *stimulus*).
        conditions: Resolved viewing conditions (only D is used).

    Returns:
        The adapted sharpened response and the stimulus luminance.

    Raises:
        SingularWhitePointError: A white channel response is zero.
        InvalidDomainError: Non-finite or malformed input.
    """
    xyz = as_xyz(stimulus, "stimulus")
    gains = adaptation_gains(white, conditions)
    rgb_c = gains * np.dot(M_CAT02, xyz)
    return AdaptedResponse(float(rgb_c[0]), float(rgb_c[1]), float(rgb_c[2]), float(xyz[1]))


def adapt_array(xyz: ArrayFloat, white: XYZLike, conditions: ViewingConditions) -> ArrayFloat:
    """
    Vectorised :func:`adapt` for stimuli of shape (N, 3).

    Returns:
        Adapted RGB_c rows, shape (N, 3).
    """
    arr = np.ascontiguousarray(np.atleast_2d(np.asarray(xyz, dtype=np.float64)))
    if arr.shape[-1] != 3:
        raise InvalidDomainError(f"Expected last dimension size 3, got {arr.shape[-1]}")
    if not np.all(np.isfinite(arr)):
        raise InvalidDomainError("adapt_array: stimuli must be finite.")
    gains = adaptation_gains(white, conditions)
    return np.dot(arr, M_CAT02_T) * gains
