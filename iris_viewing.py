# -*- coding: utf-8 -*-
"""
Iris: Weaving the mathematics of colour appearance
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: iris_viewing.py — Viewing-condition resolver for CIECAM02.

Turns the physical description of a viewing environment (adapting
luminance La, relative background luminance Yb, surround class and an
optional degree of adaptation D) into the fully derived parameter set the
appearance model consumes.

References:
    - CIE 159:2004 "A colour appearance model for colour management systems:
      CIECAM02", Table 1 (surround parameters) and Eqs. 7.1-7.4.
    - Moroney et al. (2002). "The CIECAM02 color appearance model".
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Final, Literal, Optional, get_args

from iris_errors import InvalidViewingConditionsError

__all__ = [
    "SurroundName",
    "SurroundParameters",
    "SURROUNDS",
    "ViewingConditions",
    "surround_parameters",
    "surround_from_ratio",
    "degree_of_adaptation",
    "luminance_adaptation_factor",
    "resolve_viewing_conditions",
    "VC_AVERAGE",
    "VC_DIM",
    "VC_DARK",
    "VC_TM30",
]

SurroundName = Literal["average", "dim", "dark"]


@dataclass(slots=True, frozen=True)
class SurroundParameters:
    """CIE 159 Table 1 entry: F (adaptation), c (impact), Nc (induction)."""
    f: float
    c: float
    nc: float


SURROUNDS: Final[Dict[str, SurroundParameters]] = {
    "average": SurroundParameters(f=1.0, c=0.69, nc=1.0),
    "dim": SurroundParameters(f=0.9, c=0.59, nc=0.9),
    "dark": SurroundParameters(f=0.8, c=0.525, nc=0.8),
}

# Surround ratio Sr = L_surround / L_display at which "average" begins.
_AVERAGE_SURROUND_RATIO: Final[float] = 0.15


def surround_parameters(surround: str) -> SurroundParameters:
    """
    Look up (F, c, Nc) for a surround class.

    The lookup is case-insensitive and independent of La and Yb.

    Raises:
        InvalidViewingConditionsError: For an unknown surround class.
    """
    if not isinstance(surround, str):
        raise InvalidViewingConditionsError(
            f"Surround class must be a string, got {type(surround).__name__}"
        )
    params = SURROUNDS.get(surround.strip().lower())
    if params is None:
        raise InvalidViewingConditionsError(
            f"Unknown surround class '{surround}'. "
            f"Choose from: {list(get_args(SurroundName))}"
        )
    return params


def surround_from_ratio(ratio: float) -> SurroundName:
    """
    Classify a measured surround ratio Sr = L_sw / L_dw.

    ``Sr >= 0.15`` is average, ``0 < Sr < 0.15`` dim and ``Sr == 0`` dark.
    """
    if not math.isfinite(ratio) or ratio < 0.0:
        raise InvalidViewingConditionsError(
            f"Surround ratio must be finite and >= 0, got {ratio}"
        )
    if ratio >= _AVERAGE_SURROUND_RATIO:
        return "average"
    if ratio > 0.0:
        return "dim"
    return "dark"


def degree_of_adaptation(f: float, la: float) -> float:
    """D = F (1 - (1/3.6) exp((-La - 42) / 92)), clamped to [0, 1]."""
    d = f * (1.0 - (1.0 / 3.6) * math.exp((-la - 42.0) / 92.0))
    return min(max(d, 0.0), 1.0)


def luminance_adaptation_factor(la: float) -> float:
    """
    F_L = 0.2 k^4 (5 La) + 0.1 (1 - k^4)^2 (5 La)^(1/3), k = 1 / (5 La + 1).
    """
    k = 1.0 / (5.0 * la + 1.0)
    k4 = k ** 4
    return 0.2 * k4 * (5.0 * la) + 0.1 * (1.0 - k4) ** 2 * (5.0 * la) ** (1.0 / 3.0)


@dataclass(slots=True, frozen=True)
class ViewingConditions:
    """
    Resolved viewing conditions.

    Inputs:
        la: Adapting field luminance (cd/m²), > 0.
        yb: Relative background luminance (Y of background, white Y = 100), >= 0.
        surround: Surround class.

    Derived:
        f, c, nc: Surround parameters (pure function of *surround*).
        d: Degree of adaptation in [0, 1], explicit or derived from F and La.
        fl: Luminance-level adaptation factor.
        d_explicit: Whether *d* was supplied by the caller.
    """
    la: float
    yb: float
    surround: SurroundName
    f: float
    c: float
    nc: float
    d: float
    fl: float
    d_explicit: bool = False

    @property
    def fl_quarter(self) -> float:
        """F_L^0.25, the scaling shared by Q and M."""
        return self.fl ** 0.25


def resolve_viewing_conditions(
    la: float,
    yb: float,
    surround: str = "average",
    d: Optional[float] = None,
) -> ViewingConditions:
    """
    Validate and derive a complete :class:`ViewingConditions`.

    Args:
        la: Adapting luminance in cd/m²; often 20 % of the white luminance.
        yb: Background relative luminance (typically 20).
        surround: ``"average"``, ``"dim"`` or ``"dark"``.
        d: Optional explicit degree of adaptation in [0, 1]. ``None`` derives
            it from F and La.

    Returns:
        Resolved conditions.  Pure: identical inputs give identical output.

    Raises:
        InvalidViewingConditionsError: La <= 0, Yb < 0, non-finite input,
            unknown surround, or explicit D outside [0, 1].
    """
    try:
        la = float(la)
        yb = float(yb)
    except (TypeError, ValueError) as exc:
        raise InvalidViewingConditionsError(f"La and Yb must be numeric: {exc}") from exc

    if not math.isfinite(la) or la <= 0.0:
        raise InvalidViewingConditionsError(f"La must be finite and > 0, got {la}")
    if not math.isfinite(yb) or yb < 0.0:
        raise InvalidViewingConditionsError(f"Yb must be finite and >= 0, got {yb}")

    params = surround_parameters(surround)
    name: SurroundName = surround.strip().lower()  # type: ignore[assignment]

    if d is None:
        d_value = degree_of_adaptation(params.f, la)
        explicit = False
    else:
        d_value = float(d)
        if not math.isfinite(d_value) or d_value < 0.0 or d_value > 1.0:
            raise InvalidViewingConditionsError(
                f"Degree of adaptation D must lie in [0, 1], got {d}"
            )
        explicit = True

    return ViewingConditions(
        la=la,
        yb=yb,
        surround=name,
        f=params.f,
        c=params.c,
        nc=params.nc,
        d=d_value,
        fl=luminance_adaptation_factor(la),
        d_explicit=explicit,
    )


# --- Presets ---
# Office viewing: 1000 lx on a white surface, La = 1000 / π ≈ 318.31 cd/m².
_OFFICE_LA: Final[float] = 318.31

VC_AVERAGE: Final[ViewingConditions] = resolve_viewing_conditions(_OFFICE_LA, 20.0, "average")
VC_DIM: Final[ViewingConditions] = resolve_viewing_conditions(_OFFICE_LA, 20.0, "dim")
VC_DARK: Final[ViewingConditions] = resolve_viewing_conditions(_OFFICE_LA, 20.0, "dark")
# ANSI/IES TM-30 colour rendition: fully adapted observer.
VC_TM30: Final[ViewingConditions] = resolve_viewing_conditions(100.0, 20.0, "average", d=1.0)
