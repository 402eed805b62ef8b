# -*- coding: utf-8 -*-
"""
Iris: Weaving the mathematics of colour appearance
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Appearance Pipeline
===================
Single import point for the whole chain

    spectrum -> tristimulus -> CAT02 -> CIECAM02 (forward / inverse)
             -> colour differences

Usage:
    >>> import iris_pipeline as iris
    >>> vc = iris.resolve_viewing_conditions(318.31, 20.0, "average")
    >>> cam = iris.appearance([19.01, 20.00, 21.78], [95.05, 100.0, 108.88], vc)
    >>> round(cam.J, 2)
    41.73
"""

from __future__ import annotations

from typing import Optional

from __about__ import __version__
from iris_batch import (
    BatchReport,
    RecordResult,
    difference_batch,
    forward_batch,
    inverse_batch,
    run_batch,
    set_default_workers,
)
from iris_cat02 import AdaptedResponse, adapt, adapt_array
from iris_ciecam02 import (
    CORRELATE_COLUMNS,
    HUE_UNDEFINED,
    AppearanceCorrelates,
    appearance,
    forward,
    forward_xyz,
    get_achromatic_tolerance,
    hue_from_quadrature,
    hue_quadrature,
    inverse,
    inverse_jch,
    set_achromatic_tolerance,
)
from iris_colorspace import (
    UCS_VARIANTS,
    Lab,
    correlates_to_ucs,
    lab_to_lch,
    lab_to_xyz,
    lch_to_lab,
    ucs_to_jmh,
    ucs_to_xyz,
    xyz_to_lab,
    xyz_to_ucs,
)
from iris_errors import (
    ERROR_KINDS,
    HueUndefinedError,
    InvalidDomainError,
    InvalidViewingConditionsError,
    IrisError,
    NonInvertibleError,
    SingularWhitePointError,
    UnsupportedFormulaVariantError,
)
from iris_metrics import Formula, difference, difference_matrix, rank_matches
from iris_spectral import (
    Illuminant,
    Observer,
    SpectralDistribution,
    Tristimulus,
    integrate,
    planck,
    planckian,
    white_point,
)
from iris_viewing import (
    VC_AVERAGE,
    VC_DARK,
    VC_DIM,
    VC_TM30,
    ViewingConditions,
    resolve_viewing_conditions,
    surround_from_ratio,
)

__all__ = [
    "__version__",
    # spectral
    "SpectralDistribution", "Observer", "Illuminant", "Tristimulus",
    "integrate", "white_point", "planck", "planckian",
    # viewing conditions
    "ViewingConditions", "resolve_viewing_conditions", "surround_from_ratio",
    "VC_AVERAGE", "VC_DIM", "VC_DARK", "VC_TM30",
    # adaptation and appearance
    "AdaptedResponse", "adapt", "adapt_array",
    "AppearanceCorrelates", "HUE_UNDEFINED", "CORRELATE_COLUMNS",
    "forward", "inverse", "appearance", "forward_xyz", "inverse_jch",
    "hue_quadrature", "hue_from_quadrature",
    "set_achromatic_tolerance", "get_achromatic_tolerance",
    "appearance_from_spectrum",
    # colour spaces
    "Lab", "xyz_to_lab", "lab_to_xyz", "lab_to_lch", "lch_to_lab",
    "UCS_VARIANTS", "correlates_to_ucs", "ucs_to_jmh", "xyz_to_ucs", "ucs_to_xyz",
    # differences
    "Formula", "difference", "difference_matrix", "rank_matches",
    # batch
    "RecordResult", "BatchReport", "run_batch", "forward_batch",
    "inverse_batch", "difference_batch", "set_default_workers",
    # errors
    "IrisError", "InvalidDomainError", "InvalidViewingConditionsError",
    "SingularWhitePointError", "HueUndefinedError", "NonInvertibleError",
    "UnsupportedFormulaVariantError", "ERROR_KINDS",
]


def appearance_from_spectrum(
    spectrum: SpectralDistribution,
    observer: Observer,
    illuminant: Illuminant,
    conditions: Optional[ViewingConditions] = None,
    interpolation: str = "linear",
) -> AppearanceCorrelates:
    """
    Appearance correlates of a reflectance spectrum viewed under *illuminant*.

    The illuminant's perfect diffuser is the adopted white; both are
    integrated with the same observer.

    Args:
        spectrum: Reflectance factor samples.
        observer: Colour-matching functions.
        illuminant: Light source (also defines the white).
        conditions: Viewing conditions, ``VC_AVERAGE`` when omitted.
        interpolation: Spectral resampling method.

    Returns:
        CIECAM02 correlates.
    """
    vc = VC_AVERAGE if conditions is None else conditions
    xyz = integrate(spectrum, observer, illuminant, interpolation=interpolation)
    xyz_w = white_point(observer, illuminant, interpolation=interpolation)
    return appearance(xyz, xyz_w, vc)
