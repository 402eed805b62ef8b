# -*- coding: utf-8 -*-
"""
Iris: Weaving the mathematics of colour appearance
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: iris_errors.py — Error kinds raised by the appearance pipeline.

Every failure of a public operation is reported as exactly one of the
classes below.  All of them derive from ``ValueError`` so code that only
guards against bad input keeps working, and each carries a stable
``kind`` string that batch reports and callers can branch on.
"""

from typing import Final

__all__ = [
    "IrisError",
    "InvalidDomainError",
    "InvalidViewingConditionsError",
    "SingularWhitePointError",
    "HueUndefinedError",
    "NonInvertibleError",
    "UnsupportedFormulaVariantError",
    "ERROR_KINDS",
]


class IrisError(ValueError):
    """Base class for all pipeline errors."""

    kind: str = "IrisError"


class InvalidDomainError(IrisError):
    """Malformed or non-overlapping spectral domains, or non-finite samples."""

    kind = "InvalidDomain"


class InvalidViewingConditionsError(IrisError):
    """La <= 0, unknown surround class, D outside [0, 1], or A_w <= 0."""

    kind = "InvalidViewingConditions"


class SingularWhitePointError(IrisError):
    """A CAT02 white-point channel response is zero."""

    kind = "SingularWhitePoint"


class HueUndefinedError(IrisError):
    """A numeric hue was demanded from an achromatic stimulus."""

    kind = "HueUndefined"


class NonInvertibleError(IrisError):
    """Unsupported correlate set, or a response outside the compression's range."""

    kind = "NonInvertible"


class UnsupportedFormulaVariantError(IrisError):
    """Unknown colour difference formula or parameter variant."""

    kind = "UnsupportedFormulaVariant"


ERROR_KINDS: Final[tuple[str, ...]] = tuple(
    cls.kind
    for cls in (
        InvalidDomainError,
        InvalidViewingConditionsError,
        SingularWhitePointError,
        HueUndefinedError,
        NonInvertibleError,
        UnsupportedFormulaVariantError,
    )
)
