# -*- coding: utf-8 -*-
"""
Iris: Weaving the mathematics of colour appearance
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: iris_batch.py — Thread fan-out over independent colour records.

Every record is evaluated in isolation: a failing record becomes a
``RecordResult`` carrying its error and never aborts the batch.  The core
transforms are pure and their Numba kernels release the GIL, so a thread
pool is enough for parallel speed-up.
"""

from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union

from iris_cat02 import XYZLike
from iris_ciecam02 import AppearanceCorrelates, CorrelateInput, appearance, inverse
from iris_metrics import ColorInput, Formula, difference
from iris_spectral import Tristimulus
from iris_viewing import ViewingConditions

__all__ = [
    "RecordResult",
    "BatchReport",
    "set_default_workers",
    "run_batch",
    "forward_batch",
    "inverse_batch",
    "difference_batch",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# Errors that mark a single bad record rather than a broken batch.
_RECORD_ERRORS: Tuple[type[BaseException], ...] = (ValueError, TypeError, ArithmeticError)


# --- Runtime Configuration ---
# None lets ThreadPoolExecutor pick min(32, cpu_count + 4).
_DEFAULT_WORKERS: Optional[int] = None


def set_default_workers(n: Optional[int] = None) -> None:
    """
    Set the thread count used when a batch call passes ``max_workers=None``.

    Args:
        n: Worker count >= 1, or None for the executor default.
    """
    global _DEFAULT_WORKERS
    if n is not None and (not isinstance(n, int) or n < 1):
        raise ValueError(f"Worker count must be a positive integer or None, got {n!r}")
    _DEFAULT_WORKERS = n


@dataclass(slots=True, frozen=True)
class RecordResult(Generic[R]):
    """Outcome of one record: exactly one of *value* / *error* is set."""
    index: int
    value: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> Optional[str]:
        """Stable error kind (``IrisError.kind``) or the exception class name."""
        if self.error is None:
            return None
        return getattr(self.error, "kind", type(self.error).__name__)


@dataclass(slots=True)
class BatchReport(Generic[R]):
    """Results of a batch, ordered by record index."""
    results: List[RecordResult[R]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self):
        return iter(self.results)

    @property
    def successes(self) -> List[RecordResult[R]]:
        return [r for r in self.results if r.ok]

    @property
    def failures(self) -> List[RecordResult[R]]:
        return [r for r in self.results if not r.ok]

    def values(self) -> List[Optional[R]]:
        """Values in record order, ``None`` for failed records."""
        return [r.value for r in self.results]

    def error_counts(self) -> Dict[str, int]:
        return dict(Counter(r.error_kind for r in self.results if not r.ok))


def _evaluate(func: Callable[[T], R], index: int, record: T) -> RecordResult[R]:
    try:
        return RecordResult(index=index, value=func(record))
    except _RECORD_ERRORS as exc:
        return RecordResult(index=index, error=exc)


def run_batch(
    func: Callable[[T], R],
    records: Iterable[T],
    max_workers: Optional[int] = None,
) -> BatchReport[R]:
    """
    Apply *func* to every record on a thread pool.

    Args:
        func: Pure per-record function.
        records: Input records.
        max_workers: Thread count; ``None`` uses :func:`set_default_workers`.

    Returns:
        A :class:`BatchReport` sorted by record index.
    """
    items = list(records)
    workers = max_workers if max_workers is not None else _DEFAULT_WORKERS
    results: List[RecordResult[R]] = []

    if items:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(_evaluate, func, i, rec) for i, rec in enumerate(items)]
            for future in as_completed(futures):
                results.append(future.result())
    results.sort(key=lambda r: r.index)

    report = BatchReport(results)
    failed = report.failures
    if failed:
        logger.warning(
            "Batch finished with %d/%d failed records: %s",
            len(failed), len(items), report.error_counts(),
        )
        for r in failed:
            logger.debug("Record %d failed (%s): %s", r.index, r.error_kind, r.error)
    else:
        logger.debug("Batch finished: %d records", len(items))
    return report


def forward_batch(
    stimuli: Sequence[XYZLike],
    white: XYZLike,
    conditions: ViewingConditions,
    max_workers: Optional[int] = None,
) -> BatchReport[AppearanceCorrelates]:
    """Appearance correlates for many stimuli under one white and one set of conditions."""
    return run_batch(lambda xyz: appearance(xyz, white, conditions), stimuli, max_workers)


def inverse_batch(
    correlates: Sequence[CorrelateInput],
    conditions: ViewingConditions,
    white: XYZLike,
    max_workers: Optional[int] = None,
) -> BatchReport[Tristimulus]:
    """Reverse-mode tristimulus values for many correlate sets."""
    return run_batch(lambda c: inverse(c, conditions, white), correlates, max_workers)


def difference_batch(
    pairs: Sequence[Tuple[ColorInput, ColorInput]],
    formula: Union[Formula, str] = Formula.CIEDE2000,
    variant: Optional[str] = None,
    max_workers: Optional[int] = None,
) -> BatchReport[Any]:
    """Colour differences for many ``(reference, test)`` pairs."""
    return run_batch(lambda p: difference(p[0], p[1], formula, variant), pairs, max_workers)
