"""Split criteria and the Hoeffding bound.

Both criteria are pure functions of class-count vectors. A `SplitCriterion`
bundles one impurity function with its known range so that a single object,
chosen once at tree construction, can be threaded through every node.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import numpy as np

from streamtree.models import CriterionName

# ---------------------------------------------------------------------------
# Public interface -- Impurity functions
# ---------------------------------------------------------------------------


def gini_impurity(counts: np.ndarray | Sequence[int]) -> float:
    """Return the Gini impurity `1 - sum((c_i / n)^2)` of a class distribution.

    Args:
        counts (np.ndarray | Sequence[int]): Per-class counts.

    Returns:
        float: The impurity in `[0, 1)`; `0.0` for an empty or pure distribution.

    Examples:
        >>> gini_impurity([5, 5])
        0.5
        >>> gini_impurity([0, 7])
        0.0
    """
    counts_array = np.asarray(counts, dtype=np.float64)
    total = counts_array.sum()
    if total <= 0.0:
        return 0.0
    probabilities = counts_array / total
    return float(1.0 - np.dot(probabilities, probabilities))


def entropy(counts: np.ndarray | Sequence[int]) -> float:
    """Return the entropy `-sum(p log2 p)` of a class distribution in bits.

    Classes with zero count contribute nothing (`0 log 0 == 0`).

    Args:
        counts (np.ndarray | Sequence[int]): Per-class counts.

    Returns:
        float: The entropy; `0.0` for an empty or pure distribution.

    Examples:
        >>> entropy([4, 4])
        1.0
    """
    counts_array = np.asarray(counts, dtype=np.float64)
    total = counts_array.sum()
    if total <= 0.0:
        return 0.0
    probabilities = counts_array[counts_array > 0.0] / total
    return float(max(0.0, -np.sum(probabilities * np.log2(probabilities))))


def hoeffding_bound(value_range: float, confidence: float, n: int) -> float:
    """Return the Hoeffding bound `sqrt(R^2 ln(1/delta) / (2n))`.

    Args:
        value_range (float): Range `R` of the estimated quantity.
        confidence (float): The admissible failure probability `delta` in `(0, 1)`.
        n (int): Number of observations backing the estimate.

    Returns:
        float: The bound `epsilon`; `inf` when `n` is zero.
    """
    if n <= 0:
        return math.inf
    return math.sqrt((value_range * value_range * math.log(1.0 / confidence)) / (2.0 * n))


# ---------------------------------------------------------------------------
# Public interface -- Criterion strategies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SplitCriterion:
    """A split-quality strategy over class-count vectors.

    Attributes:
        name (CriterionName): Configuration name of the criterion.
        impurity_fn (Callable): Impurity of one class distribution.
        range_fn (Callable): Known range of `merit` for a given number of classes.
    """

    name: CriterionName
    impurity_fn: Callable[[np.ndarray], float]
    range_fn: Callable[[int], float]

    def impurity(self, counts: np.ndarray | Sequence[int]) -> float:
        """Return the impurity of one class distribution."""
        return self.impurity_fn(np.asarray(counts))

    def merit(self, parent_counts: np.ndarray, child_counts: Sequence[np.ndarray]) -> float:
        """Return the impurity reduction of partitioning `parent_counts` into `child_counts`.

        Larger is better. The unsplit partition (a single child equal to the
        parent) has merit `0.0`.

        Args:
            parent_counts (np.ndarray): Class counts before the split.
            child_counts (Sequence[np.ndarray]): Class counts of each outcome.

        Returns:
            float: Parent impurity minus the size-weighted child impurity.
        """
        parent = np.asarray(parent_counts, dtype=np.float64)
        total = parent.sum()
        if total <= 0.0:
            return 0.0
        weighted = 0.0
        for counts in child_counts:
            child_total = float(np.sum(counts))
            if child_total > 0.0:
                weighted += (child_total / total) * self.impurity_fn(np.asarray(counts))
        # Floating error can push a zero-gain partition slightly negative.
        return max(0.0, self.impurity_fn(parent) - weighted)

    def range(self, num_classes: int) -> float:
        """Return the range `R` used in the Hoeffding bound."""
        return self.range_fn(num_classes)


def _information_gain_range(num_classes: int) -> float:
    return math.log(num_classes)


GINI = SplitCriterion(name="gini", impurity_fn=gini_impurity, range_fn=lambda _num_classes: 1.0)
INFORMATION_GAIN = SplitCriterion(name="info_gain", impurity_fn=entropy, range_fn=_information_gain_range)

_CRITERIA: dict[str, SplitCriterion] = {
    GINI.name: GINI,
    INFORMATION_GAIN.name: INFORMATION_GAIN,
}


def get_criterion(name: CriterionName) -> SplitCriterion:
    """Resolve a criterion by configuration name.

    Args:
        name (CriterionName): `"gini"` or `"info_gain"`.

    Returns:
        SplitCriterion: The matching strategy object.

    Raises:
        ValueError: If `name` is not a known criterion.
    """
    try:
        return _CRITERIA[name]
    except KeyError:
        raise ValueError(f"Unknown split criterion {name!r}; expected one of {sorted(_CRITERIA)}") from None
