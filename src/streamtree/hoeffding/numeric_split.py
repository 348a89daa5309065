"""Per-leaf sufficient statistics for a numeric attribute.

Two interchangeable strategies are provided:

- `BinaryNumericSplitAccumulator` buffers the first N observations, keeps the
  best boundary found among them, then freezes that boundary and only counts
  classes below and at-or-above it.
- `MultiBinNumericSplitAccumulator` keeps at most k bins with per-class counts
  and merges the cheapest adjacent pair whenever a new distinct value would
  exceed k. `best_binary_split` scans bin boundaries, so its cost is linear in
  the number of bins rather than in the number of samples.

Both score exactly one binary threshold test plus the null candidate.
"""

from __future__ import annotations

from bisect import bisect_left

import numpy as np

from streamtree.hoeffding.criteria import SplitCriterion, gini_impurity
from streamtree.hoeffding.split_info import NumericSplitInfo, SplitCandidate
from streamtree.models import BinaryNumericAccumulatorState, MultiBinAccumulatorState

# ---------------------------------------------------------------------------
# Binary variant
# ---------------------------------------------------------------------------


class BinaryNumericSplitAccumulator:
    """Single-boundary numeric accumulator.

    While fewer than `observations_before_binning` values have been seen the
    observations are buffered and the boundary is re-estimated from them on
    demand. The observation that fills the buffer freezes the boundary at the
    best threshold under `criterion`; the buffer is then folded into two count
    vectors and discarded.

    Attributes:
        attribute (int): Index of the attribute in the schema.
        num_classes (int): Size of the label domain.
        observations_before_binning (int): Buffer size N.
        criterion (SplitCriterion): Criterion used to choose the frozen boundary.
    """

    def __init__(
        self,
        attribute: int,
        num_classes: int,
        criterion: SplitCriterion,
        observations_before_binning: int = 100,
    ) -> None:
        self.attribute = attribute
        self.num_classes = num_classes
        self.criterion = criterion
        self.observations_before_binning = observations_before_binning
        self._values: list[float] = []
        self._labels: list[int] = []
        self._frozen = False
        self._threshold: float | None = None
        self._below = np.zeros(num_classes, dtype=np.int64)
        self._at_or_above = np.zeros(num_classes, dtype=np.int64)

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    @property
    def threshold(self) -> float | None:
        """float | None: The frozen boundary, or the current estimate while buffering."""
        if self._frozen:
            return self._threshold
        return self._estimate_threshold(self.criterion)

    def update(self, value: float, label: int) -> None:
        """Record one observation of `value` with class `label`."""
        if self._frozen:
            assert self._threshold is not None
            if value < self._threshold:
                self._below[label] += 1
            else:
                self._at_or_above[label] += 1
            return

        self._values.append(float(value))
        self._labels.append(int(label))
        if len(self._values) >= self.observations_before_binning:
            self._freeze()

    def class_counts(self) -> np.ndarray:
        """Return the marginal class counts of every recorded observation."""
        if self._frozen:
            return self._below + self._at_or_above
        return np.bincount(np.asarray(self._labels, dtype=np.int64), minlength=self.num_classes).astype(np.int64)

    def partition_counts(self, threshold: float) -> tuple[np.ndarray, np.ndarray]:
        """Return `(below, at_or_above)` class counts for `threshold`.

        Once frozen only the frozen boundary can be evaluated.
        """
        if self._frozen:
            return self._below.copy(), self._at_or_above.copy()
        values = np.asarray(self._values, dtype=np.float64)
        labels = np.asarray(self._labels, dtype=np.int64)
        below_mask = values < threshold
        below = np.bincount(labels[below_mask], minlength=self.num_classes).astype(np.int64)
        at_or_above = np.bincount(labels[~below_mask], minlength=self.num_classes).astype(np.int64)
        return below, at_or_above

    def split_quality(self, criterion: SplitCriterion) -> list[SplitCandidate]:
        """Score the null candidate and the current boundary.

        Args:
            criterion (SplitCriterion): Criterion used to score each partition.

        Returns:
            list[SplitCandidate]: The null candidate, followed by the threshold
                candidate when a boundary exists.
        """
        total = self.class_counts()
        candidates = [SplitCandidate(merit=criterion.merit(total, [total]))]
        threshold = self._threshold if self._frozen else self._estimate_threshold(criterion)
        if threshold is not None:
            below, at_or_above = self.partition_counts(threshold)
            candidates.append(
                SplitCandidate(
                    merit=criterion.merit(total, [below, at_or_above]),
                    split=NumericSplitInfo(attribute=self.attribute, threshold=threshold),
                )
            )
        return candidates

    def best_candidate(self, criterion: SplitCriterion) -> SplitCandidate | None:
        """Return the threshold candidate, or `None` when no boundary exists yet."""
        candidates = self.split_quality(criterion)
        return candidates[1] if len(candidates) > 1 else None

    def _estimate_threshold(self, criterion: SplitCriterion) -> float | None:
        """Return the best midpoint between adjacent distinct buffered values.

        With a single distinct value that value is returned; with an empty
        buffer, `None`.
        """
        if not self._values:
            return None
        values = np.asarray(self._values, dtype=np.float64)
        labels = np.asarray(self._labels, dtype=np.int64)
        order = np.argsort(values, kind="stable")
        sorted_values = values[order]
        one_hot = np.zeros((len(sorted_values), self.num_classes), dtype=np.int64)
        one_hot[np.arange(len(sorted_values)), labels[order]] = 1
        cumulative = np.cumsum(one_hot, axis=0)
        total = cumulative[-1]

        cut_points = np.flatnonzero(sorted_values[1:] > sorted_values[:-1])
        if cut_points.size == 0:
            return float(sorted_values[0])

        best_threshold: float | None = None
        best_merit = -np.inf
        for index in cut_points:
            below = cumulative[index]
            merit = criterion.merit(total, [below, total - below])
            if merit > best_merit:
                best_merit = merit
                best_threshold = _midpoint(float(sorted_values[index]), float(sorted_values[index + 1]))
        return best_threshold

    def _freeze(self) -> None:
        threshold = self._estimate_threshold(self.criterion)
        assert threshold is not None
        self._below, self._at_or_above = self.partition_counts(threshold)
        self._threshold = threshold
        self._frozen = True
        self._values = []
        self._labels = []

    def to_state(self) -> BinaryNumericAccumulatorState:
        return BinaryNumericAccumulatorState(
            observations_before_binning=self.observations_before_binning,
            buffered_values=list(self._values),
            buffered_labels=list(self._labels),
            frozen=self._frozen,
            threshold=self._threshold,
            below=self._below.tolist(),
            at_or_above=self._at_or_above.tolist(),
        )

    @classmethod
    def from_state(
        cls,
        state: BinaryNumericAccumulatorState,
        *,
        attribute: int,
        num_classes: int,
        criterion: SplitCriterion,
    ) -> BinaryNumericSplitAccumulator:
        """Rebuild an accumulator from its serialized form.

        Raises:
            ValueError: If a frozen state has no threshold or mis-sized count vectors.
        """
        accumulator = cls(
            attribute=attribute,
            num_classes=num_classes,
            criterion=criterion,
            observations_before_binning=state.observations_before_binning,
        )
        accumulator._values = list(state.buffered_values)
        accumulator._labels = list(state.buffered_labels)
        if state.frozen:
            if state.threshold is None:
                raise ValueError(f"Frozen numeric accumulator for attribute {attribute} has no threshold")
            if len(state.below) != num_classes or len(state.at_or_above) != num_classes:
                raise ValueError(f"Numeric accumulator for attribute {attribute} must hold {num_classes} classes")
            accumulator._frozen = True
            accumulator._threshold = state.threshold
            accumulator._below = np.asarray(state.below, dtype=np.int64)
            accumulator._at_or_above = np.asarray(state.at_or_above, dtype=np.int64)
        return accumulator


# ---------------------------------------------------------------------------
# Multi-bin variant
# ---------------------------------------------------------------------------


class MultiBinNumericSplitAccumulator:
    """Bounded-memory numeric accumulator with at most `max_bins` bins.

    Each bin is identified by its lower boundary and holds the class counts of
    the values in `[boundary, next_boundary)`. A value equal to an existing
    boundary is counted in that bin; any other value opens a new bin starting
    at the value. When that makes the bin count exceed `max_bins`, the
    adjacent pair whose merge adds the least weighted Gini impurity is merged
    (ties go to the pair with the smallest boundary gap, then the leftmost).

    Attributes:
        attribute (int): Index of the attribute in the schema.
        num_classes (int): Size of the label domain.
        max_bins (int): Maximum number of bins `k`.

    Examples:
        >>> accumulator = MultiBinNumericSplitAccumulator(attribute=0, num_classes=2, max_bins=3)
        >>> for value in [1.0, 2.0, 3.0, 4.0]:
        ...     accumulator.update(value, 0)
        >>> accumulator.bin_count
        3
    """

    def __init__(self, attribute: int, num_classes: int, max_bins: int = 10) -> None:
        self.attribute = attribute
        self.num_classes = num_classes
        self.max_bins = max_bins
        self._boundaries: list[float] = []
        self._counts: list[np.ndarray] = []

    @property
    def bin_count(self) -> int:
        return len(self._boundaries)

    @property
    def boundaries(self) -> list[float]:
        """list[float]: Strictly increasing lower boundaries of the bins."""
        return list(self._boundaries)

    @property
    def bin_counts(self) -> np.ndarray:
        """np.ndarray: `bin_count x num_classes` count table."""
        if not self._counts:
            return np.zeros((0, self.num_classes), dtype=np.int64)
        return np.vstack(self._counts)

    def update(self, value: float, label: int) -> None:
        """Record one observation of `value` with class `label`."""
        value = float(value)
        index = bisect_left(self._boundaries, value)
        if index < len(self._boundaries) and self._boundaries[index] == value:
            self._counts[index][label] += 1
            return

        counts = np.zeros(self.num_classes, dtype=np.int64)
        counts[label] = 1
        self._boundaries.insert(index, value)
        self._counts.insert(index, counts)
        if len(self._boundaries) > self.max_bins:
            self._merge_adjacent(self._cheapest_merge())

    def class_counts(self) -> np.ndarray:
        """Return the marginal class counts over all bins."""
        return self.bin_counts.sum(axis=0)

    def best_binary_split(self, criterion: SplitCriterion) -> SplitCandidate | None:
        """Return the best threshold between adjacent bins under `criterion`.

        Threshold `j` sends bins `0..j-1` below and bins `j..` at-or-above, so
        the test threshold is the lower boundary of bin `j`. Ties keep the
        lowest threshold.

        Args:
            criterion (SplitCriterion): Criterion used to score each threshold.

        Returns:
            SplitCandidate | None: The best threshold candidate, or `None` with
                fewer than two bins.
        """
        if len(self._boundaries) < 2:
            return None
        cumulative = np.cumsum(self.bin_counts, axis=0)
        total = cumulative[-1]
        best: SplitCandidate | None = None
        for split_index in range(1, len(self._boundaries)):
            below = cumulative[split_index - 1]
            merit = criterion.merit(total, [below, total - below])
            if best is None or merit > best.merit:
                best = SplitCandidate(
                    merit=merit,
                    split=NumericSplitInfo(attribute=self.attribute, threshold=self._boundaries[split_index]),
                )
        return best

    def split_quality(self, criterion: SplitCriterion) -> list[SplitCandidate]:
        """Score the null candidate and the best binary threshold.

        Args:
            criterion (SplitCriterion): Criterion used to score each partition.

        Returns:
            list[SplitCandidate]: The null candidate, followed by the best
                threshold candidate when at least two bins exist.
        """
        total = self.class_counts()
        candidates = [SplitCandidate(merit=criterion.merit(total, [total]))]
        best = self.best_binary_split(criterion)
        if best is not None:
            candidates.append(best)
        return candidates

    def best_candidate(self, criterion: SplitCriterion) -> SplitCandidate | None:
        return self.best_binary_split(criterion)

    def _merge_cost(self, index: int) -> float:
        """Return the weighted Gini impurity added by merging bins `index` and `index + 1`."""
        left = self._counts[index]
        right = self._counts[index + 1]
        merged = left + right
        return float(
            merged.sum() * gini_impurity(merged) - left.sum() * gini_impurity(left) - right.sum() * gini_impurity(right)
        )

    def _cheapest_merge(self) -> int:
        return min(
            range(len(self._boundaries) - 1),
            key=lambda index: (
                round(self._merge_cost(index), 12),
                self._boundaries[index + 1] - self._boundaries[index],
                index,
            ),
        )

    def _merge_adjacent(self, index: int) -> None:
        """Fold bin `index + 1` into bin `index`, keeping the lower boundary."""
        self._counts[index] = self._counts[index] + self._counts[index + 1]
        del self._counts[index + 1]
        del self._boundaries[index + 1]

    def to_state(self) -> MultiBinAccumulatorState:
        return MultiBinAccumulatorState(
            max_bins=self.max_bins,
            boundaries=list(self._boundaries),
            counts=[counts.tolist() for counts in self._counts],
        )

    @classmethod
    def from_state(
        cls,
        state: MultiBinAccumulatorState,
        *,
        attribute: int,
        num_classes: int,
    ) -> MultiBinNumericSplitAccumulator:
        """Rebuild an accumulator from its serialized form.

        Raises:
            ValueError: If any bin does not hold exactly `num_classes` counts.
        """
        if any(len(counts) != num_classes for counts in state.counts):
            raise ValueError(f"Numeric accumulator for attribute {attribute} must hold {num_classes} classes")
        accumulator = cls(attribute=attribute, num_classes=num_classes, max_bins=state.max_bins)
        accumulator._boundaries = list(state.boundaries)
        accumulator._counts = [np.asarray(counts, dtype=np.int64) for counts in state.counts]
        return accumulator


def _midpoint(lower: float, upper: float) -> float:
    """Return a threshold strictly above `lower` and at most `upper`."""
    middle = (lower + upper) / 2.0
    return middle if lower < middle <= upper else upper
