"""Per-leaf sufficient statistics for a categorical attribute."""

from __future__ import annotations

import math

import numpy as np

from streamtree.exceptions import InvalidCategoryError
from streamtree.hoeffding.criteria import SplitCriterion
from streamtree.hoeffding.split_info import CategoricalSplitInfo, SplitCandidate
from streamtree.models import CategoricalAccumulatorState


class CategoricalSplitAccumulator:
    """Class counts per category of one attribute at one leaf.

    The only candidate split is the multiway test with one child per category.

    Attributes:
        attribute (int): Index of the attribute in the schema.
        arity (int): Number of categories.
        num_classes (int): Size of the label domain.

    Examples:
        >>> from streamtree.hoeffding.criteria import GINI
        >>> accumulator = CategoricalSplitAccumulator(attribute=0, arity=2, num_classes=2)
        >>> for value, label in [(0, 0), (0, 0), (1, 1), (1, 1)]:
        ...     accumulator.update(value, label)
        >>> accumulator.best_candidate(GINI).merit
        0.5
    """

    def __init__(self, attribute: int, arity: int, num_classes: int) -> None:
        self.attribute = attribute
        self.arity = arity
        self.num_classes = num_classes
        self._counts = np.zeros((arity, num_classes), dtype=np.int64)

    @property
    def counts(self) -> np.ndarray:
        """np.ndarray: Copy of the `arity x num_classes` count table."""
        return self._counts.copy()

    def check_value(self, value: float) -> int:
        """Return `value` as a category id.

        Raises:
            InvalidCategoryError: If `value` is not an integer id in `[0, arity)`.
        """
        if not math.isfinite(value) or value != int(value) or not 0 <= value < self.arity:
            raise InvalidCategoryError(value=value, arity=self.arity, attribute=self.attribute)
        return int(value)

    def update(self, value: float, label: int) -> None:
        """Record one observation of `value` with class `label`.

        Raises:
            InvalidCategoryError: If `value` is outside the configured arity.
        """
        category = self.check_value(value)
        self._counts[category, label] += 1

    def class_counts(self) -> np.ndarray:
        """Return the marginal class counts over all categories."""
        return self._counts.sum(axis=0)

    def split_quality(self, criterion: SplitCriterion) -> list[SplitCandidate]:
        """Score the null candidate and the per-category split.

        Args:
            criterion (SplitCriterion): Criterion used to score each partition.

        Returns:
            list[SplitCandidate]: `[null_candidate, per_category_candidate]`.
        """
        total = self.class_counts()
        null_candidate = SplitCandidate(merit=criterion.merit(total, [total]))
        split_candidate = SplitCandidate(
            merit=criterion.merit(total, list(self._counts)),
            split=CategoricalSplitInfo(attribute=self.attribute, arity=self.arity),
        )
        return [null_candidate, split_candidate]

    def best_candidate(self, criterion: SplitCriterion) -> SplitCandidate | None:
        """Return the best non-null candidate derivable from this attribute."""
        return self.split_quality(criterion)[1]

    def to_state(self) -> CategoricalAccumulatorState:
        return CategoricalAccumulatorState(counts=self._counts.tolist())

    @classmethod
    def from_state(
        cls,
        state: CategoricalAccumulatorState,
        *,
        attribute: int,
        arity: int,
        num_classes: int,
    ) -> CategoricalSplitAccumulator:
        """Rebuild an accumulator from its serialized form.

        Raises:
            ValueError: If the stored table does not have shape `(arity, num_classes)`.
        """
        counts = np.asarray(state.counts, dtype=np.int64)
        if counts.shape != (arity, num_classes):
            raise ValueError(f"Categorical accumulator for attribute {attribute} must have shape ({arity}, {num_classes})")
        accumulator = cls(attribute=attribute, arity=arity, num_classes=num_classes)
        accumulator._counts = counts
        return accumulator
