"""Split tests that map a raw attribute value to a child index."""

from __future__ import annotations

import math
from dataclasses import dataclass

from streamtree.exceptions import UnseenCategoryError
from streamtree.models import CategoricalTestState, NumericTestState, SplitTestState


@dataclass(frozen=True)
class CategoricalSplitInfo:
    """Multiway test on a categorical attribute: one child per category id.

    Attributes:
        attribute (int): Index of the tested attribute.
        arity (int): Number of categories, and therefore children.

    Examples:
        >>> info = CategoricalSplitInfo(attribute=0, arity=3)
        >>> info.direction(2.0)
        2
    """

    attribute: int
    arity: int

    @property
    def num_children(self) -> int:
        return self.arity

    def direction(self, value: float) -> int:
        """Return the child index for `value`.

        Raises:
            UnseenCategoryError: If `value` is not a category id in `[0, arity)`.
        """
        if not math.isfinite(value) or value != int(value) or not 0 <= value < self.arity:
            raise UnseenCategoryError(attribute=self.attribute, value=value)
        return int(value)

    def describe(self, child: int) -> str:
        return f"x[{self.attribute}] == {child}"

    def to_state(self) -> CategoricalTestState:
        return CategoricalTestState(attribute=self.attribute, arity=self.arity)


@dataclass(frozen=True)
class NumericSplitInfo:
    """Binary threshold test on a numeric attribute.

    Child 0 receives values below `threshold`, child 1 values at or above it.
    NaN compares false and is routed to child 1.

    Attributes:
        attribute (int): Index of the tested attribute.
        threshold (float): The frozen split point.

    Examples:
        >>> info = NumericSplitInfo(attribute=1, threshold=0.5)
        >>> info.direction(0.25), info.direction(0.5)
        (0, 1)
    """

    attribute: int
    threshold: float

    @property
    def num_children(self) -> int:
        return 2

    def direction(self, value: float) -> int:
        return 0 if value < self.threshold else 1

    def describe(self, child: int) -> str:
        operator = "<" if child == 0 else ">="
        return f"x[{self.attribute}] {operator} {self.threshold}"

    def to_state(self) -> NumericTestState:
        return NumericTestState(attribute=self.attribute, threshold=self.threshold)


type SplitInfo = CategoricalSplitInfo | NumericSplitInfo


def split_info_from_state(state: SplitTestState) -> SplitInfo:
    """Rebuild a split test from its serialized form.

    Args:
        state (SplitTestState): A categorical or numeric test state.

    Returns:
        SplitInfo: The equivalent split test.
    """
    if isinstance(state, CategoricalTestState):
        return CategoricalSplitInfo(attribute=state.attribute, arity=state.arity)
    return NumericSplitInfo(attribute=state.attribute, threshold=state.threshold)


@dataclass(frozen=True)
class SplitCandidate:
    """One candidate decision at a leaf, scored by a split criterion.

    The null candidate (`split is None`) stands for "do not split"; its merit
    is the criterion evaluated on the unsplit distribution, which is zero
    impurity reduction.

    Attributes:
        merit (float): Impurity reduction of the induced partition; larger is better.
        split (SplitInfo | None): The split test, or `None` for the null candidate.
    """

    merit: float
    split: SplitInfo | None = None

    @property
    def is_null(self) -> bool:
        return self.split is None

    @property
    def attribute(self) -> int | None:
        return None if self.split is None else self.split.attribute
