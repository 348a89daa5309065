"""Hoeffding tree sub-package: split tests, criteria, accumulators, growth engine and tree."""

from __future__ import annotations

from streamtree.hoeffding.categorical_split import CategoricalSplitAccumulator
from streamtree.hoeffding.criteria import (
    GINI,
    INFORMATION_GAIN,
    SplitCriterion,
    entropy,
    get_criterion,
    gini_impurity,
    hoeffding_bound,
)
from streamtree.hoeffding.nodes import (
    DecisionNode,
    GrowthEngine,
    LeafNode,
    LeafState,
    Node,
    SplitAccumulator,
    SplitDecision,
    find_leaf,
)
from streamtree.hoeffding.numeric_split import BinaryNumericSplitAccumulator, MultiBinNumericSplitAccumulator
from streamtree.hoeffding.split_info import CategoricalSplitInfo, NumericSplitInfo, SplitCandidate, SplitInfo
from streamtree.hoeffding.tree import HoeffdingTree

__all__ = [
    "GINI",
    "INFORMATION_GAIN",
    "BinaryNumericSplitAccumulator",
    "CategoricalSplitAccumulator",
    "CategoricalSplitInfo",
    "DecisionNode",
    "GrowthEngine",
    "HoeffdingTree",
    "LeafNode",
    "LeafState",
    "MultiBinNumericSplitAccumulator",
    "Node",
    "NumericSplitInfo",
    "SplitAccumulator",
    "SplitCandidate",
    "SplitCriterion",
    "SplitDecision",
    "SplitInfo",
    "entropy",
    "find_leaf",
    "get_criterion",
    "gini_impurity",
    "hoeffding_bound",
]
