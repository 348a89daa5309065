"""Tests for node records, the growth engine and routing."""

from __future__ import annotations

from typing import Any

import numpy as np
import pytest
from pytest_check import check

from streamtree.hoeffding.categorical_split import CategoricalSplitAccumulator
from streamtree.hoeffding.criteria import hoeffding_bound
from streamtree.hoeffding.nodes import DecisionNode, GrowthEngine, LeafNode, LeafState, Node, find_leaf
from streamtree.hoeffding.numeric_split import BinaryNumericSplitAccumulator, MultiBinNumericSplitAccumulator
from streamtree.hoeffding.split_info import CategoricalSplitInfo, NumericSplitInfo
from streamtree.models import HoeffdingTreeConfig, validate_schema

_CATEGORICAL_AND_NUMERIC = [{"kind": "categorical", "arity": 2}, {"kind": "numeric"}]
_TWO_CATEGORICAL = [{"kind": "categorical", "arity": 2}, {"kind": "categorical", "arity": 2}]


def _engine(attributes: list[dict[str, Any]], **hyperparameters: Any) -> tuple[GrowthEngine, list[Node]]:
    config = HoeffdingTreeConfig(num_classes=2, **hyperparameters)
    engine = GrowthEngine(validate_schema(attributes), config)
    return engine, [engine.new_leaf()]


def _feed(engine: GrowthEngine, nodes: list[Node], rows: list[tuple[list[float], int]]) -> list[bool]:
    """Route and learn each row, returning whether each call split a leaf."""
    outcomes = []
    for values, label in rows:
        example = np.asarray(values, dtype=np.float64)
        outcomes.append(engine.learn(nodes, find_leaf(nodes, 0, example), example, label))
    return outcomes


def _discriminating_rows(count: int) -> list[tuple[list[float], int]]:
    """Category 0 is always class 0 and category 1 always class 1; the numeric value is constant."""
    return [([float(i % 2), 0.0], i % 2) for i in range(count)]


class TestLeafNode:
    """Tests for `LeafNode` predictions."""

    def test_empty_leaf_predicts_default_class(self) -> None:
        """A leaf with no examples answers with its inherited default class."""
        # Arrange
        engine, _ = _engine(_CATEGORICAL_AND_NUMERIC)
        leaf = engine.new_leaf(default_class=1)

        # Act & Assert
        with check:
            assert leaf.majority_class() == 1
        with check:
            assert leaf.class_probabilities().tolist() == [0.0, 1.0]

    def test_majority_ties_go_to_lowest_class(self) -> None:
        """Equal counts predict the lowest class id."""
        engine, _ = _engine(_CATEGORICAL_AND_NUMERIC)
        leaf = engine.new_leaf()
        leaf.class_counts[:] = [3, 3]
        assert leaf.majority_class() == 0

    @pytest.mark.parametrize(
        ("counts", "expected"),
        [([0, 0], True), ([4, 0], True), ([4, 1], False)],
        ids=["empty", "single-class", "mixed"],
    )
    def test_is_pure(self, counts: list[int], expected: bool) -> None:
        """A leaf is pure when at most one class has been seen.

        Args:
            counts (list[int]): Class counts.
            expected (bool): Expected purity.
        """
        engine, _ = _engine(_CATEGORICAL_AND_NUMERIC)
        leaf = engine.new_leaf()
        leaf.class_counts[:] = counts
        assert leaf.is_pure is expected


class TestNewLeaf:
    """Tests for `GrowthEngine.new_leaf` and accumulator selection."""

    @pytest.mark.parametrize(
        ("strategy", "numeric_type"),
        [("multi_bin", MultiBinNumericSplitAccumulator), ("binary", BinaryNumericSplitAccumulator)],
        ids=["multi-bin", "binary"],
    )
    def test_accumulator_per_attribute(self, strategy: str, numeric_type: type) -> None:
        """Each attribute gets the accumulator matching its kind and the numeric strategy.

        Args:
            strategy (str): Configured numeric strategy.
            numeric_type (type): Expected numeric accumulator class.
        """
        # Arrange
        engine, _ = _engine(_CATEGORICAL_AND_NUMERIC, numeric_strategy=strategy)

        # Act
        leaf = engine.new_leaf()

        # Assert
        with check:
            assert isinstance(leaf.accumulators[0], CategoricalSplitAccumulator)
        with check:
            assert isinstance(leaf.accumulators[1], numeric_type)
        with check:
            assert leaf.class_counts.tolist() == [0, 0]

    def test_excluded_attributes_get_no_accumulator(self) -> None:
        """Attributes already tested on the path are not tracked."""
        engine, _ = _engine(_CATEGORICAL_AND_NUMERIC)
        leaf = engine.new_leaf(excluded=frozenset({0}))
        assert sorted(leaf.accumulators) == [1]


class TestLearnSchedule:
    """Tests for when a leaf evaluates and splits."""

    def test_no_split_before_min_samples_then_split_at_grace_boundary(self) -> None:
        """With g=10 and m=35 the first evaluation happens at example 40."""
        # Arrange
        engine, nodes = _engine(_CATEGORICAL_AND_NUMERIC, grace_period=10, min_samples=35)

        # Act
        outcomes = _feed(engine, nodes, _discriminating_rows(40))

        # Assert
        with check:
            assert outcomes[:39] == [False] * 39
        with check:
            assert outcomes[39] is True
        with check:
            assert isinstance(nodes[0], DecisionNode)
            assert nodes[0].split == CategoricalSplitInfo(attribute=0, arity=2)

    def test_counter_resets_at_each_grace_boundary(self) -> None:
        """The since-last-check counter restarts after every grace period."""
        # Arrange
        engine, nodes = _engine(_CATEGORICAL_AND_NUMERIC, grace_period=10, min_samples=100)

        # Act
        _feed(engine, nodes, _discriminating_rows(23))

        # Assert
        leaf = nodes[0]
        assert isinstance(leaf, LeafNode)
        with check:
            assert leaf.samples_seen == 23
        with check:
            assert leaf.samples_since_check == 3

    def test_pure_leaf_never_splits(self) -> None:
        """A single-class leaf is never evaluated."""
        # Arrange
        engine, nodes = _engine(_CATEGORICAL_AND_NUMERIC, grace_period=5, min_samples=5)

        # Act
        outcomes = _feed(engine, nodes, [([float(i % 2), float(i)], 0) for i in range(50)])

        # Assert
        with check:
            assert not any(outcomes)
        with check:
            assert isinstance(nodes[0], LeafNode)
            assert nodes[0].state is LeafState.ACTIVE

    def test_tie_threshold_forces_split_between_equal_attributes(self) -> None:
        """Two indistinguishable attributes split once the bound drops below tau (n=600 for delta=tau=0.05)."""
        # Arrange
        engine, nodes = _engine(_TWO_CATEGORICAL, grace_period=100, min_samples=100)
        rows = [([float(i % 2), float(i % 2)], i % 2) for i in range(600)]

        # Act
        outcomes = _feed(engine, nodes, rows)

        # Assert
        with check:
            assert outcomes.index(True) == 599
        with check:
            assert isinstance(nodes[0], DecisionNode)
            assert nodes[0].split.attribute == 0

    def test_max_samples_forces_split(self) -> None:
        """A positive `max_samples` forces the split even when the bound is not met."""
        # Arrange
        engine, nodes = _engine(_TWO_CATEGORICAL, grace_period=10, min_samples=10, tie_threshold=0.0, max_samples=10)
        rows = [([float(i % 2), float(i % 2)], i % 2) for i in range(10)]

        # Act
        outcomes = _feed(engine, nodes, rows)

        # Assert
        assert outcomes[-1] is True

    def test_null_candidate_winning_resets_accumulators(self) -> None:
        """When no attribute beats "do not split", accumulators restart and the leaf stays a leaf."""
        # Arrange
        engine, nodes = _engine(_CATEGORICAL_AND_NUMERIC, grace_period=20, min_samples=20, tie_threshold=1.0)
        uninformative = [([float((i // 2) % 2), 0.0], i % 2) for i in range(20)]

        # Act
        outcomes = _feed(engine, nodes, uninformative)

        # Assert
        leaf = nodes[0]
        assert isinstance(leaf, LeafNode)
        with check:
            assert not any(outcomes)
        with check:
            assert leaf.samples_seen == 20
        with check:
            assert leaf.accumulator_samples == 0
        with check:
            assert leaf.class_counts.tolist() == [10, 10]
        with check:
            assert all(int(acc.class_counts().sum()) == 0 for acc in leaf.accumulators.values())


class TestEvaluate:
    """Tests for `GrowthEngine.evaluate`."""

    def test_reports_bound_and_ranked_candidates(self) -> None:
        """The decision carries epsilon for the accumulated sample count and the two best candidates."""
        # Arrange
        engine, nodes = _engine(_CATEGORICAL_AND_NUMERIC, grace_period=1000, min_samples=1000)
        _feed(engine, nodes, _discriminating_rows(50))
        leaf = nodes[0]
        assert isinstance(leaf, LeafNode)

        # Act
        decision = engine.evaluate(leaf)

        # Assert
        with check:
            assert decision.samples == 50
        with check:
            assert decision.epsilon == pytest.approx(hoeffding_bound(1.0, 0.05, 50))
        with check:
            assert decision.best.attribute == 0
            assert decision.best.merit == pytest.approx(0.5)
        with check:
            assert decision.second.is_null
        with check:
            assert decision.should_split
        with check:
            assert leaf.state is LeafState.EVALUATING

    def test_info_gain_uses_log_class_count_range(self) -> None:
        """Information gain bounds use `R = ln(num_classes)`."""
        # Arrange
        engine, nodes = _engine(_CATEGORICAL_AND_NUMERIC, criterion="info_gain", grace_period=1000, min_samples=1000)
        _feed(engine, nodes, _discriminating_rows(30))
        leaf = nodes[0]
        assert isinstance(leaf, LeafNode)

        # Act
        decision = engine.evaluate(leaf)

        # Assert
        assert decision.epsilon == pytest.approx(hoeffding_bound(np.log(2), 0.05, 30))


class TestSplit:
    """Tests for `GrowthEngine.split`."""

    def test_categorical_split_excludes_attribute_in_children(self) -> None:
        """Children of a categorical test stop tracking that attribute and inherit the default class."""
        # Arrange
        engine, nodes = _engine(_CATEGORICAL_AND_NUMERIC)
        leaf = nodes[0]
        assert isinstance(leaf, LeafNode)
        leaf.class_counts[:] = [1, 4]

        # Act
        children = engine.split(nodes, 0, CategoricalSplitInfo(attribute=0, arity=2))

        # Assert
        with check:
            assert children == [1, 2]
        for child_id in children:
            child = nodes[child_id]
            assert isinstance(child, LeafNode)
            with check:
                assert sorted(child.accumulators) == [1]
            with check:
                assert (child.parent, child.depth, child.default_class) == (0, 1, 1)
            with check:
                assert child.class_counts.tolist() == [0, 0]
        with check:
            assert isinstance(nodes[0], DecisionNode)
            assert nodes[0].class_counts.tolist() == [1, 4]

    def test_numeric_split_keeps_all_attributes(self) -> None:
        """Children of a numeric test keep every attribute."""
        # Arrange
        engine, nodes = _engine(_CATEGORICAL_AND_NUMERIC)

        # Act
        children = engine.split(nodes, 0, NumericSplitInfo(attribute=1, threshold=0.5))

        # Assert
        for child_id in children:
            child = nodes[child_id]
            assert isinstance(child, LeafNode)
            with check:
                assert sorted(child.accumulators) == [0, 1]


class TestFindLeaf:
    """Tests for `find_leaf` routing."""

    def test_routes_through_decision_nodes(self) -> None:
        """Examples descend by each node's test."""
        # Arrange
        engine, nodes = _engine(_CATEGORICAL_AND_NUMERIC)
        engine.split(nodes, 0, CategoricalSplitInfo(attribute=0, arity=2))
        engine.split(nodes, 2, NumericSplitInfo(attribute=1, threshold=0.5))

        # Act
        reached = [find_leaf(nodes, 0, np.array(values)) for values in ([0.0, 9.0], [1.0, 0.1], [1.0, 0.9])]

        # Assert
        assert reached == [1, 3, 4]

    def test_unseen_category_routes_to_first_child(self) -> None:
        """A category with no child goes to child 0 instead of raising."""
        # Arrange
        engine, nodes = _engine(_CATEGORICAL_AND_NUMERIC)
        engine.split(nodes, 0, CategoricalSplitInfo(attribute=0, arity=2))

        # Act
        reached = find_leaf(nodes, 0, np.array([7.0, 0.0]))

        # Assert
        assert reached == 1
