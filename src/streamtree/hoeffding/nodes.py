"""Node records and the leaf growth engine.

Nodes live in an arena (a list indexed by stable integer ids). A slot holds
either a `LeafNode` or a `DecisionNode`; splitting a leaf replaces the record
in its own slot with a decision node and appends one fresh leaf per outcome,
so the parent's child list never changes.

Leaf life cycle:

    ACTIVE --(grace period reached, enough samples, impure)--> EVALUATING
    EVALUATING --(bound not met)--> ACTIVE
    EVALUATING --(bound met)--> SPLIT_DECIDED
    SPLIT_DECIDED --(null candidate won)--> ACTIVE with fresh accumulators
    SPLIT_DECIDED --(attribute won)--> slot becomes a DecisionNode

Decision nodes never revert to leaves.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

import numpy as np
from loguru import logger

from streamtree.exceptions import UnseenCategoryError
from streamtree.hoeffding.categorical_split import CategoricalSplitAccumulator
from streamtree.hoeffding.criteria import SplitCriterion, get_criterion, hoeffding_bound
from streamtree.hoeffding.numeric_split import BinaryNumericSplitAccumulator, MultiBinNumericSplitAccumulator
from streamtree.hoeffding.split_info import (
    CategoricalSplitInfo,
    SplitCandidate,
    SplitInfo,
    split_info_from_state,
)
from streamtree.logging import SPLIT_LEVEL
from streamtree.models import (
    AccumulatorState,
    AttributeSpec,
    BinaryNumericAccumulatorState,
    CategoricalAccumulatorState,
    CategoricalAttribute,
    DecisionNodeState,
    HoeffdingTreeConfig,
    LeafNodeState,
    MultiBinAccumulatorState,
    NodeState,
)

type SplitAccumulator = CategoricalSplitAccumulator | BinaryNumericSplitAccumulator | MultiBinNumericSplitAccumulator


class LeafState(StrEnum):
    """Where a leaf is in its split life cycle."""

    ACTIVE = "active"
    EVALUATING = "evaluating"
    SPLIT_DECIDED = "split_decided"


# ---------------------------------------------------------------------------
# Node records
# ---------------------------------------------------------------------------


@dataclass
class LeafNode:
    """A growing leaf.

    Attributes:
        depth (int): Distance from the root.
        class_counts (np.ndarray): Examples seen at this leaf per class.
        accumulators (dict[int, SplitAccumulator]): One accumulator per
            non-excluded attribute, keyed by attribute index.
        excluded (frozenset[int]): Categorical attributes already tested on
            the path from the root; they are constant below that test.
        parent (int | None): Id of the parent decision node, for traversal only.
        samples_seen (int): Total examples routed to this leaf.
        samples_since_check (int): Examples since the last grace-period boundary.
        accumulator_samples (int): Examples recorded by the current accumulators.
        default_class (int): Prediction while no example has been seen.
        state (LeafState): Position in the split life cycle.
    """

    depth: int
    class_counts: np.ndarray
    accumulators: dict[int, SplitAccumulator]
    excluded: frozenset[int] = frozenset()
    parent: int | None = None
    samples_seen: int = 0
    samples_since_check: int = 0
    accumulator_samples: int = 0
    default_class: int = 0
    state: LeafState = LeafState.ACTIVE

    @property
    def is_leaf(self) -> bool:
        return True

    @property
    def is_pure(self) -> bool:
        """bool: True when at most one class has a non-zero count."""
        return int(np.count_nonzero(self.class_counts)) <= 1

    def majority_class(self) -> int:
        """Return the most frequent class, lowest id on ties, `default_class` when empty."""
        if self.class_counts.sum() == 0:
            return self.default_class
        return int(np.argmax(self.class_counts))

    def class_probabilities(self) -> np.ndarray:
        total = self.class_counts.sum()
        if total == 0:
            probabilities = np.zeros(len(self.class_counts), dtype=np.float64)
            probabilities[self.default_class] = 1.0
            return probabilities
        return self.class_counts.astype(np.float64) / float(total)

    def to_state(self) -> LeafNodeState:
        return LeafNodeState(
            parent=self.parent,
            depth=self.depth,
            class_counts=self.class_counts.tolist(),
            samples_seen=self.samples_seen,
            samples_since_check=self.samples_since_check,
            accumulator_samples=self.accumulator_samples,
            default_class=self.default_class,
            excluded=sorted(self.excluded),
            accumulators={index: accumulator.to_state() for index, accumulator in self.accumulators.items()},
        )


@dataclass
class DecisionNode:
    """An internal node routing examples to its children by one split test.

    Attributes:
        split (SplitInfo): The frozen test.
        children (list[int]): Child node ids, indexed by test outcome.
        depth (int): Distance from the root.
        class_counts (np.ndarray): Class counts of the leaf this node replaced.
        parent (int | None): Id of the parent decision node, for traversal only.
    """

    split: SplitInfo
    children: list[int]
    depth: int
    class_counts: np.ndarray
    parent: int | None = None

    @property
    def is_leaf(self) -> bool:
        return False

    def majority_class(self) -> int:
        return int(np.argmax(self.class_counts))

    def to_state(self) -> DecisionNodeState:
        return DecisionNodeState(
            parent=self.parent,
            depth=self.depth,
            split=self.split.to_state(),
            children=list(self.children),
            class_counts=self.class_counts.tolist(),
        )


type Node = LeafNode | DecisionNode


@dataclass(frozen=True)
class SplitDecision:
    """Outcome of one split evaluation at a leaf.

    Attributes:
        samples (int): `n` used in the Hoeffding bound.
        epsilon (float): The Hoeffding bound.
        best (SplitCandidate): Highest-merit candidate, possibly the null one.
        second (SplitCandidate): Runner-up candidate.
        forced (bool): True when `max_samples` forced the split.
        should_split (bool): True when the bound, tie rule or force triggered.
    """

    samples: int
    epsilon: float
    best: SplitCandidate
    second: SplitCandidate
    forced: bool
    should_split: bool
    candidates: tuple[SplitCandidate, ...] = field(default=(), repr=False)

    @property
    def merit_gap(self) -> float:
        return self.best.merit - self.second.merit


# ---------------------------------------------------------------------------
# Growth engine
# ---------------------------------------------------------------------------


class GrowthEngine:
    """Creates leaves, feeds them examples and grows them into decision nodes.

    One engine is built per tree; it carries the schema, the hyperparameters
    and the resolved split criterion to every node.

    Args:
        attributes (Sequence[AttributeSpec]): The ordered attribute schema.
        config (HoeffdingTreeConfig): Validated hyperparameters.
    """

    def __init__(self, attributes: Sequence[AttributeSpec], config: HoeffdingTreeConfig) -> None:
        self.attributes = tuple(attributes)
        self.config = config
        self.criterion: SplitCriterion = get_criterion(config.criterion)
        self.value_range = self.criterion.range(config.num_classes)

    # -- construction -------------------------------------------------------

    def new_accumulator(self, index: int) -> SplitAccumulator:
        """Return an empty accumulator for attribute `index`."""
        attribute = self.attributes[index]
        num_classes = self.config.num_classes
        if isinstance(attribute, CategoricalAttribute):
            return CategoricalSplitAccumulator(attribute=index, arity=attribute.arity, num_classes=num_classes)
        if self.config.numeric_strategy == "binary":
            return BinaryNumericSplitAccumulator(
                attribute=index,
                num_classes=num_classes,
                criterion=self.criterion,
                observations_before_binning=self.config.observations_before_binning,
            )
        return MultiBinNumericSplitAccumulator(attribute=index, num_classes=num_classes, max_bins=self.config.max_bins)

    def new_accumulators(self, excluded: frozenset[int]) -> dict[int, SplitAccumulator]:
        return {index: self.new_accumulator(index) for index in range(len(self.attributes)) if index not in excluded}

    def new_leaf(
        self,
        *,
        depth: int = 0,
        parent: int | None = None,
        excluded: frozenset[int] = frozenset(),
        default_class: int = 0,
    ) -> LeafNode:
        """Return a fresh ACTIVE leaf with zero counts."""
        return LeafNode(
            depth=depth,
            class_counts=np.zeros(self.config.num_classes, dtype=np.int64),
            accumulators=self.new_accumulators(excluded),
            excluded=excluded,
            parent=parent,
            default_class=default_class,
        )

    # -- learning -----------------------------------------------------------

    def learn(self, nodes: list[Node], node_id: int, example: np.ndarray, label: int) -> bool:
        """Record one validated example at leaf `node_id` and grow it if warranted.

        Args:
            nodes (list[Node]): The tree's node arena; mutated on split.
            node_id (int): Id of the leaf the example was routed to.
            example (np.ndarray): Attribute values matching the schema.
            label (int): Class id of the example.

        Returns:
            bool: True when the leaf was replaced by a decision node.
        """
        leaf = nodes[node_id]
        assert isinstance(leaf, LeafNode)

        leaf.class_counts[label] += 1
        leaf.samples_seen += 1
        leaf.accumulator_samples += 1
        for index, accumulator in leaf.accumulators.items():
            accumulator.update(example[index], label)

        leaf.samples_since_check += 1
        if leaf.samples_since_check < self.config.grace_period:
            return False
        leaf.samples_since_check = 0
        if leaf.samples_seen < self.config.min_samples or leaf.is_pure:
            return False

        decision = self.evaluate(leaf)
        logger.debug(
            "Split evaluated",
            node_id=node_id,
            samples=decision.samples,
            epsilon=decision.epsilon,
            best_attribute=decision.best.attribute,
            best_merit=decision.best.merit,
            second_merit=decision.second.merit,
            should_split=decision.should_split,
        )
        if not decision.should_split:
            leaf.state = LeafState.ACTIVE
            return False

        leaf.state = LeafState.SPLIT_DECIDED
        if decision.best.split is None:
            leaf.accumulators = self.new_accumulators(leaf.excluded)
            leaf.accumulator_samples = 0
            leaf.state = LeafState.ACTIVE
            logger.debug("Split declined: no attribute beats the null candidate", node_id=node_id)
            return False

        self.split(nodes, node_id, decision.best.split)
        return True

    def evaluate(self, leaf: LeafNode) -> SplitDecision:
        """Rank the candidates of `leaf` and apply the Hoeffding bound.

        The null candidate is ranked first among equal merits, and attributes
        keep schema order among themselves, so ties never grow the tree and
        are resolved deterministically.

        Args:
            leaf (LeafNode): The leaf to evaluate; moved to EVALUATING.

        Returns:
            SplitDecision: The ranked candidates and whether to split.
        """
        leaf.state = LeafState.EVALUATING
        candidates = [SplitCandidate(merit=self.criterion.merit(leaf.class_counts, [leaf.class_counts]))]
        for index in sorted(leaf.accumulators):
            candidate = leaf.accumulators[index].best_candidate(self.criterion)
            if candidate is not None:
                candidates.append(candidate)

        ranked = sorted(candidates, key=lambda candidate: candidate.merit, reverse=True)
        best = ranked[0]
        second = ranked[1] if len(ranked) > 1 else ranked[0]

        samples = leaf.accumulator_samples
        epsilon = hoeffding_bound(self.value_range, self.config.confidence, samples)
        forced = self.config.max_samples > 0 and leaf.samples_seen >= self.config.max_samples
        should_split = (best.merit - second.merit > epsilon) or (epsilon < self.config.tie_threshold) or forced
        return SplitDecision(
            samples=samples,
            epsilon=epsilon,
            best=best,
            second=second,
            forced=forced,
            should_split=should_split,
            candidates=tuple(ranked),
        )

    def split(self, nodes: list[Node], node_id: int, split: SplitInfo) -> list[int]:
        """Replace leaf `node_id` with a decision node on `split`.

        Children start with zero counts; they predict the replaced leaf's
        majority class until they see their first example.

        Returns:
            list[int]: Ids of the new child leaves.
        """
        leaf = nodes[node_id]
        assert isinstance(leaf, LeafNode)

        excluded = leaf.excluded
        if isinstance(split, CategoricalSplitInfo):
            excluded = excluded | {split.attribute}
        majority = leaf.majority_class()

        children: list[int] = []
        for _ in range(split.num_children):
            nodes.append(
                self.new_leaf(depth=leaf.depth + 1, parent=node_id, excluded=excluded, default_class=majority)
            )
            children.append(len(nodes) - 1)

        nodes[node_id] = DecisionNode(
            split=split,
            children=children,
            depth=leaf.depth,
            class_counts=leaf.class_counts.copy(),
            parent=leaf.parent,
        )
        logger.log(
            SPLIT_LEVEL,
            "Leaf split",
            node_id=node_id,
            attribute=split.attribute,
            test=type(split).__name__,
            children=children,
            samples=leaf.samples_seen,
        )
        return children

    # -- state conversion ---------------------------------------------------

    def accumulator_from_state(self, index: int, state: AccumulatorState) -> SplitAccumulator:
        """Rebuild the accumulator of attribute `index`.

        Raises:
            ValueError: If the state kind does not match the attribute kind and
                the configured numeric strategy.
        """
        attribute = self.attributes[index]
        num_classes = self.config.num_classes
        if isinstance(attribute, CategoricalAttribute):
            if not isinstance(state, CategoricalAccumulatorState):
                raise ValueError(f"Attribute {index} is categorical but its accumulator state is {state.kind!r}")
            return CategoricalSplitAccumulator.from_state(
                state, attribute=index, arity=attribute.arity, num_classes=num_classes
            )
        if self.config.numeric_strategy == "binary" and isinstance(state, BinaryNumericAccumulatorState):
            return BinaryNumericSplitAccumulator.from_state(
                state, attribute=index, num_classes=num_classes, criterion=self.criterion
            )
        if self.config.numeric_strategy == "multi_bin" and isinstance(state, MultiBinAccumulatorState):
            return MultiBinNumericSplitAccumulator.from_state(state, attribute=index, num_classes=num_classes)
        raise ValueError(
            f"Attribute {index} expects a {self.config.numeric_strategy!r} accumulator, got {state.kind!r}"
        )

    def node_from_state(self, state: NodeState) -> Node:
        """Rebuild one arena record.

        Raises:
            ValueError: If class counts are mis-sized or accumulators do not
                cover exactly the non-excluded attributes.
        """
        num_classes = self.config.num_classes
        if len(state.class_counts) != num_classes:
            raise ValueError(f"Node class counts must hold {num_classes} classes, got {len(state.class_counts)}")
        class_counts = np.asarray(state.class_counts, dtype=np.int64)

        if isinstance(state, DecisionNodeState):
            return DecisionNode(
                split=split_info_from_state(state.split),
                children=list(state.children),
                depth=state.depth,
                class_counts=class_counts,
                parent=state.parent,
            )

        excluded = frozenset(state.excluded)
        expected = {index for index in range(len(self.attributes)) if index not in excluded}
        if set(state.accumulators) != expected:
            raise ValueError(f"Leaf accumulators {sorted(state.accumulators)} do not match attributes {sorted(expected)}")
        if not 0 <= state.default_class < num_classes:
            raise ValueError(f"Leaf default class {state.default_class} is outside [0, {num_classes})")
        return LeafNode(
            depth=state.depth,
            class_counts=class_counts,
            accumulators={
                index: self.accumulator_from_state(index, accumulator)
                for index, accumulator in sorted(state.accumulators.items())
            },
            excluded=excluded,
            parent=state.parent,
            samples_seen=state.samples_seen,
            samples_since_check=state.samples_since_check,
            accumulator_samples=state.accumulator_samples,
            default_class=state.default_class,
        )


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


def find_leaf(nodes: Sequence[Node], root: int, example: np.ndarray) -> int:
    """Descend from `root` to the leaf responsible for `example`.

    A categorical test that has no child for the example's category routes to
    the first child instead of failing.

    Args:
        nodes (Sequence[Node]): The node arena.
        root (int): Id of the node to start from.
        example (np.ndarray): Attribute values matching the schema.

    Returns:
        int: Id of the reached leaf.
    """
    node_id = root
    node = nodes[node_id]
    while isinstance(node, DecisionNode):
        try:
            branch = node.split.direction(example[node.split.attribute])
        except UnseenCategoryError as exc:
            logger.debug("Unseen category routed to default child", node_id=node_id, attribute=exc.attribute, value=exc.value)
            branch = 0
        node_id = node.children[branch]
        node = nodes[node_id]
    return node_id
