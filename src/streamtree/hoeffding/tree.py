"""The Hoeffding tree container: schema, hyperparameters, node arena and public API."""

from __future__ import annotations

import math
import threading
from collections.abc import Iterator, Mapping, Sequence
from typing import Any

import numpy as np
from loguru import logger

from streamtree.exceptions import InvalidCategoryError, InvalidLabelError, SchemaMismatchError
from streamtree.hoeffding.nodes import GrowthEngine, LeafNode, Node, find_leaf
from streamtree.models import (
    AttributeSpec,
    CategoricalAttribute,
    CriterionName,
    HoeffdingTreeConfig,
    HoeffdingTreeState,
    NumericStrategy,
    validate_config,
    validate_schema,
)
from streamtree.persistence import restore_nodes_from_state

_ROOT_ID = 0


class HoeffdingTree:
    """An incremental decision-tree classifier grown from a data stream.

    Each call to `train` routes one example to a leaf, updates that leaf's
    statistics and, every `grace_period` examples, asks whether the best
    split beats the runner-up by more than the Hoeffding bound. Past examples
    are never revisited.

    All public methods are serialised by one re-entrant lock per tree. A
    failed call raises before touching any state.

    Args:
        attributes (Sequence[AttributeSpec | Mapping[str, Any]]): Ordered
            attribute schema.
        config (HoeffdingTreeConfig | None): Validated hyperparameters. When
            omitted they are built from `hyperparameters`.
        **hyperparameters (Any): `HoeffdingTreeConfig` fields; they override
            `config` when both are given.

    Raises:
        InvalidHyperparameterError: If the schema or any hyperparameter is invalid.

    Examples:
        >>> tree = HoeffdingTree(
        ...     [{"kind": "categorical", "arity": 2}, {"kind": "numeric"}],
        ...     num_classes=2,
        ...     grace_period=10,
        ...     min_samples=10,
        ... )
        >>> for _ in range(10):
        ...     tree.train([0, 0.5], 0)
        ...     tree.train([1, 0.5], 1)
        >>> tree.node_count, tree.predict([1, 0.1])
        (3, 1)
    """

    def __init__(
        self,
        attributes: Sequence[AttributeSpec | Mapping[str, Any]],
        config: HoeffdingTreeConfig | None = None,
        **hyperparameters: Any,
    ) -> None:
        self._attributes = validate_schema(attributes)
        if config is None:
            config = validate_config(hyperparameters)
        elif hyperparameters:
            config = validate_config(config.model_dump() | hyperparameters)
        self._config = config
        self._engine = GrowthEngine(self._attributes, config)
        self._lock = threading.RLock()
        self._nodes: list[Node] = [self._engine.new_leaf()]
        logger.info(
            "Hoeffding tree created",
            attributes=len(self._attributes),
            num_classes=config.num_classes,
            criterion=config.criterion,
            numeric_strategy=config.numeric_strategy,
        )

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @property
    def attributes(self) -> tuple[AttributeSpec, ...]:
        """tuple[AttributeSpec, ...]: The ordered attribute schema."""
        return self._attributes

    @property
    def config(self) -> HoeffdingTreeConfig:
        return self._config

    @property
    def num_classes(self) -> int:
        return self._config.num_classes

    @property
    def criterion(self) -> CriterionName:
        return self._config.criterion

    @property
    def numeric_strategy(self) -> NumericStrategy:
        return self._config.numeric_strategy

    # -------------------------------------------------------------------------
    # Training and prediction
    # -------------------------------------------------------------------------

    def train(self, example: Sequence[float] | np.ndarray, label: int) -> None:
        """Learn from one labelled example.

        Args:
            example (Sequence[float] | np.ndarray): One value per attribute;
                categorical values are category ids.
            label (int): Class id in `[0, num_classes)`.

        Raises:
            SchemaMismatchError: If the example has the wrong arity, a
                non-numeric value, or a non-finite numeric attribute value.
            InvalidCategoryError: If a categorical value is outside its arity.
            InvalidLabelError: If `label` is outside the label domain.
        """
        with self._lock:
            values, class_id = self._prepare_training_example(example, label)
            self._learn(values, class_id)

    def train_many(self, examples: Sequence[Sequence[float]] | np.ndarray, labels: Sequence[int] | np.ndarray) -> int:
        """Learn from a batch of examples, in order.

        The whole batch is validated before the first example is learned, so
        an invalid row leaves the tree untouched.

        Args:
            examples (Sequence[Sequence[float]] | np.ndarray): Rows of attribute values.
            labels (Sequence[int] | np.ndarray): One class id per row.

        Returns:
            int: Number of examples learned.

        Raises:
            SchemaMismatchError: If the row and label counts differ, or any row is invalid.
            InvalidCategoryError: If any categorical value is outside its arity.
            InvalidLabelError: If any label is outside the label domain.
        """
        if len(examples) != len(labels):
            raise SchemaMismatchError(
                f"Got {len(examples)} examples but {len(labels)} labels",
                expected=len(examples),
                actual=len(labels),
            )
        with self._lock:
            prepared = [
                self._prepare_training_example(example, label) for example, label in zip(examples, labels, strict=True)
            ]
            splits_before = self.node_count
            for values, class_id in prepared:
                self._learn(values, class_id)
            logger.debug("Batch learned", examples=len(prepared), nodes_added=self.node_count - splits_before)
            return len(prepared)

    def predict(self, example: Sequence[float] | np.ndarray) -> int:
        """Return the majority class of the leaf reached by `example`.

        Ties go to the lowest class id. Unseen categories are routed to the
        first child of the categorical test.

        Raises:
            SchemaMismatchError: If the example has the wrong arity or a non-numeric value.
        """
        with self._lock:
            return self._leaf_for(example).majority_class()

    def predict_proba(self, example: Sequence[float] | np.ndarray) -> np.ndarray:
        """Return the class distribution of the leaf reached by `example`.

        Returns:
            np.ndarray: Probabilities per class summing to one.
        """
        with self._lock:
            return self._leaf_for(example).class_probabilities()

    def predict_with_probability(self, example: Sequence[float] | np.ndarray) -> tuple[int, float]:
        """Return the predicted class and its probability at the reached leaf."""
        with self._lock:
            leaf = self._leaf_for(example)
            prediction = leaf.majority_class()
            return prediction, float(leaf.class_probabilities()[prediction])

    def route(self, example: Sequence[float] | np.ndarray) -> int:
        """Return the id of the leaf that `example` is routed to."""
        with self._lock:
            return find_leaf(self._nodes, _ROOT_ID, self._as_values(example))

    def reset(self) -> None:
        """Discard every node and start again from a single empty leaf."""
        with self._lock:
            discarded = len(self._nodes)
            self._nodes = [self._engine.new_leaf()]
        logger.info("Hoeffding tree reset", discarded_nodes=discarded)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def root_id(self) -> int:
        return _ROOT_ID

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def leaf_count(self) -> int:
        return sum(1 for node in self._nodes if node.is_leaf)

    @property
    def depth(self) -> int:
        """int: Depth of the deepest node; 0 for a single leaf."""
        return max(node.depth for node in self._nodes)

    def node(self, node_id: int) -> Node:
        """Return the node record with id `node_id`.

        Raises:
            IndexError: If no node has that id.
        """
        return self._nodes[node_id]

    def nodes(self) -> tuple[Node, ...]:
        """Return every node record, indexed by id."""
        return tuple(self._nodes)

    def iter_leaves(self) -> Iterator[tuple[int, LeafNode]]:
        """Yield `(node_id, leaf)` for every leaf in id order."""
        for node_id, node in enumerate(self._nodes):
            if isinstance(node, LeafNode):
                yield node_id, node

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def export_state(self) -> HoeffdingTreeState:
        """Export the complete tree, including accumulator statistics.

        Returns:
            HoeffdingTreeState: Serializable state; `from_state` rebuilds an
                identical tree from it.
        """
        with self._lock:
            return HoeffdingTreeState(
                config=self._config,
                attributes=list(self._attributes),
                nodes=[node.to_state() for node in self._nodes],
                root=_ROOT_ID,
            )

    @classmethod
    def from_state(cls, state: HoeffdingTreeState) -> HoeffdingTree:
        """Rebuild a tree from `export_state()` output.

        Raises:
            ValueError: If the state's nodes are inconsistent with its schema
                or do not form a single tree.
        """
        if state.root != _ROOT_ID:
            raise ValueError(f"Tree state root must be node {_ROOT_ID}, got {state.root}")
        tree = cls(state.attributes, config=state.config)
        tree._nodes = restore_nodes_from_state(state, tree._engine)
        logger.info("Hoeffding tree restored", nodes=tree.node_count, depth=tree.depth)
        return tree

    # -------------------------------------------------------------------------
    # Private Helpers
    # -------------------------------------------------------------------------

    def _learn(self, values: np.ndarray, label: int) -> None:
        leaf_id = find_leaf(self._nodes, _ROOT_ID, values)
        self._engine.learn(self._nodes, leaf_id, values, label)

    def _leaf_for(self, example: Sequence[float] | np.ndarray) -> LeafNode:
        leaf = self._nodes[find_leaf(self._nodes, _ROOT_ID, self._as_values(example))]
        assert isinstance(leaf, LeafNode)
        return leaf

    def _as_values(self, example: Sequence[float] | np.ndarray) -> np.ndarray:
        """Convert `example` to a float vector of the schema's arity.

        Raises:
            SchemaMismatchError: If the example is not a flat numeric vector of
                the schema's length.
        """
        try:
            values = np.asarray(example, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise SchemaMismatchError(
                f"Example values must be numeric: {exc}",
                expected="numeric values",
                actual=example,
            ) from exc
        if values.ndim != 1 or values.shape[0] != len(self._attributes):
            raise SchemaMismatchError(
                f"Example has shape {values.shape}, schema has {len(self._attributes)} attributes",
                expected=len(self._attributes),
                actual=values.shape,
            )
        return values

    def _prepare_training_example(self, example: Sequence[float] | np.ndarray, label: int) -> tuple[np.ndarray, int]:
        """Validate a training example and label without touching tree state."""
        try:
            values = self._as_values(example)
            class_id = self._check_label(label)
            for index, attribute in enumerate(self._attributes):
                value = float(values[index])
                if isinstance(attribute, CategoricalAttribute):
                    if not math.isfinite(value) or value != int(value) or not 0 <= value < attribute.arity:
                        raise InvalidCategoryError(value=value, arity=attribute.arity, attribute=index)
                elif not math.isfinite(value):
                    raise SchemaMismatchError(
                        f"Numeric attribute {index} must be finite, got {value}",
                        expected="finite value",
                        actual=value,
                    )
        except (SchemaMismatchError, InvalidCategoryError, InvalidLabelError) as exc:
            logger.warning("Training example rejected", error_type=type(exc).__name__, reason=str(exc))
            raise
        return values, class_id

    def _check_label(self, label: Any) -> int:
        if isinstance(label, bool) or not isinstance(label, int | np.integer):
            if isinstance(label, float | np.floating) and float(label).is_integer():
                label = int(label)
            else:
                raise InvalidLabelError(label=label, num_classes=self.num_classes)
        if not 0 <= int(label) < self.num_classes:
            raise InvalidLabelError(label=label, num_classes=self.num_classes)
        return int(label)
