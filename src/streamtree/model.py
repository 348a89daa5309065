"""Model wrapper: a Hoeffding tree plus its strategy choices, batch surface and persistence."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import numpy as np
import polars as pl
from loguru import logger
from sklearn.metrics import accuracy_score

from streamtree.hoeffding.tree import HoeffdingTree
from streamtree.models import (
    AttributeSpec,
    CriterionName,
    HoeffdingTreeConfig,
    HoeffdingTreeModelState,
    NumericStrategy,
)
from streamtree.persistence import load_state, save_state
from streamtree.preprocessing import FrameEncoder
from streamtree.settings import TreeSettings


class HoeffdingTreeModel:
    """Streaming classifier with a fixed split criterion and numeric split strategy.

    The criterion and numeric strategy are chosen once at construction and
    cannot change afterwards. Hyperparameters not given explicitly come from
    `TreeSettings`, i.e. from `STREAMTREE_*` environment variables or their
    defaults.

    Args:
        attributes (Sequence[AttributeSpec | Mapping[str, Any]]): Ordered attribute schema.
        num_classes (int): Size of the label domain.
        criterion (CriterionName | None): `"gini"` or `"info_gain"`.
        numeric_strategy (NumericStrategy | None): `"binary"` or `"multi_bin"`.
        settings (TreeSettings | None): Source of default hyperparameters.
        **hyperparameters (Any): Any other `HoeffdingTreeConfig` field.

    Raises:
        InvalidHyperparameterError: If the schema or a hyperparameter is invalid.

    Examples:
        >>> model = HoeffdingTreeModel(
        ...     [{"kind": "categorical", "arity": 2}, {"kind": "numeric"}],
        ...     num_classes=2,
        ...     criterion="info_gain",
        ... )
        >>> model.criterion, model.numeric_strategy
        ('info_gain', 'multi_bin')
    """

    def __init__(
        self,
        attributes: Sequence[AttributeSpec | Mapping[str, Any]],
        *,
        num_classes: int,
        criterion: CriterionName | None = None,
        numeric_strategy: NumericStrategy | None = None,
        settings: TreeSettings | None = None,
        **hyperparameters: Any,
    ) -> None:
        if criterion is not None:
            hyperparameters["criterion"] = criterion
        if numeric_strategy is not None:
            hyperparameters["numeric_strategy"] = numeric_strategy
        config = (settings or TreeSettings()).to_config(num_classes, **hyperparameters)
        self._tree = HoeffdingTree(attributes, config=config)
        self._encoder: FrameEncoder | None = None

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @property
    def criterion(self) -> CriterionName:
        return self._tree.criterion

    @property
    def numeric_strategy(self) -> NumericStrategy:
        return self._tree.numeric_strategy

    @property
    def config(self) -> HoeffdingTreeConfig:
        return self._tree.config

    @property
    def tree(self) -> HoeffdingTree:
        """HoeffdingTree: The wrapped tree, for introspection."""
        return self._tree

    @property
    def encoder(self) -> FrameEncoder | None:
        """FrameEncoder | None: The DataFrame encoder, when built with `from_frame()`."""
        return self._encoder

    # -------------------------------------------------------------------------
    # Training and prediction
    # -------------------------------------------------------------------------

    def train(self, example: Sequence[float] | np.ndarray, label: int) -> None:
        """Learn from one labelled example. See `HoeffdingTree.train`."""
        self._tree.train(example, label)

    def train_batch(
        self,
        examples: Sequence[Sequence[float]] | np.ndarray,
        labels: Sequence[int] | np.ndarray,
        *,
        passes: int = 1,
    ) -> int:
        """Learn from a batch of examples, optionally several times over.

        Each pass feeds every example in order, exactly as repeated `train`
        calls would. The batch is validated once before the first pass.

        Args:
            examples (Sequence[Sequence[float]] | np.ndarray): Rows of attribute values.
            labels (Sequence[int] | np.ndarray): One class id per row.
            passes (int): Number of passes over the batch.

        Returns:
            int: Total number of examples learned.

        Raises:
            ValueError: If `passes` is less than 1.
            SchemaMismatchError: If the batch is malformed.
            InvalidCategoryError: If any categorical value is outside its arity.
            InvalidLabelError: If any label is outside the label domain.
        """
        if passes < 1:
            raise ValueError(f"passes must be at least 1, got {passes}")
        learned = 0
        for _ in range(passes):
            learned += self._tree.train_many(examples, labels)
        logger.info(
            "Batch training finished",
            examples=learned,
            passes=passes,
            nodes=self._tree.node_count,
            depth=self._tree.depth,
        )
        return learned

    def predict(self, example: Sequence[float] | np.ndarray) -> int:
        return self._tree.predict(example)

    def predict_batch(self, examples: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
        """Return the predicted class id of every row."""
        return np.fromiter((self._tree.predict(example) for example in examples), dtype=np.int64, count=len(examples))

    def predict_proba_batch(self, examples: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
        """Return a `(rows, num_classes)` matrix of leaf class distributions."""
        if len(examples) == 0:
            return np.empty((0, self._tree.num_classes), dtype=np.float64)
        return np.vstack([self._tree.predict_proba(example) for example in examples])

    def score(self, examples: Sequence[Sequence[float]] | np.ndarray, labels: Sequence[int] | np.ndarray) -> float:
        """Return the accuracy of the current tree on a labelled batch."""
        return float(accuracy_score(np.asarray(labels), self.predict_batch(examples)))

    def reset(self) -> None:
        """Discard the learned tree; schema, hyperparameters and encoder are kept."""
        self._tree.reset()

    # -------------------------------------------------------------------------
    # DataFrame surface
    # -------------------------------------------------------------------------

    @classmethod
    def from_frame(
        cls,
        df: pl.DataFrame,
        target: str,
        *,
        features: Sequence[str] | None = None,
        **kwargs: Any,
    ) -> HoeffdingTreeModel:
        """Build an untrained model whose schema and labels are inferred from `df`.

        String, boolean, Categorical and Enum columns become categorical
        attributes with one category per observed value; numeric columns
        become numeric attributes.

        Args:
            df (pl.DataFrame): Representative frame; it is not trained on.
            target (str): Label column.
            features (Sequence[str] | None): Feature columns; defaults to all
                supported columns except `target`.
            **kwargs (Any): Passed to the constructor (criterion, strategy,
                hyperparameters).

        Returns:
            HoeffdingTreeModel: A model that accepts frames with the same columns.
        """
        encoder = FrameEncoder().fit(df, target, features)
        model = cls(encoder.attributes(), num_classes=encoder.num_classes, **kwargs)
        model._encoder = encoder
        return model

    def train_frame(self, df: pl.DataFrame, *, passes: int = 1) -> int:
        """Encode `df` and learn from every row.

        Raises:
            RuntimeError: If the model was not built with `from_frame()`.
            SchemaMismatchError: If a column is missing or a numeric value is null.
            InvalidLabelError: If a target value was not seen when fitting the encoder.
        """
        encoder = self._require_encoder()
        return self.train_batch(encoder.transform(df), encoder.encode_labels(df), passes=passes)

    def predict_frame(self, df: pl.DataFrame) -> pl.Series:
        """Predict every row of `df` and return the decoded labels."""
        encoder = self._require_encoder()
        return encoder.decode_labels(self.predict_batch(encoder.transform(df)))

    def score_frame(self, df: pl.DataFrame) -> float:
        """Return the accuracy of the current tree on a labelled frame."""
        encoder = self._require_encoder()
        return self.score(encoder.transform(df), encoder.encode_labels(df))

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def export_state(self) -> HoeffdingTreeModelState:
        return HoeffdingTreeModelState(
            tree=self._tree.export_state(),
            encoder=self._encoder.to_state() if self._encoder is not None else None,
        )

    @classmethod
    def from_state(cls, state: HoeffdingTreeModelState) -> HoeffdingTreeModel:
        """Rebuild a model, tree statistics included, from `export_state()` output."""
        model = cls(state.tree.attributes, **state.tree.config.model_dump())
        model._tree = HoeffdingTree.from_state(state.tree)
        model._encoder = FrameEncoder.from_state(state.encoder) if state.encoder is not None else None
        return model

    def save(self, path: str | Path) -> Path:
        """Write the model to `path` as JSON.

        Returns:
            Path: The written path.
        """
        return save_state(self.export_state(), path)

    @classmethod
    def load(cls, path: str | Path) -> HoeffdingTreeModel:
        """Read a model written by `save()`.

        Raises:
            pydantic.ValidationError: If the file is not a valid model state.
            ValueError: If the stored nodes do not form a consistent tree.
        """
        return cls.from_state(load_state(path, HoeffdingTreeModelState))

    # -------------------------------------------------------------------------
    # Private Helpers
    # -------------------------------------------------------------------------

    def _require_encoder(self) -> FrameEncoder:
        if self._encoder is None:
            raise RuntimeError("This model has no frame encoder; build it with HoeffdingTreeModel.from_frame()")
        return self._encoder
