"""DataFrame preprocessing: column classification, attribute schema inference, and encoding."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np
import polars as pl
from loguru import logger
from sklearn.preprocessing import LabelEncoder, OrdinalEncoder

from streamtree.exceptions import InvalidLabelError, SchemaMismatchError
from streamtree.models import (
    AttributeSpec,
    CategoricalAttribute,
    FeatureEncoderState,
    FeatureKind,
    FrameEncoderState,
    LabelValue,
    NumericAttribute,
)

type ColumnType = Literal["numeric", "categorical", "excluded"]

# ---------------------------------------------------------------------------
# Column type classification
# ---------------------------------------------------------------------------

_DTYPE_TO_COLUMN_TYPE: dict[type[pl.DataType] | pl.DataType, ColumnType] = {
    pl.Int8: "numeric",
    pl.Int16: "numeric",
    pl.Int32: "numeric",
    pl.Int64: "numeric",
    pl.UInt8: "numeric",
    pl.UInt16: "numeric",
    pl.UInt32: "numeric",
    pl.UInt64: "numeric",
    pl.Float32: "numeric",
    pl.Float64: "numeric",
    pl.Boolean: "categorical",
    pl.String: "categorical",
    pl.Categorical: "categorical",
    pl.Enum: "categorical",
}


def classify_column(dtype: pl.DataType) -> ColumnType:
    """Classify a Polars column dtype as a tree attribute kind.

    Booleans, strings, Categorical and Enum columns become categorical
    attributes; integer and float columns become numeric ones. Everything else
    (temporal, nested, binary) is excluded.

    Args:
        dtype (pl.DataType): The Polars data type of the column.

    Returns:
        ColumnType: `"numeric"`, `"categorical"`, or `"excluded"`.

    Examples:
        >>> classify_column(pl.Float64)
        'numeric'
        >>> classify_column(pl.Boolean)
        'categorical'
        >>> classify_column(pl.Date)
        'excluded'
    """
    result = _DTYPE_TO_COLUMN_TYPE.get(dtype)
    if result is not None:
        return result
    # Parameterized instances such as Enum(["a", "b"]) do not hash like the bare class.
    if isinstance(dtype, (pl.Enum, pl.Categorical)):
        return "categorical"
    return "excluded"


# ---------------------------------------------------------------------------
# Feature encoders
# ---------------------------------------------------------------------------


@dataclass
class FeatureEncoder:
    """How one DataFrame column is turned into a tree attribute.

    Attributes:
        column_name (str): Source column name.
        column_type (FeatureKind): `"numeric"` or `"categorical"`.
        categories (list[str] | None): Category labels ordered by id; `None`
            for numeric columns.
    """

    column_name: str
    column_type: FeatureKind
    categories: list[str] | None = None
    _ordinal: OrdinalEncoder | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.column_type == "categorical" and self._ordinal is None:
            self._ordinal = _fit_ordinal_encoder(self.categories or [])

    @property
    def arity(self) -> int | None:
        """int | None: Number of categories, or `None` for numeric columns."""
        return None if self.categories is None else len(self.categories)

    def attribute(self) -> AttributeSpec:
        if self.column_type == "categorical":
            return CategoricalAttribute(arity=len(self.categories or []), name=self.column_name)
        return NumericAttribute(name=self.column_name)

    def encode(self, series: pl.Series) -> np.ndarray:
        """Encode one column as a float64 vector.

        Numeric nulls become `NaN`. Categorical nulls and categories not seen
        while fitting become `arity`, an id no split test has a child for.
        """
        if self.column_type == "numeric":
            return series.cast(pl.Float64).fill_null(np.nan).to_numpy(allow_copy=True).astype(np.float64)

        assert self._ordinal is not None
        arity = len(self.categories or [])
        as_text = series.cast(pl.String)
        missing = as_text.is_null().to_numpy()
        raw_column = as_text.fill_null("").to_numpy(allow_copy=True).reshape(-1, 1)
        encoded = self._ordinal.transform(raw_column).astype(np.float64).ravel()
        encoded[np.isnan(encoded) | missing] = arity
        return encoded

    def to_state(self) -> FeatureEncoderState:
        return FeatureEncoderState(
            column_name=self.column_name,
            column_type=self.column_type,
            categories=None if self.categories is None else list(self.categories),
        )


# ---------------------------------------------------------------------------
# Frame encoder
# ---------------------------------------------------------------------------


class FrameEncoder:
    """Maps Polars DataFrames onto a Hoeffding tree's attribute schema and label domain.

    Fit once on a representative frame; afterwards every frame is encoded with
    the same category ids and class ids, so a stream of frames can feed one tree.

    Examples:
        >>> df = pl.DataFrame({"plan": ["a", "b", "a"], "tenure": [1.0, 5.0, 3.0], "churn": ["no", "yes", "no"]})
        >>> encoder = FrameEncoder().fit(df, target="churn")
        >>> [attribute.kind for attribute in encoder.attributes()]
        ['categorical', 'numeric']
        >>> encoder.encode_labels(df).tolist()
        [0, 1, 0]
    """

    def __init__(self) -> None:
        self.target: str | None = None
        self.features: list[FeatureEncoder] = []
        self.labels: list[LabelValue] = []
        self._label_codes: dict[LabelValue, int] = {}

    @property
    def is_fitted(self) -> bool:
        return self.target is not None

    @property
    def feature_names(self) -> list[str]:
        return [encoder.column_name for encoder in self.features]

    @property
    def num_classes(self) -> int:
        return len(self.labels)

    def fit(self, df: pl.DataFrame, target: str, features: Sequence[str] | None = None) -> FrameEncoder:
        """Learn the attribute schema and the label domain from `df`.

        Args:
            df (pl.DataFrame): Frame holding the feature and target columns.
            target (str): Name of the label column.
            features (Sequence[str] | None): Feature columns to use. Defaults to
                every column except `target`; unsupported or all-null columns
                are then skipped.

        Returns:
            FrameEncoder: This encoder, fitted.

        Raises:
            SchemaMismatchError: If a named column is missing or unsupported,
                or no usable feature remains.
            InvalidLabelError: If the target has nulls or fewer than two classes.
        """
        self._require_columns(df, [target, *(features or [])])
        explicit = features is not None
        candidates = list(features) if explicit else [name for name in df.columns if name != target]

        encoders: list[FeatureEncoder] = []
        for name in candidates:
            encoder = _fit_feature(df[name])
            if encoder is None:
                if explicit:
                    raise SchemaMismatchError(
                        f"Column {name!r} with dtype {df[name].dtype} cannot be used as a feature",
                        expected="numeric or categorical column",
                        actual=str(df[name].dtype),
                    )
                logger.debug("Column skipped", column=name, dtype=str(df[name].dtype))
                continue
            encoders.append(encoder)
        if not encoders:
            raise SchemaMismatchError("No usable feature columns", expected="at least one feature", actual=candidates)

        labels = _fit_labels(df[target])
        self.target = target
        self.features = encoders
        self.labels = labels
        self._label_codes = {label: code for code, label in enumerate(labels)}
        logger.info("Frame encoder fitted", target=target, features=self.feature_names, num_classes=len(labels))
        return self

    def attributes(self) -> list[AttributeSpec]:
        """Return the attribute schema, one entry per feature column."""
        self._require_fitted()
        return [encoder.attribute() for encoder in self.features]

    def transform(self, df: pl.DataFrame) -> np.ndarray:
        """Encode the feature columns of `df` as a `(rows, features)` float64 matrix.

        Raises:
            SchemaMismatchError: If a feature column is missing.
        """
        self._require_fitted()
        self._require_columns(df, self.feature_names)
        return np.column_stack([encoder.encode(df[encoder.column_name]) for encoder in self.features])

    def encode_labels(self, df: pl.DataFrame) -> np.ndarray:
        """Return the class id of every row's target value.

        Raises:
            SchemaMismatchError: If the target column is missing.
            InvalidLabelError: If a target value is null or was not seen while fitting.
        """
        self._require_fitted()
        assert self.target is not None
        self._require_columns(df, [self.target])
        codes = np.empty(len(df), dtype=np.int64)
        for row, value in enumerate(df[self.target].to_list()):
            code = self._label_codes.get(value) if value is not None else None
            if code is None:
                raise InvalidLabelError(label=value, num_classes=self.num_classes)
            codes[row] = code
        return codes

    def decode_labels(self, codes: Sequence[int] | np.ndarray) -> pl.Series:
        """Map class ids back to the original target values.

        Raises:
            InvalidLabelError: If a code is outside the label domain.
        """
        self._require_fitted()
        decoded: list[LabelValue] = []
        for code in codes:
            if not 0 <= int(code) < self.num_classes:
                raise InvalidLabelError(label=code, num_classes=self.num_classes)
            decoded.append(self.labels[int(code)])
        return pl.Series(self.target, decoded)

    def to_state(self) -> FrameEncoderState:
        self._require_fitted()
        assert self.target is not None
        return FrameEncoderState(
            target=self.target,
            features=[encoder.to_state() for encoder in self.features],
            labels=list(self.labels),
        )

    @classmethod
    def from_state(cls, state: FrameEncoderState) -> FrameEncoder:
        """Rebuild a fitted encoder from `to_state()` output."""
        encoder = cls()
        encoder.target = state.target
        encoder.features = [
            FeatureEncoder(column_name=item.column_name, column_type=item.column_type, categories=item.categories)
            for item in state.features
        ]
        encoder.labels = list(state.labels)
        encoder._label_codes = {label: code for code, label in enumerate(encoder.labels)}
        return encoder

    # -------------------------------------------------------------------------
    # Private Helpers
    # -------------------------------------------------------------------------

    def _require_fitted(self) -> None:
        if not self.is_fitted:
            raise RuntimeError("FrameEncoder is not fitted; call fit() first")

    @staticmethod
    def _require_columns(df: pl.DataFrame, columns: Sequence[str]) -> None:
        missing = [name for name in columns if name not in df.columns]
        if missing:
            raise SchemaMismatchError(f"Missing columns: {missing}", expected=list(columns), actual=df.columns)


# ---------------------------------------------------------------------------
# Private helpers -- fitting
# ---------------------------------------------------------------------------


def _fit_feature(series: pl.Series) -> FeatureEncoder | None:
    """Return an encoder for `series`, or `None` when it cannot be a feature."""
    column_type = classify_column(series.dtype)
    if column_type == "excluded" or series.is_null().all():
        return None
    if column_type == "numeric":
        return FeatureEncoder(column_name=series.name, column_type="numeric")

    raw_column = series.cast(pl.String).drop_nulls().to_numpy(allow_copy=True).reshape(-1, 1)
    ordinal = OrdinalEncoder(handle_unknown="use_encoded_value", unknown_value=np.nan)
    ordinal.fit(raw_column)
    categories = [str(label) for label in ordinal.categories_[0]]
    return FeatureEncoder(
        column_name=series.name,
        column_type="categorical",
        categories=categories,
        _ordinal=ordinal,
    )


def _fit_ordinal_encoder(categories: list[str]) -> OrdinalEncoder:
    """Rebuild a fitted `OrdinalEncoder` whose category ids follow `categories`."""
    ordinal = OrdinalEncoder(
        categories=[np.asarray(categories, dtype=object)],
        handle_unknown="use_encoded_value",
        unknown_value=np.nan,
    )
    ordinal.fit(np.asarray(categories, dtype=object).reshape(-1, 1))
    return ordinal


def _fit_labels(series: pl.Series) -> list[LabelValue]:
    """Return the sorted label classes of a target column.

    Raises:
        InvalidLabelError: If the column has nulls or fewer than two classes.
    """
    if series.null_count() > 0:
        raise InvalidLabelError(label=None, num_classes=0)
    label_encoder = LabelEncoder()
    label_encoder.fit(series.to_numpy(allow_copy=True))
    labels: list[Any] = label_encoder.classes_.tolist()
    if len(labels) < 2:
        raise InvalidLabelError(label=labels[0] if labels else None, num_classes=len(labels))
    return labels
