"""Pydantic models for the attribute schema, hyperparameters and persisted tree state."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from streamtree.exceptions import InvalidHyperparameterError

# ---------------------------------------------------------------------------
# Public type aliases
# ---------------------------------------------------------------------------

type CriterionName = Literal["gini", "info_gain"]

type NumericStrategy = Literal["binary", "multi_bin"]

# ---------------------------------------------------------------------------
# Attribute schema
# ---------------------------------------------------------------------------


class CategoricalAttribute(BaseModel):
    """A categorical attribute with a fixed number of category ids.

    Category ids are the integers `0..arity-1`.

    Attributes:
        kind (Literal["categorical"]): Discriminator field; always `"categorical"`.
        arity (int): Number of categories.
        name (str | None): Optional human-readable name.

    Examples:
        >>> CategoricalAttribute(arity=3).arity
        3
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["categorical"] = Field(default="categorical", description='Discriminator. Always "categorical".')
    arity: int = Field(ge=1, description="Number of category ids; valid ids are 0..arity-1.")
    name: str | None = Field(default=None, description="Optional human-readable attribute name.")


class NumericAttribute(BaseModel):
    """A real-valued attribute.

    Attributes:
        kind (Literal["numeric"]): Discriminator field; always `"numeric"`.
        name (str | None): Optional human-readable name.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["numeric"] = Field(default="numeric", description='Discriminator. Always "numeric".')
    name: str | None = Field(default=None, description="Optional human-readable attribute name.")


# Pydantic selects the concrete attribute model from the `kind` field.
type AttributeSpec = Annotated[
    CategoricalAttribute | NumericAttribute,
    Field(discriminator="kind"),
]

_SCHEMA_ADAPTER: TypeAdapter[list[AttributeSpec]] = TypeAdapter(list[AttributeSpec])


def validate_schema(attributes: Sequence[AttributeSpec | Mapping[str, Any]]) -> tuple[AttributeSpec, ...]:
    """Validate an ordered attribute schema.

    Args:
        attributes (Sequence[AttributeSpec | Mapping[str, Any]]): Attribute
            models, or mappings such as `{"kind": "categorical", "arity": 2}`.

    Returns:
        tuple[AttributeSpec, ...]: The validated, immutable schema.

    Raises:
        InvalidHyperparameterError: If the schema is empty or any entry is invalid.

    Examples:
        >>> schema = validate_schema([{"kind": "categorical", "arity": 2}, {"kind": "numeric"}])
        >>> [attribute.kind for attribute in schema]
        ['categorical', 'numeric']
    """
    if len(attributes) == 0:
        raise InvalidHyperparameterError(
            "Attribute schema must contain at least one attribute",
            errors=[{"loc": ("schema",), "msg": "empty schema"}],
        )
    try:
        validated = _SCHEMA_ADAPTER.validate_python([
            attribute.model_dump() if isinstance(attribute, BaseModel) else attribute for attribute in attributes
        ])
    except ValidationError as exc:
        raise InvalidHyperparameterError("Invalid attribute schema", errors=_error_details(exc)) from exc
    return tuple(validated)


# ---------------------------------------------------------------------------
# Hyperparameters
# ---------------------------------------------------------------------------


class HoeffdingTreeConfig(BaseModel):
    """Immutable hyperparameters of a Hoeffding tree.

    Attributes:
        num_classes (int): Size of the label domain; labels are `0..num_classes-1`.
        confidence (float): Failure probability `delta` of the Hoeffding bound.
        tie_threshold (float): Bound value `tau` below which a tied decision is forced.
        grace_period (int): Examples a leaf absorbs between split evaluations.
        min_samples (int): Examples a leaf must have seen before any split evaluation.
        max_bins (int): Maximum number of bins kept by multi-bin numeric accumulators.
        criterion (CriterionName): Split criterion, `"gini"` or `"info_gain"`.
        numeric_strategy (NumericStrategy): `"binary"` or `"multi_bin"`.
        observations_before_binning (int): Values buffered by binary numeric
            accumulators before their boundary is frozen.
        max_samples (int): When positive, a leaf that has seen this many examples
            splits at its next evaluation without consulting the bound.

    Examples:
        >>> config = HoeffdingTreeConfig(num_classes=2, grace_period=50, min_samples=50)
        >>> config.criterion
        'gini'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    num_classes: int = Field(ge=2, description="Size of the label domain; labels are 0..num_classes-1.")
    confidence: float = Field(default=0.05, gt=0.0, lt=1.0, description="Hoeffding bound failure probability.")
    tie_threshold: float = Field(default=0.05, ge=0.0, description="Bound value below which ties are forced.")
    grace_period: int = Field(default=100, ge=1, description="Examples between split evaluations.")
    min_samples: int = Field(default=100, ge=1, description="Examples required before a split evaluation.")
    max_bins: int = Field(default=10, ge=2, description="Maximum bins per multi-bin numeric accumulator.")
    criterion: CriterionName = Field(default="gini", description="Split criterion.")
    numeric_strategy: NumericStrategy = Field(default="multi_bin", description="Numeric split accumulator.")
    observations_before_binning: int = Field(
        default=100,
        ge=1,
        description="Values buffered by binary numeric accumulators before the boundary is frozen.",
    )
    max_samples: int = Field(default=0, ge=0, description="Forced split after this many examples; 0 disables.")


def validate_config(values: Mapping[str, Any]) -> HoeffdingTreeConfig:
    """Build a `HoeffdingTreeConfig`, converting validation failures to `InvalidHyperparameterError`.

    Args:
        values (Mapping[str, Any]): Hyperparameter values keyed by field name.

    Returns:
        HoeffdingTreeConfig: The validated configuration.

    Raises:
        InvalidHyperparameterError: If any value is missing, unknown or out of range.
    """
    try:
        return HoeffdingTreeConfig.model_validate(dict(values))
    except ValidationError as exc:
        raise InvalidHyperparameterError("Invalid Hoeffding tree hyperparameters", errors=_error_details(exc)) from exc


def _error_details(exc: ValidationError) -> list[dict[str, Any]]:
    """Reduce pydantic errors to `loc`/`msg`/`input` entries."""
    return [{"loc": error["loc"], "msg": error["msg"], "input": error.get("input")} for error in exc.errors()]


# ---------------------------------------------------------------------------
# Persisted state -- accumulators
# ---------------------------------------------------------------------------


class CategoricalAccumulatorState(BaseModel):
    """Serialized categorical accumulator: one class-count row per category."""

    kind: Literal["categorical"] = "categorical"
    counts: list[list[int]]


class BinaryNumericAccumulatorState(BaseModel):
    """Serialized binary numeric accumulator.

    While `frozen` is false the accumulator is still buffering and the count
    vectors are empty; afterwards the buffer is empty.
    """

    kind: Literal["binary"] = "binary"
    observations_before_binning: int = Field(ge=1)
    buffered_values: list[float] = Field(default_factory=list)
    buffered_labels: list[int] = Field(default_factory=list)
    frozen: bool = False
    threshold: float | None = None
    below: list[int] = Field(default_factory=list)
    at_or_above: list[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_buffer_lengths(self) -> BinaryNumericAccumulatorState:
        """Validate that buffered values and labels are parallel lists.

        Returns:
            BinaryNumericAccumulatorState: The validated model instance.

        Raises:
            ValueError: If the buffers differ in length.
        """
        if len(self.buffered_values) != len(self.buffered_labels):
            raise ValueError("buffered_values and buffered_labels must have the same length")
        return self


class MultiBinAccumulatorState(BaseModel):
    """Serialized multi-bin numeric accumulator: bin lower boundaries and per-bin class counts."""

    kind: Literal["multi_bin"] = "multi_bin"
    max_bins: int = Field(ge=2)
    boundaries: list[float] = Field(default_factory=list)
    counts: list[list[int]] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_bins(self) -> MultiBinAccumulatorState:
        """Validate bin ordering, bin count and count-row alignment.

        Returns:
            MultiBinAccumulatorState: The validated model instance.

        Raises:
            ValueError: If boundaries are not strictly increasing, exceed
                `max_bins`, or do not align with the count rows.
        """
        if len(self.boundaries) != len(self.counts):
            raise ValueError("boundaries and counts must have the same length")
        if len(self.boundaries) > self.max_bins:
            raise ValueError(f"{len(self.boundaries)} bins exceed max_bins={self.max_bins}")
        if any(lower >= upper for lower, upper in zip(self.boundaries, self.boundaries[1:], strict=False)):
            raise ValueError("bin boundaries must be strictly increasing")
        return self


type AccumulatorState = Annotated[
    CategoricalAccumulatorState | BinaryNumericAccumulatorState | MultiBinAccumulatorState,
    Field(discriminator="kind"),
]

# ---------------------------------------------------------------------------
# Persisted state -- split tests and nodes
# ---------------------------------------------------------------------------


class CategoricalTestState(BaseModel):
    """Serialized categorical split test: one child per category id."""

    kind: Literal["categorical"] = "categorical"
    attribute: int = Field(ge=0)
    arity: int = Field(ge=1)


class NumericTestState(BaseModel):
    """Serialized numeric split test: child 0 below `threshold`, child 1 at or above."""

    kind: Literal["numeric"] = "numeric"
    attribute: int = Field(ge=0)
    threshold: float


type SplitTestState = Annotated[
    CategoricalTestState | NumericTestState,
    Field(discriminator="kind"),
]


class LeafNodeState(BaseModel):
    """Serialized leaf: class counts, counters and attribute accumulators."""

    kind: Literal["leaf"] = "leaf"
    parent: int | None = None
    depth: int = Field(ge=0)
    class_counts: list[int]
    samples_seen: int = Field(ge=0)
    samples_since_check: int = Field(ge=0)
    accumulator_samples: int = Field(ge=0)
    default_class: int = Field(ge=0)
    excluded: list[int] = Field(default_factory=list)
    accumulators: dict[int, AccumulatorState] = Field(default_factory=dict)


class DecisionNodeState(BaseModel):
    """Serialized decision node: split test and child node ids."""

    kind: Literal["decision"] = "decision"
    parent: int | None = None
    depth: int = Field(ge=0)
    split: SplitTestState
    children: list[int]
    class_counts: list[int]


type NodeState = Annotated[
    LeafNodeState | DecisionNodeState,
    Field(discriminator="kind"),
]


class HoeffdingTreeState(BaseModel):
    """Complete serializable state of a Hoeffding tree.

    Nodes are stored as an arena: a node's position in `nodes` is its id and
    decision nodes refer to children by id.

    Attributes:
        format_version (int): Version of this state layout.
        config (HoeffdingTreeConfig): The tree's hyperparameters.
        attributes (list[AttributeSpec]): The ordered attribute schema.
        nodes (list[NodeState]): Node records indexed by node id.
        root (int): Id of the root node.
    """

    format_version: Literal[1] = 1
    config: HoeffdingTreeConfig
    attributes: list[AttributeSpec] = Field(min_length=1)
    nodes: list[NodeState] = Field(min_length=1)
    root: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _validate_node_references(self) -> HoeffdingTreeState:
        """Validate that every node reference points inside the arena.

        Returns:
            HoeffdingTreeState: The validated model instance.

        Raises:
            ValueError: If the root, a parent or a child id is out of range, or
                a split references an unknown attribute.
        """
        node_count = len(self.nodes)
        if self.root >= node_count:
            raise ValueError(f"root id {self.root} is out of range for {node_count} nodes")
        for node_id, node in enumerate(self.nodes):
            if node.parent is not None and not 0 <= node.parent < node_count:
                raise ValueError(f"node {node_id} has out-of-range parent {node.parent}")
            if isinstance(node, DecisionNodeState):
                if any(not 0 <= child < node_count for child in node.children):
                    raise ValueError(f"node {node_id} has out-of-range children {node.children}")
                if node.split.attribute >= len(self.attributes):
                    raise ValueError(f"node {node_id} splits on unknown attribute {node.split.attribute}")
        return self


# ---------------------------------------------------------------------------
# Persisted state -- frame encoder and model
# ---------------------------------------------------------------------------

type FeatureKind = Literal["numeric", "categorical"]

type LabelValue = str | int | float | bool


class FeatureEncoderState(BaseModel):
    """Serialized encoding of one DataFrame column.

    Attributes:
        column_name (str): Source column name.
        column_type (FeatureKind): How the column is encoded.
        categories (list[str] | None): Category labels ordered by id, for
            categorical columns only.
    """

    column_name: str
    column_type: FeatureKind
    categories: list[str] | None = None

    @model_validator(mode="after")
    def _validate_categories(self) -> FeatureEncoderState:
        """Validate that exactly the categorical columns carry categories.

        Returns:
            FeatureEncoderState: The validated model instance.

        Raises:
            ValueError: If a categorical column has no categories or a numeric
                column has some.
        """
        if self.column_type == "categorical" and not self.categories:
            raise ValueError(f"categorical column {self.column_name!r} needs at least one category")
        if self.column_type == "numeric" and self.categories is not None:
            raise ValueError(f"numeric column {self.column_name!r} cannot carry categories")
        return self


class FrameEncoderState(BaseModel):
    """Serialized `FrameEncoder`: feature encodings and the label classes."""

    target: str
    features: list[FeatureEncoderState] = Field(min_length=1)
    labels: list[LabelValue] = Field(min_length=2)


class HoeffdingTreeModelState(BaseModel):
    """Complete serializable state of a `HoeffdingTreeModel`.

    Attributes:
        format_version (int): Version of this state layout.
        tree (HoeffdingTreeState): The wrapped tree.
        encoder (FrameEncoderState | None): DataFrame encoder, when the model
            was built with `HoeffdingTreeModel.from_frame()`.
    """

    format_version: Literal[1] = 1
    tree: HoeffdingTreeState
    encoder: FrameEncoderState | None = None

    @model_validator(mode="after")
    def _validate_encoder_matches_tree(self) -> HoeffdingTreeModelState:
        """Validate that the encoder describes the tree's schema and label domain.

        Returns:
            HoeffdingTreeModelState: The validated model instance.

        Raises:
            ValueError: If feature count or label count disagree with the tree.
        """
        if self.encoder is None:
            return self
        if len(self.encoder.features) != len(self.tree.attributes):
            raise ValueError(
                f"encoder has {len(self.encoder.features)} features, tree has {len(self.tree.attributes)} attributes"
            )
        if len(self.encoder.labels) != self.tree.config.num_classes:
            raise ValueError(
                f"encoder has {len(self.encoder.labels)} labels, tree has {self.tree.config.num_classes} classes"
            )
        return self
