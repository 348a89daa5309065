"""Tests for the schema, hyperparameter and state models."""

from __future__ import annotations

from typing import Any

import pytest
from pydantic import ValidationError
from pytest_check import check

from streamtree.exceptions import InvalidHyperparameterError
from streamtree.models import (
    BinaryNumericAccumulatorState,
    CategoricalAttribute,
    FeatureEncoderState,
    FrameEncoderState,
    HoeffdingTreeConfig,
    HoeffdingTreeModelState,
    HoeffdingTreeState,
    LeafNodeState,
    NumericAttribute,
    validate_config,
    validate_schema,
)


def _tree_state(**overrides: Any) -> HoeffdingTreeState:
    payload: dict[str, Any] = {
        "config": {"num_classes": 2},
        "attributes": [{"kind": "categorical", "arity": 2}, {"kind": "numeric"}],
        "nodes": [
            {
                "kind": "leaf",
                "depth": 0,
                "class_counts": [0, 0],
                "samples_seen": 0,
                "samples_since_check": 0,
                "accumulator_samples": 0,
                "default_class": 0,
            }
        ],
    }
    return HoeffdingTreeState.model_validate(payload | overrides)


class TestValidateSchema:
    """Tests for `validate_schema`."""

    def test_accepts_models_and_mappings(self) -> None:
        """Attribute models and plain mappings can be mixed."""
        schema = validate_schema([CategoricalAttribute(arity=4, name="colour"), {"kind": "numeric"}])
        with check:
            assert schema == (CategoricalAttribute(arity=4, name="colour"), NumericAttribute())
        with check:
            assert isinstance(schema, tuple)

    def test_reports_failing_position(self) -> None:
        """Errors locate the offending attribute by position."""
        with pytest.raises(InvalidHyperparameterError) as exc_info:
            validate_schema([{"kind": "numeric"}, {"kind": "categorical", "arity": 0}])
        assert any(field.startswith("1") for field in exc_info.value.fields)

    def test_attributes_are_frozen(self) -> None:
        """Schema entries cannot be mutated after validation."""
        attribute = CategoricalAttribute(arity=2)
        with pytest.raises(ValidationError):
            attribute.arity = 5  # type: ignore[misc]


class TestHoeffdingTreeConfig:
    """Tests for `HoeffdingTreeConfig` and `validate_config`."""

    def test_defaults(self) -> None:
        """Only the label domain is required."""
        config = HoeffdingTreeConfig(num_classes=2)
        assert (
            config.confidence,
            config.tie_threshold,
            config.grace_period,
            config.min_samples,
            config.max_bins,
            config.criterion,
            config.numeric_strategy,
            config.observations_before_binning,
            config.max_samples,
        ) == (0.05, 0.05, 100, 100, 10, "gini", "multi_bin", 100, 0)

    def test_validate_config_collects_every_failure(self) -> None:
        """All failing fields are reported together."""
        with pytest.raises(InvalidHyperparameterError) as exc_info:
            validate_config({"num_classes": 2, "confidence": 2.0, "grace_period": -1})
        assert sorted(exc_info.value.fields) == ["confidence", "grace_period"]

    def test_config_is_immutable(self) -> None:
        """Hyperparameters are fixed once validated."""
        config = HoeffdingTreeConfig(num_classes=2)
        with pytest.raises(ValidationError):
            config.grace_period = 5  # type: ignore[misc]


class TestStateModels:
    """Tests for the persisted state validators."""

    def test_binary_buffers_must_align(self) -> None:
        """Buffered values and labels are parallel lists."""
        with pytest.raises(ValidationError, match="same length"):
            BinaryNumericAccumulatorState(observations_before_binning=5, buffered_values=[0.1, 0.2], buffered_labels=[0])

    def test_tree_state_defaults_root_zero(self) -> None:
        """A single-leaf tree state validates with root 0."""
        state = _tree_state()
        with check:
            assert state.root == 0
        with check:
            assert isinstance(state.nodes[0], LeafNodeState)

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"root": 3}, "root id 3 is out of range"),
            (
                {
                    "nodes": [
                        {
                            "kind": "decision",
                            "depth": 0,
                            "split": {"kind": "numeric", "attribute": 0, "threshold": 1.0},
                            "children": [1, 7],
                            "class_counts": [0, 0],
                        }
                    ]
                },
                "out-of-range children",
            ),
            (
                {
                    "nodes": [
                        {
                            "kind": "decision",
                            "depth": 0,
                            "split": {"kind": "numeric", "attribute": 5, "threshold": 1.0},
                            "children": [0, 0],
                            "class_counts": [0, 0],
                        }
                    ]
                },
                "unknown attribute 5",
            ),
        ],
        ids=["root-out-of-range", "child-out-of-range", "unknown-attribute"],
    )
    def test_tree_state_rejects_dangling_references(self, overrides: dict[str, Any], message: str) -> None:
        """Node references must point inside the arena and the schema.

        Args:
            overrides (dict[str, Any]): Replacement payload fields.
            message (str): Expected error fragment.
        """
        with pytest.raises(ValidationError, match=message):
            _tree_state(**overrides)

    def test_model_state_checks_encoder_against_tree(self) -> None:
        """The encoder must describe exactly the tree's attributes and classes."""
        # Arrange
        encoder = FrameEncoderState(
            target="churn",
            features=[FeatureEncoderState(column_name="plan", column_type="categorical", categories=["a", "b"])],
            labels=["no", "yes"],
        )

        # Act & Assert
        with pytest.raises(ValidationError, match="encoder has 1 features"):
            HoeffdingTreeModelState(tree=_tree_state(), encoder=encoder)

    def test_numeric_feature_cannot_carry_categories(self) -> None:
        """Numeric encodings have no category list."""
        with pytest.raises(ValidationError, match="cannot carry categories"):
            FeatureEncoderState(column_name="spend", column_type="numeric", categories=["1"])
