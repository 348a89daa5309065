"""Tests for custom exceptions.

This module tests the exception classes raised by tree construction,
training and routing, ensuring proper inheritance, attribute storage and
catchability patterns.
"""

from __future__ import annotations

import pytest
from pytest_check import check

from streamtree.exceptions import (
    HoeffdingTreeError,
    InvalidCategoryError,
    InvalidHyperparameterError,
    InvalidLabelError,
    SchemaMismatchError,
    UnseenCategoryError,
)


class TestSchemaMismatchError:
    """Tests for SchemaMismatchError."""

    def test_stores_expected_and_actual(self) -> None:
        """The expected and actual values are kept for error reporting."""
        error = SchemaMismatchError("Example has 3 attributes, schema has 2", expected=2, actual=3)

        with check:
            assert error.expected == 2
        with check:
            assert error.actual == 3
        with check:
            assert str(error) == "Example has 3 attributes, schema has 2"

    def test_defaults_to_none(self) -> None:
        """Expected and actual are optional."""
        error = SchemaMismatchError("mismatch")
        with check:
            assert error.expected is None
        with check:
            assert error.actual is None

    def test_repr_includes_details(self) -> None:
        """The repr names the class, message and both values."""
        repr_str = repr(SchemaMismatchError("bad arity", expected=2, actual=5))
        with check:
            assert repr_str.startswith("SchemaMismatchError(")
        with check:
            assert "expected=2" in repr_str
            assert "actual=5" in repr_str


class TestInvalidCategoryError:
    """Tests for InvalidCategoryError."""

    def test_message_names_attribute_and_arity(self) -> None:
        """The message locates the offending attribute."""
        error = InvalidCategoryError(value=4, arity=3, attribute=1)

        with check:
            assert (error.value, error.arity, error.attribute) == (4, 3, 1)
        with check:
            assert "attribute 1" in str(error)
        with check:
            assert "arity 3" in str(error)

    def test_attribute_is_optional(self) -> None:
        """Without an attribute index the message omits the location."""
        error = InvalidCategoryError(value=-1, arity=2)
        with check:
            assert error.attribute is None
        with check:
            assert "attribute" not in str(error)


class TestInvalidHyperparameterError:
    """Tests for InvalidHyperparameterError."""

    def test_fields_join_locations(self) -> None:
        """`fields` lists each failing location, dotting nested paths."""
        error = InvalidHyperparameterError(
            "Invalid hyperparameters",
            errors=[
                {"loc": ("confidence",), "msg": "Input should be less than 1"},
                {"loc": (0, "arity"), "msg": "Input should be greater than or equal to 1"},
            ],
        )
        assert error.fields == ["confidence", "0.arity"]

    def test_errors_default_to_empty(self) -> None:
        """Without details there are no failing fields."""
        error = InvalidHyperparameterError("Invalid hyperparameters")
        with check:
            assert error.errors == []
        with check:
            assert error.fields == []


class TestLabelAndRoutingErrors:
    """Tests for InvalidLabelError and UnseenCategoryError."""

    def test_invalid_label_message(self) -> None:
        """The message shows the label domain."""
        error = InvalidLabelError(label=5, num_classes=3)
        with check:
            assert (error.label, error.num_classes) == (5, 3)
        with check:
            assert "[0, 3)" in str(error)

    def test_unseen_category_is_lookup_error(self) -> None:
        """Unseen categories are lookup failures, not value errors."""
        error = UnseenCategoryError(attribute=2, value=9.0)
        with check:
            assert isinstance(error, LookupError)
        with check:
            assert not isinstance(error, ValueError)
        with check:
            assert (error.attribute, error.value) == (2, 9.0)


class TestExceptionsCatchableByBaseClass:
    """Every package error is catchable as HoeffdingTreeError."""

    @pytest.mark.parametrize(
        "error",
        [
            SchemaMismatchError("mismatch"),
            InvalidCategoryError(value=3, arity=2),
            UnseenCategoryError(attribute=0, value=3),
            InvalidHyperparameterError("invalid"),
            InvalidLabelError(label=-1, num_classes=2),
        ],
        ids=["schema-mismatch", "invalid-category", "unseen-category", "invalid-hyperparameter", "invalid-label"],
    )
    def test_catchable_by_base_class(self, error: HoeffdingTreeError) -> None:
        """Raise each error and catch it through the shared base.

        Args:
            error (HoeffdingTreeError): The exception instance to raise.

        Raises:
            HoeffdingTreeError: Intentionally raised to test catchability.
        """
        with pytest.raises(HoeffdingTreeError):
            raise error

    @pytest.mark.parametrize(
        "error",
        [
            SchemaMismatchError("mismatch"),
            InvalidCategoryError(value=3, arity=2),
            InvalidHyperparameterError("invalid"),
            InvalidLabelError(label=-1, num_classes=2),
        ],
        ids=["schema-mismatch", "invalid-category", "invalid-hyperparameter", "invalid-label"],
    )
    def test_input_errors_are_value_errors(self, error: HoeffdingTreeError) -> None:
        """Errors about bad input values also subclass ValueError.

        Args:
            error (HoeffdingTreeError): The exception instance to check.
        """
        assert isinstance(error, ValueError)

    def test_siblings_do_not_catch_each_other(self) -> None:
        """A specific handler does not swallow a sibling error.

        Raises:
            InvalidLabelError: Intentionally raised to test handler specificity.
        """
        with pytest.raises(InvalidLabelError):  # noqa: PT012
            try:
                raise InvalidLabelError(label=9, num_classes=2)
            except InvalidCategoryError:
                pytest.fail("InvalidCategoryError handler caught an InvalidLabelError")
