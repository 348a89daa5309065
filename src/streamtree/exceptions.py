"""Custom exceptions for the streaming Hoeffding tree.

This module defines the errors surfaced by tree construction, training and
prediction:

- HoeffdingTreeError: Base class for all streamtree errors. Catch this to
  handle any failure raised by the package.
- SchemaMismatchError: Raised when an example's arity or value types disagree
  with the configured attribute schema.
- InvalidCategoryError: Raised when a categorical id outside the configured
  arity is seen during training.
- UnseenCategoryError: Raised by a categorical split test during routing. The
  router always resolves it with the default-child policy, so callers of
  ``train`` and ``predict`` never see it.
- InvalidHyperparameterError: Raised when hyperparameters fail validation at
  construction time.
- InvalidLabelError: Raised when a training label is outside the label domain.

Every error is raised before any tree state is mutated, so a failed call
leaves the tree exactly as it was.
"""

from __future__ import annotations

from typing import Any


class HoeffdingTreeError(Exception):
    """Base exception for all streamtree errors."""


class SchemaMismatchError(HoeffdingTreeError, ValueError):
    """Raised when an example does not match the configured attribute schema.

    Attributes:
        expected (Any): What the schema expects, e.g. the attribute count.
        actual (Any): What the example provided.

    Examples:
        >>> err = SchemaMismatchError("Example has 3 attributes, schema has 2", expected=2, actual=3)
        >>> err.expected, err.actual
        (2, 3)
    """

    expected: Any
    actual: Any

    def __init__(self, message: str, *, expected: Any = None, actual: Any = None) -> None:
        """Initialize SchemaMismatchError.

        Args:
            message (str): Description of the mismatch.
            expected (Any): What the schema expects.
            actual (Any): What the example provided.
        """
        super().__init__(message)
        self.expected = expected
        self.actual = actual

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including message, expected and actual values.
        """
        return f"{self.__class__.__name__}(message={str(self)!r}, expected={self.expected!r}, actual={self.actual!r})"


class InvalidCategoryError(HoeffdingTreeError, ValueError):
    """Raised when a categorical value is outside the attribute's arity during training.

    Attributes:
        attribute (int | None): Index of the offending attribute, when known.
        value (Any): The rejected category value.
        arity (int): Number of categories configured for the attribute.
    """

    attribute: int | None
    value: Any
    arity: int

    def __init__(self, *, value: Any, arity: int, attribute: int | None = None) -> None:
        """Initialize InvalidCategoryError.

        Args:
            value (Any): The rejected category value.
            arity (int): Number of categories configured for the attribute.
            attribute (int | None): Index of the offending attribute.
        """
        location = f" for attribute {attribute}" if attribute is not None else ""
        super().__init__(f"Category {value!r}{location} is outside the configured arity {arity}")
        self.attribute = attribute
        self.value = value
        self.arity = arity


class UnseenCategoryError(HoeffdingTreeError, LookupError):
    """Raised by a categorical split test when a category has no child.

    Attributes:
        attribute (int): Index of the attribute tested by the split.
        value (Any): The category value that has no matching child.
    """

    attribute: int
    value: Any

    def __init__(self, *, attribute: int, value: Any) -> None:
        """Initialize UnseenCategoryError.

        Args:
            attribute (int): Index of the attribute tested by the split.
            value (Any): The category value that has no matching child.
        """
        super().__init__(f"Category {value!r} of attribute {attribute} was not seen during training")
        self.attribute = attribute
        self.value = value


class InvalidHyperparameterError(HoeffdingTreeError, ValueError):
    """Raised when tree hyperparameters fail validation.

    Attributes:
        errors (list[dict[str, Any]]): Validation error details, one entry per
            rejected field, in the format produced by pydantic.

    Examples:
        >>> err = InvalidHyperparameterError(
        ...     "Invalid hyperparameters",
        ...     errors=[{"loc": ("confidence",), "msg": "Input should be less than 1"}],
        ... )
        >>> err.fields
        ['confidence']
    """

    errors: list[dict[str, Any]]

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None) -> None:
        """Initialize InvalidHyperparameterError.

        Args:
            message (str): Description of the validation failure.
            errors (list[dict[str, Any]] | None): Per-field validation errors.
        """
        super().__init__(message)
        self.errors = errors or []

    @property
    def fields(self) -> list[str]:
        """list[str]: Names of the hyperparameters that failed validation."""
        return [".".join(str(part) for part in error.get("loc", ())) for error in self.errors]


class InvalidLabelError(HoeffdingTreeError, ValueError):
    """Raised when a training label is outside the label domain.

    Attributes:
        label (Any): The rejected label.
        num_classes (int): Size of the label domain ``0..num_classes-1``.
    """

    label: Any
    num_classes: int

    def __init__(self, *, label: Any, num_classes: int) -> None:
        """Initialize InvalidLabelError.

        Args:
            label (Any): The rejected label.
            num_classes (int): Size of the label domain.
        """
        super().__init__(f"Label {label!r} is outside the label domain [0, {num_classes})")
        self.label = label
        self.num_classes = num_classes
