"""Environment-driven default hyperparameters."""

from __future__ import annotations

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings

from streamtree.models import CriterionName, HoeffdingTreeConfig, NumericStrategy, validate_config


class TreeSettings(
    BaseSettings,
    env_prefix="STREAMTREE_",
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
):
    """Default Hoeffding tree hyperparameters read from the environment.

    Every field maps to a `STREAMTREE_`-prefixed variable, e.g.
    `STREAMTREE_GRACE_PERIOD=200`. Values are checked when `to_config()`
    builds the validated `HoeffdingTreeConfig`.

    Examples:
        >>> import os
        >>> os.environ["STREAMTREE_CRITERION"] = "info_gain"  # doctest: +SKIP
        >>> TreeSettings().to_config(num_classes=3).criterion  # doctest: +SKIP
        'info_gain'
    """

    confidence: float = Field(default=0.05, description="Hoeffding bound failure probability.")
    tie_threshold: float = Field(default=0.05, description="Bound value below which ties are forced.")
    grace_period: int = Field(default=100, description="Examples between split evaluations.")
    min_samples: int = Field(default=100, description="Examples required before a split evaluation.")
    max_bins: int = Field(default=10, description="Maximum bins per multi-bin numeric accumulator.")
    criterion: CriterionName = Field(default="gini", description="Split criterion.")
    numeric_strategy: NumericStrategy = Field(default="multi_bin", description="Numeric split accumulator.")
    observations_before_binning: int = Field(default=100, description="Binary accumulator buffer size.")
    max_samples: int = Field(default=0, description="Forced split after this many examples; 0 disables.")

    def to_config(self, num_classes: int, **overrides: Any) -> HoeffdingTreeConfig:
        """Build a validated config for a label domain of `num_classes` classes.

        Args:
            num_classes (int): Size of the label domain.
            **overrides (Any): Hyperparameters that take precedence over the settings.

        Returns:
            HoeffdingTreeConfig: The validated configuration.

        Raises:
            InvalidHyperparameterError: If any resulting value is invalid.
        """
        return validate_config(self.model_dump() | {"num_classes": num_classes} | overrides)
