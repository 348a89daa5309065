"""streamtree: Incremental Hoeffding-tree classification over data streams."""

from loguru import logger

from streamtree.exceptions import (
    HoeffdingTreeError,
    InvalidCategoryError,
    InvalidHyperparameterError,
    InvalidLabelError,
    SchemaMismatchError,
    UnseenCategoryError,
)
from streamtree.hoeffding import HoeffdingTree
from streamtree.logging import PACKAGE_NAME, enable_logging
from streamtree.model import HoeffdingTreeModel
from streamtree.models import CategoricalAttribute, HoeffdingTreeConfig, NumericAttribute
from streamtree.preprocessing import FrameEncoder
from streamtree.settings import TreeSettings

logger.disable(PACKAGE_NAME)  # noqa: RUF067 - Disable logging for the streamtree module by default

__all__ = [
    "CategoricalAttribute",
    "FrameEncoder",
    "HoeffdingTree",
    "HoeffdingTreeConfig",
    "HoeffdingTreeError",
    "HoeffdingTreeModel",
    "InvalidCategoryError",
    "InvalidHyperparameterError",
    "InvalidLabelError",
    "NumericAttribute",
    "SchemaMismatchError",
    "TreeSettings",
    "UnseenCategoryError",
    "enable_logging",
]
