"""Demonstrates how to enable and configure logging in streamtree.

streamtree logging is disabled by default. Users opt in by calling ``enable_logging()``,
which returns a ``LoggingHandle``. The handle can be used as a context manager
(``with enable_logging(): ...``) or disabled manually via ``handle.disable()``.
When the last active handle is disabled, streamtree logging is automatically turned off.

Key concepts shown here:

- ``level``: controls the minimum log level. The custom ``SPLIT`` level
  (numeric value 25, between INFO and WARNING) reports every leaf that grows
  into a decision node and is the default. ``"DEBUG"`` adds each split
  evaluation with its Hoeffding bound and merits.
- ``log_format``: ``"short"`` shows ``timestamp | level | function - message``;
  ``"full"`` adds the module and line number.
- Error logging: rejected training examples are logged as warnings before the
  error is raised.
"""

import numpy as np

from streamtree import HoeffdingTree, InvalidCategoryError, enable_logging

rng = np.random.default_rng(0)

with enable_logging(level="DEBUG", log_format="full"):
    tree = HoeffdingTree(
        [{"kind": "categorical", "arity": 3, "name": "region"}, {"kind": "numeric", "name": "latency_ms"}],
        num_classes=2,
        grace_period=50,
        min_samples=50,
    )

    # Region 2 is always slow; elsewhere latency decides
    for _ in range(2_000):
        region = int(rng.integers(0, 3))
        latency = float(rng.exponential(120.0))
        tree.train([region, latency], int(region == 2 or latency > 200.0))

    print(f"\nNodes: {tree.node_count}, depth: {tree.depth}\n")

    # Unknown regions are routed to the first branch and logged at DEBUG
    tree.predict([7, 90.0])

    # Out-of-range categories are rejected and logged as warnings
    try:
        tree.train([7, 90.0], 0)
    except InvalidCategoryError as exc:
        print(f"Rejected: {exc}")

# Logging automatically disabled here
