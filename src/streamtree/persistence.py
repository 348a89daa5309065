"""State persistence and restoration for Hoeffding trees and models.

The main entry points are `restore_nodes_from_state()`, which rebuilds and
validates a node arena from a `HoeffdingTreeState`, and the JSON helpers
`save_state()` / `load_state()`.

Restoration checks the structural invariants the growth engine maintains:

1. Exactly one root, with no parent
2. Every other node is the child of exactly one decision node, which is its parent
3. Children sit one level below their parent and match the split's outcome count
4. Every node is reachable from the root
"""

from __future__ import annotations

from pathlib import Path
from typing import Final

from loguru import logger
from pydantic import BaseModel

from streamtree.hoeffding.nodes import DecisionNode, GrowthEngine, Node
from streamtree.models import HoeffdingTreeState

__all__ = ["STATE_ENCODING", "load_state", "restore_nodes_from_state", "save_state"]

STATE_ENCODING: Final[str] = "utf-8"


def restore_nodes_from_state(state: HoeffdingTreeState, engine: GrowthEngine) -> list[Node]:
    """Rebuild the node arena described by `state`.

    Args:
        state (HoeffdingTreeState): Serialized tree from `HoeffdingTree.export_state()`.
        engine (GrowthEngine): Engine built from the state's schema and config.

    Returns:
        list[Node]: Node records indexed by id.

    Raises:
        ValueError: If a node record is inconsistent with the schema, or the
            arena does not form a single tree rooted at `state.root`.
    """
    nodes = [engine.node_from_state(node_state) for node_state in state.nodes]
    _validate_tree_structure(nodes, state.root)
    return nodes


def save_state(state: BaseModel, path: str | Path) -> Path:
    """Write a state model to `path` as JSON.

    Args:
        state (BaseModel): Any streamtree state model.
        path (str | Path): Destination file; parent directories must exist.

    Returns:
        Path: The written path.
    """
    destination = Path(path)
    destination.write_text(state.model_dump_json(), encoding=STATE_ENCODING)
    logger.info("State saved", path=str(destination), state_type=type(state).__name__)
    return destination


def load_state[StateT: BaseModel](path: str | Path, state_type: type[StateT]) -> StateT:
    """Read a JSON state model written by `save_state()`.

    Args:
        path (str | Path): Source file.
        state_type (type[StateT]): Model class to validate the JSON against.

    Returns:
        StateT: The validated state.

    Raises:
        pydantic.ValidationError: If the file content does not match `state_type`.
    """
    source = Path(path)
    state = state_type.model_validate_json(source.read_text(encoding=STATE_ENCODING))
    logger.info("State loaded", path=str(source), state_type=state_type.__name__)
    return state


# Private helpers


def _validate_tree_structure(nodes: list[Node], root: int) -> None:
    """Check that `nodes` forms one tree rooted at `root`.

    Raises:
        ValueError: On a parented root, a shared or mis-parented child, a depth
            or arity mismatch, or unreachable nodes.
    """
    if nodes[root].parent is not None:
        raise ValueError(f"Root node {root} must not have a parent")
    if nodes[root].depth != 0:
        raise ValueError(f"Root node {root} must have depth 0")

    seen = {root}
    stack = [root]
    while stack:
        node_id = stack.pop()
        node = nodes[node_id]
        if not isinstance(node, DecisionNode):
            continue
        if len(node.children) != node.split.num_children:
            msg = f"Decision node {node_id} has {len(node.children)} children, its test has {node.split.num_children}"
            raise ValueError(msg)
        for child_id in node.children:
            if child_id in seen:
                raise ValueError(f"Node {child_id} is referenced more than once")
            child = nodes[child_id]
            if child.parent != node_id:
                raise ValueError(f"Node {child_id} names parent {child.parent}, expected {node_id}")
            if child.depth != node.depth + 1:
                raise ValueError(f"Node {child_id} has depth {child.depth}, expected {node.depth + 1}")
            seen.add(child_id)
            stack.append(child_id)

    unreachable = sorted(set(range(len(nodes))) - seen)
    if unreachable:
        raise ValueError(f"Nodes not reachable from the root: {unreachable}")
