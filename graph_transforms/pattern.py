"""
Pattern descriptors and the subgraph matcher.

A pattern is a tree of op-type alternatives mirroring the input structure of
the subgraph to find, e.g.

    OpTypePattern("BiasAdd", [
        OpTypePattern("Conv2D|MatMul", [OpTypePattern("*"), OpTypePattern("*")]),
        OpTypePattern("Const"),
    ])

"*" matches any node and stops the descent at that position.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple, Union
import logging

import yaml

from .errors import MissingNodeError, PatternInputCountMismatch
from .graph import Graph, GraphNode, map_nodes_to_outputs, node_name_from_input

logger = logging.getLogger(__name__)

WILDCARD = "*"


@dataclass(frozen=True)
class OpTypePattern:
    """Accepted op types at one position plus the patterns for its inputs"""
    op: str
    inputs: Tuple['OpTypePattern', ...] = ()

    def __post_init__(self):
        # Allow lists at construction time while keeping the tree hashable
        object.__setattr__(self, 'inputs', tuple(self.inputs))

    @property
    def is_wildcard(self) -> bool:
        return self.op == WILDCARD

    @property
    def accepted_ops(self) -> FrozenSet[str]:
        return frozenset(self.op.split('|'))

    def matches_op(self, op: str) -> bool:
        return self.is_wildcard or op in self.accepted_ops

    def debug_string(self, indent: int = 0) -> str:
        lines = [" " * indent + self.op]
        for child in self.inputs:
            lines.append(child.debug_string(indent + 2))
        return "\n".join(lines)

    @classmethod
    def from_dict(cls, data: Union[str, Dict[str, Any]]) -> 'OpTypePattern':
        """Build a pattern from nested {'op': ..., 'inputs': [...]} mappings"""
        if isinstance(data, str):
            return cls(data)
        if not isinstance(data, dict) or 'op' not in data:
            raise ValueError(f"Pattern entry needs an 'op' key: {data!r}")
        children = data.get('inputs') or []
        return cls(str(data['op']), tuple(cls.from_dict(c) for c in children))


def load_pattern_file(path: Union[str, Path]) -> OpTypePattern:
    """Read a pattern tree from a YAML file"""
    with open(path) as f:
        data = yaml.safe_load(f)
    if isinstance(data, dict) and 'pattern' in data:
        data = data['pattern']
    pattern = OpTypePattern.from_dict(data)
    logger.debug(f"Loaded pattern from {path}:\n{pattern.debug_string()}")
    return pattern


@dataclass
class NodeMatch:
    """A concrete node bound to a pattern position, with its input matches"""
    node: GraphNode
    pattern: OpTypePattern
    inputs: List['NodeMatch'] = field(default_factory=list)

    def child(self, *path: int) -> 'NodeMatch':
        """Follow input indices down the match tree: child(0, 1) = inputs[0].inputs[1]"""
        current = self
        for index in path:
            if index >= len(current.inputs):
                raise PatternInputCountMismatch(
                    current.node.name, index + 1, len(current.inputs)
                )
            current = current.inputs[index]
        return current

    def matched_nodes(self) -> List[GraphNode]:
        """All bound nodes in pre-order, wildcards included"""
        nodes = [self.node]
        for input_match in self.inputs:
            nodes.extend(input_match.matched_nodes())
        return nodes

    def private_nodes(self) -> List[GraphNode]:
        """Non-root, non-wildcard bound nodes"""
        nodes = []
        for input_match in self.inputs:
            if not input_match.pattern.is_wildcard:
                nodes.append(input_match.node)
                nodes.extend(input_match.private_nodes())
        return nodes

    def debug_string(self, indent: int = 0) -> str:
        lines = [" " * indent + f"{self.node.name} ({self.node.op})"]
        for input_match in self.inputs:
            lines.append(input_match.debug_string(indent + 2))
        return "\n".join(lines)


class GraphMatcher:
    """Finds non-overlapping subgraphs matching an OpTypePattern"""

    def __init__(self, graph: Graph):
        self.graph = graph
        self._outputs_map = map_nodes_to_outputs(graph)

    def consumer_count(self, node_name: str) -> int:
        return len({n.name for n in self._outputs_map.get(node_name, [])})

    def get_op_type_matches(self, pattern: OpTypePattern) -> List[NodeMatch]:
        """
        Match the pattern against every node, in declaration order.

        Roots and private members of an accepted match are claimed and cannot
        take part in a later match of the same pass. Wildcard leaves are not
        claimed, so two matches may share e.g. a constant.
        """
        matches: List[NodeMatch] = []
        claimed: Set[str] = set()

        for node in self.graph:
            if node.name in claimed:
                continue
            match = self.does_op_type_match(node, pattern, claimed)
            if match is None:
                continue
            claimed.add(node.name)
            claimed.update(n.name for n in match.private_nodes())
            matches.append(match)
            logger.debug(f"Matched subgraph:\n{match.debug_string()}")

        return matches

    def does_op_type_match(self, node: GraphNode, pattern: OpTypePattern,
                           excluded: Optional[Set[str]] = None,
                           is_root: bool = True) -> Optional[NodeMatch]:
        """Match one candidate node recursively; None when it does not fit"""
        excluded = excluded if excluded is not None else set()

        if pattern.is_wildcard:
            return NodeMatch(node=node, pattern=pattern)

        if not pattern.matches_op(node.op):
            return None

        if not is_root:
            if node.name in excluded:
                logger.debug(f"Node '{node.name}' already belongs to a match")
                return None
            consumers = self.consumer_count(node.name)
            if consumers != 1:
                logger.debug(
                    f"Node '{node.name}' has {consumers} consumers, "
                    f"cannot be removed safely"
                )
                return None

        # Control dependencies never take part in matching
        inputs = node.non_control_inputs()
        if len(inputs) != len(pattern.inputs):
            logger.debug(
                f"Node '{node.name}' has {len(inputs)} inputs, "
                f"pattern '{pattern.op}' expects {len(pattern.inputs)}"
            )
            return None

        match = NodeMatch(node=node, pattern=pattern)
        for input_name, input_pattern in zip(inputs, pattern.inputs):
            if input_name not in self.graph:
                raise MissingNodeError(node_name_from_input(input_name), node.name)
            input_node = self.graph.get_node(input_name)
            input_match = self.does_op_type_match(
                input_node, input_pattern, excluded, is_root=False
            )
            if input_match is None:
                return None
            match.inputs.append(input_match)

        return match
