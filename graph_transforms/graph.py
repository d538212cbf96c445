"""
Graph Model

Name-addressed node collection used by the graph transforms. Edges are input
references by node name ("name", "name:1" for a secondary output, "^name" for
a control dependency), never object pointers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional
import logging

import numpy as np

from .errors import DuplicateNodeError, MissingConstantValue, MissingNodeError

logger = logging.getLogger(__name__)


def _attr_value_equal(a: Any, b: Any) -> bool:
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        if not (isinstance(a, np.ndarray) and isinstance(b, np.ndarray)):
            return False
        return a.dtype == b.dtype and np.array_equal(a, b)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(
            _attr_value_equal(x, y) for x, y in zip(a, b)
        )
    return type(a) is type(b) and a == b


def _copy_attr_value(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.copy()
    if isinstance(value, list):
        return [_copy_attr_value(v) for v in value]
    return value


@dataclass(eq=False)
class GraphNode:
    """A single operation in the graph"""
    name: str
    op: str
    inputs: List[str] = field(default_factory=list)
    device: str = ""
    attr: Dict[str, Any] = field(default_factory=dict)

    def __eq__(self, other):
        if not isinstance(other, GraphNode):
            return NotImplemented
        if (self.name, self.op, self.device) != (other.name, other.op, other.device):
            return False
        if self.inputs != other.inputs:
            return False
        if self.attr.keys() != other.attr.keys():
            return False
        return all(_attr_value_equal(v, other.attr[k]) for k, v in self.attr.items())

    def copy(self) -> 'GraphNode':
        return GraphNode(
            name=self.name,
            op=self.op,
            inputs=list(self.inputs),
            device=self.device,
            attr={k: _copy_attr_value(v) for k, v in self.attr.items()},
        )

    def non_control_inputs(self) -> List[str]:
        return [inp for inp in self.inputs if inp and not is_control_input(inp)]


class Graph:
    """Ordered mapping from node name to node; owns its nodes"""

    def __init__(self, nodes: Optional[List[GraphNode]] = None):
        self._nodes: Dict[str, GraphNode] = {}

        if nodes:
            for node in nodes:
                self.add_node(node)

    def add_node(self, node: GraphNode) -> None:
        """Add a node to the graph"""
        if node.name in self._nodes:
            raise DuplicateNodeError(node.name)
        self._nodes[node.name] = node

    def get_node(self, name: str) -> GraphNode:
        """Look up a node by name or by any input reference to it"""
        node_name = node_name_from_input(name)
        try:
            return self._nodes[node_name]
        except KeyError:
            raise MissingNodeError(node_name) from None

    def __contains__(self, name: str) -> bool:
        return node_name_from_input(name) in self._nodes

    def __iter__(self) -> Iterator[GraphNode]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __eq__(self, other):
        if not isinstance(other, Graph):
            return NotImplemented
        return list(self._nodes) == list(other._nodes) and all(
            node == other._nodes[name] for name, node in self._nodes.items()
        )

    def __repr__(self) -> str:
        return f"Graph({len(self)} nodes)"

    @property
    def node_names(self) -> List[str]:
        return list(self._nodes)

    def op_counts(self) -> Dict[str, int]:
        """Number of nodes per op type"""
        counts: Dict[str, int] = {}
        for node in self._nodes.values():
            counts[node.op] = counts.get(node.op, 0) + 1
        return counts

    def validate(self) -> None:
        """Raise MissingNodeError if any input points at an absent node"""
        for node in self._nodes.values():
            for inp in node.inputs:
                if node_name_from_input(inp) not in self._nodes:
                    raise MissingNodeError(node_name_from_input(inp), node.name)

    def dangling_inputs(self) -> Dict[str, List[str]]:
        """Map of missing node name -> names of the nodes referencing it"""
        dangling: Dict[str, List[str]] = {}
        for node in self._nodes.values():
            for inp in node.inputs:
                input_name = node_name_from_input(inp)
                if input_name not in self._nodes:
                    dangling.setdefault(input_name, []).append(node.name)
        return dangling

    def clone(self) -> 'Graph':
        """Create a deep copy of the graph"""
        return Graph([node.copy() for node in self._nodes.values()])

    def to_dict(self) -> Dict[str, Any]:
        """Convert graph to dictionary representation"""
        return {
            'nodes': [
                {
                    'name': n.name,
                    'op': n.op,
                    'inputs': list(n.inputs),
                    'device': n.device,
                    'attr': {k: _copy_attr_value(v) for k, v in n.attr.items()},
                }
                for n in self._nodes.values()
            ]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Graph':
        """Create graph from dictionary representation"""
        nodes = [
            GraphNode(
                name=n['name'],
                op=n['op'],
                inputs=list(n.get('inputs', [])),
                device=n.get('device', ''),
                attr=dict(n.get('attr', {})),
            )
            for n in data.get('nodes', [])
        ]
        return cls(nodes)


# ============ Node helpers ============

def is_control_input(input_name: str) -> bool:
    return input_name.startswith('^')


def node_name_from_input(input_name: str) -> str:
    """Strip the control prefix and output index: '^a' / 'a:1' -> 'a'"""
    name = input_name[1:] if input_name.startswith('^') else input_name
    prefix, sep, suffix = name.rpartition(':')
    if sep and suffix.isdigit():
        return prefix
    return name


def canonical_input_name(input_name: str) -> str:
    """Make the output index explicit: 'a' -> 'a:0'"""
    if is_control_input(input_name):
        return input_name
    if node_name_from_input(input_name) == input_name:
        return f"{input_name}:0"
    return input_name


def map_nodes_to_outputs(graph: Graph) -> Dict[str, List[GraphNode]]:
    """Consumers of each node, control dependencies included"""
    outputs: Dict[str, List[GraphNode]] = {}
    for node in graph:
        for inp in node.inputs:
            outputs.setdefault(node_name_from_input(inp), []).append(node)
    return outputs


def add_node_input(input_name: str, node: GraphNode) -> None:
    node.inputs.append(input_name)


def set_node_attr(key: str, value: Any, node: GraphNode) -> None:
    node.attr[key] = value


def copy_node_attr(source: GraphNode, source_key: str, dest_key: str,
                   dest: GraphNode) -> bool:
    """
    Copy an attribute across nodes.

    Returns False and leaves dest untouched when the source does not carry
    the attribute.
    """
    if source_key not in source.attr:
        logger.debug(f"Node '{source.name}' has no attribute '{source_key}'")
        return False
    dest.attr[dest_key] = _copy_attr_value(source.attr[source_key])
    return True


def get_node_tensor_attr(node: GraphNode, key: str) -> np.ndarray:
    """Return a tensor-valued attribute as a numpy array"""
    if key not in node.attr:
        raise MissingConstantValue(node.name, f"no '{key}' attribute (op {node.op})")
    value = node.attr[key]
    if not isinstance(value, np.ndarray):
        raise MissingConstantValue(
            node.name, f"attribute '{key}' is {type(value).__name__}, not a tensor"
        )
    return value
