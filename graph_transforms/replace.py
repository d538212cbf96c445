"""
Graph splicing

Runs a pattern over a graph once and swaps every match for the nodes a
generator function builds from it.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple
import logging

from .errors import DuplicateNodeError
from .graph import Graph, GraphNode, map_nodes_to_outputs, node_name_from_input
from .pattern import GraphMatcher, NodeMatch, OpTypePattern

logger = logging.getLogger(__name__)

# (match, input_nodes, output_nodes) -> replacement nodes
NodeGenerator = Callable[[NodeMatch, Set[str], Set[str]], List[GraphNode]]


@dataclass
class ReplaceMatchingOpTypesOptions:
    """Options for replace_matching_op_types"""
    # Keep a replacement even if it leaves references to nodes it dropped
    allow_inconsistencies: bool = False


def _boundary_nodes(match: NodeMatch,
                    outputs_map: Dict[str, List[GraphNode]]) -> Tuple[Set[str], Set[str]]:
    """Matched nodes fed from outside the match, and those read from outside it"""
    matched = {n.name: n for n in match.matched_nodes()}
    input_nodes: Set[str] = set()
    output_nodes: Set[str] = set()

    for node in matched.values():
        for inp in node.inputs:
            if node_name_from_input(inp) not in matched:
                input_nodes.add(node.name)
        for consumer in outputs_map.get(node.name, []):
            if consumer.name not in matched:
                output_nodes.add(node.name)

    return input_nodes, output_nodes


def _splice(graph: Graph,
            matches: List[NodeMatch],
            replacements: Dict[str, List[GraphNode]],
            reverted: Set[str]) -> Graph:
    active = [m for m in matches if m.node.name not in reverted]

    removed: Set[str] = set()
    for match in active:
        removed.update(n.name for n in match.matched_nodes())

    # Replacement nodes reusing an original name take that node's slot; new
    # names go right before the match root. A node handed back unchanged
    # yields to another match's rewrite of it (one match's root can be a
    # wildcard leaf of the next).
    placed: Dict[str, GraphNode] = {}
    fresh: Dict[str, List[GraphNode]] = {}
    for match in active:
        for new_node in replacements[match.node.name]:
            if new_node.name not in graph:
                fresh.setdefault(match.node.name, []).append(new_node)
                continue
            if new_node.name not in removed:
                raise DuplicateNodeError(new_node.name)
            previous = placed.get(new_node.name)
            if previous is None or previous == new_node:
                placed[new_node.name] = new_node
                continue
            original = graph.get_node(new_node.name)
            if new_node == original:
                continue
            if previous != original:
                raise DuplicateNodeError(new_node.name)
            placed[new_node.name] = new_node

    output = Graph()
    for node in graph:
        for new_node in fresh.get(node.name, []):
            output.add_node(new_node.copy())
        if node.name in placed:
            output.add_node(placed[node.name].copy())
        elif node.name not in removed:
            output.add_node(node.copy())

    return output


def replace_matching_op_types(graph: Graph,
                              pattern: OpTypePattern,
                              node_generator: NodeGenerator,
                              options: Optional[ReplaceMatchingOpTypesOptions] = None) -> Graph:
    """
    Replace every match of pattern with the nodes node_generator returns.

    Only the returned nodes survive a match: any bound node the generator does
    not hand back (wildcard leaves included) is dropped. A replacement that
    drops a node something outside the match still reads is reverted and the
    original nodes are kept, unless options.allow_inconsistencies is set.

    The input graph is not modified. Errors raised by the generator propagate
    and no output is produced.
    """
    options = options or ReplaceMatchingOpTypesOptions()

    matcher = GraphMatcher(graph)
    matches = matcher.get_op_type_matches(pattern)
    if not matches:
        logger.debug(f"No matches for pattern '{pattern.op}'")
        return graph.clone()

    outputs_map = map_nodes_to_outputs(graph)
    replacements: Dict[str, List[GraphNode]] = {}
    dropped: Dict[str, Set[str]] = {}

    for match in matches:
        input_nodes, output_nodes = _boundary_nodes(match, outputs_map)
        new_nodes = node_generator(match, input_nodes, output_nodes)
        root = match.node.name
        replacements[root] = [n.copy() for n in new_nodes]
        kept = {n.name for n in new_nodes}
        dropped[root] = {n.name for n in match.matched_nodes()} - kept

    reverted: Set[str] = set()
    while True:
        output = _splice(graph, matches, replacements, reverted)
        dangling = output.dangling_inputs()
        if not dangling:
            break

        if options.allow_inconsistencies:
            for missing, users in dangling.items():
                logger.warning(f"Node '{missing}' was removed but is still used by {users}")
            break

        culprits = {
            root for root, names in dropped.items()
            if root not in reverted and names & dangling.keys()
        }
        if not culprits:
            # References that were already broken in the input graph
            break
        for root in sorted(culprits):
            still_used = sorted(dropped[root] & dangling.keys())
            logger.warning(
                f"Replacement of '{root}' would drop {still_used} which are "
                f"still needed, keeping the original nodes instead"
            )
        reverted.update(culprits)

    logger.info(
        f"Replaced {len(matches) - len(reverted)} of {len(matches)} matches "
        f"of '{pattern.op}' ({len(graph)} -> {len(output)} nodes)"
    )
    return output
