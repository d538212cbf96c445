"""
Atrous-to-native convolution rewrite

Older exporters emulate a dilated convolution by wrapping a plain convolution
in SpaceToBatchND / BatchToSpaceND. This rule folds the wrapper back into a
single Conv2D or DepthwiseConv2dNative carrying a `dilations` attribute:

    BatchToSpaceND(Conv(SpaceToBatchND(x, block_shape, paddings), filter),
                   block_shape, crops)
        ->  Conv(x, filter, dilations=[1, bh, bw, 1], padding="SAME")

The paddings and crops are assumed to cancel out; they are not checked.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Set, Tuple
import logging

import numpy as np

from .errors import MissingConstantValue, UnsupportedOpVariant
from .graph import (
    Graph,
    GraphNode,
    add_node_input,
    copy_node_attr,
    get_node_tensor_attr,
    set_node_attr,
)
from .pattern import NodeMatch, OpTypePattern
from .registry import TransformFuncContext, register_transform
from .replace import replace_matching_op_types

logger = logging.getLogger(__name__)


ATROUS_PATTERN = OpTypePattern("BatchToSpaceND", [
    OpTypePattern("Conv2D|DepthwiseConv2dNative", [
        OpTypePattern("SpaceToBatchND", [
            OpTypePattern("*"),  # input
            OpTypePattern("*"),  # block_shape
            OpTypePattern("*"),  # paddings
        ]),
        OpTypePattern("*"),      # filter
    ]),
    OpTypePattern("*"),          # block_shape
    OpTypePattern("*"),          # crops
])


@dataclass(frozen=True)
class ConvAttrRule:
    """Attributes carried over from the wrapped convolution, per op type"""
    copy: Tuple[str, ...]
    force: Dict[str, Any] = field(default_factory=dict)


CONV_ATTR_RULES: Dict[str, ConvAttrRule] = {
    "Conv2D": ConvAttrRule(
        copy=("T", "strides", "data_format", "use_cudnn_on_gpu"),
        force={"padding": "SAME"},
    ),
    "DepthwiseConv2dNative": ConvAttrRule(
        copy=("T", "strides", "data_format"),
        force={"padding": "SAME"},
    ),
}


def block_shape_from_node(node: GraphNode) -> Tuple[int, int]:
    """Read (block_height, block_width) from a constant block_shape node"""
    value = get_node_tensor_attr(node, "value")
    if not np.issubdtype(value.dtype, np.integer):
        raise MissingConstantValue(node.name, f"block shape has dtype {value.dtype}, expected integers")
    if value.ndim != 1 or value.shape[0] != 2:
        raise MissingConstantValue(node.name, f"block shape must be 1-D of length 2, got shape {value.shape}")
    return int(value[0]), int(value[1])


def build_native_conv(match: NodeMatch,
                      input_nodes: Set[str],
                      output_nodes: Set[str]) -> List[GraphNode]:
    """Turn one atrous match into [input, filter, dilated conv]"""
    batch_to_space_node = match.node
    conv_node = match.child(0).node
    space_to_batch_node = match.child(0, 0).node
    filter_node = match.child(0, 1).node
    input_node = match.child(0, 0, 0).node
    block_shape_node = match.child(0, 0, 1).node

    rule = CONV_ATTR_RULES.get(conv_node.op)
    if rule is None:
        raise UnsupportedOpVariant(conv_node.op, CONV_ATTR_RULES)

    block_height, block_width = block_shape_from_node(block_shape_node)

    native_node = GraphNode(
        name=batch_to_space_node.name,
        op=conv_node.op,
        device=conv_node.device,
    )
    # Original references, so an explicit output index like "split:1" survives
    add_node_input(space_to_batch_node.non_control_inputs()[0], native_node)
    add_node_input(conv_node.non_control_inputs()[1], native_node)

    for key in rule.copy:
        copy_node_attr(conv_node, key, key, native_node)
    for key, value in rule.force.items():
        set_node_attr(key, value, native_node)
    set_node_attr("dilations", [1, block_height, block_width, 1], native_node)

    logger.debug(
        f"Folding '{batch_to_space_node.name}' into {conv_node.op} "
        f"with dilations [1, {block_height}, {block_width}, 1]"
    )
    return [input_node, filter_node, native_node]


@register_transform("atrous_to_native")
def atrous_to_native(graph: Graph, context: TransformFuncContext) -> Graph:
    """Replace SpaceToBatchND/conv/BatchToSpaceND chains with dilated convolutions"""
    output = replace_matching_op_types(graph, ATROUS_PATTERN, build_native_conv)

    removed = len(graph) - len(output)
    if removed:
        logger.info(f"atrous_to_native: removed {removed} nodes")
    return output
