"""
Graph Transforms

Pattern-based rewrites for name-addressed dataflow graphs, starting with the
fold of SpaceToBatchND/BatchToSpaceND-wrapped convolutions into native
dilated convolutions.
"""

from .errors import (
    GraphTransformError,
    PatternInputCountMismatch,
    MissingConstantValue,
    UnsupportedOpVariant,
    MissingNodeError,
    DuplicateNodeError,
    UnknownTransformError,
    InvalidParameterError,
)
from .graph import Graph, GraphNode, node_name_from_input, canonical_input_name
from .pattern import OpTypePattern, NodeMatch, GraphMatcher, load_pattern_file
from .replace import ReplaceMatchingOpTypesOptions, replace_matching_op_types
from .registry import (
    TransformFuncContext,
    register_transform,
    get_transform,
    registered_transforms,
    run_transform,
)
from .atrous import ATROUS_PATTERN, CONV_ATTR_RULES, atrous_to_native, build_native_conv

__version__ = "1.0.0"
__all__ = [
    # Errors
    "GraphTransformError",
    "PatternInputCountMismatch",
    "MissingConstantValue",
    "UnsupportedOpVariant",
    "MissingNodeError",
    "DuplicateNodeError",
    "UnknownTransformError",
    "InvalidParameterError",

    # Graph model
    "Graph",
    "GraphNode",
    "node_name_from_input",
    "canonical_input_name",

    # Matching
    "OpTypePattern",
    "NodeMatch",
    "GraphMatcher",
    "load_pattern_file",

    # Splicing
    "ReplaceMatchingOpTypesOptions",
    "replace_matching_op_types",

    # Registry
    "TransformFuncContext",
    "register_transform",
    "get_transform",
    "registered_transforms",
    "run_transform",

    # Atrous rewrite
    "ATROUS_PATTERN",
    "CONV_ATTR_RULES",
    "atrous_to_native",
    "build_native_conv",
]
