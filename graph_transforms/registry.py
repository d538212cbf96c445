"""
Transform registration

Transforms are plain functions (graph, context) -> graph registered under a
stable name, so a driver can look them up and run them in the order a user
asks for.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
import logging

from .errors import InvalidParameterError, UnknownTransformError
from .graph import Graph

logger = logging.getLogger(__name__)


@dataclass
class TransformFuncContext:
    """Per-invocation settings handed to every transform"""
    input_names: List[str] = field(default_factory=list)
    output_names: List[str] = field(default_factory=list)
    params: Dict[str, List[str]] = field(default_factory=dict)

    def count_parameters(self, name: str) -> int:
        return len(self.params.get(name, []))

    def get_one_string_parameter(self, name: str, default: str) -> str:
        values = self.params.get(name, [])
        if not values:
            return default
        if len(values) > 1:
            raise InvalidParameterError(
                f"Expected a single '{name}' parameter but found {len(values)}"
            )
        return values[0]

    def get_one_int_parameter(self, name: str, default: int) -> int:
        value = self.get_one_string_parameter(name, str(default))
        try:
            return int(value)
        except ValueError:
            raise InvalidParameterError(
                f"Parameter '{name}' must be an integer, got '{value}'"
            ) from None


TransformFunc = Callable[[Graph, TransformFuncContext], Graph]

GRAPH_TRANSFORMS: Dict[str, TransformFunc] = {}


def register_transform(name: str) -> Callable[[TransformFunc], TransformFunc]:
    """Decorator registering a transform under name"""
    def decorator(func: TransformFunc) -> TransformFunc:
        if name in GRAPH_TRANSFORMS and GRAPH_TRANSFORMS[name] is not func:
            raise ValueError(f"Transform '{name}' is already registered")
        GRAPH_TRANSFORMS[name] = func
        logger.debug(f"Registered graph transform: {name}")
        return func
    return decorator


def get_transform(name: str) -> TransformFunc:
    try:
        return GRAPH_TRANSFORMS[name]
    except KeyError:
        raise UnknownTransformError(
            f"Transform '{name}' not recognized, available: {registered_transforms()}"
        ) from None


def registered_transforms() -> List[str]:
    return sorted(GRAPH_TRANSFORMS)


def run_transform(name: str, graph: Graph,
                  context: Optional[TransformFuncContext] = None) -> Graph:
    """Look up a single transform by name and apply it"""
    transform = get_transform(name)
    return transform(graph, context or TransformFuncContext())
