"""
Error types raised by graph transforms.

Every failure aborts the whole pass; callers never receive a partially
rewritten graph.
"""


class GraphTransformError(Exception):
    """Base class for all transform failures"""


class PatternInputCountMismatch(GraphTransformError):
    """A bound node does not have the fan-in its pattern position declares"""

    def __init__(self, node_name: str, expected: int, actual: int):
        super().__init__(
            f"Pattern expects {expected} inputs for node '{node_name}' "
            f"but it has {actual}"
        )
        self.node_name = node_name
        self.expected = expected
        self.actual = actual


class MissingConstantValue(GraphTransformError):
    """A node expected to hold a literal tensor does not hold a usable one"""

    def __init__(self, node_name: str, reason: str):
        super().__init__(f"Node '{node_name}': {reason}")
        self.node_name = node_name
        self.reason = reason


class UnsupportedOpVariant(GraphTransformError):
    """An op type reached a builder that has no rule for it"""

    def __init__(self, op: str, supported):
        super().__init__(
            f"Unsupported op '{op}', expected one of {sorted(supported)}"
        )
        self.op = op


class MissingNodeError(GraphTransformError):
    """An input references a node name that is not in the graph"""

    def __init__(self, node_name: str, referenced_by: str = ""):
        message = f"Node '{node_name}' not found in graph"
        if referenced_by:
            message += f" (referenced by '{referenced_by}')"
        super().__init__(message)
        self.node_name = node_name
        self.referenced_by = referenced_by


class DuplicateNodeError(GraphTransformError):
    """Two nodes share one name"""

    def __init__(self, node_name: str):
        super().__init__(f"Duplicate node name '{node_name}'")
        self.node_name = node_name


class UnknownTransformError(GraphTransformError):
    """No transform is registered under the requested name"""


class InvalidParameterError(GraphTransformError):
    """A transform parameter is missing, repeated or malformed"""
