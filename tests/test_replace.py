#!/usr/bin/env python3
"""
Tests for splicing matches out of a graph
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(__file__))

from graph_fixtures import placeholder_node
from graph_transforms import (
    DuplicateNodeError,
    Graph,
    GraphNode,
    OpTypePattern,
    ReplaceMatchingOpTypesOptions,
    replace_matching_op_types,
)

# Relu(Relu(x)) -> Relu(x)
DOUBLE_RELU = OpTypePattern("Relu", [OpTypePattern("Relu", [OpTypePattern("*")])])


def collapse_relus(match, input_nodes, output_nodes):
    source = match.child(0, 0).node
    collapsed = GraphNode(name=match.node.name, op="Relu", inputs=[source.name])
    return [source, collapsed]


def double_relu_graph() -> Graph:
    return Graph([
        placeholder_node("X"),
        GraphNode(name="A", op="Relu", inputs=["X"]),
        GraphNode(name="B", op="Relu", inputs=["A"]),
        GraphNode(name="Out", op="Identity", inputs=["B"]),
    ])


class TestReplaceMatchingOpTypes(unittest.TestCase):
    """Tests for the generic splicer"""

    def test_replacement(self):
        output = replace_matching_op_types(double_relu_graph(), DOUBLE_RELU, collapse_relus)
        self.assertEqual(output.node_names, ["X", "B", "Out"])
        self.assertEqual(output.get_node("B").inputs, ["X"])
        self.assertEqual(output.get_node("Out").inputs, ["B"])
        output.validate()

    def test_input_graph_untouched(self):
        graph = double_relu_graph()
        before = graph.clone()
        replace_matching_op_types(graph, DOUBLE_RELU, collapse_relus)
        self.assertEqual(graph, before)

    def test_passthrough_returns_copy(self):
        graph = Graph([placeholder_node("X"), GraphNode(name="A", op="Relu", inputs=["X"])])
        output = replace_matching_op_types(graph, DOUBLE_RELU, collapse_relus)
        self.assertEqual(output, graph)
        self.assertIsNot(output, graph)
        self.assertIsNot(output.get_node("A"), graph.get_node("A"))

    def test_boundary_nodes(self):
        seen = {}

        def record(match, input_nodes, output_nodes):
            seen['inputs'] = input_nodes
            seen['outputs'] = output_nodes
            return collapse_relus(match, input_nodes, output_nodes)

        graph = double_relu_graph()
        graph.add_node(GraphNode(name="peek", op="Identity", inputs=["X"]))
        replace_matching_op_types(graph, DOUBLE_RELU, record)

        # X itself is a bound wildcard with no inputs; A reads it
        self.assertEqual(seen['inputs'], set())
        self.assertEqual(seen['outputs'], {"B", "X"})

    def test_new_names_placed_before_root(self):
        def split(match, input_nodes, output_nodes):
            source = match.child(0, 0).node
            return [
                source,
                GraphNode(name="B/pre", op="Relu", inputs=[source.name]),
                GraphNode(name=match.node.name, op="Identity", inputs=["B/pre"]),
            ]

        output = replace_matching_op_types(double_relu_graph(), DOUBLE_RELU, split)
        self.assertEqual(output.node_names, ["X", "B/pre", "B", "Out"])

    def test_dropping_used_node_reverts(self):
        """A dropped wildcard leaf that something else still reads keeps the match intact"""
        def drop_source(match, input_nodes, output_nodes):
            source = match.child(0, 0).node
            return [GraphNode(name=match.node.name, op="Relu", inputs=[source.name])]

        graph = double_relu_graph()
        graph.add_node(GraphNode(name="peek", op="Identity", inputs=["X"]))

        with self.assertLogs('graph_transforms.replace', level='WARNING') as logs:
            output = replace_matching_op_types(graph, DOUBLE_RELU, drop_source)

        self.assertEqual(output, graph)
        self.assertTrue(any("keeping the original nodes" in line for line in logs.output))

    def test_allow_inconsistencies(self):
        def drop_source(match, input_nodes, output_nodes):
            return [GraphNode(name=match.node.name, op="Relu", inputs=["X"])]

        graph = double_relu_graph()
        graph.add_node(GraphNode(name="peek", op="Identity", inputs=["X"]))
        options = ReplaceMatchingOpTypesOptions(allow_inconsistencies=True)

        with self.assertLogs('graph_transforms.replace', level='WARNING'):
            output = replace_matching_op_types(graph, DOUBLE_RELU, drop_source, options)

        self.assertNotIn("X", output)
        self.assertEqual(output.dangling_inputs(), {"X": ["B", "peek"]})

    def test_generator_error_propagates(self):
        def fail(match, input_nodes, output_nodes):
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            replace_matching_op_types(double_relu_graph(), DOUBLE_RELU, fail)

    def test_name_clash_with_unrelated_node(self):
        def clash(match, input_nodes, output_nodes):
            source = match.child(0, 0).node
            return [source, GraphNode(name="Out", op="Relu", inputs=[source.name])]

        with self.assertRaises(DuplicateNodeError):
            replace_matching_op_types(double_relu_graph(), DOUBLE_RELU, clash)


if __name__ == '__main__':
    unittest.main(verbosity=2)
