"""
Node Graph Editor

Custom-painted canvas for composing API flows.
"""

from apiflow.gui.node_graph.graph_view import NodeGraphView
from apiflow.gui.node_graph.node_painter import NodePainter

__all__ = [
    "NodeGraphView",
    "NodePainter",
]
