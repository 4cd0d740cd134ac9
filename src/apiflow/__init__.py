"""
APIFlow - Visual composition of chained HTTP API calls.

Nodes issue one HTTP request each; connections carry values extracted
from one node's response into another node's request parameters.
"""

__version__ = "1.0.0"

from apiflow.core.graph_store import GraphStore
from apiflow.core.flow_engine import FlowEngine

__all__ = ["GraphStore", "FlowEngine", "__version__"]
