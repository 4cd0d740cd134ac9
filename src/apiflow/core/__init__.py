"""
APIFlow Core - The headless flow graph engine.

Graph model, request building, execution and response processing. It
has no GUI dependencies and can run from the command line.
"""

from apiflow.core.graph_store import GraphStore
from apiflow.core.flow_engine import FlowEngine
from apiflow.core.http_executor import HttpExecutor, HttpxExecutor
from apiflow.core.node_binding import NodeBinding
from apiflow.core.path_extractor import MISSING, extract

__all__ = [
    "GraphStore",
    "FlowEngine",
    "HttpExecutor",
    "HttpxExecutor",
    "NodeBinding",
    "MISSING",
    "extract",
]
