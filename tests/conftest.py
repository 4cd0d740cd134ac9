"""
APIFlow Test Configuration and Fixtures.

Provides shared fixtures for unit and integration tests.
"""

import os
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Qt widgets are created without a display
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from apiflow.core.config import ApiFlowConfig, set_config
from apiflow.core.graph_store import GraphStore
from apiflow.core.models import (
    Connection,
    HttpResponse,
    Node,
    OutputSocket,
    Parameter,
    Point,
    RequestSpec,
)
from apiflow.core.types import HttpMethod


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def default_config():
    """Give every test fresh defaults instead of ~/.apiflow/config.json."""
    config = ApiFlowConfig()
    set_config(config)
    yield config
    set_config(ApiFlowConfig())


# =============================================================================
# Temporary Directory Fixtures
# =============================================================================

@pytest.fixture
def temp_dir():
    """Provide a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# =============================================================================
# Graph Fixtures
# =============================================================================

def make_source_node(node_id: str = "source", path: str = "uuid", **kwargs) -> Node:
    """A GET node exposing one output socket."""
    return Node(
        id=node_id,
        position=kwargs.pop("position", Point(0, 0)),
        request=RequestSpec(
            method=HttpMethod.GET,
            url=kwargs.pop("url", "https://api.test/source"),
            output_sockets=[OutputSocket(id="out", name="Out", path=path)],
            **kwargs,
        ),
    )


def make_target_node(node_id: str = "target", key: str = "session_id", **kwargs) -> Node:
    """A POST node with one parameter."""
    return Node(
        id=node_id,
        position=kwargs.pop("position", Point(600, 0)),
        request=RequestSpec(
            method=kwargs.pop("method", HttpMethod.POST),
            url=kwargs.pop("url", "https://api.test/target"),
            parameters=[Parameter(id="in", key=key)],
            **kwargs,
        ),
    )


@pytest.fixture
def store() -> GraphStore:
    """Provide an empty graph store."""
    return GraphStore()


@pytest.fixture
def linked_store() -> GraphStore:
    """Provide a store with source.out -> target.in connected."""
    graph = GraphStore()
    graph.add_node(make_source_node())
    graph.add_node(make_target_node())
    graph.add_connection(Connection(
        id="conn-1",
        from_node_id="source",
        from_socket_id="out",
        to_node_id="target",
        to_socket_id="in",
    ))
    return graph


# =============================================================================
# Mock HTTP Fixtures
# =============================================================================

@pytest.fixture
def ok_response():
    """Provide a factory for 200 responses."""
    def _make(data=None, status: int = 200, headers=None) -> HttpResponse:
        return HttpResponse(status=status, status_text="OK", headers=headers or {}, data=data)

    return _make


@pytest.fixture
def mock_executor(ok_response):
    """Provide a mock HTTP executor that answers every request with an empty 200."""
    executor = AsyncMock()
    executor.execute = AsyncMock(return_value=ok_response({}))
    executor.close = AsyncMock()
    return executor


@pytest.fixture
def make_source():
    """Provide the source node factory."""
    return make_source_node


@pytest.fixture
def make_target():
    """Provide the target node factory."""
    return make_target_node
