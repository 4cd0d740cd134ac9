"""
Integration tests for running request chains.

These tests run the demo graph end to end through the real HttpxExecutor
backed by an in-memory httpx transport.
"""

import json
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from apiflow.core.demo import create_demo_graph
from apiflow.core.flow_engine import FlowEngine
from apiflow.core.graph_store import GraphStore
from apiflow.core.http_executor import HttpxExecutor
from apiflow.core.types import RequestStatus

TRACE_ID = "Root=1-5f8a-abc"


class FakeHttpbin:
    """Answers the three demo endpoints and records what was sent."""

    def __init__(self, fail_post: bool = False):
        self.fail_post = fail_post
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/uuid":
            return httpx.Response(200, json={"uuid": "0b6a-uuid"})
        if path == "/anything":
            if self.fail_post:
                return httpx.Response(502, json={"error": "bad gateway"})
            return httpx.Response(200, json={
                "json": json.loads(request.content),
                "headers": {"X-Amzn-Trace-Id": TRACE_ID},
            })
        if path == "/headers":
            return httpx.Response(200, json={"headers": dict(request.headers)})
        return httpx.Response(404)

    def sent(self, path: str):
        return [r for r in self.requests if r.url.path == path]


@pytest.fixture
def demo_store() -> GraphStore:
    graph = GraphStore()
    create_demo_graph(graph)
    return graph


def make_engine(store: GraphStore, server: FakeHttpbin) -> FlowEngine:
    return FlowEngine(store, executor=HttpxExecutor(transport=httpx.MockTransport(server)))


class TestDemoChain:
    """Tests for the uuid -> session -> trace chain."""

    @pytest.mark.asyncio
    async def test_full_chain(self, demo_store):
        """Test that each response feeds the next request."""
        server = FakeHttpbin()
        engine = make_engine(demo_store, server)

        try:
            assert engine.execute_roots() == ["get-uuid"]
            await engine.wait_until_idle()
        finally:
            await engine.shutdown()

        assert [r.url.path for r in server.requests] == ["/uuid", "/anything", "/headers"]

        post = server.sent("/anything")[0]
        assert json.loads(post.content) == {
            "message": "Hello from APIFlow!",
            "session_id": "0b6a-uuid",
        }
        assert post.headers["Content-Type"] == "application/json"

        info = server.sent("/headers")[0]
        assert parse_qs(urlsplit(str(info.url)).query) == {"X-Trace-ID": [TRACE_ID]}

        for node in demo_store.get_nodes():
            assert node.runtime.status == RequestStatus.SUCCESS
        post_data = demo_store.get_node("post-data")
        assert post_data.request.get_parameter("param-session-id").value == "0b6a-uuid"

    @pytest.mark.asyncio
    async def test_failure_mid_chain(self, demo_store):
        """Test that a failing node stops the chain after it."""
        server = FakeHttpbin(fail_post=True)
        engine = make_engine(demo_store, server)

        try:
            await engine.run("get-uuid")
        finally:
            await engine.shutdown()

        assert server.sent("/headers") == []
        post_data = demo_store.get_node("post-data").runtime
        assert post_data.status == RequestStatus.ERROR
        assert post_data.error.code == "ERR_BAD_RESPONSE"
        assert post_data.response.data == {"error": "bad gateway"}
        assert demo_store.get_node("get-request-info").runtime.status == RequestStatus.IDLE

    @pytest.mark.asyncio
    async def test_saved_graph_runs_the_same(self, demo_store, temp_dir):
        """Test that a saved and reloaded graph keeps its connections."""
        path = demo_store.save(str(temp_dir / "demo.apiflow"))
        loaded = GraphStore.load(path)
        server = FakeHttpbin()
        engine = make_engine(loaded, server)

        try:
            await engine.run("get-uuid")
        finally:
            await engine.shutdown()

        assert len(server.requests) == 3
        assert loaded.get_node("get-request-info").runtime.status == RequestStatus.SUCCESS
